"""Unified data models for normalized CVE records and run results."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DESCRIPTION_MAX_LENGTH = 1000
AFFECTED_SOFTWARE_MAX = 10


class ExploitSource(StrEnum):
    EXPLOIT_DB = "exploit-db"
    GITHUB = "github"
    METASPLOIT = "metasploit"
    TRICKEST = "trickest"


class Exploit(BaseModel):
    """A public exploit reference attached to a CVE."""

    id: str
    source: ExploitSource
    name: str
    url: str


class CveRecord(BaseModel):
    """A single CVE in the dashboard's unified schema."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(description="Canonical CVE identifier, e.g. CVE-2024-0001")
    description: str = Field(max_length=DESCRIPTION_MAX_LENGTH)
    cvss: float | None = Field(default=None, ge=0.0, le=10.0)
    epss: float | None = Field(default=None, ge=0.0, le=1.0)
    in_kev: bool = Field(default=False, alias="inKev")
    vulnerability_class: str | None = Field(default=None, alias="vulnerabilityClass")
    affected_software: list[str] = Field(
        default_factory=list,
        alias="affectedSoftware",
        max_length=AFFECTED_SOFTWARE_MAX,
    )
    year: int = Field(ge=1000, le=9999)
    exploits: list[Exploit] = Field(default_factory=list)

    @field_validator("affected_software")
    @classmethod
    def _unique_software(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError("affectedSoftware entries must be unique")
        return value

    @property
    def is_critical(self) -> bool:
        return self.cvss is not None and self.cvss >= 9.0


class FetchStats(BaseModel):
    """Advisory counters reported to the operator after a run."""

    source: str = "nvd"
    kev_available: bool = False
    kev_entries: int = 0
    fetched: int = 0
    normalized: int = 0
    duplicates_dropped: int = 0
    truncated_software: int = 0
    epss_enriched: int = 0
    written: int = 0
    in_kev: int = 0
    critical: int = 0

    def count_output(self, records: list[CveRecord]) -> None:
        self.written = len(records)
        self.in_kev = sum(1 for r in records if r.in_kev)
        self.critical = sum(1 for r in records if r.is_critical)


class FetchResult(BaseModel):
    """Complete result of a dataset build run."""

    generated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    records: list[CveRecord] = Field(default_factory=list)
    stats: FetchStats = Field(default_factory=FetchStats)
