"""TOML configuration loader."""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATHS = [
    Path("cvetriage.toml"),
    Path.home() / ".config" / "cvetriage" / "config.toml",
    Path("/etc/cvetriage/config.toml"),
]

KEV_URL = "https://www.cisa.gov/sites/default/files/feeds/known_exploited_vulnerabilities.json"
NVD_URL = "https://services.nvd.nist.gov/rest/json/cves/2.0"
SHODAN_URL = "https://cvedb.shodan.io"
EPSS_URL = "https://api.first.org/data/v1/epss"


class FetchConfig(BaseModel):
    """Configuration for a dataset build run."""

    source: Literal["nvd", "shodan"] = Field(
        default="nvd",
        description="Detailed feed to build records from (nvd, shodan)",
    )
    kev_url: str = Field(default=KEV_URL, description="CISA KEV catalog URL")
    nvd_url: str = Field(default=NVD_URL, description="NVD CVE API 2.0 endpoint")
    shodan_url: str = Field(default=SHODAN_URL, description="Shodan CVEDB base URL")
    epss_url: str = Field(default=EPSS_URL, description="FIRST.org EPSS API endpoint")
    nvd_api_key: str | None = Field(default=None, description="NVD API key (apiKey header)")

    # Paging and limits
    page_size: int = Field(default=100, ge=1, le=2000, description="NVD results per page")
    max_records: int = Field(default=500, ge=1, description="Retrieval cap for the detailed feed")
    output_limit: int = Field(default=500, ge=1, description="Records kept after ranking")
    timeout: float = Field(default=30.0, gt=0, description="Per-request timeout in seconds")

    enrich_epss: bool = Field(default=False, description="Fetch EPSS scores for ranked records")
    require_kev: bool = Field(
        default=False,
        description="Abort the run when the KEV catalog cannot be fetched",
    )
    output: Path = Field(
        default=Path("client/public/api/cves.json"),
        description="Artifact path served to the dashboard",
    )


def load_config(config_path: Path | None = None) -> FetchConfig:
    """Load config from TOML file, falling back to defaults."""
    if config_path and config_path.exists():
        return _parse_toml(config_path)

    for path in DEFAULT_CONFIG_PATHS:
        if path.exists():
            return _parse_toml(path)

    return FetchConfig()


def _parse_toml(path: Path) -> FetchConfig:
    data = tomllib.loads(path.read_text())
    fetch_data = data.get("fetch", {})
    return FetchConfig(**fetch_data)
