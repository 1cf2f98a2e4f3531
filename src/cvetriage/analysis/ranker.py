"""Triage ordering and output limiting for normalized records."""

from __future__ import annotations

from cvetriage.models import CveRecord

DEFAULT_LIMIT = 500


def dedupe_records(records: list[CveRecord]) -> list[CveRecord]:
    """Drop records whose id was already seen; the first occurrence wins."""
    seen: set[str] = set()
    unique: list[CveRecord] = []
    for r in records:
        if r.id in seen:
            continue
        seen.add(r.id)
        unique.append(r)
    return unique


def rank_records(records: list[CveRecord], limit: int = DEFAULT_LIMIT) -> list[CveRecord]:
    """Return unique records by CVSS descending (unscored last), then year descending."""
    ranked = sorted(dedupe_records(records), key=_sort_key, reverse=True)
    return ranked[:limit]


def _sort_key(r: CveRecord) -> tuple[bool, float, int]:
    return (r.cvss is not None, r.cvss or 0.0, r.year)
