"""Map upstream feed records onto the unified CveRecord schema.

Every function here is pure: malformed or missing optional fields degrade to
defaults and never raise.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Iterator
from datetime import UTC, datetime
from typing import Any

from cvetriage.models import (
    AFFECTED_SOFTWARE_MAX,
    DESCRIPTION_MAX_LENGTH,
    CveRecord,
    FetchStats,
)

logger = logging.getLogger(__name__)

NO_DESCRIPTION = "No description available"

# Newest scoring scheme first.
CVSS_METRIC_KEYS = ("cvssMetricV31", "cvssMetricV30", "cvssMetricV2")

CWE_CLASSES = {
    "CWE-94": "Code Injection",
    "CWE-77": "Command Injection",
    "CWE-78": "OS Command Injection",
    "CWE-79": "XSS",
    "CWE-89": "SQL Injection",
    "CWE-22": "Path Traversal",
    "CWE-287": "Authentication Bypass",
    "CWE-306": "Missing Authentication",
    "CWE-502": "Deserialization",
    "CWE-917": "Expression Injection",
    "CWE-352": "CSRF",
    "CWE-200": "Information Disclosure",
    "CWE-639": "Insecure Direct Object Reference",
    "CWE-918": "SSRF",
    "CWE-611": "XXE",
    "CWE-434": "Unrestricted Upload",
    "CWE-416": "Use After Free",
    "CWE-119": "Buffer Overflow",
    "CWE-787": "Buffer Overflow",
}

CVE_YEAR_RE = re.compile(r"^CVE-(\d{4})-\d+", re.IGNORECASE)
CWE_TOKEN_RE = re.compile(r"CWE-(\d+)")
CPE_WILDCARDS = frozenset({"*", "-"})


def normalize_nvd_record(item: dict[str, Any], in_kev: bool) -> CveRecord:
    """Normalize one NVD ``vulnerabilities[]`` entry (or its bare ``cve`` object)."""
    record, _ = _normalize_nvd(item, in_kev)
    return record


def normalize_nvd_records(
    items: Iterable[dict[str, Any]],
    kev_index: frozenset[str],
    stats: FetchStats | None = None,
) -> list[CveRecord]:
    """Normalize a batch, dropping entries without an identifier.

    Updates ``stats`` in-place when given.
    """
    records: list[CveRecord] = []
    for item in items:
        cve_id = canonical_id(_cve_object(item).get("id"))
        if not cve_id:
            logger.debug("Skipping NVD entry without an id")
            continue

        record, truncated = _normalize_nvd(item, cve_id in kev_index)
        records.append(record)
        if stats is not None and truncated:
            stats.truncated_software += 1

    if stats is not None:
        stats.normalized = len(records)
    return records


def normalize_shodan_record(item: dict[str, Any]) -> CveRecord:
    """Normalize one Shodan CVEDB record."""
    cve_id = canonical_id(item.get("cve_id"))
    summary = _as_str(item.get("summary")) or NO_DESCRIPTION

    cvss = _valid_score(item.get("cvss_v3"))
    if cvss is None:
        cvss = _valid_score(item.get("cvss"))

    epss = item.get("epss")
    if not _is_number(epss) or not 0.0 <= epss <= 1.0:
        epss = None

    software, _ = extract_affected_software(
        cpe_vendor_product(cpe) if cpe.startswith("cpe:") else cpe
        for cpe in _as_list(item.get("cpes"))
        if isinstance(cpe, str)
    )

    return CveRecord(
        id=cve_id,
        description=summary[:DESCRIPTION_MAX_LENGTH],
        cvss=cvss,
        epss=float(epss) if epss is not None else None,
        in_kev=item.get("kev") is True,
        vulnerability_class=None,
        affected_software=software,
        year=derive_year(cve_id, item.get("published_time")),
        exploits=[],
    )


def canonical_id(value: Any) -> str:
    """Identifier stripped and upper-cased; empty when absent."""
    return _as_str(value).strip().upper()


def pick_description(descriptions: Any) -> str:
    """English description first, then the first one available, then a placeholder."""
    values = [
        (d.get("lang"), d["value"])
        for d in _as_list(descriptions)
        if isinstance(d, dict) and isinstance(d.get("value"), str) and d["value"]
    ]
    text = next((value for lang, value in values if lang == "en"), None)
    if text is None:
        text = values[0][1] if values else NO_DESCRIPTION
    return text[:DESCRIPTION_MAX_LENGTH]


def extract_cvss(metrics: Any) -> float | None:
    """Base score from the newest populated CVSS version."""
    if not isinstance(metrics, dict):
        return None

    for key in CVSS_METRIC_KEYS:
        for block in _as_list(metrics.get(key)):
            if not isinstance(block, dict):
                continue
            data = block.get("cvssData")
            score = _valid_score(data.get("baseScore")) if isinstance(data, dict) else None
            if score is not None:
                return score
    return None


def derive_year(cve_id: str, published: Any = None, last_modified: Any = None) -> int:
    """Year embedded in the CVE id, else the year of the first parseable timestamp."""
    match = CVE_YEAR_RE.match(cve_id)
    if match and int(match.group(1)) >= 1000:
        return int(match.group(1))

    for stamp in (published, last_modified):
        year = _timestamp_year(stamp)
        if year is not None:
            return year

    return datetime.now(UTC).year


def classify_weakness(weaknesses: Any) -> str | None:
    """Category label for the first weakness citation mentioning a CWE.

    NVD placeholders such as ``NVD-CWE-noinfo`` count as a hit and, having no
    mapping, are returned as their raw text.
    """
    for weakness in _as_list(weaknesses):
        if not isinstance(weakness, dict):
            continue
        for desc in _as_list(weakness.get("description")):
            value = desc.get("value") if isinstance(desc, dict) else None
            if not isinstance(value, str) or "CWE-" not in value:
                continue
            match = CWE_TOKEN_RE.search(value)
            if match is None:
                return value
            return CWE_CLASSES.get(f"CWE-{match.group(1)}", value)
    return None


def iter_cpe_criteria(configurations: Any) -> Iterator[str]:
    """Yield every ``cpeMatch[].criteria`` string from NVD configurations."""
    for config in _as_list(configurations):
        if not isinstance(config, dict):
            continue
        for node in _as_list(config.get("nodes")):
            if not isinstance(node, dict):
                continue
            for match in _as_list(node.get("cpeMatch")):
                if isinstance(match, dict) and isinstance(match.get("criteria"), str):
                    yield match["criteria"]


def cpe_vendor_product(criteria: str) -> str | None:
    """``vendor:product`` from a CPE 2.3 string, or None for wildcards."""
    parts = criteria.split(":")
    if len(parts) < 5:
        return None
    vendor, product = parts[3], parts[4]
    if not vendor or not product or vendor in CPE_WILDCARDS or product in CPE_WILDCARDS:
        return None
    return f"{vendor}:{product}"


def extract_affected_software(entries: Iterable[str | None]) -> tuple[list[str], bool]:
    """Dedupe in encounter order and cap the list.

    Returns the capped list and whether entries were dropped by the cap.
    """
    unique = dict.fromkeys(e for e in entries if e)
    software = list(unique)
    return software[:AFFECTED_SOFTWARE_MAX], len(software) > AFFECTED_SOFTWARE_MAX


def _normalize_nvd(item: dict[str, Any], in_kev: bool) -> tuple[CveRecord, bool]:
    cve = _cve_object(item)
    cve_id = canonical_id(cve.get("id"))

    software, truncated = extract_affected_software(
        cpe_vendor_product(c) for c in iter_cpe_criteria(cve.get("configurations"))
    )

    record = CveRecord(
        id=cve_id,
        description=pick_description(cve.get("descriptions")),
        cvss=extract_cvss(cve.get("metrics")),
        epss=None,
        in_kev=in_kev,
        vulnerability_class=classify_weakness(cve.get("weaknesses")),
        affected_software=software,
        year=derive_year(cve_id, cve.get("published"), cve.get("lastModified")),
        exploits=[],
    )
    return record, truncated


def _cve_object(item: Any) -> dict[str, Any]:
    if not isinstance(item, dict):
        return {}
    cve = item.get("cve", item)
    return cve if isinstance(cve, dict) else {}


def _timestamp_year(value: Any) -> int | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        year = datetime.fromisoformat(value.replace("Z", "+00:00")).year
    except ValueError:
        return None
    return year if year >= 1000 else None


def _valid_score(value: Any) -> float | None:
    if _is_number(value) and 0.0 <= value <= 10.0:
        return float(value)
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_str(value: Any) -> str:
    return value if isinstance(value, str) else ""
