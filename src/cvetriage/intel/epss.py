"""FIRST.org EPSS (Exploit Prediction Scoring System) API client."""

from __future__ import annotations

import logging
from collections.abc import Iterator

import httpx

from cvetriage.config import EPSS_URL
from cvetriage.models import CveRecord

logger = logging.getLogger(__name__)

BATCH_SIZE = 100


async def enrich_epss(
    client: httpx.AsyncClient,
    records: list[CveRecord],
    url: str = EPSS_URL,
) -> int:
    """Set ``epss`` on records from the EPSS API. Returns how many were scored."""
    cve_records = [r for r in records if r.id.startswith("CVE-")]
    enriched = 0

    # Batch CVEs (API limit ~100 per request)
    for batch in _chunks(cve_records, BATCH_SIZE):
        record_map = {r.id: r for r in batch}

        try:
            resp = await client.get(url, params={"cve": ",".join(record_map)})
            resp.raise_for_status()
            data = resp.json()

            for entry in data.get("data", []):
                record = record_map.get(entry.get("cve"))
                if record is None:
                    continue
                score = float(entry.get("epss", 0))
                if 0.0 <= score <= 1.0:
                    record.epss = score
                    enriched += 1
        except (httpx.HTTPError, AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("EPSS batch of %d failed (%s); leaving scores empty", len(batch), exc)

    return enriched


def _chunks(lst: list, n: int) -> Iterator[list]:
    for i in range(0, len(lst), n):
        yield lst[i : i + n]
