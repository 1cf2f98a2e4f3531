"""NVD CVE API 2.0 client with bounded paging."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from cvetriage.config import NVD_URL

logger = logging.getLogger(__name__)

USER_AGENT = "cvetriage/0.1"


@dataclass(frozen=True)
class NVDPage:
    """One page of the NVD feed."""

    records: list[dict[str, Any]]
    start_index: int
    results_per_page: int
    total_results: int


async def fetch_nvd_page(
    client: httpx.AsyncClient,
    start_index: int,
    results_per_page: int,
    *,
    url: str = NVD_URL,
    api_key: str | None = None,
) -> NVDPage:
    """Fetch a single page of CVE records.

    Raises httpx.HTTPError on transport or status failures and ValueError when
    the payload is not a well-formed results object.
    """
    headers = {"User-Agent": USER_AGENT}
    if api_key:
        headers["apiKey"] = api_key

    resp = await client.get(
        url,
        params={"startIndex": start_index, "resultsPerPage": results_per_page},
        headers=headers,
    )
    resp.raise_for_status()
    data = resp.json()

    if not isinstance(data, dict):
        raise ValueError("NVD response is not a JSON object")
    records = data.get("vulnerabilities") or []
    if not isinstance(records, list):
        raise ValueError("NVD response 'vulnerabilities' is not a list")

    return NVDPage(
        records=[r for r in records if isinstance(r, dict)],
        start_index=_as_int(data.get("startIndex"), start_index),
        results_per_page=_as_int(data.get("resultsPerPage"), results_per_page),
        total_results=_as_int(data.get("totalResults"), 0),
    )


async def fetch_nvd_records(
    client: httpx.AsyncClient,
    *,
    url: str = NVD_URL,
    page_size: int = 100,
    max_records: int = 500,
    api_key: str | None = None,
) -> list[dict[str, Any]]:
    """Page through the feed until the total or ``max_records`` is covered.

    A failed page stops paging; records from earlier pages are kept.
    """
    collected: list[dict[str, Any]] = []
    target: int | None = None
    start = 0

    while target is None or start < target:
        try:
            page = await fetch_nvd_page(
                client, start, page_size, url=url, api_key=api_key
            )
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(
                "NVD page at startIndex=%d failed (%s); keeping %d records",
                start, exc, len(collected),
            )
            break

        if target is None:
            target = min(page.total_results, max_records)
            logger.info("NVD reports %d CVEs; retrieving up to %d", page.total_results, target)

        if not page.records:
            break

        collected.extend(page.records)
        start += len(page.records)
        logger.debug("Fetched %d/%d", min(len(collected), target), target)

    return collected[:max_records]


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    return default
