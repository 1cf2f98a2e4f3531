"""CISA Known Exploited Vulnerabilities (KEV) catalog client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cvetriage.config import KEV_URL
from cvetriage.errors import FeedError

logger = logging.getLogger(__name__)


async def fetch_kev_catalog(client: httpx.AsyncClient, url: str = KEV_URL) -> dict[str, Any]:
    """Download the KEV catalog and return the parsed JSON object."""
    resp = await client.get(url)
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, dict):
        raise ValueError("KEV catalog is not a JSON object")
    return data


def build_kev_index(catalog: dict[str, Any]) -> frozenset[str]:
    """Reduce a KEV catalog to the set of its CVE IDs."""
    entries = catalog.get("vulnerabilities") or []
    if not isinstance(entries, list):
        return frozenset()

    return frozenset(
        entry["cveID"].strip().upper()
        for entry in entries
        if isinstance(entry, dict) and isinstance(entry.get("cveID"), str)
    )


async def load_kev_index(
    client: httpx.AsyncClient,
    url: str = KEV_URL,
    *,
    required: bool = False,
) -> frozenset[str] | None:
    """Fetch the catalog and build its index.

    Returns None when the catalog is unavailable, unless ``required`` is set,
    in which case a FeedError is raised instead.
    """
    try:
        catalog = await fetch_kev_catalog(client, url)
    except (httpx.HTTPError, ValueError) as exc:
        if required:
            raise FeedError("kev", str(exc)) from exc
        logger.warning("KEV catalog unavailable (%s); continuing with an empty index", exc)
        return None

    index = build_kev_index(catalog)
    declared = catalog.get("count")
    if isinstance(declared, int) and declared != len(index):
        logger.debug("KEV catalog declares %d entries, indexed %d", declared, len(index))
    logger.info("Indexed %d CVEs from the KEV catalog", len(index))
    return index
