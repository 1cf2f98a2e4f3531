"""Shodan CVEDB client, an alternate source of pre-scored CVE records."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from cvetriage.config import SHODAN_URL
from cvetriage.errors import FeedError

logger = logging.getLogger(__name__)


async def fetch_shodan_cves(
    client: httpx.AsyncClient,
    base_url: str = SHODAN_URL,
) -> list[dict[str, Any]]:
    """Return the CVEDB listing, or an empty list when it cannot be fetched."""
    try:
        resp = await client.get(f"{base_url.rstrip('/')}/cves")
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as exc:
        logger.warning("Shodan CVEDB listing unavailable (%s)", exc)
        return []

    if isinstance(data, dict):
        data = data.get("cves")
    if not isinstance(data, list):
        logger.warning("Shodan CVEDB listing is malformed; ignoring it")
        return []
    return [item for item in data if isinstance(item, dict)]


async def fetch_shodan_cve(
    client: httpx.AsyncClient,
    cve_id: str,
    base_url: str = SHODAN_URL,
) -> dict[str, Any]:
    """Look up one CVE. Raises FeedError when it is missing or unreadable."""
    try:
        resp = await client.get(f"{base_url.rstrip('/')}/cve/{cve_id}")
    except httpx.HTTPError as exc:
        raise FeedError("shodan", str(exc)) from exc

    if resp.status_code == 404:
        raise FeedError("shodan", f"{cve_id} not found")
    if resp.is_error:
        raise FeedError("shodan", f"HTTP {resp.status_code} for {cve_id}")

    try:
        data = resp.json()
    except ValueError as exc:
        raise FeedError("shodan", f"malformed response for {cve_id}") from exc
    if not isinstance(data, dict):
        raise FeedError("shodan", f"malformed response for {cve_id}")
    return data
