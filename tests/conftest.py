"""Shared fixtures: NVD payload builders and a mock-transport client runner."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import pytest


def make_nvd_item(
    cve_id: str = "CVE-2024-0001",
    *,
    score: float | None = None,
    metric: str = "cvssMetricV31",
    published: str = "2024-01-15T10:15:08.000",
    descriptions: list[dict[str, str]] | None = None,
    cwe: str | None = None,
    cpes: tuple[str, ...] = (),
) -> dict[str, Any]:
    cve: dict[str, Any] = {
        "id": cve_id,
        "descriptions": descriptions
        if descriptions is not None
        else [{"lang": "en", "value": f"Description of {cve_id}"}],
        "metrics": {},
        "published": published,
        "lastModified": published,
    }
    if score is not None:
        cve["metrics"][metric] = [{"cvssData": {"baseScore": score}}]
    if cwe is not None:
        cve["weaknesses"] = [{"source": "nvd@nist.gov", "description": [{"lang": "en", "value": cwe}]}]
    if cpes:
        cve["configurations"] = [
            {"nodes": [{"cpeMatch": [{"vulnerable": True, "criteria": c} for c in cpes]}]}
        ]
    return {"cve": cve}


def nvd_page(items: list[dict[str, Any]], start: int, total: int) -> dict[str, Any]:
    return {
        "resultsPerPage": len(items),
        "startIndex": start,
        "totalResults": total,
        "format": "NVD_CVE",
        "version": "2.0",
        "vulnerabilities": items,
    }


@pytest.fixture
def run_client() -> Callable[..., Any]:
    """Run ``fn(client)`` against an AsyncClient backed by ``handler``."""

    def _run(
        handler: Callable[[httpx.Request], httpx.Response],
        fn: Callable[[httpx.AsyncClient], Awaitable[Any]],
    ) -> Any:
        async def go() -> Any:
            async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
                return await fn(client)

        return asyncio.run(go())

    return _run
