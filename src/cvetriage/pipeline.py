"""Dataset build: fetch feeds, normalize, rank, limit."""

from __future__ import annotations

import logging

import httpx

from cvetriage.analysis.normalizer import normalize_nvd_records, normalize_shodan_record
from cvetriage.analysis.ranker import dedupe_records, rank_records
from cvetriage.config import FetchConfig
from cvetriage.intel.epss import enrich_epss
from cvetriage.intel.kev import load_kev_index
from cvetriage.intel.nvd import fetch_nvd_records
from cvetriage.intel.shodan import fetch_shodan_cves
from cvetriage.models import CveRecord, FetchResult, FetchStats

logger = logging.getLogger(__name__)


async def run_fetch(cfg: FetchConfig, client: httpx.AsyncClient | None = None) -> FetchResult:
    """Build the ranked record list described by ``cfg``.

    Network calls run one after another. A client may be injected; otherwise
    one is opened for the duration of the run.
    """
    if client is not None:
        return await _run(cfg, client)

    async with httpx.AsyncClient(timeout=cfg.timeout, follow_redirects=True) as owned:
        return await _run(cfg, owned)


async def _run(cfg: FetchConfig, client: httpx.AsyncClient) -> FetchResult:
    stats = FetchStats(source=cfg.source)

    kev_index = await load_kev_index(client, cfg.kev_url, required=cfg.require_kev)
    stats.kev_available = kev_index is not None
    kev_index = kev_index or frozenset()
    stats.kev_entries = len(kev_index)

    if cfg.source == "shodan":
        records = await _shodan_records(cfg, client, kev_index, stats)
    else:
        items = await fetch_nvd_records(
            client,
            url=cfg.nvd_url,
            page_size=cfg.page_size,
            max_records=cfg.max_records,
            api_key=cfg.nvd_api_key,
        )
        stats.fetched = len(items)
        records = normalize_nvd_records(items, kev_index, stats)
    logger.info("Normalized %d of %d fetched records", stats.normalized, stats.fetched)

    unique = dedupe_records(records)
    stats.duplicates_dropped = len(records) - len(unique)
    ranked = rank_records(unique, cfg.output_limit)

    if cfg.enrich_epss and ranked:
        stats.epss_enriched = await enrich_epss(client, ranked, cfg.epss_url)

    stats.count_output(ranked)
    return FetchResult(records=ranked, stats=stats)


async def _shodan_records(
    cfg: FetchConfig,
    client: httpx.AsyncClient,
    kev_index: frozenset[str],
    stats: FetchStats,
) -> list[CveRecord]:
    items = (await fetch_shodan_cves(client, cfg.shodan_url))[: cfg.max_records]
    stats.fetched = len(items)

    records = []
    for item in items:
        record = normalize_shodan_record(item)
        if not record.id:
            continue
        # Shodan's own kev flag is kept; the catalog only adds to it
        record.in_kev = record.in_kev or record.id in kev_index
        records.append(record)
    stats.normalized = len(records)
    return records
