"""End-to-end tests for the dataset build and the artifact writer."""

import json
import os
import stat

import httpx
import pytest
from conftest import make_nvd_item, nvd_page

from cvetriage.config import FetchConfig
from cvetriage.errors import FeedError
from cvetriage.models import CveRecord
from cvetriage.pipeline import run_fetch
from cvetriage.reporters.json_report import load_artifact, render_json, write_artifact

KEV_URL = "https://kev.test/feed.json"
NVD_URL = "https://nvd.test/cves"
SHODAN_URL = "https://cvedb.test"
EPSS_URL = "https://epss.test/epss"


def _cfg(**kwargs) -> FetchConfig:
    defaults = {
        "kev_url": KEV_URL,
        "nvd_url": NVD_URL,
        "shodan_url": SHODAN_URL,
        "epss_url": EPSS_URL,
    }
    defaults.update(kwargs)
    return FetchConfig(**defaults)


def _handler(nvd_pages: dict[int, dict | int], kev: dict | int, epss: dict | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if url.startswith(KEV_URL):
            return httpx.Response(kev) if isinstance(kev, int) else httpx.Response(200, json=kev)
        if url.startswith(NVD_URL):
            page = nvd_pages.get(int(request.url.params["startIndex"]), 500)
            return httpx.Response(page) if isinstance(page, int) else httpx.Response(200, json=page)
        if url.startswith(EPSS_URL) and epss is not None:
            return httpx.Response(200, json=epss)
        return httpx.Response(404)

    return handler


def test_run_fetch_end_to_end(run_client):
    first = [
        make_nvd_item("CVE-2021-44228", score=10.0, cwe="CWE-917"),
        make_nvd_item("CVE-2023-46805", score=8.2, metric="cvssMetricV30"),
        make_nvd_item("CVE-2015-0001", score=None),
    ]
    second = [
        make_nvd_item("CVE-2024-3094", score=10.0),
        make_nvd_item("CVE-2021-44228", score=10.0, cwe="CWE-917"),
    ]
    pages = {0: nvd_page(first, 0, 5), 3: nvd_page(second, 3, 5)}
    kev = {"count": 1, "vulnerabilities": [{"cveID": "CVE-2023-46805"}]}

    result = run_client(_handler(pages, kev), lambda c: run_fetch(_cfg(page_size=3), c))

    assert [r.id for r in result.records] == [
        "CVE-2024-3094",
        "CVE-2021-44228",
        "CVE-2023-46805",
        "CVE-2015-0001",
    ]
    by_id = {r.id: r for r in result.records}
    assert by_id["CVE-2023-46805"].in_kev is True
    assert by_id["CVE-2021-44228"].in_kev is False
    assert by_id["CVE-2021-44228"].vulnerability_class == "Expression Injection"
    assert by_id["CVE-2015-0001"].cvss is None

    stats = result.stats
    assert stats.kev_available is True
    assert stats.kev_entries == 1
    assert stats.fetched == 5
    assert stats.normalized == 5
    assert stats.duplicates_dropped == 1
    assert stats.written == 4
    assert stats.in_kev == 1
    assert stats.critical == 2


def test_second_page_failure_keeps_first_page(run_client):
    first = [make_nvd_item(f"CVE-2024-{i:04d}", score=float(i)) for i in range(1, 4)]
    pages = {0: nvd_page(first, 0, 9), 3: 503}
    kev = {"vulnerabilities": []}

    result = run_client(_handler(pages, kev), lambda c: run_fetch(_cfg(page_size=3), c))

    assert [r.id for r in result.records] == ["CVE-2024-0003", "CVE-2024-0002", "CVE-2024-0001"]
    assert result.stats.fetched == 3


def test_kev_failure_degrades_to_empty_index(run_client):
    pages = {0: nvd_page([make_nvd_item("CVE-2023-46805", score=8.2)], 0, 1)}

    result = run_client(_handler(pages, 500), lambda c: run_fetch(_cfg(), c))

    assert result.stats.kev_available is False
    assert result.records[0].in_kev is False


def test_kev_failure_is_fatal_when_required(run_client):
    pages = {0: nvd_page([make_nvd_item()], 0, 1)}

    with pytest.raises(FeedError):
        run_client(_handler(pages, 500), lambda c: run_fetch(_cfg(require_kev=True), c))


def test_output_limit(run_client):
    items = [make_nvd_item(f"CVE-2024-{i:04d}", score=float(i % 10)) for i in range(20)]
    pages = {0: nvd_page(items, 0, 20)}

    result = run_client(
        _handler(pages, {"vulnerabilities": []}),
        lambda c: run_fetch(_cfg(page_size=20, output_limit=5), c),
    )
    assert [r.cvss for r in result.records] == [9.0, 9.0, 8.0, 8.0, 7.0]


def test_epss_enrichment(run_client):
    pages = {0: nvd_page([make_nvd_item("CVE-2021-44228", score=10.0)], 0, 1)}
    epss = {"data": [{"cve": "CVE-2021-44228", "epss": "0.97", "percentile": "0.99"}]}

    result = run_client(
        _handler(pages, {"vulnerabilities": []}, epss),
        lambda c: run_fetch(_cfg(enrich_epss=True), c),
    )
    assert result.records[0].epss == 0.97
    assert result.stats.epss_enriched == 1


def test_shodan_source(run_client):
    listing = {"cves": [
        {"cve_id": "CVE-2024-3094", "summary": "xz backdoor", "cvss_v3": 10.0,
         "epss": 0.81, "kev": False, "cpes": [], "published_time": "2024-03-29T17:15:21"},
        {"cve_id": "CVE-2023-46805", "summary": "Ivanti", "cvss": 8.2, "kev": False},
        {"summary": "no id"},
    ]}

    def handler(request):
        if str(request.url).startswith(KEV_URL):
            return httpx.Response(200, json={"vulnerabilities": [{"cveID": "CVE-2023-46805"}]})
        assert request.url.path == "/cves"
        return httpx.Response(200, json=listing)

    result = run_client(handler, lambda c: run_fetch(_cfg(source="shodan"), c))

    assert [r.id for r in result.records] == ["CVE-2024-3094", "CVE-2023-46805"]
    assert result.records[1].in_kev is True
    assert result.stats.fetched == 3
    assert result.stats.normalized == 2


def test_artifact_round_trip(tmp_path):
    records = [
        CveRecord(id="CVE-2024-3094", description="xz", cvss=10.0, epss=0.812, in_kev=True,
                  vulnerability_class="Backdoor / RCE", affected_software=["tukaani:xz"],
                  year=2024),
        CveRecord(id="CVE-2015-0001", description="Ünïcode", year=2015),
    ]
    path = tmp_path / "api" / "cves.json"

    write_artifact(path, records)

    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw[0]["inKev"] is True
    assert raw[0]["affectedSoftware"] == ["tukaani:xz"]
    assert raw[1]["cvss"] is None
    assert load_artifact(path) == records


def test_artifact_replaces_previous_and_leaves_no_temp_files(tmp_path):
    path = tmp_path / "cves.json"
    path.write_text("[]")

    write_artifact(path, [CveRecord(id="CVE-2024-0001", description="t", year=2024)])

    assert [p.name for p in tmp_path.iterdir()] == ["cves.json"]
    assert len(load_artifact(path)) == 1


def test_artifact_write_failure_keeps_previous(tmp_path, monkeypatch):
    path = tmp_path / "cves.json"
    path.write_text("[]")

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)

    with pytest.raises(OSError):
        write_artifact(path, [CveRecord(id="CVE-2024-0001", description="t", year=2024)])

    assert path.read_text() == "[]"
    assert [p.name for p in tmp_path.iterdir()] == ["cves.json"]


def test_artifact_new_file_honours_umask(tmp_path):
    path = tmp_path / "cves.json"
    old = os.umask(0o022)
    try:
        write_artifact(path, [])
    finally:
        os.umask(old)

    assert stat.S_IMODE(path.stat().st_mode) == 0o644


def test_artifact_keeps_existing_mode(tmp_path):
    path = tmp_path / "cves.json"
    path.write_text("[]")
    path.chmod(0o640)

    write_artifact(path, [CveRecord(id="CVE-2024-0001", description="t", year=2024)])

    assert stat.S_IMODE(path.stat().st_mode) == 0o640


def test_render_json_is_array():
    assert json.loads(render_json([])) == []
