"""CLI entry point using Typer."""

from __future__ import annotations

import asyncio
import json
import logging
from enum import StrEnum
from pathlib import Path
from typing import Annotated

import httpx
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from cvetriage import __version__
from cvetriage.config import FetchConfig, load_config
from cvetriage.errors import FeedError
from cvetriage.models import CveRecord

app = typer.Typer(
    name="cvetriage",
    help="Build the CVE triage dashboard dataset from NVD and the CISA KEV catalog.",
    no_args_is_help=True,
)
console = Console()


class OutputFormat(StrEnum):
    TERMINAL = "terminal"
    MARKDOWN = "markdown"
    JSON = "json"


def version_callback(value: bool) -> None:
    if value:
        console.print(f"cvetriage {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """cvetriage — CVE triage dataset builder."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def fetch(
    source: Annotated[
        str | None,
        typer.Option("--source", "-s", help="Detailed feed: nvd or shodan"),
    ] = None,
    max_records: Annotated[
        int | None, typer.Option("--max-records", "-m", help="Retrieval cap")
    ] = None,
    limit: Annotated[
        int | None, typer.Option("--limit", "-n", help="Records kept after ranking")
    ] = None,
    output: Annotated[
        Path | None, typer.Option("--output", "-o", help="Artifact path")
    ] = None,
    epss: Annotated[
        bool | None, typer.Option("--epss/--no-epss", help="Enrich with EPSS scores")
    ] = None,
    require_kev: Annotated[
        bool, typer.Option("--require-kev", help="Fail when the KEV catalog is unavailable")
    ] = False,
    api_key: Annotated[
        str | None,
        typer.Option("--api-key", envvar="NVD_API_KEY", help="NVD API key"),
    ] = None,
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """Fetch feeds, normalize, rank and write the dataset artifact."""
    cfg = load_config(config)

    overrides = {
        "source": source,
        "max_records": max_records,
        "output_limit": limit,
        "output": output,
        "enrich_epss": epss,
        "nvd_api_key": api_key,
    }
    updates = {k: v for k, v in overrides.items() if v is not None}
    if require_kev:
        updates["require_kev"] = True
    try:
        cfg = FetchConfig(**(cfg.model_dump() | updates))
    except ValidationError as exc:
        console.print(f"[red]Invalid option: {exc.errors()[0]['msg']}[/red]")
        raise typer.Exit(2) from exc

    _run_fetch(cfg)


def _run_fetch(cfg: FetchConfig) -> None:
    from cvetriage.pipeline import run_fetch
    from cvetriage.reporters.json_report import write_artifact
    from cvetriage.reporters.terminal import render_stats

    console.print(
        f"[bold]cvetriage[/bold] v{__version__} — "
        f"source: {cfg.source}, cap: {cfg.max_records}, limit: {cfg.output_limit}"
    )

    try:
        result = asyncio.run(run_fetch(cfg))
    except FeedError as exc:
        console.print(f"[red]Aborting: {exc}[/red]")
        raise typer.Exit(1) from exc

    try:
        write_artifact(cfg.output, result.records)
    except OSError as exc:
        console.print(f"[red]Could not write {cfg.output}: {exc}[/red]")
        raise typer.Exit(1) from exc

    render_stats(result.stats, console)
    console.print(f"\n[green]Data written to {cfg.output}[/green]")


@app.command()
def show(
    path: Annotated[
        Path | None, typer.Argument(help="Artifact path (defaults to configured output)")
    ] = None,
    format: Annotated[
        OutputFormat, typer.Option("--format", "-f", help="Output format")
    ] = OutputFormat.TERMINAL,
    top: Annotated[int, typer.Option("--top", "-t", help="Rows to show")] = 25,
    kev_only: Annotated[bool, typer.Option("--kev-only", help="Only KEV entries")] = False,
    min_cvss: Annotated[
        float | None, typer.Option("--min-cvss", help="Minimum CVSS score")
    ] = None,
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """Display a previously written dataset artifact."""
    from cvetriage.reporters.json_report import load_artifact

    artifact = path or load_config(config).output
    try:
        records = load_artifact(artifact)
    except FileNotFoundError as exc:
        console.print(f"[red]No artifact at {artifact}[/red]")
        raise typer.Exit(1) from exc
    except OSError as exc:
        console.print(f"[red]Could not read {artifact}: {exc.strerror}[/red]")
        raise typer.Exit(1) from exc
    except ValidationError as exc:
        console.print(f"[red]{artifact} is not a valid dataset: {exc.error_count()} error(s)[/red]")
        raise typer.Exit(1) from exc

    records = filter_records(records, kev_only=kev_only, min_cvss=min_cvss)[:top]
    _output_records(records, format)


def filter_records(
    records: list[CveRecord],
    *,
    kev_only: bool = False,
    min_cvss: float | None = None,
) -> list[CveRecord]:
    if kev_only:
        records = [r for r in records if r.in_kev]
    if min_cvss is not None:
        records = [r for r in records if r.cvss is not None and r.cvss >= min_cvss]
    return records


def _output_records(records: list[CveRecord], fmt: OutputFormat) -> None:
    if fmt == OutputFormat.JSON:
        from cvetriage.reporters.json_report import render_json

        console.print_json(render_json(records))
    elif fmt == OutputFormat.MARKDOWN:
        from cvetriage.reporters.markdown import render_markdown

        console.print(render_markdown(records), markup=False)
    else:
        from cvetriage.reporters.terminal import render_terminal

        render_terminal(records, console)


@app.command()
def lookup(
    cve_id: Annotated[str, typer.Argument(help="CVE identifier, e.g. CVE-2021-44228")],
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """Look up one CVE in Shodan CVEDB and print it in dataset form."""
    cfg = load_config(config)

    try:
        record = asyncio.run(_lookup(cfg, cve_id.strip().upper()))
    except FeedError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc

    console.print_json(json.dumps(record.model_dump(mode="json", by_alias=True)))


async def _lookup(cfg: FetchConfig, cve_id: str) -> CveRecord:
    from cvetriage.analysis.normalizer import normalize_shodan_record
    from cvetriage.intel.shodan import fetch_shodan_cve

    async with httpx.AsyncClient(timeout=cfg.timeout, follow_redirects=True) as client:
        item = await fetch_shodan_cve(client, cve_id, cfg.shodan_url)
    return normalize_shodan_record(item)


@app.command(name="config")
def config_show(
    config: Annotated[
        Path | None, typer.Option("--config", "-c", help="Config file path")
    ] = None,
) -> None:
    """Show current configuration."""
    cfg = load_config(config)
    data = cfg.model_dump()
    if data.get("nvd_api_key"):
        data["nvd_api_key"] = "***"
    console.print_json(json.dumps(data, default=str))
