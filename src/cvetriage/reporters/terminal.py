"""Rich terminal reporter."""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from cvetriage.models import CveRecord, FetchStats


def cvss_color(cvss: float | None) -> str:
    if cvss is None:
        return "dim"
    if cvss >= 9.0:
        return "bold red"
    if cvss >= 7.0:
        return "red"
    if cvss >= 4.0:
        return "yellow"
    return "cyan"


def render_stats(stats: FetchStats, console: Console) -> None:
    """Print the advisory counters of a fetch run."""
    kev = (
        f"{stats.kev_entries} indexed"
        if stats.kev_available
        else "[bold yellow]unavailable[/]"
    )
    lines = [
        f"Source: [bold]{stats.source}[/]   KEV catalog: {kev}",
        f"Fetched: {stats.fetched}   Normalized: {stats.normalized}   "
        f"Duplicates dropped: {stats.duplicates_dropped}",
        f"Software lists truncated: {stats.truncated_software}   "
        f"EPSS scored: {stats.epss_enriched}",
        f"Written: [bold]{stats.written}[/]   "
        f"[bold red]In KEV: {stats.in_kev}[/]   "
        f"[red]CVSS 9+: {stats.critical}[/]",
    ]
    console.print(Panel("\n".join(lines), title="[bold]Fetch Summary[/]"))


def render_terminal(records: list[CveRecord], console: Console, title: str = "CVE Dataset") -> None:
    """Render records to terminal using Rich."""
    console.print()

    kev = sum(1 for r in records if r.in_kev)
    critical = sum(1 for r in records if r.is_critical)
    unscored = sum(1 for r in records if r.cvss is None)
    console.print(Panel(
        f"[bold red]CVSS 9+: {critical}[/]  "
        f"[bold red]KEV: {kev}[/]  "
        f"[dim]Unscored: {unscored}[/]  "
        f"| Total: {len(records)}",
        title=f"[bold]{title}[/]",
    ))

    if not records:
        console.print("\n[green]No records.[/green]")
        return

    table = Table(show_header=True, header_style="bold", expand=True)
    table.add_column("CVSS", width=6, justify="right")
    table.add_column("ID", width=18)
    table.add_column("Year", width=6)
    table.add_column("Class", ratio=2)
    table.add_column("Affected", ratio=2)
    table.add_column("Description", ratio=4)

    for r in records:
        color = cvss_color(r.cvss)
        score = f"{r.cvss:.1f}" if r.cvss is not None else "-"
        kev_badge = " [bold red]KEV[/]" if r.in_kev else ""
        epss_text = f" (EPSS:{r.epss:.0%})" if r.epss is not None else ""

        table.add_row(
            f"[{color}]{score}[/]",
            f"{r.id}{kev_badge}",
            str(r.year),
            (r.vulnerability_class or "")[:40],
            ", ".join(r.affected_software[:3]),
            r.description[:80] + epss_text,
        )

    console.print(table)
