"""Markdown report generator."""

from __future__ import annotations

from datetime import UTC, datetime

from cvetriage.models import CveRecord


def render_markdown(records: list[CveRecord], generated_at: datetime | None = None) -> str:
    """Render records as a Markdown triage table."""
    lines: list[str] = []
    stamp = generated_at or datetime.now(UTC)
    kev = sum(1 for r in records if r.in_kev)
    critical = sum(1 for r in records if r.is_critical)

    lines.append("# CVE Triage Report")
    lines.append("")
    lines.append(f"- **Date**: {stamp:%Y-%m-%d %H:%M UTC}")
    lines.append(f"- **Records**: {len(records)}")
    lines.append(f"- **In CISA KEV**: {kev}")
    lines.append(f"- **CVSS 9+**: {critical}")
    lines.append("")

    if not records:
        lines.append("No records.")
        return "\n".join(lines)

    lines.append("| CVSS | ID | Year | Class | Affected | Description |")
    lines.append("|-----:|----|-----:|-------|----------|-------------|")

    for r in records:
        score = f"{r.cvss:.1f}" if r.cvss is not None else "-"
        kev_mark = " **KEV**" if r.in_kev else ""
        epss = f" (EPSS:{r.epss:.0%})" if r.epss is not None else ""
        desc = r.description[:60].replace("|", "\\|").replace("\n", " ")
        lines.append(
            f"| {score} | {r.id}{kev_mark} | {r.year} | {r.vulnerability_class or ''} | "
            f"{', '.join(r.affected_software[:3])} | {desc}{epss} |"
        )

    lines.append("")
    return "\n".join(lines)
