"""Markdown statistics report generator."""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from altsync.storage import LibraryStats, SweepRecord


def write_stats_report(
    stats: LibraryStats,
    report_path: Path,
    *,
    open_sweep: SweepRecord | None = None,
) -> None:
    """Write the statistics page as a Markdown document."""

    report_lines = ["# Alt Text Statistics", ""]
    generated_at = datetime.now(UTC).strftime("%Y-%m-%d %H:%M:%S UTC")
    report_lines.append(f"Generated: {generated_at}")
    report_lines.append("")

    report_lines.append("## Totals")
    report_lines.append(f"- Total images: {stats.total_images:,}")
    report_lines.append(f"- With ALT: {stats.with_alt:,}")
    report_lines.append(f"- Without ALT: {stats.without_alt:,}")
    report_lines.append("")

    if stats.mime_counts:
        report_lines.append("## By MIME type")
        report_lines.append("")
        report_lines.append("| MIME | Count |")
        report_lines.append("| --- | ---: |")
        for mime, count in stats.mime_counts.items():
            report_lines.append(f"| {mime} | {count:,} |")
        report_lines.append("")

    if open_sweep is not None:
        report_lines.extend(_format_sweep(open_sweep))
        report_lines.append("")

    report_path.parent.mkdir(parents=True, exist_ok=True)
    report_path.write_text("\n".join(report_lines).strip() + "\n", encoding="utf-8")


def _format_sweep(sweep: SweepRecord) -> list[str]:
    skipped = ", ".join(f"{reason}={count}" for reason, count in sorted(sweep.skipped.items()))
    return [
        "## Backfill In Progress",
        f"- Sweep: {sweep.id} (started {sweep.started_at})",
        f"- Resumes after image: {sweep.cursor if sweep.cursor is not None else '--'}",
        f"- Attempted: {sweep.attempted} | Updated: {sweep.updated}",
        f"- Skipped: {skipped or 'none'}",
    ]
