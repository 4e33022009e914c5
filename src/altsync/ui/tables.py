"""Rich renderables for the statistics page and the image listing."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table, box
from rich.text import Text

from altsync.core.service import SyncOutcome
from altsync.storage import ImageRecord, LibraryStats

_BORDER = "grey42"
_MAX_CELL_TEXT_LEN = 80


def default_console() -> Console:
    return Console(soft_wrap=False)


def _clean(value: str | None) -> str:
    text = (value or "").replace("\r", " ").replace("\n", " ").strip()
    if len(text) > _MAX_CELL_TEXT_LEN:
        text = text[: _MAX_CELL_TEXT_LEN - 3] + "..."
    return text


def _number(value: int) -> str:
    return f"{value:,}"


@dataclass(slots=True)
class Page:
    """Pagination window for the image listing."""

    number: int
    per_page: int
    total_items: int

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total_items // self.per_page))

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.per_page

    @classmethod
    def clamp(cls, number: int, per_page: int, total_items: int) -> Page:
        """Build a page, clamping `number` into the available range."""

        page = cls(number=1, per_page=max(1, per_page), total_items=max(0, total_items))
        page.number = min(max(1, number), page.total_pages)
        return page


def render_stats(stats: LibraryStats) -> RenderableType:
    """Totals and the per-MIME table shown on the statistics page."""

    totals = Table.grid(padding=(0, 2))
    totals.add_column(justify="right", style="bold white")
    totals.add_column(style="grey70")
    totals.add_row(_number(stats.total_images), "total images")
    totals.add_row(_number(stats.with_alt), "with ALT")
    totals.add_row(_number(stats.without_alt), "without ALT")

    sections: list[RenderableType] = [totals]
    if stats.mime_counts:
        mime_table = Table(box=box.ROUNDED, border_style="grey39", header_style="bold grey30")
        mime_table.add_column("MIME", no_wrap=True)
        mime_table.add_column("COUNT", justify="right", no_wrap=True)
        for mime, count in stats.mime_counts.items():
            mime_table.add_row(mime, _number(count))
        sections.append(mime_table)

    return Panel(Group(*sections), title="Statistics", border_style=_BORDER)


def render_image_table(records: Sequence[ImageRecord], page: Page) -> RenderableType:
    """One page of the image listing."""

    table = Table(
        expand=True,
        box=box.ROUNDED,
        border_style="grey39",
        header_style="bold grey30",
        caption=f"Page {page.number} of {page.total_pages} ({_number(page.total_items)} images)",
    )
    table.add_column("ID", justify="right", no_wrap=True)
    table.add_column("FILENAME", ratio=2, overflow="fold")
    table.add_column("ALT", ratio=2, overflow="fold")
    table.add_column("TITLE", ratio=1, overflow="ellipsis")
    table.add_column("CAPTION", ratio=1, overflow="ellipsis")
    table.add_column("DESCRIPTION", ratio=1, overflow="ellipsis")
    table.add_column("MIME", no_wrap=True)

    if not records:
        table.add_row("", Text("No images found.", style="grey58"), "", "", "", "", "")
        return table

    for record in records:
        alt = Text(_clean(record.alt_text)) if record.has_alt_text else Text("-", style="yellow")
        table.add_row(
            str(record.id),
            _clean(record.filename),
            alt,
            _clean(record.title),
            _clean(record.caption),
            _clean(record.description),
            record.mime_type,
        )
    return table


def render_outcome(outcome: SyncOutcome) -> RenderableType:
    """Compact skip breakdown for a sync outcome."""

    grid = Table.grid(padding=(0, 2))
    grid.add_column(style="grey70")
    grid.add_column(justify="right", style="white")
    grid.add_row("attempted", _number(outcome.attempted))
    grid.add_row("updated", _number(outcome.updated))
    for reason, count in sorted(outcome.skipped.items()):
        grid.add_row(f"skipped ({reason})", _number(count))
    return grid


__all__ = [
    "Page",
    "default_console",
    "render_image_table",
    "render_outcome",
    "render_stats",
]
