"""UI components for Altsync."""

from .tables import Page, default_console, render_image_table, render_outcome, render_stats

__all__ = ["Page", "default_console", "render_image_table", "render_outcome", "render_stats"]
