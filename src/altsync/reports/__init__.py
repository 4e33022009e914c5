"""Report generators for Altsync."""

from .stats_report import write_stats_report

__all__ = ["write_stats_report"]
