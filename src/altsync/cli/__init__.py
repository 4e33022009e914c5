"""Command line interface for Altsync."""
