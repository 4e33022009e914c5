"""Configuration utilities for Altsync."""

from .loader import AccessSettings, Config, StorageSettings, SyncSettings, load_config

__all__ = ["AccessSettings", "Config", "StorageSettings", "SyncSettings", "load_config"]
