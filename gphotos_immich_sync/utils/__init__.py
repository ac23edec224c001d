"""Utility functions for Google Photos to Immich sync."""

from .auth import TokenStore, is_expiring_soon
from .config import SyncConfig, load_config
from .file_utils import safe_filename, write_json_atomic

__all__ = ["TokenStore", "is_expiring_soon", "SyncConfig", "load_config", "safe_filename", "write_json_atomic"]
