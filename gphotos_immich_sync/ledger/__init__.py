"""Sync ledger for Google Photos to Immich sync."""

from .sync_ledger import SyncLedger

__all__ = ["SyncLedger"]
