"""Reconciliation engine for Google Photos to Immich sync."""

from .reconciler import Reconciler

__all__ = ["Reconciler"]
