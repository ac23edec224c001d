"""One-way sync of Google Photos albums into Immich albums."""

__version__ = "0.1.0"
