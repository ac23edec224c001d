"""Persistent record of media items already transferred to Immich."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from gphotos_immich_sync.models import LedgerCorruptionError
from gphotos_immich_sync.utils.file_utils import write_json_atomic

logger = logging.getLogger(__name__)


def _validate(data: Any) -> Dict[str, List[str]]:
    if not isinstance(data, dict):
        raise ValueError("top level is not an object")
    for album_id, item_ids in data.items():
        if not isinstance(item_ids, list) or not all(isinstance(i, str) for i in item_ids):
            raise ValueError(f"entry for album {album_id!r} is not a list of strings")
    return data


class SyncLedger:
    """Maps each source album id to the item ids already transferred.

    Ids are only ever added. The whole mapping is written back by
    :meth:`persist`, which callers invoke after every confirmed transfer.
    """

    def __init__(self, path: Union[str, Path], entries: Optional[Dict[str, List[str]]] = None):
        """Initialize the ledger.

        Args:
            path: JSON file the ledger is persisted to
            entries: Initial album id to item id list mapping
        """
        self.path = Path(path)
        self._entries: Dict[str, List[str]] = {}
        self._index: Dict[str, set] = {}
        for album_id, item_ids in (entries or {}).items():
            self.ensure_album(album_id)
            for item_id in item_ids:
                self.record_synced(album_id, item_id)

    @classmethod
    def load(cls, path: Union[str, Path], strict: bool = False) -> "SyncLedger":
        """Load the ledger from disk.

        A missing file gives an empty ledger. An unreadable file is logged,
        moved aside to ``<name>.corrupt`` and also gives an empty ledger, so
        previously synced items may be transferred again.

        Args:
            path: Ledger file
            strict: Raise instead of starting over when the file is unreadable

        Raises:
            LedgerCorruptionError: If ``strict`` and the file cannot be parsed
        """
        path = Path(path)
        if not path.exists():
            logger.info("No sync ledger at %s, starting fresh", path)
            return cls(path)

        try:
            with open(path, "r", encoding="utf-8") as handle:
                data = _validate(json.load(handle))
        except (OSError, ValueError) as e:
            if strict:
                raise LedgerCorruptionError(str(path), str(e)) from e
            backup = path.with_name(path.name + ".corrupt")
            logger.error(
                "Sync ledger %s is unreadable (%s); moved to %s and starting fresh. "
                "Items already synced may be uploaded again.",
                path,
                e,
                backup,
            )
            try:
                os.replace(path, backup)
            except OSError as move_error:
                logger.warning("Could not move corrupt ledger aside: %s", move_error)
            return cls(path)

        ledger = cls(path, data)
        logger.info(
            "Loaded sync ledger with %d albums and %d items",
            len(ledger.album_ids()),
            ledger.count(),
        )
        return ledger

    def ensure_album(self, album_id: str) -> None:
        """Create an empty entry for an album if it has none."""
        if album_id not in self._entries:
            self._entries[album_id] = []
            self._index[album_id] = set()

    def has_synced(self, album_id: str, item_id: str) -> bool:
        return item_id in self._index.get(album_id, ())

    def record_synced(self, album_id: str, item_id: str) -> None:
        """Mark an item as transferred. Recording a known id does nothing."""
        self.ensure_album(album_id)
        if item_id in self._index[album_id]:
            return
        self._entries[album_id].append(item_id)
        self._index[album_id].add(item_id)

    def synced_ids(self, album_id: str) -> List[str]:
        return list(self._entries.get(album_id, []))

    def album_ids(self) -> List[str]:
        return list(self._entries)

    def count(self, album_id: Optional[str] = None) -> int:
        if album_id is not None:
            return len(self._entries.get(album_id, []))
        return sum(len(item_ids) for item_ids in self._entries.values())

    def to_dict(self) -> Dict[str, List[str]]:
        return {album_id: list(item_ids) for album_id, item_ids in self._entries.items()}

    def persist(self) -> None:
        """Write the full mapping to disk, replacing the previous content."""
        write_json_atomic(self.path, self.to_dict())
        logger.debug("Persisted sync ledger to %s", self.path)
