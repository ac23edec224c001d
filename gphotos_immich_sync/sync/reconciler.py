"""Incremental reconciliation of Google Photos albums into Immich albums."""

import contextlib
import logging
from pathlib import Path
from typing import Dict, List, Optional

from gphotos_immich_sync.clients.google_photos import GooglePhotosClient
from gphotos_immich_sync.clients.immich import ImmichClient
from gphotos_immich_sync.ledger.sync_ledger import SyncLedger
from gphotos_immich_sync.models import (
    AlbumNotFoundError,
    AlbumResult,
    AlbumState,
    ApiError,
    DestinationAlbum,
    MediaItem,
    RunSummary,
    SyncError,
    TransferError,
)
from gphotos_immich_sync.utils.config import SyncConfig
from gphotos_immich_sync.utils.file_utils import run_temp_dir, safe_filename, scoped_file

logger = logging.getLogger(__name__)


class Reconciler:
    """Copies new items of each configured album pair, one at a time.

    An item id is recorded in the ledger only after Immich confirmed the
    upload, and the ledger is persisted before the next item starts.
    """

    def __init__(
        self,
        config: SyncConfig,
        source: GooglePhotosClient,
        destination: ImmichClient,
        ledger: SyncLedger,
        dry_run: bool = False,
    ):
        """Initialize the reconciler.

        Args:
            config: Run configuration
            source: Google Photos client
            destination: Immich client
            ledger: Record of already transferred items
            dry_run: If True, report what would happen without changing anything
        """
        self.config = config
        self.source = source
        self.destination = destination
        self.ledger = ledger
        self.dry_run = dry_run
        self._albums_by_name: Optional[Dict[str, DestinationAlbum]] = None

    def load_destination_albums(self) -> Dict[str, DestinationAlbum]:
        """Fetch the Immich album list once and cache it by exact name."""
        if self._albums_by_name is None:
            albums = self.destination.list_albums()
            self._albums_by_name = {}
            for album in albums:
                self._albums_by_name.setdefault(album.name, album)
            logger.info("Found %d albums in Immich", len(albums))
        return self._albums_by_name

    def resolve_destination_album(self, name: str) -> Optional[DestinationAlbum]:
        """Return the Immich album with this exact name, creating it if needed.

        In dry-run mode a missing album is not created and None is returned.
        """
        albums = self.load_destination_albums()
        if name in albums:
            return albums[name]

        if self.dry_run:
            logger.info("[DRY RUN] Would create Immich album %r", name)
            return None

        logger.info("Album %r not found in Immich, creating it", name)
        album = self.destination.create_album(name)
        albums[name] = album
        return album

    def run(self) -> RunSummary:
        """Reconcile every configured album pair in order.

        A failure in one album is logged and recorded in the summary; the
        remaining albums are still processed.
        """
        summary = RunSummary()
        self.load_destination_albums()

        temp_scope = contextlib.nullcontext(None) if self.dry_run else run_temp_dir(self.config.temp_dir)
        with temp_scope as temp_dir:
            for album_id, album_name in self.config.album_pairs():
                result = AlbumResult(source_album_id=album_id, destination_album_name=album_name)
                summary.albums.append(result)

                if not album_name:
                    logger.warning(
                        "No Immich album name configured for Google Photos album %s, skipping",
                        album_id,
                    )
                    result.state = AlbumState.SKIPPED
                    continue

                try:
                    self.sync_album(album_id, album_name, result, temp_dir)
                except AlbumNotFoundError as e:
                    logger.error("%s, skipping", e)
                    result.state = AlbumState.SKIPPED
                    result.error = str(e)
                except TransferError as e:
                    logger.error("Stopping album %r after failed transfer: %s", album_name, e)
                    result.state = AlbumState.ABORTED
                    result.error = str(e)
                except SyncError as e:
                    logger.error("Sync of album %r (%s) failed: %s", album_name, album_id, e)
                    result.state = AlbumState.ABORTED
                    result.error = str(e)
                except Exception as e:
                    logger.exception("Unexpected error while syncing album %r (%s)", album_name, album_id)
                    result.state = AlbumState.ABORTED
                    result.error = str(e)

        logger.info(
            "Sync finished: %d items transferred across %d albums",
            summary.transferred,
            len(summary.albums),
        )
        return summary

    def sync_album(
        self,
        album_id: str,
        album_name: str,
        result: AlbumResult,
        temp_dir: Optional[Path],
    ) -> None:
        """Transfer every item of one source album that is not in the ledger yet.

        Raises:
            AlbumNotFoundError: If the source album is not accessible
            TransferError: If an item fails to download or upload
        """
        logger.info("Syncing album %r (Google Photos id %s)", album_name, album_id)

        source_album = self.source.find_album(album_id)
        result.state = AlbumState.ALBUM_VERIFIED
        logger.debug("Verified source album %r", source_album.title)

        destination_album = self.resolve_destination_album(album_name)
        result.state = AlbumState.DESTINATION_RESOLVED

        self.ledger.ensure_album(album_id)

        result.state = AlbumState.LISTING
        result.reached_listing = True
        items = self.source.list_all_items(album_id)
        result.listed = len(items)

        to_sync = self.pending_items(album_id, items)
        result.pending = len(to_sync)
        logger.info("Found %d items in album, %d new to sync", len(items), len(to_sync))

        result.state = AlbumState.TRANSFERRING
        for index, item in enumerate(to_sync, 1):
            if not item.is_complete:
                logger.warning(
                    "Skipping item with missing data in album %s: id=%s filename=%s",
                    album_id,
                    item.id,
                    item.filename,
                )
                result.skipped += 1
                continue

            if self.dry_run:
                logger.info("[DRY RUN] Would transfer %d/%d: %s", index, len(to_sync), item.filename)
                continue

            logger.info("Syncing item %d/%d: %s", index, len(to_sync), item.filename)
            self.transfer_item(album_id, item, destination_album, temp_dir)
            self.ledger.record_synced(album_id, item.id)
            self.ledger.persist()
            result.transferred += 1

        result.state = AlbumState.DONE
        logger.info("Album %r done: %d items transferred", album_name, result.transferred)

    def pending_items(self, album_id: str, items: List[MediaItem]) -> List[MediaItem]:
        """Items not yet in the ledger, in source listing order."""
        return [item for item in items if not (item.id and self.ledger.has_synced(album_id, item.id))]

    def transfer_item(
        self,
        album_id: str,
        item: MediaItem,
        destination_album: DestinationAlbum,
        temp_dir: Path,
    ) -> str:
        """Download one item, upload it to Immich and add it to the album.

        The temporary copy is removed whether or not the transfer succeeds.

        Returns:
            The Immich asset id

        Raises:
            TransferError: If any step fails
        """
        local_path = Path(temp_dir) / safe_filename(item.filename)
        with scoped_file(local_path):
            try:
                size = self.source.download(item, local_path)
                logger.debug("Downloaded %s (%d bytes) to %s", item.filename, size, local_path)
                asset_id = self.destination.upload_asset(
                    local_path,
                    {
                        "filename": item.filename,
                        "mime_type": item.mime_type,
                        "source_id": item.id,
                        "created_at": item.creation_time,
                    },
                )
                self.destination.add_asset_to_album(asset_id, destination_album.id)
            except ApiError as e:
                logger.error(
                    "Transfer failed for %s (id %s) in album %s: %s",
                    item.filename,
                    item.id,
                    album_id,
                    e,
                )
                raise TransferError(album_id, item.id, item.filename, str(e), e.status) from e
            except OSError as e:
                logger.error("Local file error for %s (id %s): %s", item.filename, item.id, e)
                raise TransferError(album_id, item.id, item.filename, str(e)) from e

        logger.info("Uploaded %s to Immich album %r", item.filename, destination_album.name)
        return asset_id
