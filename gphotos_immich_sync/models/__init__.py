"""Models for Google Photos to Immich sync."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


@dataclass
class Credential:
    """OAuth credential for the Google Photos Library API."""
    access_token: str
    refresh_token: Optional[str] = None
    scope: str = ""
    token_type: str = "Bearer"
    expiry: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Credential":
        """Build a credential from the persisted token file layout.

        Raises:
            ValueError: If the access token is missing
        """
        access_token = data.get("access_token")
        if not access_token:
            raise ValueError("token data has no access_token")

        expiry = None
        expiry_date = data.get("expiry_date")
        if expiry_date:
            expiry = datetime.fromtimestamp(int(expiry_date) / 1000, tz=timezone.utc)

        return cls(
            access_token=access_token,
            refresh_token=data.get("refresh_token"),
            scope=data.get("scope", ""),
            token_type=data.get("token_type", "Bearer"),
            expiry=expiry,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the persisted token file layout."""
        data: Dict[str, Any] = {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "scope": self.scope,
            "token_type": self.token_type,
            "expiry_date": None,
        }
        if self.expiry is not None:
            data["expiry_date"] = int(self.expiry.timestamp() * 1000)
        return data


@dataclass
class MediaItem:
    """Represents a media item in a Google Photos album."""
    id: Optional[str]
    base_url: Optional[str]
    filename: Optional[str]
    mime_type: Optional[str] = None
    creation_time: Optional[str] = None
    is_video: bool = False

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "MediaItem":
        """Build an item from a Library API mediaItem resource."""
        metadata = item.get("mediaMetadata") or {}
        return cls(
            id=item.get("id"),
            base_url=item.get("baseUrl"),
            filename=item.get("filename"),
            mime_type=item.get("mimeType"),
            creation_time=metadata.get("creationTime"),
            is_video="video" in metadata,
        )

    @property
    def is_complete(self) -> bool:
        """True when the item carries everything needed for a transfer."""
        return bool(self.id and self.base_url and self.filename)

    @property
    def download_url(self) -> str:
        """URL of the original-quality bytes (never a thumbnail)."""
        suffix = "=dv" if self.is_video else "=d"
        return f"{self.base_url}{suffix}"


@dataclass
class SourceAlbum:
    """Represents an owned or shared album in Google Photos."""
    id: str
    title: str
    media_items_count: Optional[str] = None
    product_url: Optional[str] = None
    shared: bool = False

    @classmethod
    def from_api(cls, album: Dict[str, Any], shared: bool = False) -> "SourceAlbum":
        """Build an album from a Library API album resource.

        Args:
            album: The album resource as returned by albums.get or a listing
            shared: Whether the album came from the shared album listing
        """
        return cls(
            id=album["id"],
            title=album.get("title", "Untitled Album"),
            media_items_count=album.get("mediaItemsCount"),
            product_url=album.get("productUrl"),
            shared=shared,
        )


@dataclass
class DestinationAlbum:
    """Represents an album on the Immich server."""
    id: str
    name: str


class AlbumState(str, Enum):
    """Per-album reconciliation state."""
    NOT_STARTED = "not_started"
    ALBUM_VERIFIED = "album_verified"
    DESTINATION_RESOLVED = "destination_resolved"
    LISTING = "listing"
    TRANSFERRING = "transferring"
    DONE = "done"
    ABORTED = "aborted"
    SKIPPED = "skipped"


@dataclass
class AlbumResult:
    """Outcome of reconciling one configured album pair."""
    source_album_id: str
    destination_album_name: Optional[str]
    state: AlbumState = AlbumState.NOT_STARTED
    listed: int = 0
    pending: int = 0
    transferred: int = 0
    skipped: int = 0
    error: Optional[str] = None
    reached_listing: bool = False


@dataclass
class RunSummary:
    """Outcome of a whole reconciliation run."""
    albums: List[AlbumResult] = field(default_factory=list)

    @property
    def transferred(self) -> int:
        return sum(album.transferred for album in self.albums)

    @property
    def processed(self) -> int:
        """Number of albums that got as far as listing their items."""
        return sum(1 for album in self.albums if album.reached_listing)

    def rows(self) -> List[List[Any]]:
        """One table row per album, in the order the albums were processed."""
        return [
            [
                album.source_album_id,
                album.destination_album_name or "",
                album.state.value,
                album.listed,
                album.transferred,
                album.skipped,
                album.error or "",
            ]
            for album in self.albums
        ]


class SyncError(Exception):
    """Base exception for sync operations."""


class ConfigurationError(SyncError):
    """Raised when required settings are missing or invalid."""

    def __init__(self, missing: List[str], invalid: Optional[List[str]] = None):
        self.missing = list(missing)
        self.invalid = list(invalid or [])
        lines = []
        if self.missing:
            lines.append("Missing required settings:")
            lines.extend(f"  - {key}" for key in self.missing)
        if self.invalid:
            lines.append("Invalid settings:")
            lines.extend(f"  - {entry}" for entry in self.invalid)
        super().__init__("\n".join(lines))


class AuthorizationError(SyncError):
    """Raised when a token exchange or refresh fails."""


class AlbumNotFoundError(SyncError):
    """Raised when a source album is neither owned nor shared with the user."""

    def __init__(self, album_id: str):
        self.album_id = album_id
        super().__init__(f"Album {album_id} not found or not accessible")


class LedgerCorruptionError(SyncError):
    """Raised when the persisted ledger cannot be parsed in strict mode."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Sync ledger {path} is unreadable: {reason}")


class ConnectivityError(SyncError):
    """Raised when the Immich server is unreachable and the run must stop."""


class ApiError(SyncError):
    """Raised when a remote API call fails."""

    def __init__(self, message: str, status: Optional[int] = None, body: Optional[str] = None):
        self.status = status
        self.body = body
        detail = message
        if status is not None:
            detail = f"{detail} (status {status})"
        if body:
            detail = f"{detail}: {body}"
        super().__init__(detail)


class SourceApiError(ApiError):
    """Raised when a Google Photos call fails."""


class DestinationApiError(ApiError):
    """Raised when an Immich call fails."""


class TransferError(SyncError):
    """Raised when downloading or uploading a single item fails."""

    def __init__(
        self,
        album_id: str,
        item_id: str,
        filename: str,
        detail: str,
        status: Optional[int] = None,
    ):
        self.album_id = album_id
        self.item_id = item_id
        self.filename = filename
        self.status = status
        self.detail = detail
        super().__init__(
            f"Transfer of {filename} ({item_id}) from album {album_id} failed: {detail}"
        )
