"""Test configuration for pytest."""

import sys
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add the project root directory to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from gphotos_immich_sync.models import (  # noqa: E402
    AlbumNotFoundError,
    DestinationAlbum,
    DestinationApiError,
    MediaItem,
    SourceAlbum,
    SourceApiError,
)
from gphotos_immich_sync.utils.config import GoogleSettings, ImmichSettings, SyncConfig  # noqa: E402


def make_item(item_id: Optional[str], filename: Optional[str] = None, **kwargs) -> MediaItem:
    """Build a media item with sensible defaults."""
    return MediaItem(
        id=item_id,
        base_url=kwargs.pop("base_url", f"https://lh3.example.com/{item_id}"),
        filename=filename if filename is not None else f"{item_id}.jpg",
        mime_type=kwargs.pop("mime_type", "image/jpeg"),
        creation_time=kwargs.pop("creation_time", "2024-01-01T00:00:00Z"),
        **kwargs,
    )


class FakeGooglePhotos:
    """In-memory stand-in for GooglePhotosClient."""

    def __init__(self, albums: Dict[str, List[MediaItem]]):
        self.albums = albums
        self.listing_errors: Dict[str, Exception] = {}
        self.download_errors: Dict[str, Exception] = {}
        self.downloads: List[str] = []
        self.download_paths: List[Path] = []
        self.find_calls: List[str] = []

    def find_album(self, album_id: str) -> SourceAlbum:
        self.find_calls.append(album_id)
        if album_id not in self.albums:
            raise AlbumNotFoundError(album_id)
        return SourceAlbum(id=album_id, title=f"Album {album_id}")

    def list_all_items(self, album_id: str) -> List[MediaItem]:
        if album_id in self.listing_errors:
            raise self.listing_errors[album_id]
        return list(self.albums[album_id])

    def download(self, item: MediaItem, dest_path: Path) -> int:
        if item.id in self.download_errors:
            raise self.download_errors[item.id]
        data = f"bytes of {item.id}".encode()
        Path(dest_path).write_bytes(data)
        self.downloads.append(item.id)
        self.download_paths.append(Path(dest_path))
        return len(data)


class FakeImmich:
    """In-memory stand-in for ImmichClient."""

    def __init__(self, albums: Optional[List[DestinationAlbum]] = None):
        self.albums = list(albums or [])
        self.created: List[str] = []
        self.uploads: List[Dict] = []
        self.album_additions: List[tuple] = []
        self.upload_errors: Dict[str, Exception] = {}
        self.list_error: Optional[Exception] = None
        self.reachable = True
        self.server_url = "http://immich.test/api"

    def ping(self) -> bool:
        return self.reachable

    def list_albums(self) -> List[DestinationAlbum]:
        if self.list_error:
            raise self.list_error
        return list(self.albums)

    def create_album(self, name: str) -> DestinationAlbum:
        album = DestinationAlbum(id=f"immich-{len(self.created) + 1}", name=name)
        self.created.append(name)
        self.albums.append(album)
        return album

    def upload_asset(self, file_path: Path, metadata: Optional[Dict] = None) -> str:
        assert Path(file_path).exists()
        metadata = dict(metadata or {})
        if metadata.get("source_id") in self.upload_errors:
            raise self.upload_errors[metadata["source_id"]]
        metadata["content"] = Path(file_path).read_bytes()
        self.uploads.append(metadata)
        return f"asset-{metadata['source_id']}"

    def add_asset_to_album(self, asset_id: str, album_id: str) -> None:
        self.album_additions.append((asset_id, album_id))


@pytest.fixture
def google_settings(tmp_path: Path) -> GoogleSettings:
    """Google OAuth settings pointing at a temporary token file."""
    return GoogleSettings(
        client_id="test_client_id",
        client_secret="test_client_secret",
        token_path=tmp_path / "google_token.json",
    )


@pytest.fixture
def make_config(tmp_path: Path, google_settings: GoogleSettings):
    """Factory for a SyncConfig using temporary paths."""

    def _make(album_names: Dict[str, str], album_ids: Optional[List[str]] = None, **kwargs) -> SyncConfig:
        return SyncConfig(
            google=google_settings,
            immich=ImmichSettings(api_key="test_api_key", server_url="http://immich.test/api"),
            album_ids=tuple(album_ids if album_ids is not None else album_names),
            album_names=dict(album_names),
            ledger_path=tmp_path / "synced_photos.json",
            temp_dir=tmp_path / "temp",
            **kwargs,
        )

    return _make


@pytest.fixture
def source_api_error() -> SourceApiError:
    return SourceApiError("Google Photos media item search failed", 500, "backend error")


@pytest.fixture
def destination_api_error() -> DestinationApiError:
    return DestinationApiError("Immich upload failed", 500, "internal error")


@pytest.fixture
def item_factory():
    """Factory for media items."""
    return make_item


@pytest.fixture
def fake_google_photos():
    """The in-memory Google Photos client class."""
    return FakeGooglePhotos


@pytest.fixture
def fake_immich():
    """The in-memory Immich client class."""
    return FakeImmich
