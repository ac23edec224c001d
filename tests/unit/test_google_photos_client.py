"""Unit tests for the Google Photos client."""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import httplib2
import pytest
import requests
from googleapiclient.errors import HttpError

from gphotos_immich_sync.clients.google_photos import GooglePhotosClient
from gphotos_immich_sync.models import AlbumNotFoundError, Credential, MediaItem, SourceApiError


def http_error(status: int, content: bytes = b'{"error": {"message": "not found"}}') -> HttpError:
    return HttpError(httplib2.Response({"status": status}), content)


@pytest.fixture
def mock_token_store():
    """Create a token store that hands out a fresh credential."""
    store = MagicMock()
    store.get_valid_credential.return_value = Credential(
        "test_access_token",
        "test_refresh_token",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )
    return store


@pytest.fixture
def mock_service():
    """Create a mock Photos Library service."""
    return MagicMock()


@pytest.fixture
def client(mock_token_store, mock_service):
    return GooglePhotosClient(mock_token_store, page_size=2, service=mock_service, session=MagicMock())


def api_item(item_id, filename, video=False):
    metadata = {"creationTime": "2024-01-01T00:00:00Z"}
    if video:
        metadata["video"] = {}
    return {
        "id": item_id,
        "baseUrl": f"https://lh3.example.com/{item_id}",
        "filename": filename,
        "mimeType": "video/mp4" if video else "image/jpeg",
        "mediaMetadata": metadata,
    }


def test_list_all_items_follows_page_tokens(client, mock_service):
    """Test pagination continues until no page token is returned."""
    search = mock_service.mediaItems.return_value.search
    search.return_value.execute.side_effect = [
        {"mediaItems": [api_item("p1", "a.jpg"), api_item("p2", "b.jpg")], "nextPageToken": "page2"},
        {"mediaItems": [api_item("p3", "c.mp4", video=True)]},
    ]

    items = client.list_all_items("abc123")

    assert [item.id for item in items] == ["p1", "p2", "p3"]
    assert items[2].is_video
    bodies = [call.kwargs["body"] for call in search.call_args_list]
    assert bodies == [
        {"albumId": "abc123", "pageSize": 2},
        {"albumId": "abc123", "pageSize": 2, "pageToken": "page2"},
    ]


def test_list_items_single_page(client, mock_service):
    """Test a single page returns items and the next token."""
    mock_service.mediaItems.return_value.search.return_value.execute.return_value = {
        "mediaItems": [api_item("p1", "a.jpg")],
        "nextPageToken": "next",
    }

    items, token = client.list_items("abc123")

    assert [item.filename for item in items] == ["a.jpg"]
    assert token == "next"


def test_list_items_empty_album(client, mock_service):
    """Test an empty album returns no items."""
    mock_service.mediaItems.return_value.search.return_value.execute.return_value = {}
    assert client.list_all_items("abc123") == []


def test_list_items_error(client, mock_service):
    """Test API errors are translated with status and body."""
    mock_service.mediaItems.return_value.search.return_value.execute.side_effect = http_error(403)

    with pytest.raises(SourceApiError) as exc_info:
        client.list_all_items("abc123")

    assert exc_info.value.status == 403
    assert "not found" in exc_info.value.body


def test_token_checked_before_every_call(client, mock_service, mock_token_store):
    """Test the token store is consulted for every request."""
    mock_service.mediaItems.return_value.search.return_value.execute.side_effect = [
        {"mediaItems": [], "nextPageToken": "page2"},
        {"mediaItems": []},
    ]
    client.list_all_items("abc123")
    assert mock_token_store.get_valid_credential.call_count == 2


def test_list_albums_paginates(client, mock_service):
    """Test owned albums are listed across pages."""
    mock_service.albums.return_value.list.return_value.execute.side_effect = [
        {"albums": [{"id": "a1", "title": "One", "mediaItemsCount": "3"}], "nextPageToken": "t"},
        {"albums": [{"id": "a2", "title": "Two"}]},
    ]

    albums = client.list_albums()

    assert [(a.id, a.title, a.shared) for a in albums] == [("a1", "One", False), ("a2", "Two", False)]
    assert albums[0].media_items_count == "3"


def test_list_shared_albums(client, mock_service):
    """Test shared albums carry their shareable URL."""
    mock_service.sharedAlbums.return_value.list.return_value.execute.return_value = {
        "sharedAlbums": [{"id": "s1", "title": "Shared", "productUrl": "https://photos.example.com/s1"}]
    }

    albums = client.list_shared_albums()

    assert albums[0].shared
    assert albums[0].product_url == "https://photos.example.com/s1"


def test_find_album_owned(client, mock_service):
    """Test an owned album is found directly."""
    mock_service.albums.return_value.get.return_value.execute.return_value = {"id": "abc123", "title": "Family"}

    album = client.find_album("abc123")

    assert album.title == "Family"
    mock_service.sharedAlbums.assert_not_called()


def test_find_album_shared_fallback(client, mock_service):
    """Test an album that is not owned is looked up among shared albums."""
    mock_service.albums.return_value.get.return_value.execute.side_effect = http_error(404)
    mock_service.sharedAlbums.return_value.list.return_value.execute.return_value = {
        "sharedAlbums": [{"id": "other"}, {"id": "abc123", "title": "Shared Family"}]
    }

    album = client.find_album("abc123")

    assert album.shared
    assert album.title == "Shared Family"


def test_find_album_not_found(client, mock_service):
    """Test an album that is neither owned nor shared raises AlbumNotFoundError."""
    mock_service.albums.return_value.get.return_value.execute.side_effect = http_error(404)
    mock_service.sharedAlbums.return_value.list.return_value.execute.return_value = {"sharedAlbums": []}

    with pytest.raises(AlbumNotFoundError):
        client.find_album("missing")


def make_download_response(status_code=200, chunks=(b"abc", b"de")):
    response = MagicMock()
    response.status_code = status_code
    response.text = "forbidden"
    response.iter_content.return_value = list(chunks)
    return response


def test_download_original_quality(client, tmp_path):
    """Test downloads use the original-quality URL and stream to disk."""
    client._session.get.return_value.__enter__.return_value = make_download_response()
    item = MediaItem("p1", "https://lh3.example.com/p1", "a.jpg")
    dest = tmp_path / "a.jpg"

    written = client.download(item, dest)

    assert written == 5
    assert dest.read_bytes() == b"abcde"
    args, kwargs = client._session.get.call_args
    assert args[0] == "https://lh3.example.com/p1=d"
    assert kwargs["stream"] is True
    assert kwargs["timeout"] == client.timeout


def test_download_video_uses_video_suffix(client, tmp_path):
    """Test videos are downloaded with the video download suffix."""
    client._session.get.return_value.__enter__.return_value = make_download_response()
    item = MediaItem("v1", "https://lh3.example.com/v1", "clip.mp4", is_video=True)

    client.download(item, tmp_path / "clip.mp4")

    assert client._session.get.call_args[0][0] == "https://lh3.example.com/v1=dv"


def test_download_http_error(client, tmp_path):
    """Test a non-200 download raises SourceApiError."""
    client._session.get.return_value.__enter__.return_value = make_download_response(status_code=403)
    item = MediaItem("p1", "https://lh3.example.com/p1", "a.jpg")

    with pytest.raises(SourceApiError) as exc_info:
        client.download(item, tmp_path / "a.jpg")

    assert exc_info.value.status == 403


def test_download_timeout(client, tmp_path):
    """Test a hung download surfaces as SourceApiError."""
    client._session.get.side_effect = requests.Timeout("read timed out")
    item = MediaItem("p1", "https://lh3.example.com/p1", "a.jpg")

    with pytest.raises(SourceApiError):
        client.download(item, tmp_path / "a.jpg")


def test_unauthorized_response_is_not_refreshed_by_transport(client, mock_token_store):
    """Test a 401 comes back to the caller without a token change outside the store."""
    client._authorize()
    authed = client._authorized_http()
    authed.http = MagicMock()
    authed.http.request.return_value = (httplib2.Response({"status": 401}), b"unauthorized")

    response, _ = authed.request("https://photoslibrary.googleapis.com/v1/albums")

    assert response.status == 401
    assert authed.http.request.call_count == 1
    assert authed.http.request.call_args.kwargs["headers"]["authorization"] == "Bearer test_access_token"
    assert client._creds.token == "test_access_token"
    assert client._creds.refresh_token is None
    mock_token_store.refresh.assert_not_called()


def test_unauthorized_api_call_raises(client, mock_service):
    """Test a 401 from the API surfaces as SourceApiError."""
    mock_service.albums.return_value.get.return_value.execute.side_effect = http_error(
        401, b'{"error": {"message": "invalid credentials"}}'
    )

    with pytest.raises(SourceApiError) as exc_info:
        client.get_album("abc123")

    assert exc_info.value.status == 401


def test_rotated_token_reaches_transport(client, mock_token_store):
    """Test a token issued by the token store replaces the one in use."""
    client._authorize()
    mock_token_store.get_valid_credential.return_value = Credential(
        "rotated_access_token",
        "test_refresh_token",
        expiry=datetime.now(timezone.utc) + timedelta(hours=1),
    )

    client._authorize()

    assert client._creds.token == "rotated_access_token"
