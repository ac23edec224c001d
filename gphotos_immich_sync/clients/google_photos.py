"""Google Photos Library API client."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import google_auth_httplib2
import httplib2
import requests
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import Resource, build
from googleapiclient.errors import HttpError

from gphotos_immich_sync.models import (
    AlbumNotFoundError,
    MediaItem,
    SourceAlbum,
    SourceApiError,
)
from gphotos_immich_sync.utils.auth import TokenStore

logger = logging.getLogger(__name__)

ALBUM_PAGE_SIZE = 50
DOWNLOAD_CHUNK_SIZE = 1024 * 1024


def _error_body(error: HttpError) -> str:
    content = error.content
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return content or ""


class GooglePhotosClient:
    """Reads albums and media items from Google Photos.

    The access token is re-read from the token store before every call, so
    refreshing stays the token store's decision.
    """

    def __init__(
        self,
        token_store: TokenStore,
        page_size: int = 100,
        timeout: float = 60.0,
        service: Optional[Resource] = None,
        session: Optional[requests.Session] = None,
    ):
        self.token_store = token_store
        self.page_size = page_size
        self.timeout = timeout
        self._service = service
        self._creds = None
        self._session = session or requests.Session()

    def _authorize(self) -> None:
        credential = self.token_store.get_valid_credential()
        if self._creds is None:
            # Access token only: without a refresh token or client secret
            # the transport cannot refresh behind the token store's back.
            self._creds = Credentials(token=credential.access_token)
        else:
            self._creds.token = credential.access_token

    def _authorized_http(self) -> google_auth_httplib2.AuthorizedHttp:
        """HTTP transport that sends the current token and never refreshes it.

        A 401 is returned to the caller as an HttpError instead of being
        retried with a token the token store has not seen.
        """
        return google_auth_httplib2.AuthorizedHttp(
            self._creds,
            http=httplib2.Http(timeout=self.timeout),
            refresh_status_codes=(),
        )

    @property
    def service(self) -> Resource:
        """Photos Library service, built on first use."""
        self._authorize()
        if self._service is None:
            self._service = build(
                "photoslibrary", "v1", http=self._authorized_http(), static_discovery=False
            )
        return self._service

    def _execute(self, request, action: str) -> Dict[str, Any]:
        try:
            return request.execute()
        except HttpError as e:
            raise SourceApiError(f"Google Photos {action} failed", e.resp.status, _error_body(e)) from e
        except GoogleAuthError as e:
            raise SourceApiError(f"Google Photos {action} failed: {e}") from e
        except (httplib2.HttpLib2Error, OSError) as e:
            raise SourceApiError(f"Google Photos {action} failed: {e}") from e

    def _list_paginated(self, collection: str, key: str, shared: bool) -> List[SourceAlbum]:
        albums: List[SourceAlbum] = []
        page_token = None
        while True:
            resource = getattr(self.service, collection)()
            response = self._execute(
                resource.list(pageSize=ALBUM_PAGE_SIZE, pageToken=page_token),
                f"{collection} listing",
            )
            albums.extend(SourceAlbum.from_api(a, shared=shared) for a in response.get(key, []))
            page_token = response.get("nextPageToken")
            if not page_token:
                break
        return albums

    def list_albums(self) -> List[SourceAlbum]:
        """List all albums owned by the user."""
        return self._list_paginated("albums", "albums", shared=False)

    def list_shared_albums(self) -> List[SourceAlbum]:
        """List all albums shared with the user."""
        return self._list_paginated("sharedAlbums", "sharedAlbums", shared=True)

    def get_album(self, album_id: str) -> SourceAlbum:
        response = self._execute(self.service.albums().get(albumId=album_id), "album lookup")
        return SourceAlbum.from_api(response)

    def find_album(self, album_id: str) -> SourceAlbum:
        """Look an album up as an owned album first, then among shared albums.

        Raises:
            AlbumNotFoundError: If the album is neither owned nor shared
        """
        try:
            return self.get_album(album_id)
        except SourceApiError as e:
            logger.warning("Album %s is not accessible as an owned album: %s", album_id, e)

        try:
            shared = self.list_shared_albums()
        except SourceApiError as e:
            logger.error("Could not list shared albums: %s", e)
            raise AlbumNotFoundError(album_id) from e

        for album in shared:
            if album.id == album_id:
                logger.info("Found album %s as a shared album: %r", album_id, album.title)
                return album
        raise AlbumNotFoundError(album_id)

    def list_items(
        self, album_id: str, page_token: Optional[str] = None
    ) -> Tuple[List[MediaItem], Optional[str]]:
        """Fetch one page of media items in an album.

        Returns:
            The items on this page and the token for the next page, or None
        """
        body: Dict[str, Any] = {"albumId": album_id, "pageSize": self.page_size}
        if page_token:
            body["pageToken"] = page_token
        response = self._execute(self.service.mediaItems().search(body=body), "media item search")
        items = [MediaItem.from_api(item) for item in response.get("mediaItems", [])]
        return items, response.get("nextPageToken") or None

    def list_all_items(self, album_id: str) -> List[MediaItem]:
        """Fetch every media item in an album, following page tokens."""
        items: List[MediaItem] = []
        page_token = None
        while True:
            page, page_token = self.list_items(album_id, page_token)
            items.extend(page)
            if not page_token:
                break
        return items

    def download(self, item: MediaItem, dest_path: Path) -> int:
        """Download the original-quality bytes of an item.

        Returns:
            Number of bytes written

        Raises:
            SourceApiError: If the download fails
        """
        try:
            with self._session.get(item.download_url, stream=True, timeout=self.timeout) as response:
                if response.status_code != 200:
                    raise SourceApiError(
                        f"Download of {item.filename} failed", response.status_code, response.text
                    )
                written = 0
                with open(dest_path, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
                            written += len(chunk)
        except requests.RequestException as e:
            raise SourceApiError(f"Download of {item.filename} failed: {e}") from e
        return written
