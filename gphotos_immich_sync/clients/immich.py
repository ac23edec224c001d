"""Immich server API client."""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import requests

from gphotos_immich_sync.models import DestinationAlbum, DestinationApiError
from gphotos_immich_sync.utils.file_utils import guess_mime_type

logger = logging.getLogger(__name__)

DEVICE_ID = "gphotos-immich-sync"


class ResultStatus(str, Enum):
    """How a request with a legacy fallback was answered."""
    SUCCESS = "success"
    LEGACY_SUCCESS = "legacy_success"
    FAILURE = "failure"


@dataclass
class ApiResult:
    """Outcome of a request that may have fallen back to a legacy route."""
    status: ResultStatus
    response: Optional[requests.Response] = None
    error: Optional[str] = None
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status != ResultStatus.FAILURE

    def json(self) -> Any:
        return self.response.json() if self.response is not None else None


@dataclass
class Route:
    """A request path with its JSON body for one API generation."""
    path: str
    json: Optional[Dict[str, Any]] = None


class ImmichClient:
    """Talks to the Immich REST API.

    Album and upload routes were renamed between Immich releases. Each of
    those calls tries the current route and, only when it answers 404, the
    legacy one, once.
    """

    def __init__(
        self,
        server_url: str,
        api_key: str,
        timeout: float = 60.0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            server_url: Base API URL, e.g. http://localhost:3001/api
            api_key: Immich API key
            timeout: Timeout in seconds applied to every request
            session: Optional requests session to use
        """
        self.server_url = server_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"x-api-key": api_key, "Accept": "application/json"})

    def _url(self, path: str) -> str:
        return f"{self.server_url}{path}"

    def _send(self, method: str, route: Route, **kwargs) -> requests.Response:
        if route.json is not None:
            kwargs["json"] = route.json
        return self.session.request(method, self._url(route.path), timeout=self.timeout, **kwargs)

    def _request_with_fallback(
        self, method: str, current: Route, legacy: Route, **kwargs
    ) -> ApiResult:
        """Send a request to the current route, falling back to the legacy one on 404."""
        try:
            response = self._send(method, current, **kwargs)
            if response.status_code == 404:
                logger.info("%s %s not found, trying legacy %s", method, current.path, legacy.path)
                _rewind(kwargs)
                response = self._send(method, legacy, **kwargs)
                status = ResultStatus.LEGACY_SUCCESS
            else:
                status = ResultStatus.SUCCESS
        except requests.RequestException as e:
            return ApiResult(ResultStatus.FAILURE, error=str(e))

        if not response.ok:
            return ApiResult(
                ResultStatus.FAILURE,
                response=response,
                error=response.text,
                status_code=response.status_code,
            )
        return ApiResult(status, response=response, status_code=response.status_code)

    @staticmethod
    def _raise_for(result: ApiResult, action: str) -> None:
        if not result.ok:
            raise DestinationApiError(f"Immich {action} failed", result.status_code, result.error)

    @staticmethod
    def _unexpected(result: ApiResult, action: str, error: Exception) -> DestinationApiError:
        body = result.response.text if result.response is not None else None
        return DestinationApiError(
            f"Immich {action} returned an unexpected response ({error!r})",
            result.status_code,
            body,
        )

    def _parse(self, result: ApiResult, action: str) -> Any:
        """Decode the JSON body of a successful result.

        Raises:
            DestinationApiError: If the body is not JSON, e.g. a proxy login page
        """
        try:
            return result.json()
        except ValueError as e:
            raise self._unexpected(result, action, e) from e

    def ping(self) -> bool:
        """Check that the server is reachable and the API key is accepted."""
        result = self._request_with_fallback("GET", Route("/server/ping"), Route("/server-info/ping"))
        if not result.ok:
            logger.error(
                "Failed to connect to Immich server at %s: %s %s",
                self.server_url,
                result.status_code or "",
                result.error,
            )
            return False
        logger.info(
            "Connected to Immich server at %s (version %s)",
            self.server_url,
            result.response.headers.get("x-immich-version", "unknown"),
        )
        return True

    def list_albums(self) -> List[DestinationAlbum]:
        """List all albums on the server.

        Raises:
            DestinationApiError: If the albums cannot be listed
        """
        result = self._request_with_fallback("GET", Route("/albums"), Route("/album"))
        self._raise_for(result, "album listing")
        data = self._parse(result, "album listing")
        try:
            return [DestinationAlbum(id=a["id"], name=a["albumName"]) for a in data]
        except (KeyError, TypeError) as e:
            raise self._unexpected(result, "album listing", e) from e

    def create_album(self, name: str) -> DestinationAlbum:
        """Create an album.

        Raises:
            DestinationApiError: If the album cannot be created
        """
        body = {"albumName": name}
        result = self._request_with_fallback("POST", Route("/albums", body), Route("/album", body))
        action = f"creation of album {name!r}"
        self._raise_for(result, action)
        data = self._parse(result, action)
        try:
            album = DestinationAlbum(id=data["id"], name=data.get("albumName", name))
        except (KeyError, TypeError, AttributeError) as e:
            raise self._unexpected(result, action, e) from e
        logger.info("Created Immich album %r (%s)", name, album.id)
        return album

    def upload_asset(self, file_path: Path, metadata: Optional[Dict[str, Any]] = None) -> str:
        """Upload a file as a new asset.

        Args:
            file_path: Local file to upload
            metadata: Optional ``filename``, ``mime_type``, ``source_id`` and
                ``created_at`` (ISO 8601) describing the asset

        Returns:
            The asset id. Immich returns the existing id for duplicates.

        Raises:
            DestinationApiError: If the upload fails
        """
        metadata = metadata or {}
        file_path = Path(file_path)
        filename = metadata.get("filename") or file_path.name
        mime_type = metadata.get("mime_type") or guess_mime_type(file_path)
        stat = os.stat(file_path)
        modified_at = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat()
        created_at = metadata.get("created_at") or modified_at
        source_id = metadata.get("source_id") or f"{filename}-{stat.st_size}"

        form = {
            "deviceAssetId": f"gphotos-{source_id}",
            "deviceId": DEVICE_ID,
            "fileCreatedAt": created_at,
            "fileModifiedAt": created_at,
            "isFavorite": "false",
        }
        with open(file_path, "rb") as handle:
            result = self._request_with_fallback(
                "POST",
                Route("/assets"),
                Route("/asset/upload"),
                data=form,
                files={"assetData": (filename, handle, mime_type)},
            )
        action = f"upload of {filename}"
        self._raise_for(result, action)
        data = self._parse(result, action)
        try:
            asset_id = data["id"]
            duplicate = data.get("status") == "duplicate"
        except (KeyError, TypeError, AttributeError) as e:
            raise self._unexpected(result, action, e) from e
        if duplicate:
            logger.info("Immich already has %s as asset %s", filename, asset_id)
        return asset_id

    def add_asset_to_album(self, asset_id: str, album_id: str) -> None:
        """Add an uploaded asset to an album.

        Raises:
            DestinationApiError: If the asset cannot be added
        """
        result = self._request_with_fallback(
            "PUT",
            Route(f"/albums/{album_id}/assets", {"ids": [asset_id]}),
            Route(f"/album/{album_id}/assets", {"assetIds": [asset_id]}),
        )
        self._raise_for(result, f"adding asset {asset_id} to album {album_id}")


def _rewind(kwargs: Dict[str, Any]) -> None:
    # Uploaded file handles are consumed by the first attempt
    for entry in (kwargs.get("files") or {}).values():
        handle = entry[1] if isinstance(entry, tuple) else entry
        if hasattr(handle, "seek"):
            handle.seek(0)
