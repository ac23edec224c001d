"""API clients for Google Photos and Immich."""

from .google_photos import GooglePhotosClient
from .immich import ApiResult, ImmichClient, ResultStatus

__all__ = ["GooglePhotosClient", "ImmichClient", "ApiResult", "ResultStatus"]
