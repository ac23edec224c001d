"""Configuration loading for Google Photos to Immich sync."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from gphotos_immich_sync.models import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/photoslibrary.readonly",
    "https://www.googleapis.com/auth/photoslibrary.sharing",
]

AUTH_FLOWS = ("console", "local-server")
CONNECTION_POLICIES = ("prompt", "abort", "continue")


@dataclass(frozen=True)
class GoogleSettings:
    """OAuth client settings for the Google Photos Library API."""
    client_id: str
    client_secret: str
    redirect_uri: str = "http://localhost:3000/oauth2callback"
    scopes: Tuple[str, ...] = tuple(DEFAULT_SCOPES)
    auth_flow: str = "console"
    callback_port: int = 3000
    token_path: Path = Path("google_token.json")


@dataclass(frozen=True)
class ImmichSettings:
    """Connection settings for the Immich server."""
    api_key: str
    server_url: str = "http://localhost:3001/api"


@dataclass(frozen=True)
class SyncConfig:
    """Settings for one run, built once at startup and passed explicitly."""
    google: GoogleSettings
    immich: ImmichSettings
    album_ids: Tuple[str, ...] = ()
    album_names: Dict[str, str] = field(default_factory=dict)
    ledger_path: Path = Path("synced_photos.json")
    temp_dir: Path = Path("temp")
    page_size: int = 100
    request_timeout: float = 60.0
    on_connection_failure: str = "prompt"
    ledger_strict: bool = False

    def album_pairs(self) -> List[Tuple[str, Optional[str]]]:
        """Configured source album ids with their destination names, in order."""
        return [(album_id, self.album_names.get(album_id)) for album_id in self.album_ids]

    def unmapped_album_ids(self) -> List[str]:
        return [album_id for album_id in self.album_ids if album_id not in self.album_names]


def parse_album_ids(value: str) -> Tuple[str, ...]:
    """Parse a comma-separated album id list, dropping blanks."""
    return tuple(part.strip() for part in value.split(",") if part.strip())


def parse_album_names(value: str) -> Dict[str, str]:
    """Parse ``id:name`` pairs separated by commas.

    The name is everything after the first colon, so it may itself contain
    colons. Pairs with an empty id or name are ignored.
    """
    names: Dict[str, str] = {}
    for pair in value.split(","):
        pair = pair.strip()
        if not pair or ":" not in pair:
            continue
        album_id, name = (part.strip() for part in pair.split(":", 1))
        if album_id and name:
            names[album_id] = name
    return names


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config(
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    require_sync: bool = True,
) -> SyncConfig:
    """Build a SyncConfig from environment variables.

    Args:
        env_file: Optional path to a .env file loaded before reading
        environ: Mapping to read instead of os.environ (the .env file is not
            loaded in that case)
        require_sync: If False, only the Google settings are mandatory, which
            is enough for listing albums

    Returns:
        The validated configuration

    Raises:
        ConfigurationError: Listing every missing or invalid setting
    """
    if environ is None:
        load_dotenv(dotenv_path=env_file)
        environ = os.environ

    def get(key: str, default: str = "") -> str:
        return environ.get(key, "").strip() or default

    missing: List[str] = []
    invalid: List[str] = []

    required = ["GOOGLE_CLIENT_ID", "GOOGLE_CLIENT_SECRET"]
    if require_sync:
        required.append("IMMICH_API_KEY")
    missing.extend(key for key in required if not get(key))

    album_ids = parse_album_ids(get("GOOGLE_PHOTOS_ALBUM_IDS"))
    album_names = parse_album_names(get("IMMICH_ALBUM_NAMES"))
    if require_sync:
        if not album_ids:
            missing.append("GOOGLE_PHOTOS_ALBUM_IDS")
        if not album_names:
            missing.append("IMMICH_ALBUM_NAMES")

    def get_int(key: str, default: int, low: int, high: int) -> int:
        raw = get(key, str(default))
        try:
            value = int(raw)
        except ValueError:
            invalid.append(f"{key}={raw!r} is not an integer")
            return default
        if not low <= value <= high:
            invalid.append(f"{key}={value} must be between {low} and {high}")
            return default
        return value

    def get_choice(key: str, default: str, choices: Tuple[str, ...]) -> str:
        value = get(key, default).lower()
        if value not in choices:
            invalid.append(f"{key}={value!r} must be one of {', '.join(choices)}")
            return default
        return value

    page_size = get_int("PAGE_SIZE", 100, 1, 100)
    callback_port = get_int("GOOGLE_OAUTH_CALLBACK_PORT", 3000, 1, 65535)
    request_timeout = get_int("REQUEST_TIMEOUT", 60, 1, 3600)
    auth_flow = get_choice("GOOGLE_AUTH_FLOW", "console", AUTH_FLOWS)
    on_connection_failure = get_choice("ON_CONNECTION_FAILURE", "prompt", CONNECTION_POLICIES)

    if missing or invalid:
        raise ConfigurationError(missing, invalid)

    scopes = tuple(s.strip() for s in get("GOOGLE_SCOPES").split(",") if s.strip())

    config = SyncConfig(
        google=GoogleSettings(
            client_id=get("GOOGLE_CLIENT_ID"),
            client_secret=get("GOOGLE_CLIENT_SECRET"),
            redirect_uri=get("GOOGLE_REDIRECT_URI", "http://localhost:3000/oauth2callback"),
            scopes=scopes or tuple(DEFAULT_SCOPES),
            auth_flow=auth_flow,
            callback_port=callback_port,
            token_path=Path(get("GOOGLE_TOKEN_PATH", "google_token.json")),
        ),
        immich=ImmichSettings(
            api_key=get("IMMICH_API_KEY"),
            server_url=get("IMMICH_SERVER_URL", "http://localhost:3001/api").rstrip("/"),
        ),
        album_ids=album_ids,
        album_names=album_names,
        ledger_path=Path(get("SYNCED_PHOTOS_FILE", "synced_photos.json")),
        temp_dir=Path(get("TEMP_DIR", "temp")),
        page_size=page_size,
        request_timeout=float(request_timeout),
        on_connection_failure=on_connection_failure,
        ledger_strict=_parse_bool(get("LEDGER_STRICT", "false")),
    )

    if require_sync:
        unmapped = config.unmapped_album_ids()
        if unmapped:
            logger.warning(
                "No Immich album name configured for album ids %s; they will be skipped",
                ", ".join(unmapped),
            )

    return config
