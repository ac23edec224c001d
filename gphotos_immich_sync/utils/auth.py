"""Authentication utilities for the Google Photos Library API."""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow, InstalledAppFlow

from gphotos_immich_sync.models import AuthorizationError, Credential
from gphotos_immich_sync.utils.config import GoogleSettings
from gphotos_immich_sync.utils.file_utils import write_json_atomic

logger = logging.getLogger(__name__)

AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
TOKEN_URI = "https://oauth2.googleapis.com/token"

# Tokens are refreshed this long before they expire.
EXPIRY_LOOKAHEAD = timedelta(minutes=5)


def is_expiring_soon(credential: Credential, now: Optional[datetime] = None) -> bool:
    """Check whether a credential expires within the lookahead window.

    Args:
        credential: Credential to check
        now: Reference time, defaults to the current UTC time

    Returns:
        True if the credential has no known expiry or expires within 5 minutes
    """
    if credential.expiry is None:
        return True
    now = now or datetime.now(timezone.utc)
    return credential.expiry <= now + EXPIRY_LOOKAHEAD


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # google-auth compares expiry against naive UTC datetimes
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def to_aware_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class TokenStore:
    """Loads, refreshes and persists the Google OAuth credential."""

    def __init__(
        self,
        settings: GoogleSettings,
        prompt: Callable[[str], str] = input,
        output: Callable[[str], None] = print,
    ):
        """Initialize the token store.

        Args:
            settings: Google OAuth client settings
            prompt: Function used to read the authorization code
            output: Function used to show the authorization URL
        """
        self.settings = settings
        self.token_path = settings.token_path
        self._prompt = prompt
        self._output = output
        self._credential: Optional[Credential] = None

    @property
    def client_config(self) -> Dict[str, Any]:
        return {
            "installed": {
                "client_id": self.settings.client_id,
                "client_secret": self.settings.client_secret,
                "auth_uri": AUTH_URI,
                "token_uri": TOKEN_URI,
                "redirect_uris": [self.settings.redirect_uri],
            }
        }

    def load(self) -> Optional[Credential]:
        """Read the persisted credential.

        Returns:
            The credential, or None if no usable token file exists
        """
        if not self.token_path.exists():
            return None

        try:
            with open(self.token_path, "r", encoding="utf-8") as token:
                data = json.load(token)
            if not isinstance(data, dict):
                raise ValueError("token file does not contain an object")
            return Credential.from_dict(data)
        except (OSError, ValueError) as e:
            logger.error("Token file %s is unusable, re-authorization needed: %s", self.token_path, e)
            return None

    def save(self, credential: Credential) -> None:
        """Persist a credential, replacing the previous one atomically."""
        write_json_atomic(self.token_path, credential.to_dict())
        self._credential = credential
        logger.debug("Saved credential to %s", self.token_path)

    def to_google_credentials(self, credential: Credential) -> Credentials:
        """Convert a credential to a google-auth Credentials object."""
        return Credentials(
            token=credential.access_token,
            refresh_token=credential.refresh_token,
            token_uri=TOKEN_URI,
            client_id=self.settings.client_id,
            client_secret=self.settings.client_secret,
            scopes=credential.scope.split() or list(self.settings.scopes),
            expiry=to_naive_utc(credential.expiry),
        )

    def _from_google_credentials(
        self, creds: Credentials, previous: Optional[Credential] = None
    ) -> Credential:
        scopes = getattr(creds, "granted_scopes", None) or creds.scopes
        scope = " ".join(scopes) if scopes else ""
        return Credential(
            access_token=creds.token,
            refresh_token=creds.refresh_token or (previous.refresh_token if previous else None),
            scope=scope or (previous.scope if previous else ""),
            token_type="Bearer",
            expiry=to_aware_utc(creds.expiry) or (previous.expiry if previous else None),
        )

    def refresh(self, credential: Credential) -> Credential:
        """Exchange the refresh token for a new access token and persist it.

        The previous refresh token is kept when Google does not rotate it.

        Raises:
            AuthorizationError: If there is no refresh token or the exchange fails
        """
        if not credential.refresh_token:
            raise AuthorizationError("No refresh token available")

        creds = self.to_google_credentials(credential)
        try:
            creds.refresh(Request())
        except GoogleAuthError as e:
            raise AuthorizationError(f"Token refresh failed: {e}") from e

        refreshed = self._from_google_credentials(creds, previous=credential)
        self.save(refreshed)
        logger.info("Access token refreshed")
        return refreshed

    def authorize_interactively(self) -> Credential:
        """Run the interactive OAuth consent flow and persist the result.

        Raises:
            AuthorizationError: If the authorization itself fails
        """
        try:
            if self.settings.auth_flow == "local-server":
                creds = self._authorize_with_local_server()
            else:
                creds = self._authorize_with_console()
        except AuthorizationError:
            raise
        except Exception as e:
            raise AuthorizationError(f"Interactive authorization failed: {e}") from e

        credential = self._from_google_credentials(creds)
        if not credential.refresh_token:
            logger.warning(
                "No refresh token received. Revoke the app's access in your Google "
                "account and authorize again to get one."
            )
        self.save(credential)
        logger.info("Token obtained and saved to %s", self.token_path)
        return credential

    def _authorize_with_console(self) -> Credentials:
        flow = Flow.from_client_config(
            self.client_config,
            scopes=list(self.settings.scopes),
            redirect_uri=self.settings.redirect_uri,
        )
        auth_url, _ = flow.authorization_url(access_type="offline", prompt="consent")
        self._output("\nAuthorize this app by visiting this URL:\n" + auth_url + "\n")
        code = self._prompt("Enter the code from the authorization page: ").strip()
        if not code:
            raise AuthorizationError("No authorization code entered")
        flow.fetch_token(code=code)
        return flow.credentials

    def _authorize_with_local_server(self) -> Credentials:
        # The redirect URI registered with Google must be
        # http://localhost:<callback_port>/ for this flow to be accepted.
        flow = InstalledAppFlow.from_client_config(
            self.client_config, scopes=list(self.settings.scopes)
        )
        return flow.run_local_server(
            port=self.settings.callback_port,
            open_browser=True,
            access_type="offline",
            prompt="consent",
            authorization_prompt_message="Authorize this app by visiting this URL:\n{url}",
            success_message="Authentication successful! You can close this window now.",
        )

    def get_valid_credential(self) -> Credential:
        """Return a credential that stays valid for at least the lookahead window.

        Loads the persisted token on first use, refreshes it when it is about
        to expire and falls back to interactive authorization when there is
        no token or the refresh is rejected.

        Raises:
            AuthorizationError: If interactive authorization fails
        """
        credential = self._credential or self.load()
        if credential is None:
            logger.info("No stored Google token, starting authorization")
            return self.authorize_interactively()

        self._credential = credential
        if not is_expiring_soon(credential):
            return credential

        logger.info("Token expired or will expire soon, refreshing")
        try:
            return self.refresh(credential)
        except AuthorizationError as e:
            logger.warning("%s; requesting new authorization", e)
            return self.authorize_interactively()
