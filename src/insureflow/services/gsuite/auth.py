"""Google API authentication and the per-wizard connection context.

Provides:
- TokenSource: abstract access-grant provider (consent prompt vs silent refresh).
- OAuthTokenSource: installed-app OAuth flow for the end user's own account.
- ServiceAccountTokenSource: service account credentials for headless scripts.
- SheetsConnection: explicit connection context (keys, spreadsheet id,
  credentials, cached API service instances) handed to every gateway call.
- GoogleConnector: builds SheetsConnection objects and validates API keys.

There is no module-level credential state; each wizard owns one connection.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import httplib2
import structlog
from google.auth.credentials import AnonymousCredentials, Credentials
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from src.insureflow.config import get_settings
from src.insureflow.crm.errors import AuthorizationError, ConfigurationError

logger = structlog.get_logger(__name__)

# Read/write sheets plus read-only Drive so existing spreadsheets can be listed
USER_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.readonly",
]

# Service account only touches files it created or was shared on
SERVICE_ACCOUNT_SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive.file",
]

PROMPT_CONSENT = "consent"
PROMPT_SILENT = ""

# Transport-level failures of any Google API call
REMOTE_ERRORS: tuple[type[Exception], ...] = (HttpError, httplib2.HttpLib2Error, OSError)


# ── Token Sources ───────────────────────────────────────────────────────────


class TokenSource(ABC):
    """Identity collaborator that hands out access grants."""

    @abstractmethod
    async def request_access_token(self, prompt: str) -> Credentials:
        """Obtain valid credentials.

        Args:
            prompt: "consent" for an interactive first-time grant, "" for a
                silent refresh of an existing session.

        Raises:
            AuthorizationError: The provider rejected the request.
        """
        ...


class OAuthTokenSource(TokenSource):
    """Installed-app OAuth flow against the user's OAuth client.

    The consent grant opens the browser and waits on a local redirect
    server. Silent requests refresh the existing grant and fall back to
    the consent flow when there is nothing to refresh.
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        scopes: list[str] | None = None,
        redirect_port: int = 0,
    ) -> None:
        self._client_id = client_id
        self._client_secret = client_secret
        self._scopes = scopes or USER_SCOPES
        self._redirect_port = redirect_port
        self._credentials: Credentials | None = None

    def _client_config(self) -> dict[str, Any]:
        return {
            "installed": {
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "auth_uri": "https://accounts.google.com/o/oauth2/auth",
                "token_uri": "https://oauth2.googleapis.com/token",
                "redirect_uris": ["http://localhost"],
            }
        }

    async def request_access_token(self, prompt: str) -> Credentials:
        try:
            if prompt != PROMPT_CONSENT and self._credentials is not None:
                if not self._credentials.valid:
                    await asyncio.to_thread(self._credentials.refresh, Request())
                return self._credentials

            flow = InstalledAppFlow.from_client_config(
                self._client_config(), scopes=self._scopes
            )
            logger.info("oauth.consent_requested", client_id=self._client_id)
            self._credentials = await asyncio.to_thread(
                flow.run_local_server,
                port=self._redirect_port,
                prompt=PROMPT_CONSENT,
            )
            return self._credentials
        except (GoogleAuthError, OAuth2Error) as exc:
            raise AuthorizationError(str(exc)) from exc
        except OSError as exc:
            # Redirect port in use, or the token exchange could not reach Google
            logger.warning("oauth.transport_failed", error=str(exc))
            raise AuthorizationError(f"Sign-in transport failed: {exc}") from exc


class ServiceAccountTokenSource(TokenSource):
    """Service account credentials; prompt mode is irrelevant."""

    def __init__(self, service_account_file: str, scopes: list[str] | None = None) -> None:
        self._credentials = service_account.Credentials.from_service_account_file(
            service_account_file,
            scopes=scopes or SERVICE_ACCOUNT_SCOPES,
        )

    async def request_access_token(self, prompt: str) -> Credentials:
        try:
            if not self._credentials.valid:
                await asyncio.to_thread(self._credentials.refresh, Request())
        except (GoogleAuthError, OSError) as exc:
            raise AuthorizationError(str(exc)) from exc
        return self._credentials


# ── Connection Context ──────────────────────────────────────────────────────


class SheetsConnection:
    """Explicit connection context for one user's Sheets/Drive access.

    Caches service instances per API to avoid repeated discovery builds,
    and drops the cache whenever the credentials change.
    """

    def __init__(
        self,
        client_id: str,
        api_key: str,
        token_source: TokenSource,
        spreadsheet_id: str = "",
        credentials: Credentials | None = None,
    ) -> None:
        self.client_id = client_id
        self.api_key = api_key
        self.spreadsheet_id = spreadsheet_id
        self.token_source = token_source
        self.credentials = credentials
        self._service_cache: dict[str, Any] = {}

    @property
    def authorized(self) -> bool:
        return self.credentials is not None

    def prompt_mode(self) -> str:
        """Consent the first time, silent once a grant exists."""
        return PROMPT_SILENT if self.authorized else PROMPT_CONSENT

    def bind(self, spreadsheet_id: str) -> None:
        self.spreadsheet_id = spreadsheet_id

    def rebound(self, spreadsheet_id: str) -> SheetsConnection:
        """A copy bound to another spreadsheet, sharing this grant and services."""
        copy = SheetsConnection(
            client_id=self.client_id,
            api_key=self.api_key,
            token_source=self.token_source,
            spreadsheet_id=spreadsheet_id,
            credentials=self.credentials,
        )
        copy._service_cache = dict(self._service_cache)
        return copy

    async def authorize(self, prompt: str | None = None) -> None:
        """Request an access grant and attach it to this connection."""
        credentials = await self.token_source.request_access_token(
            self.prompt_mode() if prompt is None else prompt
        )
        if credentials is not self.credentials:
            self._service_cache.clear()
        self.credentials = credentials

    def _get_service(self, api: str, version: str) -> Any:
        if self.credentials is None:
            raise AuthorizationError("Not signed in to Google")

        if api not in self._service_cache:
            logger.info("building_google_service", api=api, version=version)
            self._service_cache[api] = build(
                api,
                version,
                credentials=self.credentials,
                developerKey=self.api_key,
                cache_discovery=False,
            )
        return self._service_cache[api]

    def get_sheets_service(self) -> Any:
        """Get a cached Sheets API v4 service instance."""
        return self._get_service("sheets", "v4")

    def get_drive_service(self) -> Any:
        """Get a cached Drive API v3 service instance."""
        return self._get_service("drive", "v3")


# ── Connector ───────────────────────────────────────────────────────────────


def _default_token_source(client_id: str) -> TokenSource:
    settings = get_settings()
    return OAuthTokenSource(
        client_id=client_id,
        client_secret=settings.GOOGLE_OAUTH_CLIENT_SECRET,
        scopes=USER_SCOPES,
        redirect_port=settings.GOOGLE_OAUTH_REDIRECT_PORT,
    )


class GoogleConnector:
    """Initializes connection contexts from user-supplied keys.

    Args:
        token_source_factory: Builds the identity collaborator for a client
            ID. Defaults to the installed-app OAuth flow.
        validate_keys: Fetch the Sheets discovery document with the API key
            so an invalid key fails at step 1 instead of at first use.
    """

    def __init__(
        self,
        token_source_factory: Callable[[str], TokenSource] | None = None,
        validate_keys: bool = True,
    ) -> None:
        self._token_source_factory = token_source_factory or _default_token_source
        self._validate_keys = validate_keys

    async def initialize(
        self,
        client_id: str,
        api_key: str,
        spreadsheet_id: str = "",
    ) -> SheetsConnection:
        """Create a fresh, not-yet-authorized connection.

        Raises:
            ConfigurationError: The API key was rejected or the client
                library could not be initialized.
        """
        if self._validate_keys:
            await self._check_api_key(api_key)

        connection = SheetsConnection(
            client_id=client_id,
            api_key=api_key,
            token_source=self._token_source_factory(client_id),
            spreadsheet_id=spreadsheet_id,
        )
        logger.info(
            "google.client_initialized",
            client_id=client_id,
            has_spreadsheet=bool(spreadsheet_id),
        )
        return connection

    async def reinitialize(
        self,
        connection: SheetsConnection,
        spreadsheet_id: str,
    ) -> SheetsConnection:
        """Rebuild a connection bound to another spreadsheet, keeping its grant."""
        if self._validate_keys:
            await self._check_api_key(connection.api_key)

        return connection.rebound(spreadsheet_id)

    async def _check_api_key(self, api_key: str) -> None:
        def _build() -> Any:
            return build(
                "sheets",
                "v4",
                developerKey=api_key,
                credentials=AnonymousCredentials(),
                static_discovery=False,
                cache_discovery=False,
            )

        try:
            await asyncio.to_thread(_build)
        except (*REMOTE_ERRORS, GoogleAuthError) as exc:
            logger.warning("google.client_init_failed", error=str(exc))
            raise ConfigurationError(
                "Invalid Keys or Google client library failed to initialize."
            ) from exc
