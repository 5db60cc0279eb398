"""Three-step Google Sheets connection wizard.

Steps: API keys -> Google authorization -> spreadsheet selection. Connected
is a flag plus the stored spreadsheet id, not a fourth step. Progress is
persisted after step 1 (keys only) and after step 3 (keys + spreadsheet id),
so a restart resumes at the right place:

- keys + spreadsheet id persisted  -> connected immediately
- keys only persisted              -> resume at the authorization step
- nothing persisted                -> start at the key-entry step

The wizard builds the SheetsConnection and is the only owner of it; the
gateway and drive services receive it per call.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog
from pydantic import BaseModel, Field

from src.insureflow.config import Settings, get_settings
from src.insureflow.crm.config_store import ConfigStore
from src.insureflow.crm.errors import (
    AccessError,
    AuthorizationError,
    AuthorizationSupersededError,
    ConfigurationError,
    CRMError,
    NotConnectedError,
    OriginMismatchError,
)
from src.insureflow.crm.schemas import ConnectionConfig, SyncReport, SyncStatus, WizardStep
from src.insureflow.services.gsuite.auth import REMOTE_ERRORS, GoogleConnector, SheetsConnection
from src.insureflow.services.gsuite.drive import DriveService
from src.insureflow.services.gsuite.models import DriveFile
from src.insureflow.services.gsuite.sheets import SheetsGateway

logger = structlog.get_logger(__name__)

# Substrings the identity provider uses when the calling origin is not registered
ORIGIN_MISMATCH_MARKERS = ("referer", "origin_mismatch", "redirect_uri_mismatch")

SyncHandler = Callable[[], Awaitable[SyncReport]]


class WizardStatus(BaseModel):
    """Snapshot of the connection wizard for the UI."""

    step: WizardStep
    connected: bool
    authorized: bool
    is_open: bool
    has_keys: bool
    spreadsheet_id: str = ""
    error: str | None = None
    available_tables: list[DriveFile] = Field(default_factory=list)


class ConnectionWizard:
    """Drives the connection flow and holds the resulting connection context.

    Args:
        store: Persisted configuration store.
        connector: Builds SheetsConnection objects from keys.
        gateway: Sheets gateway used for create/ensure-structure.
        drive: Drive listing service for spreadsheet selection.
        settings: Optional settings override.
    """

    def __init__(
        self,
        store: ConfigStore,
        connector: GoogleConnector,
        gateway: SheetsGateway,
        drive: DriveService,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._connector = connector
        self._gateway = gateway
        self._drive = drive
        self._settings = settings or get_settings()
        self._sync_handler: SyncHandler | None = None

        self.step = WizardStep.NEEDS_KEYS
        self.connected = False
        self.authorized = False
        self.is_open = False
        self.error: str | None = None
        self.available_tables: list[DriveFile] = []

        self._client_id = ""
        self._api_key = ""
        self._spreadsheet_id = ""
        self._connection: SheetsConnection | None = None
        self._pending_auth: asyncio.Task[None] | None = None

    # ── Accessors ───────────────────────────────────────────────────────

    @property
    def connection(self) -> SheetsConnection | None:
        return self._connection

    def set_sync_handler(self, handler: SyncHandler) -> None:
        """Register the sync-now callable run right after finalize."""
        self._sync_handler = handler

    def require_connection(self) -> SheetsConnection:
        """Return the live connection, failing fast when not connected."""
        if not self.connected or self._connection is None:
            raise NotConnectedError()
        return self._connection

    def status(self) -> WizardStatus:
        return WizardStatus(
            step=self.step,
            connected=self.connected,
            authorized=self.authorized,
            is_open=self.is_open,
            has_keys=bool(self._client_id and self._api_key),
            spreadsheet_id=self._spreadsheet_id,
            error=self.error,
            available_tables=list(self.available_tables),
        )

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def resume(self) -> WizardStatus:
        """Restore state from the persisted configuration at startup."""
        config = await self._store.load()
        if config is None or not config.has_keys():
            return self.status()

        self._client_id = config.client_id
        self._api_key = config.api_key

        try:
            self._connection = await self._connector.initialize(
                config.client_id,
                config.api_key,
                config.spreadsheet_id,
            )
        except ConfigurationError as exc:
            logger.error("wizard.auto_init_failed", error=str(exc))
            return self.status()

        if config.spreadsheet_id:
            self._spreadsheet_id = config.spreadsheet_id
            self.connected = True
            logger.info("wizard.resumed_connected", spreadsheet_id=config.spreadsheet_id)
        else:
            self.step = WizardStep.NEEDS_AUTHORIZATION
            logger.info("wizard.resumed_at_authorization")

        return self.status()

    async def open(self) -> WizardStatus:
        """Open the wizard at the furthest step the known state allows."""
        if self.connected:
            return self.status()

        if self._connection is not None:
            if self.authorized:
                self.step = WizardStep.NEEDS_TABLE_SELECTION
                await self._load_tables()
            else:
                self.step = WizardStep.NEEDS_AUTHORIZATION
        else:
            self.step = WizardStep.NEEDS_KEYS

        self.is_open = True
        return self.status()

    def close(self) -> WizardStatus:
        self.is_open = False
        return self.status()

    def go_back(self) -> WizardStatus:
        """Step back one screen (selection -> authorization -> keys)."""
        if self.step == WizardStep.NEEDS_TABLE_SELECTION:
            self.step = WizardStep.NEEDS_AUTHORIZATION
        elif self.step == WizardStep.NEEDS_AUTHORIZATION:
            self.step = WizardStep.NEEDS_KEYS
        return self.status()

    # ── Step 1: Keys ────────────────────────────────────────────────────

    async def submit_keys(self, client_id: str, api_key: str) -> WizardStatus:
        """Validate and store the OAuth client id and API key.

        Raises:
            ConfigurationError: Blank input or client initialization failed.
                The wizard stays on the key-entry step.
        """
        client_id = client_id.strip()
        api_key = api_key.strip()

        if not client_id or not api_key:
            self.step = WizardStep.NEEDS_KEYS
            raise self._record(ConfigurationError("Please enter both Client ID and API Key"))

        try:
            connection = await self._connector.initialize(client_id, api_key)
        except ConfigurationError as exc:
            self.step = WizardStep.NEEDS_KEYS
            self._record(exc)
            raise

        self._connection = connection
        self._client_id = client_id
        self._api_key = api_key
        self._spreadsheet_id = ""
        self.connected = False
        self.authorized = False

        await self._store.save(
            ConnectionConfig(client_id=client_id, api_key=api_key, spreadsheet_id="")
        )

        self.step = WizardStep.NEEDS_AUTHORIZATION
        self.error = None
        logger.info("wizard.keys_saved", client_id=client_id)
        return self.status()

    # ── Step 2: Authorization ───────────────────────────────────────────

    async def authorize(self) -> WizardStatus:
        """Request an access grant, then list the user's spreadsheets.

        Raises:
            OriginMismatchError: The OAuth client does not allow this origin.
            AuthorizationError: Any other rejection. The wizard stays on
                the authorization step.
        """
        try:
            await self._request_grant()
        except AuthorizationSupersededError:
            raise
        except AuthorizationError as exc:
            message = str(exc)
            if any(marker in message for marker in ORIGIN_MISMATCH_MARKERS):
                classified: AuthorizationError = OriginMismatchError(self._settings.PUBLIC_ORIGIN)
            else:
                classified = AuthorizationError("Login Failed. Check popup or console.")
            logger.warning("wizard.authorization_failed", error=message)
            self.step = WizardStep.NEEDS_AUTHORIZATION
            raise self._record(classified) from exc

        self.step = WizardStep.NEEDS_TABLE_SELECTION
        self.error = None
        logger.info("wizard.authorized")

        await self._load_tables()
        return self.status()

    async def refresh_authorization(self) -> None:
        """Silently renew the grant (consent only if none was ever given)."""
        await self._request_grant()

    async def _request_grant(self) -> None:
        """Run one authorization request, superseding any still in flight."""
        if self._connection is None:
            raise ConfigurationError("Enter your Client ID and API Key first")

        if self._pending_auth is not None and not self._pending_auth.done():
            self._pending_auth.cancel()
            logger.info("wizard.authorization_superseded")

        task = asyncio.ensure_future(self._connection.authorize())
        self._pending_auth = task
        try:
            await task
        except asyncio.CancelledError:
            if self._pending_auth is not task:
                raise AuthorizationSupersededError() from None
            raise
        finally:
            if self._pending_auth is task:
                self._pending_auth = None

        self.authorized = True

    # ── Step 3: Spreadsheet Selection ───────────────────────────────────

    async def list_tables(self) -> list[DriveFile]:
        """List the user's most recently modified spreadsheets.

        Raises:
            AccessError: Listing failed (usually the Drive API is disabled).
        """
        connection = self._require_authorized()
        try:
            files = await self._drive.list_spreadsheets(
                connection, page_size=self._settings.DRIVE_LIST_PAGE_SIZE
            )
        except REMOTE_ERRORS as exc:
            logger.error("wizard.list_tables_failed", error=str(exc))
            raise self._record(
                AccessError("Failed to list files. Ensure 'Drive API' is enabled in Console.")
            ) from exc

        self.available_tables = files
        return files

    async def _load_tables(self) -> None:
        try:
            await self.list_tables()
        except AccessError:
            # Authorization still succeeded; the error stays on the status
            self.available_tables = []

    async def create_new(self, title: str | None = None) -> SyncReport | None:
        """Create a new spreadsheet with the Policies structure and connect to it.

        Raises:
            AccessError: Creation was refused.
        """
        connection = self._require_authorized()
        try:
            spreadsheet_id = await self._gateway.create_table(
                connection, title or self._settings.DEFAULT_SPREADSHEET_TITLE
            )
        except REMOTE_ERRORS as exc:
            logger.error("wizard.create_failed", error=str(exc))
            raise self._record(
                AccessError(
                    "Failed to create sheet. Ensure you have Google Drive permissions enabled."
                )
            ) from exc
        return await self.finalize(spreadsheet_id)

    async def select_existing(self, spreadsheet_id: str) -> SyncReport | None:
        """Bind to an existing spreadsheet, ensure its structure, and connect.

        Raises:
            AccessError: The spreadsheet could not be opened or prepared.
        """
        connection = self._require_authorized()
        try:
            bound = await self._connector.reinitialize(connection, spreadsheet_id)
            await self._gateway.ensure_structure(bound)
        except (ConfigurationError, *REMOTE_ERRORS) as exc:
            logger.error("wizard.select_failed", spreadsheet_id=spreadsheet_id, error=str(exc))
            raise self._record(
                AccessError("Could not access sheet. It might be restricted.")
            ) from exc

        self._connection = bound
        return await self.finalize(spreadsheet_id)

    async def finalize(self, spreadsheet_id: str) -> SyncReport | None:
        """Persist the full configuration, mark connected, and run sync-now.

        A failing initial sync is reported, not raised; the connection stays.
        """
        if self._connection is None:
            raise ConfigurationError("Enter your Client ID and API Key first")

        self._connection.bind(spreadsheet_id)
        self._spreadsheet_id = spreadsheet_id
        await self._store.save(
            ConnectionConfig(
                client_id=self._client_id,
                api_key=self._api_key,
                spreadsheet_id=spreadsheet_id,
            )
        )

        self.connected = True
        self.is_open = False
        self.error = None
        logger.info("wizard.connected", spreadsheet_id=spreadsheet_id)

        if self._sync_handler is None:
            return None

        try:
            return await self._sync_handler()
        except CRMError as exc:
            logger.error("wizard.initial_sync_failed", error=str(exc))
            return SyncReport(status=SyncStatus.FAILED, message=str(exc))

    # ── Disconnect ──────────────────────────────────────────────────────

    async def disconnect(self) -> WizardStatus:
        """Forget everything: persisted config, keys, grant, and connection."""
        self.cancel_pending()
        await self._store.clear()

        self._connection = None
        self._client_id = ""
        self._api_key = ""
        self._spreadsheet_id = ""
        self.connected = False
        self.authorized = False
        self.is_open = False
        self.error = None
        self.available_tables = []
        self.step = WizardStep.NEEDS_KEYS

        logger.info("wizard.disconnected")
        return self.status()

    def cancel_pending(self) -> None:
        """Cancel an authorization request that is still waiting on the user."""
        if self._pending_auth is not None and not self._pending_auth.done():
            self._pending_auth.cancel()
        self._pending_auth = None

    # ── Helpers ─────────────────────────────────────────────────────────

    def _require_authorized(self) -> SheetsConnection:
        if self._connection is None:
            raise ConfigurationError("Enter your Client ID and API Key first")
        if not self.authorized:
            raise AuthorizationError("Sign in with Google first")
        return self._connection

    def _record(self, error: CRMError) -> CRMError:
        """Keep the user-facing message on the wizard status."""
        self.error = str(error)
        return error
