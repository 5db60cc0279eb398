"""Tests for Google authentication and the connection context.

Covers consent-vs-silent prompt selection, service caching per API,
API-key validation in GoogleConnector, and the installed-app OAuth flow
(patched; no browser is opened).
"""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest
from google.auth.exceptions import RefreshError

from src.insureflow.crm.errors import AuthorizationError, ConfigurationError
from src.insureflow.services.gsuite.auth import (
    PROMPT_CONSENT,
    PROMPT_SILENT,
    USER_SCOPES,
    GoogleConnector,
    OAuthTokenSource,
    SheetsConnection,
)
from tests.conftest import FakeTokenSource, http_error


# ── Connection Context ───────────────────────────────────────────────────────


class TestSheetsConnection:
    def test_unauthorized_connection_refuses_services(self, mock_build):
        conn = SheetsConnection("cid", "key", FakeTokenSource())

        with pytest.raises(AuthorizationError):
            conn.get_sheets_service()
        mock_build.assert_not_called()

    @pytest.mark.asyncio
    async def test_first_grant_uses_consent_then_silent(self, mock_build):
        source = FakeTokenSource()
        conn = SheetsConnection("cid", "key", source)

        await conn.authorize()
        await conn.authorize()

        assert source.prompts == [PROMPT_CONSENT, PROMPT_SILENT]
        assert conn.authorized

    def test_services_cached_per_api(self, connection, mock_build, sheets_service, drive_service):
        assert connection.get_sheets_service() is sheets_service
        assert connection.get_sheets_service() is sheets_service
        assert connection.get_drive_service() is drive_service

        assert mock_build.call_count == 2
        kwargs = mock_build.call_args_list[0].kwargs
        assert kwargs["developerKey"] == "api-key"
        assert kwargs["cache_discovery"] is False

    @pytest.mark.asyncio
    async def test_new_credentials_drop_service_cache(self, mock_build):
        source = FakeTokenSource(MagicMock(name="first"), MagicMock(name="second"))
        conn = SheetsConnection("cid", "key", source)

        await conn.authorize()
        conn.get_sheets_service()
        await conn.authorize()
        conn.get_sheets_service()

        assert mock_build.call_count == 2

    def test_rebound_copy_leaves_original_binding(self, connection, mock_build):
        connection.get_sheets_service()

        copy = connection.rebound("sheet-9")
        copy.get_sheets_service()

        assert copy.spreadsheet_id == "sheet-9"
        assert connection.spreadsheet_id == "sheet-123"
        assert copy.credentials is connection.credentials
        assert mock_build.call_count == 1

    def test_bind_sets_spreadsheet(self):
        conn = SheetsConnection("cid", "key", FakeTokenSource())
        conn.bind("sheet-9")
        assert conn.spreadsheet_id == "sheet-9"


# ── Connector ────────────────────────────────────────────────────────────────


class TestGoogleConnector:
    @pytest.mark.asyncio
    async def test_initialize_builds_unauthorized_connection(self):
        source = FakeTokenSource()
        connector = GoogleConnector(token_source_factory=lambda cid: source, validate_keys=False)

        conn = await connector.initialize("cid", "key", "sheet-1")

        assert conn.client_id == "cid"
        assert conn.api_key == "key"
        assert conn.spreadsheet_id == "sheet-1"
        assert conn.token_source is source
        assert not conn.authorized

    @pytest.mark.asyncio
    async def test_initialize_validates_api_key(self, mock_build):
        connector = GoogleConnector(token_source_factory=lambda cid: FakeTokenSource())

        await connector.initialize("cid", "key")

        mock_build.assert_called_once()
        assert mock_build.call_args.kwargs["developerKey"] == "key"

    @pytest.mark.asyncio
    async def test_rejected_api_key_is_configuration_error(self):
        connector = GoogleConnector(token_source_factory=lambda cid: FakeTokenSource())

        with patch("src.insureflow.services.gsuite.auth.build") as mock_build_fn:
            mock_build_fn.side_effect = http_error(400, "API key not valid")
            with pytest.raises(ConfigurationError, match="Invalid Keys"):
                await connector.initialize("cid", "bad-key")

    @pytest.mark.asyncio
    async def test_reinitialize_keeps_grant(self):
        source = FakeTokenSource()
        connector = GoogleConnector(token_source_factory=lambda cid: source, validate_keys=False)
        creds = MagicMock(name="credentials")
        original = SheetsConnection("cid", "key", source, credentials=creds)

        rebound = await connector.reinitialize(original, "sheet-2")

        assert rebound is not original
        assert rebound.spreadsheet_id == "sheet-2"
        assert rebound.credentials is creds
        assert rebound.token_source is source


# ── OAuth Token Source ───────────────────────────────────────────────────────


class TestOAuthTokenSource:
    @pytest.fixture
    def mock_flow(self):
        with patch(
            "src.insureflow.services.gsuite.auth.InstalledAppFlow"
        ) as mock_flow_cls:
            flow = MagicMock()
            mock_flow_cls.from_client_config.return_value = flow
            yield mock_flow_cls, flow

    @pytest.mark.asyncio
    async def test_consent_runs_local_server_flow(self, mock_flow):
        mock_flow_cls, flow = mock_flow
        creds = MagicMock(valid=True)
        flow.run_local_server.return_value = creds
        source = OAuthTokenSource("cid", "secret", redirect_port=8765)

        result = await source.request_access_token(PROMPT_CONSENT)

        assert result is creds
        config = mock_flow_cls.from_client_config.call_args.args[0]
        assert config["installed"]["client_id"] == "cid"
        assert mock_flow_cls.from_client_config.call_args.kwargs["scopes"] == USER_SCOPES
        flow.run_local_server.assert_called_once_with(port=8765, prompt="consent")

    @pytest.mark.asyncio
    async def test_silent_request_refreshes_existing_grant(self, mock_flow):
        _, flow = mock_flow
        creds = MagicMock(valid=False)
        flow.run_local_server.return_value = creds
        source = OAuthTokenSource("cid", "secret")
        await source.request_access_token(PROMPT_CONSENT)

        result = await source.request_access_token(PROMPT_SILENT)

        assert result is creds
        creds.refresh.assert_called_once()
        assert flow.run_local_server.call_count == 1

    @pytest.mark.asyncio
    async def test_silent_without_grant_falls_back_to_consent(self, mock_flow):
        _, flow = mock_flow
        flow.run_local_server.return_value = MagicMock(valid=True)

        await OAuthTokenSource("cid", "secret").request_access_token(PROMPT_SILENT)

        flow.run_local_server.assert_called_once()

    @pytest.mark.asyncio
    async def test_provider_rejection_is_authorization_error(self, mock_flow):
        _, flow = mock_flow
        creds = MagicMock(valid=False)
        creds.refresh.side_effect = RefreshError("invalid_grant")
        flow.run_local_server.return_value = creds
        source = OAuthTokenSource("cid", "secret")
        await source.request_access_token(PROMPT_CONSENT)

        with pytest.raises(AuthorizationError, match="invalid_grant"):
            await source.request_access_token(PROMPT_SILENT)
