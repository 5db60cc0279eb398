"""Shared fixtures for the CRM and Google Sheets tests.

Provides:
- make_policy(): Policy factory with sensible defaults
- http_error(): googleapiclient HttpError builder
- FakeTokenSource: scripted identity collaborator
- sheets_service / drive_service: MagicMock googleapiclient resources
- connection: authorized SheetsConnection bound to a test spreadsheet

No network or real credentials are used anywhere in the suite.
"""

from __future__ import annotations

import json
from typing import Any
from unittest.mock import MagicMock, patch

import httplib2
import pytest
from googleapiclient.errors import HttpError

from src.insureflow.crm.errors import AuthorizationError
from src.insureflow.crm.schemas import (
    PaymentMode,
    Policy,
    PolicySpecifics,
    PolicyStatus,
    PolicyType,
)
from src.insureflow.services.gsuite.auth import SheetsConnection, TokenSource

SPREADSHEET_ID = "sheet-123"


def make_policy(**overrides: Any) -> Policy:
    """Build a Policy; keyword arguments override the defaults."""
    fields: dict[str, Any] = {
        "id": "p-1",
        "policy_number": "POL-001",
        "holder_name": "Jane Doe",
        "plan_name": "Term Life",
        "type": PolicyType.LIFE,
        "status": PolicyStatus.ACTIVE,
        "premium_amount": 1200.0,
        "payment_mode": PaymentMode.MONTHLY,
        "policy_anniversary_date": "01/01",
        "client_birthday": None,
        "extracted_tags": ["Life"],
        "specifics": PolicySpecifics(),
    }
    fields.update(overrides)
    return Policy(**fields)


def http_error(status: int, message: str) -> HttpError:
    """Build an HttpError the way googleapiclient raises it."""
    content = json.dumps({"error": {"code": status, "message": message}}).encode()
    return HttpError(resp=httplib2.Response({"status": status}), content=content)


class FakeTokenSource(TokenSource):
    """Identity collaborator that records prompts and returns scripted results.

    Each entry of ``results`` is either credentials to return or an
    exception to raise; the last entry repeats.
    """

    def __init__(self, *results: Any) -> None:
        self.results = list(results) or [MagicMock(name="credentials")]
        self.prompts: list[str] = []

    async def request_access_token(self, prompt: str):
        self.prompts.append(prompt)
        result = self.results.pop(0) if len(self.results) > 1 else self.results[0]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def policy() -> Policy:
    return make_policy()


@pytest.fixture
def sheets_service() -> MagicMock:
    """Mock Sheets v4 resource; configure .spreadsheets() chains per test."""
    return MagicMock(name="sheets")


@pytest.fixture
def drive_service() -> MagicMock:
    return MagicMock(name="drive")


@pytest.fixture
def mock_build(sheets_service, drive_service):
    """Patch discovery build() to hand out the mock resources by API name."""
    services = {"sheets": sheets_service, "drive": drive_service}
    with patch("src.insureflow.services.gsuite.auth.build") as mock_build_fn:
        mock_build_fn.side_effect = lambda api, version, **kwargs: services[api]
        yield mock_build_fn


@pytest.fixture
def token_source() -> FakeTokenSource:
    return FakeTokenSource()


@pytest.fixture
def connection(mock_build, token_source) -> SheetsConnection:
    """Authorized connection bound to SPREADSHEET_ID."""
    return SheetsConnection(
        client_id="client-id.apps.googleusercontent.com",
        api_key="api-key",
        token_source=token_source,
        spreadsheet_id=SPREADSHEET_ID,
        credentials=MagicMock(name="credentials"),
    )


@pytest.fixture
def rejected_token_source() -> FakeTokenSource:
    return FakeTokenSource(AuthorizationError("access_denied"))
