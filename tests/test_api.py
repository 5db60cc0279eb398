"""Integration tests for the v1 REST API.

Uses a real ConnectionWizard and CRMCoordinator over InMemoryConfigStore,
a scripted token source and AsyncMock gateway/drive, served through httpx
AsyncClient with the v1 router mounted on a bare FastAPI app.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from src.insureflow.config import Settings
from src.insureflow.crm.config_store import InMemoryConfigStore
from src.insureflow.crm.coordinator import CRMCoordinator
from src.insureflow.crm.errors import AuthorizationError, ParseError
from src.insureflow.crm.wizard import ConnectionWizard
from src.insureflow.services.gsuite.auth import GoogleConnector
from src.insureflow.services.gsuite.models import DriveFile
from tests.conftest import FakeTokenSource, http_error, make_policy

POLICY_BODY = {
    "policy_number": "POL-001",
    "holder_name": "Jane Doe",
    "plan_name": "Term Life",
    "type": "Life",
    "premium_amount": 1200,
    "payment_mode": "Yearly",
    "policy_anniversary_date": "01/01",
    "extracted_tags": ["Life"],
}


def _make_app(wizard: ConnectionWizard, coordinator: CRMCoordinator):
    """Create a minimal FastAPI app with the v1 router and CRM on app.state."""
    from fastapi import FastAPI

    from src.insureflow.api.v1.router import router

    app = FastAPI()
    app.include_router(router, prefix="/v1")
    app.state.wizard = wizard
    app.state.coordinator = coordinator
    return app


@pytest.fixture
def token_source() -> FakeTokenSource:
    return FakeTokenSource()


@pytest.fixture
def gateway() -> AsyncMock:
    gw = AsyncMock()
    gw.fetch_all.return_value = []
    gw.create_table.return_value = "new-sheet"
    return gw


@pytest.fixture
def drive() -> AsyncMock:
    dr = AsyncMock()
    dr.list_spreadsheets.return_value = [
        DriveFile(id="sheet-1", name="CRM", modified_time="2024-05-01T10:00:00Z")
    ]
    return dr


@pytest.fixture
def wizard(token_source, gateway, drive) -> ConnectionWizard:
    return ConnectionWizard(
        store=InMemoryConfigStore(),
        connector=GoogleConnector(
            token_source_factory=lambda cid: token_source, validate_keys=False
        ),
        gateway=gateway,
        drive=drive,
        settings=Settings(PUBLIC_ORIGIN="http://localhost:3000"),
    )


@pytest_asyncio.fixture
async def client_and_crm(wizard, gateway):
    """Test client plus the wizard/coordinator it serves."""
    coordinator = CRMCoordinator(wizard=wizard, gateway=gateway)
    app = _make_app(wizard, coordinator)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client, wizard, coordinator


async def _connect(client: AsyncClient) -> None:
    await client.post("/v1/connection/keys", json={"clientId": "x", "apiKey": "y"})
    await client.post("/v1/connection/authorize")
    await client.post("/v1/connection/tables/sheet-1/select")


# ── Health ───────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_health(client_and_crm):
    client, _, _ = client_and_crm

    response = await client.get("/v1/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_readiness_reports_sheets_state(client_and_crm):
    client, _, _ = client_and_crm

    with patch(
        "src.insureflow.api.v1.health.check_config_store",
        AsyncMock(return_value=None),
    ), patch("src.insureflow.api.v1.health.get_settings", return_value=Settings()):
        response = await client.get("/v1/health/ready")

    assert response.status_code == 200
    assert response.json()["checks"]["sheets"] == "disconnected"


@pytest.mark.asyncio
async def test_readiness_degraded_when_store_unreachable(client_and_crm):
    client, _, _ = client_and_crm

    with patch(
        "src.insureflow.api.v1.health.check_config_store",
        AsyncMock(return_value="Connection refused"),
    ), patch("src.insureflow.api.v1.health.get_settings", return_value=Settings()):
        response = await client.get("/v1/health/ready")

    assert response.status_code == 503
    assert response.json()["checks"]["config_store_error"] == "Connection refused"


@pytest.mark.asyncio
async def test_missing_coordinator_is_503():
    from fastapi import FastAPI

    from src.insureflow.api.v1.router import router

    app = FastAPI()
    app.include_router(router, prefix="/v1")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        response = await client.get("/v1/policies")

    assert response.status_code == 503


# ── Connection Wizard ────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_wizard_happy_path(client_and_crm, gateway):
    client, wizard, _ = client_and_crm

    status = (await client.get("/v1/connection")).json()
    assert status["step"] == 1

    response = await client.post("/v1/connection/keys", json={"clientId": "x", "apiKey": "y"})
    assert response.json()["step"] == 2

    response = await client.post("/v1/connection/authorize")
    body = response.json()
    assert body["step"] == 3
    assert body["available_tables"][0]["id"] == "sheet-1"

    response = await client.post("/v1/connection/tables/sheet-1/select")
    assert response.status_code == 200
    body = response.json()
    assert body["status"]["connected"] is True
    assert body["sync"]["status"] == "empty"
    gateway.ensure_structure.assert_awaited()


@pytest.mark.asyncio
async def test_blank_keys_is_400(client_and_crm):
    client, _, _ = client_and_crm

    response = await client.post("/v1/connection/keys", json={"clientId": " ", "apiKey": "y"})

    assert response.status_code == 400
    assert response.json()["detail"] == "Please enter both Client ID and API Key"


@pytest.mark.asyncio
async def test_origin_mismatch_is_401_with_origin(client_and_crm, token_source):
    client, _, _ = client_and_crm
    token_source.results = [AuthorizationError("redirect_uri_mismatch")]
    await client.post("/v1/connection/keys", json={"clientId": "x", "apiKey": "y"})

    response = await client.post("/v1/connection/authorize")

    assert response.status_code == 401
    assert response.json()["detail"]["origin"] == "http://localhost:3000"


@pytest.mark.asyncio
async def test_create_table(client_and_crm):
    client, _, _ = client_and_crm
    await client.post("/v1/connection/keys", json={"clientId": "x", "apiKey": "y"})
    await client.post("/v1/connection/authorize")

    response = await client.post("/v1/connection/tables", json={"title": "My CRM"})

    assert response.status_code == 201
    assert response.json()["status"]["spreadsheet_id"] == "new-sheet"


@pytest.mark.asyncio
async def test_list_tables_drive_disabled_is_403(client_and_crm, drive):
    client, _, _ = client_and_crm
    await client.post("/v1/connection/keys", json={"clientId": "x", "apiKey": "y"})
    await client.post("/v1/connection/authorize")
    drive.list_spreadsheets.side_effect = http_error(403, "Drive API disabled")

    response = await client.get("/v1/connection/tables")

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_disconnect(client_and_crm):
    client, wizard, _ = client_and_crm
    await _connect(client)

    response = await client.delete("/v1/connection")

    assert response.status_code == 200
    assert response.json()["connected"] is False
    assert response.json()["step"] == 1


# ── Policies ─────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_create_policy_offline(client_and_crm, gateway):
    client, _, coordinator = client_and_crm

    response = await client.post("/v1/policies", json=POLICY_BODY)

    assert response.status_code == 201
    body = response.json()
    assert body["policy"]["holder_name"] == "Jane Doe"
    assert body["client"]["status"] == "Lead"
    assert body["client"]["total_policies"] == 1
    assert body["remote_saved"] is None
    gateway.append_one.assert_not_awaited()


@pytest.mark.asyncio
async def test_create_policy_connected_append_failure(client_and_crm, gateway):
    client, _, _ = client_and_crm
    await _connect(client)
    gateway.append_one.side_effect = http_error(500, "backendError")

    response = await client.post("/v1/policies", json={**POLICY_BODY, "id": "p-9"})

    assert response.status_code == 201
    assert response.json()["notice"] == "Saved locally, but failed to save to Sheet."
    assert (await client.get("/v1/policies/p-9")).status_code == 200


@pytest.mark.asyncio
async def test_duplicate_policy_id_is_409(client_and_crm):
    client, _, coordinator = client_and_crm
    await client.post("/v1/policies", json={**POLICY_BODY, "id": "p-1"})

    response = await client.post("/v1/policies", json={**POLICY_BODY, "id": "p-1"})

    assert response.status_code == 409
    assert len(coordinator.policies) == 1
    assert coordinator.clients[0].total_policies == 1


@pytest.mark.asyncio
async def test_invalid_enum_rejected(client_and_crm):
    client, _, _ = client_and_crm

    response = await client.post("/v1/policies", json={**POLICY_BODY, "type": "Pet"})

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_and_delete_policy(client_and_crm):
    client, _, coordinator = client_and_crm
    await client.post("/v1/policies", json={**POLICY_BODY, "id": "p-1"})

    response = await client.put("/v1/policies/p-1", json={**POLICY_BODY, "premium_amount": 999})
    assert response.status_code == 200
    assert response.json()["policy"]["premium_amount"] == 999

    assert (await client.put("/v1/policies/nope", json=POLICY_BODY)).status_code == 404

    assert (await client.delete("/v1/policies/p-1")).status_code == 204
    assert (await client.delete("/v1/policies/p-1")).status_code == 404
    assert coordinator.clients[0].total_policies == 0


@pytest.mark.asyncio
async def test_sync_requires_connection(client_and_crm):
    client, _, _ = client_and_crm

    response = await client.post("/v1/policies/sync")

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_sync_parse_error_is_422(client_and_crm, gateway):
    client, _, _ = client_and_crm
    await _connect(client)
    gateway.fetch_all.side_effect = ParseError("Tags", "invalid JSON")

    response = await client.post("/v1/policies/sync")

    assert response.status_code == 422
    assert response.json()["detail"]["column"] == "Tags"


@pytest.mark.asyncio
async def test_sync_and_push(client_and_crm, gateway):
    client, _, _ = client_and_crm
    await _connect(client)
    gateway.fetch_all.side_effect = None
    gateway.fetch_all.return_value = [make_policy(id="r-1"), make_policy(id="r-2")]

    response = await client.post("/v1/policies/sync")
    assert response.json() == {
        "status": "synced",
        "policies": 2,
        "clients": 1,
        "message": "Synced 2 policies.",
    }

    response = await client.post("/v1/policies/push")
    assert response.json() == {"pushed": 2}


@pytest.mark.asyncio
async def test_sync_remote_failure_is_502(client_and_crm, gateway):
    client, _, _ = client_and_crm
    await _connect(client)
    gateway.fetch_all.side_effect = http_error(503, "backendError")

    response = await client.post("/v1/policies/sync")

    assert response.status_code == 502


# ── Clients / Products ───────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_client_endpoints(client_and_crm):
    client, _, _ = client_and_crm
    await client.post("/v1/policies", json=POLICY_BODY)
    client_id = (await client.get("/v1/clients")).json()[0]["id"]

    response = await client.put(
        f"/v1/clients/{client_id}",
        json={"name": "Jane Doe", "email": "jane@example.com", "status": "Active"},
    )
    assert response.status_code == 200
    assert response.json()["email"] == "jane@example.com"
    assert response.json()["total_policies"] == 1

    policies = (await client.get(f"/v1/clients/{client_id}/policies")).json()
    assert len(policies) == 1

    created = await client.post("/v1/clients", json={"name": "John Roe"})
    assert created.status_code == 201
    assert created.json()["total_policies"] == 0

    assert (await client.get("/v1/clients/c-missing")).status_code == 404


@pytest.mark.asyncio
async def test_product_endpoints(client_and_crm):
    client, _, _ = client_and_crm
    product = {"name": "Shield", "provider": "AIA", "type": "Medical"}

    assert (await client.post("/v1/products", json=product)).status_code == 201
    assert (await client.post("/v1/products", json=product)).status_code == 409

    response = await client.put("/v1/products/Shield", json={**product, "name": "Shield Plus"})
    assert response.status_code == 200
    assert [p["name"] for p in (await client.get("/v1/products")).json()] == ["Shield Plus"]

    assert (await client.put("/v1/products/Shield", json=product)).status_code == 404


# ── Middleware ───────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_request_id_echoed_and_generated(wizard, gateway):
    from src.insureflow.api.middleware import LoggingMiddleware

    app = _make_app(wizard, CRMCoordinator(wizard=wizard, gateway=gateway))
    app.add_middleware(LoggingMiddleware)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        echoed = await client.get("/v1/health", headers={"X-Request-ID": "req-42"})
        generated = await client.get("/v1/health")

    assert echoed.headers["X-Request-ID"] == "req-42"
    assert len(generated.headers["X-Request-ID"]) == 32
