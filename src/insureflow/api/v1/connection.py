"""REST API endpoints for the Google Sheets connection wizard.

Mirrors the three wizard steps (keys, authorization, spreadsheet
selection) plus open/close/back navigation and disconnect. Every
endpoint returns the wizard status so the UI can re-render from it.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from src.insureflow.api.deps import get_wizard, to_http_error
from src.insureflow.crm.errors import CRMError
from src.insureflow.crm.schemas import SyncReport
from src.insureflow.crm.wizard import ConnectionWizard, WizardStatus
from src.insureflow.services.gsuite.models import DriveFile

router = APIRouter(prefix="/connection", tags=["connection"])


# ── Request / Response Schemas ───────────────────────────────────────────────


class SubmitKeysRequest(BaseModel):
    """Request body for wizard step 1."""

    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(alias="clientId")
    api_key: str = Field(alias="apiKey")


class CreateTableRequest(BaseModel):
    """Request body for creating a new spreadsheet."""

    title: str | None = None


class FinalizeResponse(BaseModel):
    """Wizard status after connecting, with the initial sync result."""

    status: WizardStatus
    sync: SyncReport | None = None


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=WizardStatus)
async def get_status(wizard: ConnectionWizard = Depends(get_wizard)) -> WizardStatus:
    """Current wizard step and connection flags."""
    return wizard.status()


@router.post("/open", response_model=WizardStatus)
async def open_wizard(wizard: ConnectionWizard = Depends(get_wizard)) -> WizardStatus:
    """Open the wizard at the furthest step the known state allows."""
    try:
        return await wizard.open()
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.post("/close", response_model=WizardStatus)
async def close_wizard(wizard: ConnectionWizard = Depends(get_wizard)) -> WizardStatus:
    return wizard.close()


@router.post("/back", response_model=WizardStatus)
async def go_back(wizard: ConnectionWizard = Depends(get_wizard)) -> WizardStatus:
    return wizard.go_back()


@router.post("/keys", response_model=WizardStatus)
async def submit_keys(
    body: SubmitKeysRequest,
    wizard: ConnectionWizard = Depends(get_wizard),
) -> WizardStatus:
    """Step 1: store the OAuth client id and API key."""
    try:
        return await wizard.submit_keys(body.client_id, body.api_key)
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.post("/authorize", response_model=WizardStatus)
async def authorize(wizard: ConnectionWizard = Depends(get_wizard)) -> WizardStatus:
    """Step 2: request the Google access grant."""
    try:
        return await wizard.authorize()
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.get("/tables", response_model=list[DriveFile])
async def list_tables(wizard: ConnectionWizard = Depends(get_wizard)) -> list[DriveFile]:
    """Step 3: the user's most recently modified spreadsheets."""
    try:
        return await wizard.list_tables()
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.post("/tables", response_model=FinalizeResponse, status_code=201)
async def create_table(
    body: CreateTableRequest,
    wizard: ConnectionWizard = Depends(get_wizard),
) -> FinalizeResponse:
    """Step 3: create a new spreadsheet and connect to it."""
    try:
        report = await wizard.create_new(body.title)
    except CRMError as exc:
        raise to_http_error(exc) from exc
    return FinalizeResponse(status=wizard.status(), sync=report)


@router.post("/tables/{spreadsheet_id}/select", response_model=FinalizeResponse)
async def select_table(
    spreadsheet_id: str,
    wizard: ConnectionWizard = Depends(get_wizard),
) -> FinalizeResponse:
    """Step 3: connect to an existing spreadsheet."""
    try:
        report = await wizard.select_existing(spreadsheet_id)
    except CRMError as exc:
        raise to_http_error(exc) from exc
    return FinalizeResponse(status=wizard.status(), sync=report)


@router.delete("", response_model=WizardStatus)
async def disconnect(wizard: ConnectionWizard = Depends(get_wizard)) -> WizardStatus:
    """Forget the stored keys, grant and spreadsheet."""
    return await wizard.disconnect()
