"""REST API endpoints for the client roster."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from src.insureflow.api.deps import get_coordinator, to_http_error
from src.insureflow.crm.coordinator import CRMCoordinator, new_client_id
from src.insureflow.crm.errors import CRMError
from src.insureflow.crm.reconciler import today_iso
from src.insureflow.crm.schemas import Client, ClientStatus, Policy

router = APIRouter(prefix="/clients", tags=["clients"])


class ClientFields(BaseModel):
    """Editable client fields."""

    name: str
    email: str = ""
    phone: str = ""
    birthday: str = ""
    status: ClientStatus = ClientStatus.LEAD
    tags: list[str] = Field(default_factory=list)


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=list[Client])
async def list_clients(
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> list[Client]:
    return list(coordinator.clients)


@router.post("", response_model=Client, status_code=201)
async def create_client(
    body: ClientFields,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> Client:
    """Add a client with no policies yet."""
    client = Client(
        id=new_client_id(),
        last_contact=today_iso(),
        total_policies=0,
        **body.model_dump(),
    )
    return coordinator.add_client(client)


@router.get("/{client_id}", response_model=Client)
async def get_client(
    client_id: str,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> Client:
    try:
        return coordinator.get_client(client_id)
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.put("/{client_id}", response_model=Client)
async def update_client(
    client_id: str,
    body: ClientFields,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> Client:
    """Edit contact details; the policy count and last contact are kept."""
    try:
        existing = coordinator.get_client(client_id)
        updated = Client(**{**existing.model_dump(), **body.model_dump()})
        return coordinator.update_client(updated)
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.get("/{client_id}/policies", response_model=list[Policy])
async def list_client_policies(
    client_id: str,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> list[Policy]:
    """Policies held by this client (matched by holder name)."""
    try:
        return coordinator.policies_for_client(client_id)
    except CRMError as exc:
        raise to_http_error(exc) from exc
