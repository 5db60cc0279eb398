"""REST API endpoints for policies, sync-now and full push.

Saving a policy appends it to the connected sheet (best effort). Updates
and deletes are local-only; use POST /policies/push to write the local
set back to the sheet.
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, Field

from src.insureflow.api.deps import get_coordinator, to_http_error
from src.insureflow.crm.coordinator import CRMCoordinator
from src.insureflow.crm.errors import CRMError
from src.insureflow.crm.schemas import (
    PaymentMode,
    Policy,
    PolicySpecifics,
    PolicyStatus,
    PolicyType,
    SaveResult,
    SyncReport,
)

router = APIRouter(prefix="/policies", tags=["policies"])


# ── Request Schemas ──────────────────────────────────────────────────────────


class PolicyFields(BaseModel):
    """Editable policy fields."""

    policy_number: str
    holder_name: str
    plan_name: str
    type: PolicyType
    status: PolicyStatus = PolicyStatus.ACTIVE
    premium_amount: float = Field(default=0.0, ge=0)
    payment_mode: PaymentMode = PaymentMode.MONTHLY
    policy_anniversary_date: str = ""
    client_birthday: str | None = None
    extracted_tags: list[str] = Field(default_factory=list)
    specifics: PolicySpecifics = Field(default_factory=PolicySpecifics)


class CreatePolicyRequest(PolicyFields):
    """Request body for saving a new policy."""

    id: str | None = None
    is_new_product: bool = False


class PushResponse(BaseModel):
    pushed: int


# ── Endpoints ────────────────────────────────────────────────────────────────


@router.get("", response_model=list[Policy])
async def list_policies(
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> list[Policy]:
    """All policies, newest first."""
    return list(coordinator.policies)


@router.post("", response_model=SaveResult, status_code=201)
async def create_policy(
    body: CreatePolicyRequest,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> SaveResult:
    """Save a policy locally and append it to the connected sheet."""
    policy = Policy(
        id=body.id or uuid.uuid4().hex,
        **body.model_dump(exclude={"id", "is_new_product"}),
    )
    try:
        return await coordinator.save_policy(policy, is_new_product=body.is_new_product)
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.get("/{policy_id}", response_model=Policy)
async def get_policy(
    policy_id: str,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> Policy:
    policy = coordinator.get_policy(policy_id)
    if policy is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Policy not found: {policy_id}",
        )
    return policy


@router.put("/{policy_id}", response_model=SaveResult)
async def update_policy(
    policy_id: str,
    body: PolicyFields,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> SaveResult:
    """Replace a policy locally. The sheet is not updated."""
    try:
        return coordinator.update_policy(Policy(id=policy_id, **body.model_dump()))
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.delete("/{policy_id}", status_code=204)
async def delete_policy(
    policy_id: str,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> Response:
    """Remove a policy locally. The sheet is not updated."""
    if not coordinator.delete_policy(policy_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Policy not found: {policy_id}",
        )
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/sync", response_model=SyncReport)
async def sync_now(
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> SyncReport:
    """Pull every row from the sheet and rebuild the client roster."""
    try:
        return await coordinator.sync_now()
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.post("/push", response_model=PushResponse)
async def push_all(
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> PushResponse:
    """Overwrite the sheet with every local policy."""
    try:
        pushed = await coordinator.push_all()
    except CRMError as exc:
        raise to_http_error(exc) from exc
    return PushResponse(pushed=pushed)
