"""REST API endpoints for the product library."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from src.insureflow.api.deps import get_coordinator, to_http_error
from src.insureflow.crm.coordinator import CRMCoordinator
from src.insureflow.crm.errors import CRMError
from src.insureflow.crm.schemas import Product

router = APIRouter(prefix="/products", tags=["products"])


@router.get("", response_model=list[Product])
async def list_products(
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> list[Product]:
    return list(coordinator.products)


@router.post("", response_model=Product, status_code=201)
async def create_product(
    body: Product,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> Product:
    try:
        return coordinator.add_product(body)
    except CRMError as exc:
        raise to_http_error(exc) from exc


@router.put("/{name}", response_model=Product)
async def update_product(
    name: str,
    body: Product,
    coordinator: CRMCoordinator = Depends(get_coordinator),
) -> Product:
    """Replace the product called ``name``; renaming is allowed."""
    try:
        return coordinator.update_product(name, body)
    except CRMError as exc:
        raise to_http_error(exc) from exc
