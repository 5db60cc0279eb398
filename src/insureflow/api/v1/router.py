"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.insureflow.api.v1 import clients, connection, health, policies, products

router = APIRouter()

router.include_router(health.router)
router.include_router(connection.router)
router.include_router(policies.router)
router.include_router(clients.router)
router.include_router(products.router)
