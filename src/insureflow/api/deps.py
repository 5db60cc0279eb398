"""FastAPI dependency helpers and CRM error translation.

The coordinator and wizard are created in the app lifespan and stored on
app.state; endpoints fetch them here with a 503 fallback when startup
has not wired them.
"""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from src.insureflow.crm.coordinator import CRMCoordinator
from src.insureflow.crm.errors import (
    AccessError,
    AuthorizationError,
    ClientNotFoundError,
    ConfigurationError,
    CRMError,
    DuplicatePolicyError,
    DuplicateProductError,
    NotConnectedError,
    OriginMismatchError,
    ParseError,
    PolicyNotFoundError,
    ProductNotFoundError,
    SpreadsheetNotConfiguredError,
    TransientSyncError,
)
from src.insureflow.crm.wizard import ConnectionWizard

# First match wins, so subclasses precede their bases
_STATUS_BY_ERROR: list[tuple[type[CRMError], int]] = [
    (NotConnectedError, status.HTTP_409_CONFLICT),
    (SpreadsheetNotConfiguredError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_400_BAD_REQUEST),
    (AuthorizationError, status.HTTP_401_UNAUTHORIZED),
    (AccessError, status.HTTP_403_FORBIDDEN),
    (ParseError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (TransientSyncError, status.HTTP_502_BAD_GATEWAY),
    (PolicyNotFoundError, status.HTTP_404_NOT_FOUND),
    (ClientNotFoundError, status.HTTP_404_NOT_FOUND),
    (ProductNotFoundError, status.HTTP_404_NOT_FOUND),
    (DuplicatePolicyError, status.HTTP_409_CONFLICT),
    (DuplicateProductError, status.HTTP_409_CONFLICT),
]


def to_http_error(exc: CRMError) -> HTTPException:
    """Translate a CRM error into the HTTPException the client sees."""
    code = next(
        (code for error_type, code in _STATUS_BY_ERROR if isinstance(exc, error_type)),
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
    detail: str | dict = str(exc)
    if isinstance(exc, OriginMismatchError):
        detail = {"message": str(exc), "origin": exc.origin}
    elif isinstance(exc, ParseError):
        detail = {"message": str(exc), "column": exc.column}
    return HTTPException(status_code=code, detail=detail)


def get_coordinator(request: Request) -> CRMCoordinator:
    """Retrieve CRMCoordinator from app.state, 503 if not available."""
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="CRM not initialized",
        )
    return coordinator


def get_wizard(request: Request) -> ConnectionWizard:
    """Retrieve ConnectionWizard from app.state, 503 if not available."""
    wizard = getattr(request.app.state, "wizard", None)
    if wizard is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Connection wizard not initialized",
        )
    return wizard
