"""Error taxonomy for the CRM core and its spreadsheet integration.

Every remote-facing failure surfaces as one of these (or as the Google
client's own HttpError where the gateway propagates it untouched). Local
state is never rolled back because of any of them.
"""

from __future__ import annotations


class CRMError(Exception):
    """Base class for all InsureFlow CRM errors."""


# ── Configuration ──────────────────────────────────────────────────────────


class ConfigurationError(CRMError):
    """Missing or invalid credentials at wizard step 1."""


class SpreadsheetNotConfiguredError(ConfigurationError):
    """A remote-table operation was attempted with no spreadsheet bound."""

    def __init__(self, message: str = "No spreadsheet ID configured") -> None:
        super().__init__(message)


class NotConnectedError(ConfigurationError):
    """A connected-only operation (sync, push) was invoked while disconnected."""

    def __init__(self, message: str = "Google Sheets is not connected") -> None:
        super().__init__(message)


# ── Authorization / Access ─────────────────────────────────────────────────


class AuthorizationError(CRMError):
    """The identity provider rejected the access grant request."""


class OriginMismatchError(AuthorizationError):
    """The OAuth client does not list the origin the request came from."""

    def __init__(self, origin: str) -> None:
        self.origin = origin
        super().__init__(
            f'Origin Mismatch. Did you add "{origin}" to your Google Cloud Console?'
        )


class AuthorizationSupersededError(AuthorizationError):
    """A newer authorization request, or a disconnect, replaced this one."""

    def __init__(self) -> None:
        super().__init__("Superseded by a newer sign-in request")


class AccessError(CRMError):
    """Provider reachable but access denied (restricted sheet, Drive API off)."""


# ── Data ───────────────────────────────────────────────────────────────────


class ParseError(CRMError):
    """A stored row could not be decoded into a Policy."""

    def __init__(self, column: str, message: str) -> None:
        self.column = column
        super().__init__(f"{column}: {message}")


class TransientSyncError(CRMError):
    """Any other remote failure during append, fetch or overwrite."""


# ── Local collections ──────────────────────────────────────────────────────


class PolicyNotFoundError(CRMError):
    """No policy with the given identifier exists locally."""


class ClientNotFoundError(CRMError):
    """No client with the given identifier exists locally."""


class DuplicateProductError(CRMError):
    """A product with the same name already exists in the library."""


class ProductNotFoundError(CRMError):
    """No product with the given name exists in the library."""


class DuplicatePolicyError(CRMError):
    """A policy with the same identifier already exists locally."""
