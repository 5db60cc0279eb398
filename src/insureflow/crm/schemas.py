"""Pydantic schemas for the CRM core -- policies, clients, products, connection.

Defines all structured types shared by the codec, reconciler, wizard and
coordinator:
- Enums: PolicyType, PolicyStatus, PaymentMode, ClientStatus, SyncStatus
- Policy variant fields: Rider, MedicalDetails, AccidentDetails, PolicySpecifics
- Domain records: Policy, Client, Product
- Persisted connection: ConnectionConfig (camelCase JSON on the wire)
- Operation results: SyncReport, SaveResult

Domain records are frozen: every change produces a new instance via
model_copy(update=...), so collections can be swapped as whole snapshots.
"""

from __future__ import annotations

from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ── Enums ───────────────────────────────────────────────────────────────────


class PolicyType(str, Enum):
    """Insurance product category."""

    LIFE = "Life"
    MEDICAL = "Medical"
    CRITICAL_ILLNESS = "Critical Illness"
    ACCIDENT = "Accident"
    SAVINGS = "Savings"
    INVESTMENT = "Investment"
    OTHER = "Other"


class PolicyStatus(str, Enum):
    """Policy lifecycle state."""

    ACTIVE = "Active"
    PENDING = "Pending"
    LAPSED = "Lapsed"
    MATURED = "Matured"
    CANCELLED = "Cancelled"


class PaymentMode(str, Enum):
    """Premium payment frequency."""

    MONTHLY = "Monthly"
    QUARTERLY = "Quarterly"
    SEMI_ANNUALLY = "Semi-Annually"
    YEARLY = "Yearly"
    SINGLE = "Single"


class ClientStatus(str, Enum):
    """Relationship stage of a client."""

    LEAD = "Lead"
    ACTIVE = "Active"
    INACTIVE = "Inactive"


class SyncStatus(str, Enum):
    """Outcome of a sync-now run."""

    SYNCED = "synced"
    EMPTY = "empty"
    FAILED = "failed"


class WizardStep(IntEnum):
    """Connection wizard steps. Connected is a flag, not a step."""

    NEEDS_KEYS = 1
    NEEDS_AUTHORIZATION = 2
    NEEDS_TABLE_SELECTION = 3


def _dedupe(values: list[str]) -> list[str]:
    return list(dict.fromkeys(values))


# ── Policy Variant Fields ───────────────────────────────────────────────────


class Rider(BaseModel):
    """Supplementary benefit attached to a base policy."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: str
    premium_amount: float = Field(default=0.0, ge=0)


class MedicalDetails(BaseModel):
    """Medical plan sub-fields."""

    model_config = ConfigDict(frozen=True)

    plan_type: str | None = None
    excess: float | None = None


class AccidentDetails(BaseModel):
    """Accident plan sub-fields."""

    model_config = ConfigDict(frozen=True)

    medical_limit: float | None = None
    section_limit: float | None = None
    physio_visits: int | None = None


class PolicySpecifics(BaseModel):
    """Type-specific attributes, stored as one JSON column in the sheet."""

    model_config = ConfigDict(frozen=True)

    riders: list[Rider] = Field(default_factory=list)
    medical: MedicalDetails | None = None
    accident: AccidentDetails | None = None
    sum_insured: float | None = None
    is_multipay: bool | None = None
    policy_end_date: str | None = None
    capital_invested: float | None = None


# ── Domain Records ──────────────────────────────────────────────────────────


class Policy(BaseModel):
    """A single insurance contract instance."""

    model_config = ConfigDict(frozen=True)

    id: str
    policy_number: str
    holder_name: str
    plan_name: str
    type: PolicyType
    status: PolicyStatus
    premium_amount: float = Field(ge=0)
    payment_mode: PaymentMode
    policy_anniversary_date: str
    client_birthday: str | None = None
    extracted_tags: list[str] = Field(default_factory=list)
    specifics: PolicySpecifics = Field(default_factory=PolicySpecifics)

    @field_validator("extracted_tags")
    @classmethod
    def _unique_tags(cls, v: list[str]) -> list[str]:
        return _dedupe(v)


class Client(BaseModel):
    """A person holding zero or more policies, joined to policies by name."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str = ""
    phone: str = ""
    birthday: str = ""
    total_policies: int = Field(default=0, ge=0)
    last_contact: str = ""
    status: ClientStatus = ClientStatus.LEAD
    tags: list[str] = Field(default_factory=list)

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, v: list[str]) -> list[str]:
        return _dedupe(v)


class Product(BaseModel):
    """Reusable plan template in the product library."""

    model_config = ConfigDict(frozen=True)

    name: str
    provider: str = "Unknown"
    type: PolicyType
    default_tags: list[str] = Field(default_factory=list)


# ── Persisted Connection ────────────────────────────────────────────────────


class ConnectionConfig(BaseModel):
    """Persisted credentials plus remote table reference.

    Serialized with camelCase aliases so the stored JSON is
    {"clientId": ..., "apiKey": ..., "spreadsheetId": ...}. An empty
    spreadsheet_id means the keys are known but no sheet is chosen yet.
    """

    model_config = ConfigDict(populate_by_name=True)

    client_id: str = Field(default="", alias="clientId")
    api_key: str = Field(default="", alias="apiKey")
    spreadsheet_id: str = Field(default="", alias="spreadsheetId")

    def has_keys(self) -> bool:
        return bool(self.client_id and self.api_key)


# ── Operation Results ───────────────────────────────────────────────────────


class SyncReport(BaseModel):
    """Result of a sync-now run."""

    status: SyncStatus
    policies: int = 0
    clients: int = 0
    message: str = ""


class SaveResult(BaseModel):
    """Result of a local policy save or update."""

    policy: Policy
    client: Client | None = None
    product_added: bool = False
    remote_saved: bool | None = None  # None = not connected, no remote attempt
    notice: str | None = None

