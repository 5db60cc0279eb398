"""Row codec between Policy records and the fixed 12-column sheet layout.

Defines:
- HEADER_ROW: The exact header written to row 1 of the Policies sheet.
- SPECIFICS_KEY_MAP: Legacy flat JSON keys of the Specifics column and the
  PolicySpecifics attribute each one maps to.
- encode_policy(): Converts a Policy to an ordered row of cell values.
- decode_row(): Converts a row read from the sheet back to a Policy.

Columns are positional: ID, Policy No, Holder, Plan, Type, Status, Premium,
Mode, Anniversary, Birthday, Tags (JSON list), Specifics (JSON object).
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum
from typing import Any, TypeVar

from pydantic import ValidationError

from src.insureflow.crm.errors import ParseError
from src.insureflow.crm.schemas import (
    AccidentDetails,
    MedicalDetails,
    PaymentMode,
    Policy,
    PolicySpecifics,
    PolicyStatus,
    PolicyType,
    Rider,
)

E = TypeVar("E", bound=Enum)


# ── Sheet Layout ───────────────────────────────────────────────────────────

HEADER_ROW: list[str] = [
    "ID",
    "Policy No",
    "Holder",
    "Plan",
    "Type",
    "Status",
    "Premium",
    "Mode",
    "Anniversary",
    "Birthday",
    "Tags",
    "Specifics",
]

COLUMN_COUNT = len(HEADER_ROW)
LAST_COLUMN = "L"


# ── Specifics Mapping ──────────────────────────────────────────────────────
# Flat key in the stored JSON -> (sub-structure, attribute). A sub-structure
# of None means the attribute lives directly on PolicySpecifics.

SPECIFICS_KEY_MAP: dict[str, tuple[str | None, str]] = {
    "medicalPlanType": ("medical", "plan_type"),
    "medicalExcess": ("medical", "excess"),
    "sumInsured": (None, "sum_insured"),
    "isMultipay": (None, "is_multipay"),
    "policyEndDate": (None, "policy_end_date"),
    "capitalInvested": (None, "capital_invested"),
    "accidentMedicalLimit": ("accident", "medical_limit"),
    "accidentSectionLimit": ("accident", "section_limit"),
    "accidentPhysioVisits": ("accident", "physio_visits"),
}


# ── Encoding ───────────────────────────────────────────────────────────────


def encode_policy(policy: Policy) -> list[str | float]:
    """Convert a Policy to a 12-cell row in HEADER_ROW order.

    An absent birthday is written as an empty string. Tags and specifics
    are JSON-encoded strings.
    """
    return [
        policy.id,
        policy.policy_number,
        policy.holder_name,
        policy.plan_name,
        policy.type.value,
        policy.status.value,
        policy.premium_amount,
        policy.payment_mode.value,
        policy.policy_anniversary_date,
        policy.client_birthday or "",
        json.dumps(policy.extracted_tags),
        json.dumps(specifics_to_blob(policy.specifics)),
    ]


def specifics_to_blob(specifics: PolicySpecifics) -> dict[str, Any]:
    """Flatten PolicySpecifics into the legacy Specifics JSON object.

    Unset values are omitted rather than written as null.
    """
    blob: dict[str, Any] = {}

    if specifics.riders:
        blob["riders"] = [
            {"name": r.name, "type": r.type, "premiumAmount": r.premium_amount}
            for r in specifics.riders
        ]

    for key, (group, attr) in SPECIFICS_KEY_MAP.items():
        source = specifics if group is None else getattr(specifics, group)
        if source is None:
            continue
        value = getattr(source, attr)
        if value is not None:
            blob[key] = value

    return blob


# ── Decoding ───────────────────────────────────────────────────────────────


def decode_row(row: Sequence[Any]) -> Policy:
    """Convert a sheet row back into a Policy.

    Rows shorter than 12 cells are padded with empty strings (the Sheets API
    drops trailing blank cells).

    Raises:
        ParseError: Malformed JSON in Tags/Specifics, an unknown enumerated
            value, or a premium that is not a non-negative number.
    """
    cells = list(row) + [""] * (COLUMN_COUNT - len(row))

    tags = _parse_json(cells[10], "Tags", default=[])
    if not isinstance(tags, list):
        raise ParseError("Tags", "expected a JSON list")

    blob = _parse_json(cells[11], "Specifics", default={})
    if not isinstance(blob, dict):
        raise ParseError("Specifics", "expected a JSON object")

    try:
        return Policy(
            id=str(cells[0]),
            policy_number=str(cells[1]),
            holder_name=str(cells[2]),
            plan_name=str(cells[3]),
            type=_parse_enum(PolicyType, cells[4], "Type"),
            status=_parse_enum(PolicyStatus, cells[5], "Status"),
            premium_amount=_parse_premium(cells[6]),
            payment_mode=_parse_enum(PaymentMode, cells[7], "Mode"),
            policy_anniversary_date=str(cells[8]),
            client_birthday=str(cells[9]),
            extracted_tags=[str(t) for t in tags],
            specifics=blob_to_specifics(blob),
        )
    except ValidationError as exc:
        raise ParseError("row", str(exc)) from exc


def blob_to_specifics(blob: dict[str, Any]) -> PolicySpecifics:
    """Map the legacy flat Specifics object onto PolicySpecifics.

    Keys not listed in SPECIFICS_KEY_MAP (other than riders) are ignored.
    """
    top: dict[str, Any] = {}
    groups: dict[str, dict[str, Any]] = {"medical": {}, "accident": {}}

    for key, (group, attr) in SPECIFICS_KEY_MAP.items():
        value = blob.get(key)
        if value is None:
            continue
        if group is None:
            top[attr] = value
        else:
            groups[group][attr] = value

    riders_raw = blob.get("riders") or []
    if not isinstance(riders_raw, list):
        raise ParseError("Specifics", "riders must be a list")

    try:
        riders = [
            Rider(
                name=r.get("name", ""),
                type=r.get("type", ""),
                premium_amount=r.get("premiumAmount") or 0.0,
            )
            for r in riders_raw
        ]
        return PolicySpecifics(
            riders=riders,
            medical=MedicalDetails(**groups["medical"]) if groups["medical"] else None,
            accident=AccidentDetails(**groups["accident"]) if groups["accident"] else None,
            **top,
        )
    except (ValidationError, AttributeError) as exc:
        raise ParseError("Specifics", str(exc)) from exc


def _parse_json(cell: Any, column: str, default: Any) -> Any:
    if cell in ("", None):
        return default
    try:
        return json.loads(cell)
    except (TypeError, ValueError) as exc:
        raise ParseError(column, f"invalid JSON ({exc})") from exc


def _parse_enum(enum_cls: type[E], cell: Any, column: str) -> E:
    try:
        return enum_cls(str(cell))
    except ValueError as exc:
        raise ParseError(column, f"unrecognized value {cell!r}") from exc


def _parse_premium(cell: Any) -> float:
    if cell in ("", None):
        return 0.0
    if isinstance(cell, bool):
        raise ParseError("Premium", f"not a number: {cell!r}")
    try:
        amount = float(cell)
    except (TypeError, ValueError) as exc:
        raise ParseError("Premium", f"not a number: {cell!r}") from exc
    if not amount >= 0:
        raise ParseError("Premium", f"must be non-negative, got {amount}")
    return amount
