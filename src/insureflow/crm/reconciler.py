"""Client roster reconciliation from policy records.

The sheet only stores policies, so after a pull the client roster is
derived from them, keyed by holder name. This is a total replacement:
locally edited client fields (email, phone, status) do not survive a resync,
and two different people with the same name collapse into one client.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date

from src.insureflow.crm.schemas import Client, ClientStatus, Policy

DEFAULT_BIRTHDAY = "1990-01-01"
SYNCED_EMAIL = "synced@sheet.com"
SYNCED_PHONE = "Unknown"


def today_iso(today: date | None = None) -> str:
    return (today or date.today()).isoformat()


def synced_client_id(name: str) -> str:
    """Deterministic client id for a holder name (whitespace stripped)."""
    compact = re.sub(r"\s", "", name)
    return f"c-{compact}"


def merge_tags(existing: Iterable[str], incoming: Iterable[str]) -> list[str]:
    """Set union that keeps first-seen order."""
    return list(dict.fromkeys([*existing, *incoming]))


def apply_policy(client: Client, policy: Policy) -> Client:
    """Fold one more policy for this holder into the client.

    Increments the policy count, unions the policy's tags, and overwrites
    the birthday only when the policy carries one.
    """
    return client.model_copy(
        update={
            "total_policies": client.total_policies + 1,
            "tags": merge_tags(client.tags, policy.extracted_tags),
            "birthday": policy.client_birthday or client.birthday,
        }
    )


def rebuild_clients(
    policies: Iterable[Policy],
    today: date | None = None,
) -> dict[str, Client]:
    """Derive the client roster from policies, in input order.

    Args:
        policies: Policies as fetched from the sheet.
        today: Date stamped as last_contact on every client. Defaults to today.

    Returns:
        Mapping of holder name to Client. Empty input yields an empty mapping.
    """
    stamp = today_iso(today)
    roster: dict[str, Client] = {}

    for policy in policies:
        client = roster.get(policy.holder_name)
        if client is None:
            client = Client(
                id=synced_client_id(policy.holder_name),
                name=policy.holder_name,
                email=SYNCED_EMAIL,
                phone=SYNCED_PHONE,
                birthday=policy.client_birthday or DEFAULT_BIRTHDAY,
                total_policies=0,
                last_contact=stamp,
                status=ClientStatus.ACTIVE,
                tags=[],
            )
        roster[policy.holder_name] = apply_policy(client, policy)

    return roster
