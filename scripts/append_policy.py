#!/usr/bin/env python3
"""Append one policy to the Policies sheet using a Google service account.

Headless counterpart of the in-app save: no OAuth consent, no wizard. The
service account must have edit access to the spreadsheet. The Policies
sheet and its header row are created when missing.

The policy JSON uses the app's flat camelCase shape:
    {"policyNumber": "...", "holderName": "...", "planName": "...",
     "type": "Life", "status": "Active", "premiumAmount": 5000,
     "paymentMode": "Yearly", "policyAnniversaryDate": "01/01",
     "clientBirthday": "1995-05-05", "extractedTags": ["Backend"],
     "riders": [...], "sumInsured": 1000000}

Usage:
    uv run python scripts/append_policy.py policy.json
    uv run python scripts/append_policy.py policy.json --spreadsheet-id 1AbC...
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
import time
from pathlib import Path
from typing import Any

# Ensure project root is on sys.path so we can import src modules
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))

import structlog  # noqa: E402

from src.insureflow.config import get_settings  # noqa: E402
from src.insureflow.crm.row_codec import SPECIFICS_KEY_MAP, decode_row  # noqa: E402
from src.insureflow.crm.schemas import Policy  # noqa: E402

logger = structlog.get_logger(__name__)


def policy_from_payload(data: dict[str, Any]) -> Policy:
    """Build a Policy from the flat camelCase payload.

    Goes through the sheet row decoder so enum and premium validation
    match what a later sync-now would accept.

    Raises:
        ParseError: A field has an unsupported value.
    """
    specifics = {key: data[key] for key in SPECIFICS_KEY_MAP if key in data}
    if "riders" in data:
        specifics["riders"] = data["riders"]

    row = [
        data.get("id") or f"script-{int(time.time() * 1000)}",
        data.get("policyNumber", ""),
        data.get("holderName", ""),
        data.get("planName", ""),
        data.get("type", ""),
        data.get("status", ""),
        data.get("premiumAmount", ""),
        data.get("paymentMode", ""),
        data.get("policyAnniversaryDate", ""),
        data.get("clientBirthday") or "",
        json.dumps(data.get("extractedTags") or []),
        json.dumps(specifics),
    ]
    return decode_row(row)


async def append(policy_file: Path, spreadsheet_id: str) -> Policy:
    """Authenticate with the service account and append the policy."""
    from src.insureflow.services.gsuite.auth import (
        ServiceAccountTokenSource,
        SheetsConnection,
    )
    from src.insureflow.services.gsuite.sheets import SheetsGateway

    settings = get_settings()
    sa_path = settings.get_service_account_path()
    if not sa_path:
        raise SystemExit(
            "Error: set GOOGLE_SERVICE_ACCOUNT_FILE or GOOGLE_SERVICE_ACCOUNT_JSON_B64"
        )
    if not spreadsheet_id:
        raise SystemExit("Error: pass --spreadsheet-id or set APPEND_SPREADSHEET_ID")

    policy = policy_from_payload(json.loads(policy_file.read_text(encoding="utf-8")))

    connection = SheetsConnection(
        client_id="",
        api_key="",
        token_source=ServiceAccountTokenSource(sa_path),
        spreadsheet_id=spreadsheet_id,
    )
    await connection.authorize()

    gateway = SheetsGateway(settings.POLICY_SHEET_TITLE)
    if await gateway.ensure_structure(connection):
        logger.info("append_policy.sheet_created", sheet=settings.POLICY_SHEET_TITLE)

    await gateway.append_one(connection, policy)
    logger.info(
        "append_policy.appended",
        policy_number=policy.policy_number,
        spreadsheet_id=spreadsheet_id,
    )
    return policy


def main() -> None:
    """Parse CLI arguments and run the append."""
    parser = argparse.ArgumentParser(
        description="Append one policy to the Policies sheet via a service account.",
    )
    parser.add_argument(
        "policy_file",
        type=Path,
        help="Path to a JSON file holding one policy",
    )
    parser.add_argument(
        "--spreadsheet-id",
        default=None,
        help="Target spreadsheet (default: APPEND_SPREADSHEET_ID)",
    )
    args = parser.parse_args()

    spreadsheet_id = args.spreadsheet_id or get_settings().APPEND_SPREADSHEET_ID
    policy = asyncio.run(append(args.policy_file, spreadsheet_id))
    print(f"Successfully appended policy: {policy.policy_number}")


if __name__ == "__main__":
    main()
