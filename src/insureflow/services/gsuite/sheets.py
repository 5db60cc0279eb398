"""Async Google Sheets gateway for the Policies table.

Stateless: every operation takes the SheetsConnection it should act on.
All Google API calls are wrapped in asyncio.to_thread() so the event loop
never blocks on the HTTP round trip.

Failure semantics: remote errors propagate untouched, except a missing
data range on fetch, which is an empty table rather than an error.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog
from googleapiclient.errors import HttpError

from src.insureflow.config import get_settings
from src.insureflow.core.monitoring import track_sheet_call
from src.insureflow.crm.errors import SpreadsheetNotConfiguredError
from src.insureflow.crm.row_codec import HEADER_ROW, LAST_COLUMN, decode_row, encode_policy
from src.insureflow.crm.schemas import Policy
from src.insureflow.services.gsuite.auth import SheetsConnection
from src.insureflow.services.gsuite.models import SheetProperties

logger = structlog.get_logger(__name__)

# RAW keeps JSON cells and date-like strings ("01/01") exactly as written
VALUE_INPUT_OPTION = "RAW"
VALUE_RENDER_OPTION = "UNFORMATTED_VALUE"


def is_missing_range(exc: HttpError) -> bool:
    """True when the API reports the requested range does not exist yet."""
    return exc.resp.status == 400 and "Unable to parse range" in str(exc)


class SheetsGateway:
    """Read/write operations on the Policies sheet of a spreadsheet.

    Args:
        sheet_title: Worksheet title. Defaults to POLICY_SHEET_TITLE.
    """

    def __init__(self, sheet_title: str | None = None) -> None:
        self._title = sheet_title or get_settings().POLICY_SHEET_TITLE

    @property
    def data_range(self) -> str:
        return f"{self._title}!A2:{LAST_COLUMN}"

    @staticmethod
    def _require_spreadsheet(conn: SheetsConnection) -> str:
        if not conn.spreadsheet_id:
            raise SpreadsheetNotConfiguredError()
        return conn.spreadsheet_id

    async def ensure_structure(self, conn: SheetsConnection) -> bool:
        """Create the Policies sheet with its header row if it is missing.

        Idempotent: an existing sheet is left untouched, so the header is
        never written twice.

        Returns:
            True if the sheet was created, False if it already existed.
        """
        spreadsheet_id = self._require_spreadsheet(conn)
        service = conn.get_sheets_service()

        def _get_meta() -> dict:
            return (
                service.spreadsheets()
                .get(spreadsheetId=spreadsheet_id, fields="sheets.properties")
                .execute()
            )

        async with track_sheet_call("ensure_structure"):
            meta = await asyncio.to_thread(_get_meta)
            sheets = [
                SheetProperties(
                    sheet_id=s.get("properties", {}).get("sheetId"),
                    title=s.get("properties", {}).get("title", ""),
                )
                for s in meta.get("sheets", [])
            ]
            if any(s.title == self._title for s in sheets):
                return False

            sheet_id = max((s.sheet_id or 0 for s in sheets), default=0) + 1
            body = self._structure_requests(sheet_id)

            def _create() -> None:
                service.spreadsheets().batchUpdate(
                    spreadsheetId=spreadsheet_id,
                    body=body,
                ).execute()

            await asyncio.to_thread(_create)

        logger.info(
            "sheets.structure_created",
            spreadsheet_id=spreadsheet_id,
            sheet=self._title,
        )
        return True

    def _structure_requests(self, sheet_id: int) -> dict:
        """addSheet and the header row as one batch: both land or neither does."""
        header = [{"userEnteredValue": {"stringValue": title}} for title in HEADER_ROW]
        return {
            "requests": [
                {"addSheet": {"properties": {"sheetId": sheet_id, "title": self._title}}},
                {
                    "updateCells": {
                        "start": {"sheetId": sheet_id, "rowIndex": 0, "columnIndex": 0},
                        "rows": [{"values": header}],
                        "fields": "userEnteredValue",
                    }
                },
            ]
        }

    async def fetch_all(self, conn: SheetsConnection) -> list[Policy]:
        """Read and decode every data row (header excluded).

        A single undecodable row aborts the whole fetch with ParseError.
        """
        spreadsheet_id = self._require_spreadsheet(conn)
        service = conn.get_sheets_service()

        def _get() -> dict:
            return (
                service.spreadsheets()
                .values()
                .get(
                    spreadsheetId=spreadsheet_id,
                    range=self.data_range,
                    valueRenderOption=VALUE_RENDER_OPTION,
                )
                .execute()
            )

        try:
            async with track_sheet_call("fetch_all"):
                result = await asyncio.to_thread(_get)
        except HttpError as exc:
            if is_missing_range(exc):
                logger.info("sheets.range_missing", spreadsheet_id=spreadsheet_id)
                return []
            raise

        rows: list[list[Any]] = result.get("values") or []
        policies = [decode_row(row) for row in rows]

        logger.info(
            "sheets.policies_fetched",
            spreadsheet_id=spreadsheet_id,
            count=len(policies),
        )
        return policies

    async def append_one(self, conn: SheetsConnection, policy: Policy) -> None:
        """Append one encoded policy after the last row. No dedup by id."""
        spreadsheet_id = self._require_spreadsheet(conn)
        service = conn.get_sheets_service()
        row = encode_policy(policy)

        def _append() -> dict:
            return (
                service.spreadsheets()
                .values()
                .append(
                    spreadsheetId=spreadsheet_id,
                    range=f"{self._title}!A:{LAST_COLUMN}",
                    valueInputOption=VALUE_INPUT_OPTION,
                    body={"values": [row]},
                )
                .execute()
            )

        async with track_sheet_call("append_one"):
            await asyncio.to_thread(_append)

        logger.info(
            "sheets.row_appended",
            spreadsheet_id=spreadsheet_id,
            policy_id=policy.id,
        )

    async def overwrite_all(self, conn: SheetsConnection, policies: list[Policy]) -> None:
        """Clear all data rows, then write the full set from row 2."""
        spreadsheet_id = self._require_spreadsheet(conn)
        service = conn.get_sheets_service()
        rows = [encode_policy(p) for p in policies]

        def _overwrite() -> None:
            service.spreadsheets().values().clear(
                spreadsheetId=spreadsheet_id,
                range=self.data_range,
                body={},
            ).execute()
            if rows:
                service.spreadsheets().values().update(
                    spreadsheetId=spreadsheet_id,
                    range=f"{self._title}!A2",
                    valueInputOption=VALUE_INPUT_OPTION,
                    body={"values": rows},
                ).execute()

        async with track_sheet_call("overwrite_all"):
            await asyncio.to_thread(_overwrite)

        logger.info(
            "sheets.table_overwritten",
            spreadsheet_id=spreadsheet_id,
            count=len(rows),
        )

    async def create_table(self, conn: SheetsConnection, title: str) -> str:
        """Create a new spreadsheet and set up its structure.

        The given connection is not rebound; the caller binds the new id
        once it commits to the spreadsheet.

        Returns:
            The new spreadsheet id.
        """
        service = conn.get_sheets_service()

        def _create() -> dict:
            return (
                service.spreadsheets()
                .create(body={"properties": {"title": title}}, fields="spreadsheetId")
                .execute()
            )

        async with track_sheet_call("create_table"):
            result = await asyncio.to_thread(_create)

        spreadsheet_id = result["spreadsheetId"]
        logger.info("sheets.spreadsheet_created", spreadsheet_id=spreadsheet_id, title=title)

        await self.ensure_structure(conn.rebound(spreadsheet_id))
        return spreadsheet_id
