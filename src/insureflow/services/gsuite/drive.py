"""Async Google Drive listing of the user's spreadsheets.

All Google API calls are wrapped in asyncio.to_thread() to avoid
blocking the event loop.
"""

from __future__ import annotations

import asyncio

import structlog

from src.insureflow.core.monitoring import track_sheet_call
from src.insureflow.services.gsuite.auth import SheetsConnection
from src.insureflow.services.gsuite.models import DriveFile

logger = structlog.get_logger(__name__)

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


class DriveService:
    """Async wrapper around Drive files.list for spreadsheet selection."""

    async def list_spreadsheets(
        self,
        conn: SheetsConnection,
        page_size: int = 10,
    ) -> list[DriveFile]:
        """List non-trashed spreadsheets, most recently modified first.

        Args:
            conn: Authorized connection context.
            page_size: Maximum number of files to return.

        Returns:
            List of DriveFile objects.
        """
        service = conn.get_drive_service()

        def _list() -> dict:
            return (
                service.files()
                .list(
                    q=f"mimeType='{SPREADSHEET_MIME_TYPE}' and trashed=false",
                    fields="files(id, name, modifiedTime, thumbnailLink)",
                    pageSize=page_size,
                    orderBy="modifiedTime desc",
                )
                .execute()
            )

        logger.info("listing_spreadsheets", page_size=page_size)
        async with track_sheet_call("list_spreadsheets"):
            result = await asyncio.to_thread(_list)

        return [
            DriveFile(
                id=f["id"],
                name=f.get("name", ""),
                modified_time=f.get("modifiedTime", ""),
                thumbnail_link=f.get("thumbnailLink"),
            )
            for f in result.get("files", [])
        ]
