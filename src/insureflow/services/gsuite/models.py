"""Pydantic schemas for Google Drive and Sheets payloads."""

from __future__ import annotations

from pydantic import BaseModel


class DriveFile(BaseModel):
    """A spreadsheet listed from the user's Drive."""

    id: str
    name: str
    modified_time: str = ""
    thumbnail_link: str | None = None


class SheetProperties(BaseModel):
    """Subset of a worksheet's properties returned by spreadsheets.get."""

    sheet_id: int | None = None
    title: str
