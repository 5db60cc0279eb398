"""Google Sheets and Drive integration services.

Provides async-wrapped access to the Policies spreadsheet and Drive file
listing, authenticated either with the end user's OAuth grant or with a
service account for headless scripts.
"""

from src.insureflow.services.gsuite.auth import (
    GoogleConnector,
    OAuthTokenSource,
    ServiceAccountTokenSource,
    SheetsConnection,
    TokenSource,
)
from src.insureflow.services.gsuite.drive import DriveService
from src.insureflow.services.gsuite.models import DriveFile, SheetProperties
from src.insureflow.services.gsuite.sheets import SheetsGateway

__all__ = [
    "DriveFile",
    "DriveService",
    "GoogleConnector",
    "OAuthTokenSource",
    "ServiceAccountTokenSource",
    "SheetProperties",
    "SheetsConnection",
    "SheetsGateway",
    "TokenSource",
]
