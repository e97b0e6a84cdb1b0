# app/services/recipient_source.py
"""
Recipient source adapter - turns a Google Sheets URL into an ordered
list of recipients.

Row 1 is the header row. The first header containing "email" is the
address column; the first header containing "name" is the optional
display-name column. Sheet order is preserved.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from google.auth.exceptions import RefreshError
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from app.core.config import SHEET_RANGE
from app.core.exceptions import (
    CredentialsInvalid, EmptySource, InsufficientPermissions, InvalidSourceFormat, NoDataRows,
    NoEmailColumn, RecipientSourceError, SheetAccessDenied, SheetNotFound,
    SourceUnavailable,
)

log = logging.getLogger("bulkmail.recipient_source")

SHEET_ID_RE = re.compile(r"/spreadsheets/d/([a-zA-Z0-9-_]+)")


@dataclass
class RecipientRecord:
    """One recipient derived from a sheet row"""
    email: str
    name: str = ""
    row_values: List[str] = field(default_factory=list)
    header_row: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "name": self.name,
            "rowData": list(self.row_values),
            "headers": list(self.header_row),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecipientRecord":
        return cls(
            email=data["email"],
            name=data.get("name") or "",
            row_values=list(data.get("rowData") or []),
            header_row=list(data.get("headers") or []),
        )


def extract_sheet_id(sheet_url: str) -> str:
    """Pull the spreadsheet id out of a Google Sheets URL"""
    match = SHEET_ID_RE.search(sheet_url or "")
    if not match:
        raise InvalidSourceFormat(
            "Invalid Google Sheets URL format. Please ensure you're using a valid Google Sheets URL."
        )
    return match.group(1)


def _cell(row: List[Any], index: int) -> str:
    if index < 0 or index >= len(row) or row[index] is None:
        return ""
    return str(row[index])


def parse_recipient_rows(rows: Optional[List[List[Any]]]) -> List[RecipientRecord]:
    """
    Convert raw sheet values (header row first) into recipients.

    Rows whose email cell is blank are skipped.
    """
    if not rows:
        raise EmptySource("Sheet is empty. Please add data to your Google Sheet.")
    if len(rows) < 2:
        raise NoDataRows("Sheet only has headers but no data rows. Please add recipient data.")

    header_row = [str(h) if h is not None else "" for h in rows[0]]
    headers = [h.lower().strip() for h in header_row]

    email_index = next((i for i, h in enumerate(headers) if "email" in h), -1)
    name_index = next((i for i, h in enumerate(headers) if "name" in h), -1)

    if email_index == -1:
        raise NoEmailColumn(headers)

    recipients = []
    for row in rows[1:]:
        email = _cell(row, email_index).strip()
        if not email:
            continue
        recipients.append(RecipientRecord(
            email=email,
            name=_cell(row, name_index).strip() if name_index != -1 else "",
            row_values=[_cell(row, i) for i in range(len(row))],
            header_row=header_row,
        ))

    log.debug(f"Parsed {len(recipients)} recipients (email col {email_index}, name col {name_index})")
    return recipients


def _default_sheets_service(credentials):
    return build("sheets", "v4", credentials=credentials, cache_discovery=False)


def _refresh_rejected() -> CredentialsInvalid:
    return CredentialsInvalid(
        "Google Sheets access expired and could not be refreshed. Please reconnect your Gmail account."
    )


def _translate_http_error(error: HttpError, stage: str) -> RecipientSourceError:
    message = str(error)
    lowered = message.lower()
    status = getattr(error.resp, "status", None)

    if "insufficient authentication scopes" in lowered:
        return InsufficientPermissions(
            "Missing Google Sheets permissions. Please reconnect your Gmail account to grant Sheets access."
        )
    if "caller does not have permission" in lowered or str(status) == "403":
        return SheetAccessDenied(
            "Permission denied: Please make sure the Google Sheet is shared publicly or with your "
            "Gmail account, and that you have Google Sheets permissions."
        )
    if "requested entity was not found" in lowered or str(status) == "404":
        return SheetNotFound(
            "Google Sheet not found. Please check that the URL is correct and the sheet exists."
        )
    if "unable to parse range" in lowered:
        return InvalidSourceFormat("Invalid sheet range. Please check your Google Sheets URL.")
    return SourceUnavailable(f"Failed to read Google Sheets ({stage}): {message}")


class SheetsRecipientSource:
    """Reads recipients from Google Sheets with the user's OAuth credentials"""

    def __init__(
        self,
        service_builder: Callable[[Any], Any] = _default_sheets_service,
        sheet_range: str = SHEET_RANGE
    ):
        self._build_service = service_builder
        self.sheet_range = sheet_range

    def fetch(self, sheet_url: str, credentials) -> List[RecipientRecord]:
        """
        Fetch all recipients from the sheet.

        Args:
            sheet_url: Google Sheets URL containing the spreadsheet id
            credentials: google.oauth2 credentials of the campaign owner

        Returns:
            Recipients in sheet order
        """
        sheet_id = extract_sheet_id(sheet_url)
        log.info(f"📊 Reading Google Sheet {sheet_id}")

        sheets = self._build_service(credentials)

        # Check access first so scope problems surface distinctly
        try:
            metadata = sheets.spreadsheets().get(spreadsheetId=sheet_id).execute()
            title = (metadata.get("properties") or {}).get("title")
            log.info(f"✅ Accessed spreadsheet: {title}")
        except HttpError as e:
            log.error(f"❌ Sheet access check failed: {e}")
            raise _translate_http_error(e, "access check") from e
        except RefreshError as e:
            log.error(f"❌ Google rejected the stored token during access check: {e}")
            raise _refresh_rejected() from e

        try:
            response = sheets.spreadsheets().values().get(
                spreadsheetId=sheet_id,
                range=self.sheet_range
            ).execute()
        except HttpError as e:
            log.error(f"❌ Reading sheet values failed: {e}")
            raise _translate_http_error(e, "read values") from e
        except RefreshError as e:
            log.error(f"❌ Google rejected the stored token while reading values: {e}")
            raise _refresh_rejected() from e

        recipients = parse_recipient_rows(response.get("values"))
        log.info(f"👥 Parsed {len(recipients)} recipients from sheet {sheet_id}")
        return recipients
