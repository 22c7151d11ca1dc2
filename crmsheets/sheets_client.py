"""
SheetsClient — typed, low-level wrapper around the Google Sheets API v4 service.

This is the raw transport the data-access core sits on: read a range, append a
row, overwrite a range, delete a row. Calls are synchronous; the async store
layer pushes them onto worker threads.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from .errors import SheetNotFoundError
from .google_factory import GoogleServiceFactory

logger = logging.getLogger(__name__)

# Type alias for a 2-D grid of cell values
ValueMatrix = list[list[Any]]


class SheetsClient:
    """
    Range-level Google Sheets read/write operations.

    Usage:
        factory = GoogleServiceFactory(settings)
        sheets  = SheetsClient(factory)

        rows = sheets.read_range("spreadsheet_id", "Companies!A:M")
        updated = sheets.append_row("spreadsheet_id", "Companies!A:M", ["COM1", "Acme"])
    """

    def __init__(self, factory: GoogleServiceFactory) -> None:
        self._factory = factory
        self._sheet_ids: dict[tuple[str, str], int] = {}

    @property
    def _svc(self) -> Any:
        return self._factory.sheets

    # ── Read ──────────────────────────────────────────────────────────────────

    def read_range(self, spreadsheet_id: str, range_name: str) -> ValueMatrix:
        """
        Return cell values as a list of rows (list of lists).
        Trailing empty cells are omitted by the API, so rows may be ragged.
        """
        resp = self._svc.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=range_name,
        ).execute()
        return resp.get("values", [])

    # ── Write ─────────────────────────────────────────────────────────────────

    def write_range(
        self,
        spreadsheet_id: str,
        range_name: str,
        values: ValueMatrix,
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        """
        Overwrite range_name (one row, or a single cell such as "Users!B7").

        Record rows go in USER_ENTERED so timestamps render as dates; password
        hashes go in RAW so a leading "=" or "+" is never evaluated.
        """
        self._svc.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=range_name,
            valueInputOption=value_input_option,
            body={"values": values},
        ).execute()
        logger.info("Wrote %d rows to %s in %s", len(values), range_name, spreadsheet_id)

    def append_row(
        self,
        spreadsheet_id: str,
        range_name: str,
        row: list[Any],
        value_input_option: str = "USER_ENTERED",
    ) -> str:
        """
        Append one row below the last row with data in range_name.

        Returns the A1 range the API reports as written (e.g. "Companies!A42:M42"),
        or "" when the response carries none.
        """
        resp = self._svc.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=range_name,
            valueInputOption=value_input_option,
            insertDataOption="INSERT_ROWS",
            body={"values": [row]},
        ).execute()
        updated = resp.get("updates", {}).get("updatedRange", "")
        logger.info("Appended row to %s (%s)", range_name, updated or "range unknown")
        return updated

    def delete_row(self, spreadsheet_id: str, sheet_name: str, row_index: int) -> None:
        """
        Physically remove one row (1-based). Every row below shifts up by one.
        """
        sheet_id = self.get_sheet_id(spreadsheet_id, sheet_name)
        if sheet_id is None:
            raise SheetNotFoundError(f"Sheet tab not found: {sheet_name}")
        requests = [
            {
                "deleteDimension": {
                    "range": {
                        "sheetId": sheet_id,
                        "dimension": "ROWS",
                        "startIndex": row_index - 1,
                        "endIndex": row_index,
                    }
                }
            }
        ]
        self._svc.spreadsheets().batchUpdate(
            spreadsheetId=spreadsheet_id,
            body={"requests": requests},
        ).execute()
        logger.info("Deleted row %d from %s", row_index, sheet_name)

    # ── Metadata ──────────────────────────────────────────────────────────────

    def get_sheet_id(self, spreadsheet_id: str, sheet_name: str) -> Optional[int]:
        """Return the numeric sheetId for a named tab, or None if not found."""
        key = (spreadsheet_id, sheet_name)
        if key in self._sheet_ids:
            return self._sheet_ids[key]
        meta = self._svc.spreadsheets().get(spreadsheetId=spreadsheet_id).execute()
        for sheet in meta.get("sheets", []):
            props = sheet.get("properties", {})
            if props.get("title") == sheet_name:
                self._sheet_ids[key] = props["sheetId"]
                return props["sheetId"]
        return None
