"""In-memory stand-ins for the Sheets transport and the clock."""
from __future__ import annotations

import re
import threading
from collections import Counter
from typing import Any, Optional

from crmsheets.models import column_letter, column_names, record_to_row

BIZ = "biz-sheet-000001"
AUTH = "auth-sheet-000002"

_A1 = re.compile(r"^([A-Z]+)?(\d+)?(?::([A-Z]+)?(\d+)?)?$")


def _col_index(letters: str) -> int:
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - 64)
    return n - 1


def _parse(range_name: str) -> tuple[str, int, int, Optional[int], Optional[int]]:
    sheet, _, cells = range_name.partition("!")
    match = _A1.match(cells)
    if match is None:
        raise ValueError(f"Unable to parse range: {range_name}")
    c0, r0, c1, r1 = match.groups()
    start_col = _col_index(c0) if c0 else 0
    start_row = int(r0) if r0 else 1
    if ":" in cells:
        end_col = _col_index(c1) if c1 else None
        end_row = int(r1) if r1 else None
    else:
        end_col = start_col
        end_row = start_row if r0 else None
    return sheet.strip("'"), start_col, start_row, end_col, end_row


class FakeSheetsClient:
    """
    Implements the SheetsClient surface over dict-of-grids storage.

    Like the real API, reads drop trailing empty cells, appends report the
    written range, and deleting a row shifts every later row up.
    """

    def __init__(self) -> None:
        self.grids: dict[tuple[str, str], list[list[str]]] = {}
        self.calls: Counter = Counter()
        self.failures: dict[tuple[str, str], Exception] = {}
        self.append_response: Optional[str] = None
        self._lock = threading.Lock()

    # ── Test helpers ──────────────────────────────────────────────────────────

    def add_sheet(self, spreadsheet_id: str, sheet: str, header: list[str]) -> None:
        self.grids[(spreadsheet_id, sheet)] = [list(header)]

    def add_rows(self, sheet: str, *rows: list[Any], spreadsheet_id: str = BIZ) -> None:
        grid = self.grids[(spreadsheet_id, sheet)]
        grid.extend([["" if v is None else str(v) for v in row] for row in rows])

    def add_records(self, sheet: str, *records: Any, spreadsheet_id: str = BIZ) -> None:
        self.add_rows(sheet, *(record_to_row(r) for r in records), spreadsheet_id=spreadsheet_id)

    def rows(self, sheet: str, spreadsheet_id: str = BIZ) -> list[list[str]]:
        """Data rows (header excluded)."""
        return self.grids[(spreadsheet_id, sheet)][1:]

    def fail(self, method: str, sheet: str, exc: Optional[Exception] = None) -> None:
        self.failures[(method, sheet)] = exc or RuntimeError(f"{method} failed on {sheet}")

    def heal(self) -> None:
        self.failures.clear()

    def reads(self, sheet: str) -> int:
        return self.calls[("read_range", sheet)]

    def _record(self, method: str, sheet: str) -> None:
        self.calls[method] += 1
        self.calls[(method, sheet)] += 1
        exc = self.failures.get((method, sheet))
        if exc is not None:
            raise exc

    def _grid(self, spreadsheet_id: str, sheet: str) -> list[list[str]]:
        try:
            return self.grids[(spreadsheet_id, sheet)]
        except KeyError:
            raise RuntimeError(f"Unable to parse range: {sheet}") from None

    # ── SheetsClient surface ──────────────────────────────────────────────────

    def read_range(self, spreadsheet_id: str, range_name: str) -> list[list[str]]:
        sheet, start_col, start_row, end_col, end_row = _parse(range_name)
        with self._lock:
            self._record("read_range", sheet)
            grid = self._grid(spreadsheet_id, sheet)
            selected = grid[start_row - 1:end_row]
            stop = end_col + 1 if end_col is not None else None
            out = []
            for row in selected:
                cells = list(row[start_col:stop])
                while cells and cells[-1] == "":
                    cells.pop()
                out.append(cells)
            while out and not out[-1]:
                out.pop()
            return out

    def write_range(
        self,
        spreadsheet_id: str,
        range_name: str,
        values: list[list[Any]],
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        sheet, start_col, start_row, _, _ = _parse(range_name)
        with self._lock:
            self._record("write_range", sheet)
            grid = self._grid(spreadsheet_id, sheet)
            for offset, vals in enumerate(values):
                r = start_row - 1 + offset
                while len(grid) <= r:
                    grid.append([])
                row = grid[r]
                needed = start_col + len(vals)
                if len(row) < needed:
                    row.extend([""] * (needed - len(row)))
                row[start_col:needed] = ["" if v is None else str(v) for v in vals]

    def append_row(
        self,
        spreadsheet_id: str,
        range_name: str,
        row: list[Any],
        value_input_option: str = "USER_ENTERED",
    ) -> str:
        sheet = _parse(range_name)[0]
        with self._lock:
            self._record("append_row", sheet)
            grid = self._grid(spreadsheet_id, sheet)
            grid.append(["" if v is None else str(v) for v in row])
            n = len(grid)
            if self.append_response is not None:
                return self.append_response
            return f"{sheet}!A{n}:{column_letter(max(len(row), 1) - 1)}{n}"

    def delete_row(self, spreadsheet_id: str, sheet_name: str, row_index: int) -> None:
        with self._lock:
            self._record("delete_row", sheet_name)
            grid = self._grid(spreadsheet_id, sheet_name)
            del grid[row_index - 1]


def seed_headers(client: FakeSheetsClient, settings: Any) -> None:
    """Create every table with its header row, users on the auth spreadsheet."""
    from crmsheets.models import (
        Announcement,
        Company,
        Contact,
        EventLog,
        Interaction,
        Opportunity,
        PotentialContact,
        WeeklyBusinessEntry,
    )

    names = settings.sheets
    for sheet, cls in (
        (names.companies, Company),
        (names.contacts, Contact),
        (names.raw_contacts, PotentialContact),
        (names.opportunities, Opportunity),
        (names.interactions, Interaction),
        (names.event_logs, EventLog),
        (names.weekly_business, WeeklyBusinessEntry),
        (names.announcements, Announcement),
    ):
        client.add_sheet(settings.spreadsheet_id, sheet, column_names(cls))
    client.add_sheet(
        settings.spreadsheet_id,
        names.system_config,
        ["type", "item", "order", "enabled", "note", "color", "value2", "value3", "category"],
    )
    client.add_sheet(settings.auth_spreadsheet_id, names.users, ["username", "password_hash", "display_name"])


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds
