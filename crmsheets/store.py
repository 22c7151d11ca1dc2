"""
CachedStore / RowWriter — the two primitives every entity reader and writer composes.

CachedStore reads a whole named range, drops the header row, parses each
remaining row into an entity carrying its RowRef, and caches the parsed list
under a logical key for the configured TTL.

RowWriter appends, overwrites and deletes rows, and invalidates the paired
store's cache key after every successful mutation. Sheets calls are blocking,
so both push them onto worker threads with asyncio.to_thread.
"""
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Optional, Protocol, TypeVar

from .cache import TTLCache
from .errors import RowIndexUnknownError, StaleRowRefError
from .models import FoundRow, RowRef

logger = logging.getLogger(__name__)

T = TypeVar("T")

# (raw row, its position) → entity, or None to skip the row
RowParser = Callable[[list[str], RowRef], Optional[T]]

_APPENDED_ROW = re.compile(r"!A(\d+)")
_RANGE_START_ROW = re.compile(r"![A-Z]+(\d+)")


class Transport(Protocol):
    """The SheetsClient surface the store layer relies on."""

    def read_range(self, spreadsheet_id: str, range_name: str) -> list[list[Any]]: ...

    def write_range(
        self,
        spreadsheet_id: str,
        range_name: str,
        values: list[list[Any]],
        value_input_option: str = ...,
    ) -> None: ...

    def append_row(
        self,
        spreadsheet_id: str,
        range_name: str,
        row: list[Any],
        value_input_option: str = ...,
    ) -> str: ...

    def delete_row(self, spreadsheet_id: str, sheet_name: str, row_index: int) -> None: ...


def sheet_of(range_name: str) -> str:
    """``"Companies!A:M"`` → ``"Companies"`` (quotes stripped)."""
    return range_name.split("!", 1)[0].strip("'")


def parse_row_index(updated_range: str) -> Optional[int]:
    """1-based row number from an append response range such as ``Companies!A42:M42``."""
    match = _APPENDED_ROW.search(updated_range or "")
    return int(match.group(1)) if match else None


def _first_row(range_name: str) -> int:
    match = _RANGE_START_ROW.search(range_name)
    return int(match.group(1)) if match else 1


def _strip(value: str) -> str:
    return value.strip()


def _cells(row: list[Any]) -> list[str]:
    return ["" if v is None else str(v) for v in row]


# ── CachedStore ───────────────────────────────────────────────────────────────

class CachedStore:
    """
    Fetch-with-TTL-cache over one spreadsheet.

    Several stores may share one TTLCache (keys are logical table names), which
    is how the business and auth spreadsheets live in one process-wide cache.
    """

    def __init__(self, client: Transport, spreadsheet_id: str, cache: TTLCache) -> None:
        self.client = client
        self.spreadsheet_id = spreadsheet_id
        self.cache = cache

    async def read_raw(self, range_name: str) -> list[list[str]]:
        """Uncached full read of range_name, header included."""
        rows = await asyncio.to_thread(self.client.read_range, self.spreadsheet_id, range_name)
        return [_cells(r) for r in rows]

    async def fetch(
        self, cache_key: str, range_name: str, parser: RowParser[T]
    ) -> list[T]:
        """
        Return parsed entities for range_name, from cache when fresh.

        The returned list is the cached object itself; callers must not mutate it.
        Read failures are logged and re-raised, never cached. A snapshot whose
        key was invalidated while the read was in flight is returned to this
        caller but not cached.
        """
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        fetched_at = self.cache.now()
        generation = self.cache.generation(cache_key)
        logger.info("Fetching %s from %s", cache_key, range_name)
        try:
            rows = await self.read_raw(range_name)
        except Exception:
            logger.exception("Failed to read %s (%s)", cache_key, range_name)
            raise

        sheet = sheet_of(range_name)
        header_row = _first_row(range_name)
        entities: list[T] = []
        for offset, row in enumerate(rows[1:], start=1):
            ref = RowRef(self.spreadsheet_id, sheet, header_row + offset)
            entity = parser(row, ref)
            if entity is not None:
                entities.append(entity)

        if not self.cache.set(cache_key, entities, fetched_at, generation):
            logger.info("%s changed during fetch; not caching this snapshot", cache_key)
        return entities

    async def find(
        self,
        range_name: str,
        key_column: int,
        value: str,
        key: Callable[[str], str] = _strip,
    ) -> Optional[FoundRow]:
        """
        Linear scan of the raw rows (header skipped, cache bypassed) for the first
        row whose ``key_column`` (0-based) matches value under ``key``.
        """
        rows = await self.read_raw(range_name)
        target = key(value)
        sheet = sheet_of(range_name)
        header_row = _first_row(range_name)
        for offset, row in enumerate(rows[1:], start=1):
            cell = row[key_column] if key_column < len(row) else ""
            if key(cell) == target:
                return FoundRow(RowRef(self.spreadsheet_id, sheet, header_row + offset), row)
        return None

    async def read_row(self, ref: RowRef, last_col: str) -> list[str]:
        """Current raw values of one row, columns A through last_col."""
        rows = await self.read_raw(ref.a1("A", last_col))
        return rows[0] if rows else []

    def invalidate(self, cache_key: str) -> None:
        self.cache.invalidate(cache_key)


# ── RowWriter ─────────────────────────────────────────────────────────────────

@dataclass
class AppendResult:
    updated_range: str
    ref: Optional[RowRef]

    @property
    def row_index(self) -> Optional[int]:
        return self.ref.index if self.ref else None

    def require_ref(self) -> RowRef:
        if self.ref is None:
            raise RowIndexUnknownError(
                f"Could not parse row index from append response: {self.updated_range!r}"
            )
        return self.ref


class RowWriter:
    """
    Append / update / delete rows on the paired store's spreadsheet.

    A writer always has a paired CachedStore: every successful mutation
    invalidates the cache key it affects before returning.
    """

    def __init__(self, store: CachedStore) -> None:
        if store is None:
            raise ValueError("RowWriter requires a paired CachedStore")
        self.store = store

    @property
    def spreadsheet_id(self) -> str:
        return self.store.spreadsheet_id

    @property
    def _client(self) -> Transport:
        return self.store.client

    async def append(
        self,
        range_name: str,
        values: list[Any],
        cache_key: str,
        value_input_option: str = "USER_ENTERED",
    ) -> AppendResult:
        """Append one row; the new row's position is parsed from the response."""
        updated = await asyncio.to_thread(
            self._client.append_row,
            self.spreadsheet_id,
            range_name,
            values,
            value_input_option,
        )
        self.store.invalidate(cache_key)

        row_index = parse_row_index(updated)
        if row_index is None:
            logger.warning("Append to %s returned no row index (%r)", range_name, updated)
            return AppendResult(updated, None)
        return AppendResult(updated, RowRef(self.spreadsheet_id, sheet_of(range_name), row_index))

    async def update(
        self,
        ref: RowRef,
        values: list[Any],
        cache_key: str,
        first_col: str = "A",
        last_col: Optional[str] = None,
        value_input_option: str = "USER_ENTERED",
    ) -> None:
        """Overwrite the row at ref (columns first_col..last_col) with values."""
        if ref is None or ref.index < 1:
            raise RowIndexUnknownError("Update requires a row reference")
        await asyncio.to_thread(
            self._client.write_range,
            self.spreadsheet_id,
            ref.a1(first_col, last_col),
            [values],
            value_input_option,
        )
        self.store.invalidate(cache_key)

    async def delete_row(self, ref: RowRef, cache_key: str) -> None:
        """Physically delete the row; later rows shift up, so the cache key is dropped."""
        if ref is None or ref.index < 1:
            raise RowIndexUnknownError("Delete requires a row reference")
        await asyncio.to_thread(
            self._client.delete_row, self.spreadsheet_id, ref.sheet, ref.index
        )
        self.store.invalidate(cache_key)

    async def verify(
        self,
        ref: RowRef,
        key_column: int,
        expected: str,
        last_col: str,
        key: Callable[[str], str] = _strip,
    ) -> list[str]:
        """
        Re-read the row at ref and check it still holds the expected record.

        Returns the fresh row values; raises StaleRowRefError when rows have
        shifted under the reference.
        """
        row = await self.store.read_row(ref, last_col)
        actual = row[key_column] if key_column < len(row) else ""
        if key(actual) != key(expected):
            raise StaleRowRefError(
                f"Row {ref.index} on {ref.sheet} holds {actual!r}, expected {expected!r}"
            )
        return row
