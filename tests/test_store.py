"""Tests for CachedStore and RowWriter against the in-memory sheet."""

from __future__ import annotations

import asyncio
import threading

import pytest

from crmsheets.cache import TTLCache
from crmsheets.errors import RowIndexUnknownError, StaleRowRefError
from crmsheets.models import Company, RowRef, record_from_row
from crmsheets.store import CachedStore, RowWriter, parse_row_index, sheet_of
from fakes import BIZ, FakeClock

RANGE = "Companies!A:M"


def _parse(row, ref):
    company = record_from_row(Company, row, ref)
    return company if company.company_id else None


@pytest.fixture
def store(fake) -> CachedStore:
    return CachedStore(fake, BIZ, TTLCache(300, clock=FakeClock()))


@pytest.fixture
def writer(store) -> RowWriter:
    return RowWriter(store)


def test_parse_row_index():
    assert parse_row_index("Companies!A42:M42") == 42
    assert parse_row_index("'Raw Contacts'!A7:M7") == 7
    assert parse_row_index("Companies!B42") is None
    assert parse_row_index("") is None
    assert parse_row_index(None) is None


def test_sheet_of_strips_quotes():
    assert sheet_of("'Raw Contacts'!A:M") == "Raw Contacts"
    assert sheet_of("Companies!A:M") == "Companies"


def test_row_ref_a1():
    ref = RowRef(BIZ, "Companies", 7)
    assert ref.a1("A", "M") == "Companies!A7:M7"
    assert ref.a1("B") == "Companies!B7"


async def test_fetch_drops_header_and_attaches_row_positions(store, fake):
    fake.add_rows("Companies", ["COM1", "Acme"], [], ["COM3", "Gamma"])

    companies = await store.fetch("companyList", RANGE, _parse)

    assert [c.company_id for c in companies] == ["COM1", "COM3"]
    assert companies[0].ref == RowRef(BIZ, "Companies", 2)
    assert companies[1].ref == RowRef(BIZ, "Companies", 4)
    assert companies[0].phone == ""


async def test_fetch_failure_is_raised_and_not_cached(store, fake):
    fake.add_rows("Companies", ["COM1", "Acme"])
    fake.fail("read_range", "Companies")

    with pytest.raises(RuntimeError):
        await store.fetch("companyList", RANGE, _parse)
    assert store.cache.get("companyList") is None

    fake.heal()
    companies = await store.fetch("companyList", RANGE, _parse)
    assert len(companies) == 1


async def test_find_scans_uncached(store, fake):
    fake.add_rows("Companies", ["COM1", "Acme"], ["COM2", "Beta"])
    await store.fetch("companyList", RANGE, _parse)

    found = await store.find(RANGE, 1, " Beta ")
    missing = await store.find(RANGE, 1, "Gamma")

    assert found.ref.index == 3
    assert found.values[:2] == ["COM2", "Beta"]
    assert missing is None
    assert fake.reads("Companies") == 3


async def test_append_invalidates_and_reports_position(store, writer, fake):
    fake.add_rows("Companies", ["COM1", "Acme"])
    await store.fetch("companyList", RANGE, _parse)

    result = await writer.append(RANGE, ["COM2", "Beta"], "companyList")

    assert result.row_index == 3
    assert result.require_ref() == RowRef(BIZ, "Companies", 3)
    assert store.cache.get("companyList") is None
    companies = await store.fetch("companyList", RANGE, _parse)
    assert [c.company_name for c in companies] == ["Acme", "Beta"]


async def test_append_without_parsable_range(store, writer, fake):
    fake.append_response = "Companies!B9"

    result = await writer.append(RANGE, ["COM2", "Beta"], "companyList")

    assert result.ref is None
    assert result.row_index is None
    with pytest.raises(RowIndexUnknownError):
        result.require_ref()
    assert len(fake.rows("Companies")) == 1


async def test_update_writes_exact_row_and_invalidates(store, writer, fake):
    fake.add_rows("Companies", ["COM1", "Acme"], ["COM2", "Beta"])
    companies = await store.fetch("companyList", RANGE, _parse)

    await writer.update(companies[1].ref, ["COM2", "Beta Renamed"], "companyList", last_col="B")

    assert fake.rows("Companies")[1][:2] == ["COM2", "Beta Renamed"]
    fresh = await store.fetch("companyList", RANGE, _parse)
    assert fresh[1].company_name == "Beta Renamed"


async def test_read_overlapping_a_write_is_not_cached(store, writer, fake, monkeypatch):
    fake.add_rows("Companies", ["COM1", "Acme", "111"])
    snapshot_taken, release = threading.Event(), threading.Event()
    real_read = fake.read_range

    def held_read(spreadsheet_id, range_name):
        rows = real_read(spreadsheet_id, range_name)
        snapshot_taken.set()
        release.wait(timeout=5)
        return rows

    monkeypatch.setattr(fake, "read_range", held_read)
    pending = asyncio.create_task(store.fetch("companyList", RANGE, _parse))
    await asyncio.to_thread(snapshot_taken.wait, 5)
    monkeypatch.setattr(fake, "read_range", real_read)

    await writer.update(RowRef(BIZ, "Companies", 2), ["COM1", "Acme", "222"], "companyList", last_col="C")
    release.set()
    stale = await pending

    assert stale[0].phone == "111"
    assert store.cache.get("companyList") is None
    fresh = await store.fetch("companyList", RANGE, _parse)
    assert fresh[0].phone == "222"
    assert store.cache.get("companyList") is fresh


async def test_update_and_delete_require_a_ref(writer):
    with pytest.raises(RowIndexUnknownError):
        await writer.update(None, ["x"], "companyList")
    with pytest.raises(RowIndexUnknownError):
        await writer.delete_row(None, "companyList")


async def test_delete_row_shifts_later_rows(store, writer, fake):
    fake.add_rows("Companies", ["COM1", "Acme"], ["COM2", "Beta"], ["COM3", "Gamma"])
    companies = await store.fetch("companyList", RANGE, _parse)

    await writer.delete_row(companies[0].ref, "companyList")

    fresh = await store.fetch("companyList", RANGE, _parse)
    assert [(c.company_id, c.ref.index) for c in fresh] == [("COM2", 2), ("COM3", 3)]


async def test_verify_detects_shifted_rows(store, writer, fake):
    fake.add_rows("Companies", ["COM1", "Acme"], ["COM2", "Beta"])
    companies = await store.fetch("companyList", RANGE, _parse)
    beta_ref = companies[1].ref

    row = await writer.verify(beta_ref, 0, "COM2", "M")
    assert row[:2] == ["COM2", "Beta"]

    await writer.delete_row(companies[0].ref, "companyList")
    with pytest.raises(StaleRowRefError):
        await writer.verify(beta_ref, 0, "COM2", "M")


def test_row_writer_requires_store():
    with pytest.raises(ValueError):
        RowWriter(None)
