"""
Entity writers — one per CRM table, each composing a RowWriter (for the
mutation plus cache invalidation) with its paired reader (for locating rows).

Partial updates do not exist on the remote side: writers read the full row,
patch the fields present in the request, stamp modification metadata, and
write the whole row back. Last writer wins; nothing detects a concurrent edit.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Awaitable, Callable, Generic, Mapping, Optional, Type, TypeVar

from .config import DEFAULT_OPPORTUNITY_STAGE, DEFAULT_OPPORTUNITY_STATUS
from .errors import BusinessRuleError, RecordNotFoundError, RowIndexUnknownError
from .locks import KeyedLock
from .matching import normalize_company_name
from .models import (
    Announcement,
    Company,
    CompanyRef,
    Contact,
    EventLog,
    FoundRow,
    Interaction,
    Opportunity,
    PotentialContact,
    RowRef,
    User,
    WeeklyBusinessEntry,
    column_names,
    last_column,
    record_from_row,
    record_to_row,
)
from .readers import (
    ANNOUNCEMENTS_KEY,
    COMPANIES_KEY,
    CONTACTS_KEY,
    EVENT_LOGS_KEY,
    INTERACTIONS_KEY,
    OPPORTUNITIES_KEY,
    RAW_CONTACTS_KEY,
    USERS_KEY,
    WEEKLY_BUSINESS_KEY,
    AnnouncementReader,
    CompanyReader,
    ContactReader,
    EventLogReader,
    InteractionReader,
    OpportunityReader,
    SystemReader,
    WeeklyBusinessReader,
)
from .store import RowWriter
from .timestamps import new_record_id, now_iso, parse_timestamp

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _clean(value: Any) -> str:
    return "" if value is None else str(value)


class RecordTable(Generic[R]):
    """
    Row-level create / patch / delete for one record class on one range.

    Shared by the entity writers below; each writer owns one per table it
    mutates and supplies the business rules around it.
    """

    def __init__(self, writer: RowWriter, cls: Type[R], range_name: str, cache_key: str) -> None:
        self.writer = writer
        self.cls = cls
        self.range = range_name
        self.cache_key = cache_key
        self.columns = column_names(cls)
        self.last_col = last_column(cls)

    def build(self, data: Mapping[str, Any], **fixed: Any) -> R:
        """New record from the known columns in data; fixed values win."""
        values = {k: _clean(v) for k, v in data.items() if k in self.columns}
        values.update({k: _clean(v) for k, v in fixed.items()})
        return self.cls(**values)

    async def create(self, record: R, require_ref: bool = False) -> R:
        """Append record; with require_ref an unparseable append raises RowIndexUnknownError."""
        result = await self.writer.append(self.range, record_to_row(record), self.cache_key)
        ref = result.require_ref() if require_ref else result.ref
        return replace(record, ref=ref)  # type: ignore[type-var]

    async def patch(
        self,
        found: FoundRow,
        patch: Mapping[str, Any],
        allowed: tuple[str, ...],
        stamp: Optional[Mapping[str, str]] = None,
    ) -> R:
        """Apply allowed patch fields (plus stamp) onto the located row and write it back."""
        unknown = sorted(set(patch) - set(allowed))
        if unknown:
            raise ValueError(f"Fields not updatable on {self.cls.__name__}: {unknown}")
        record = record_from_row(self.cls, found.values, found.ref)
        for name, value in patch.items():
            setattr(record, name, _clean(value))
        for name, value in (stamp or {}).items():
            setattr(record, name, value)
        await self.writer.update(found.ref, record_to_row(record), self.cache_key, last_col=self.last_col)
        return record

    async def delete(self, found: FoundRow) -> None:
        await self.writer.delete_row(found.ref, self.cache_key)


def _require_company_name(name: str) -> None:
    # a blank name would match the first row whose name cell is empty
    if not normalize_company_name(name):
        raise BusinessRuleError("Company name must not be empty", code="EMPTY_NAME")


async def _locate(
    finder: Callable[[str], Awaitable[Optional[FoundRow]]], key: str, what: str
) -> FoundRow:
    found = await finder(key)
    if found is None:
        raise RecordNotFoundError(f"{what} not found: {key}")
    return found


# ── Company ───────────────────────────────────────────────────────────────────

_COMPANY_UPDATABLE = (
    "phone",
    "address",
    "county",
    "introduction",
    "company_type",
    "customer_stage",
    "engagement_rating",
)


class CompanyWriter:
    """
    Company master-list mutations.

    get_or_create_company is serialized per normalized name through a KeyedLock,
    so two concurrent calls in this process cannot both insert. Referential
    checks before delete are the caller's job (CompanyService).
    """

    def __init__(
        self,
        writer: RowWriter,
        reader: CompanyReader,
        locks: Optional[KeyedLock] = None,
    ) -> None:
        if reader is None:
            raise ValueError("CompanyWriter requires a CompanyReader")
        self.reader = reader
        self.locks = locks or KeyedLock()
        self.table: RecordTable[Company] = RecordTable(writer, Company, reader.range, COMPANIES_KEY)

    async def get_or_create_company(
        self,
        name: str,
        contact_info: Optional[Mapping[str, Any]] = None,
        modifier: str = "",
        extra: Optional[Mapping[str, Any]] = None,
    ) -> CompanyRef:
        """
        Return the existing company whose normalized name matches, unchanged,
        or append a new one. contact_info supplies phone/mobile/address; extra
        supplies county and classification fields.
        A blank name raises BusinessRuleError (EMPTY_NAME); an append whose row
        index cannot be parsed raises RowIndexUnknownError after the row is written.
        """
        _require_company_name(name)
        contact_info = contact_info or {}
        extra = extra or {}
        async with self.locks.hold(normalize_company_name(name)):
            found = await self.reader.find_company_row(name)
            if found is not None:
                logger.info("Company already exists: %s", name)
                values = found.values + ["", ""]
                return CompanyRef(id=values[0], name=values[1], row_index=found.ref.index)

            now = now_iso()
            record = self.table.build(
                extra,
                company_id=new_record_id("COM"),
                company_name=name.strip(),
                phone=contact_info.get("phone") or contact_info.get("mobile") or "",
                address=contact_info.get("address") or "",
                created_time=now,
                last_update_time=now,
                creator=modifier,
                last_modifier=modifier,
            )
            logger.info(
                "Creating company %s (county=%s) by %s", name, record.county or "-", modifier
            )
            created = await self.table.create(record, require_ref=True)

        return CompanyRef(
            id=created.company_id, name=created.company_name, row_index=created.ref.index, created=True
        )

    async def update_company(
        self, name: str, patch: Mapping[str, Any], modifier: str
    ) -> Company:
        """Patch the located company row; fields absent from patch are kept as read."""
        _require_company_name(name)
        logger.info("Updating company %s by %s", name, modifier)
        found = await _locate(self.reader.find_company_row, name, "Company")
        return await self.table.patch(
            found,
            patch,
            _COMPANY_UPDATABLE,
            stamp={"last_update_time": now_iso(), "last_modifier": modifier},
        )

    async def delete_company(self, name: str) -> str:
        """Unconditionally delete the company row; returns the deleted company id."""
        _require_company_name(name)
        found = await _locate(self.reader.find_company_row, name, "Company")
        await self.table.delete(found)
        company_id = found.values[0] if found.values else ""
        logger.info("Deleted company %s (row %d)", name, found.ref.index)
        return company_id


# ── Contacts ──────────────────────────────────────────────────────────────────

_CONTACT_UPDATABLE = (
    "name",
    "company_id",
    "department",
    "position",
    "mobile",
    "phone",
    "email",
)

_RAW_CONTACT_UPDATABLE = (
    "name",
    "company",
    "position",
    "department",
    "phone",
    "mobile",
    "email",
    "address",
    "status",
)


class ContactWriter:
    """Established contacts (by contact_id) and raw leads (by row position)."""

    def __init__(self, writer: RowWriter, reader: ContactReader) -> None:
        self.reader = reader
        self.writer = writer
        self.table: RecordTable[Contact] = RecordTable(writer, Contact, reader.range, CONTACTS_KEY)
        self.raw_table: RecordTable[PotentialContact] = RecordTable(
            writer, PotentialContact, reader.raw_range, RAW_CONTACTS_KEY
        )

    async def create_contact(self, data: Mapping[str, Any], modifier: str) -> Contact:
        now = now_iso()
        record = self.table.build(
            data,
            contact_id=new_record_id("CON"),
            created_time=now,
            last_update_time=now,
            creator=modifier,
            last_modifier=modifier,
        )
        logger.info("Creating contact %s by %s", record.name, modifier)
        return await self.table.create(record)

    async def update_contact(
        self, contact_id: str, patch: Mapping[str, Any], modifier: str
    ) -> Contact:
        found = await _locate(self.reader.find_contact_row, contact_id, "Contact")
        return await self.table.patch(
            found,
            patch,
            _CONTACT_UPDATABLE,
            stamp={"last_update_time": now_iso(), "last_modifier": modifier},
        )

    async def update_raw_contact(
        self, row_index: int, patch: Mapping[str, Any], modifier: str
    ) -> PotentialContact:
        """
        Patch a raw lead addressed by row number. The row is re-read and checked
        against the cached lead's name first, so a shifted row is refused.
        """
        contact = await self.reader.find_contact_by_row(row_index)
        if contact is None or contact.ref is None:
            raise RecordNotFoundError(f"Raw contact not found at row {row_index}")
        fresh = await self.writer.verify(
            contact.ref, 1, contact.name, self.raw_table.last_col
        )
        logger.info("Updating raw contact row %d by %s", row_index, modifier)
        return await self.raw_table.patch(
            FoundRow(contact.ref, fresh), patch, _RAW_CONTACT_UPDATABLE
        )

    async def delete_contact(self, contact_id: str) -> None:
        found = await _locate(self.reader.find_contact_row, contact_id, "Contact")
        await self.table.delete(found)


# ── Opportunities ─────────────────────────────────────────────────────────────

_OPPORTUNITY_UPDATABLE = (
    "opportunity_name",
    "customer_company",
    "main_contact",
    "assignee",
    "opportunity_type",
    "opportunity_source",
    "current_stage",
    "expected_close_date",
    "opportunity_value",
    "current_status",
    "county",
)


class OpportunityWriter:

    def __init__(self, writer: RowWriter, reader: OpportunityReader) -> None:
        self.reader = reader
        self.table: RecordTable[Opportunity] = RecordTable(
            writer, Opportunity, reader.range, OPPORTUNITIES_KEY
        )

    async def create_opportunity(self, data: Mapping[str, Any], modifier: str) -> Opportunity:
        now = now_iso()
        record = self.table.build(
            data,
            opportunity_id=new_record_id("OPP"),
            created_time=now,
            last_update_time=now,
            last_modifier=modifier,
        )
        record.current_stage = record.current_stage or DEFAULT_OPPORTUNITY_STAGE
        record.current_status = record.current_status or DEFAULT_OPPORTUNITY_STATUS
        logger.info("Creating opportunity %s for %s", record.opportunity_name, record.customer_company)
        return await self.table.create(record)

    async def update_opportunity(
        self, opportunity_id: str, patch: Mapping[str, Any], modifier: str
    ) -> Opportunity:
        found = await _locate(self.reader.find_opportunity_row, opportunity_id, "Opportunity")
        return await self.table.patch(
            found,
            patch,
            _OPPORTUNITY_UPDATABLE,
            stamp={"last_update_time": now_iso(), "last_modifier": modifier},
        )

    async def delete_opportunity(self, opportunity_id: str) -> None:
        found = await _locate(self.reader.find_opportunity_row, opportunity_id, "Opportunity")
        await self.table.delete(found)


# ── Interactions ──────────────────────────────────────────────────────────────

_INTERACTION_UPDATABLE = (
    "interaction_time",
    "event_type",
    "event_title",
    "content_summary",
    "participants",
    "next_action",
    "attachment",
    "calendar_event_id",
)


class InteractionWriter:

    def __init__(self, writer: RowWriter, reader: InteractionReader) -> None:
        self.reader = reader
        self.table: RecordTable[Interaction] = RecordTable(
            writer, Interaction, reader.range, INTERACTIONS_KEY
        )

    async def create_interaction(self, data: Mapping[str, Any]) -> Interaction:
        """Append an interaction; interaction_time defaults to now."""
        now = now_iso()
        record = self.table.build(data, interaction_id=new_record_id("INT"), created_time=now)
        record.interaction_time = record.interaction_time or now
        return await self.table.create(record)

    async def update_interaction(
        self, interaction_id: str, patch: Mapping[str, Any]
    ) -> Interaction:
        found = await _locate(self.reader.find_interaction_row, interaction_id, "Interaction")
        return await self.table.patch(found, patch, _INTERACTION_UPDATABLE)


# ── Event logs ────────────────────────────────────────────────────────────────

_EVENT_LOG_UPDATABLE = ("event_name", "event_type", "content")


class EventLogWriter:

    def __init__(self, writer: RowWriter, reader: EventLogReader) -> None:
        self.reader = reader
        self.table: RecordTable[EventLog] = RecordTable(writer, EventLog, reader.range, EVENT_LOGS_KEY)

    async def create_event_log(self, data: Mapping[str, Any], modifier: str) -> EventLog:
        now = now_iso()
        record = self.table.build(
            data,
            event_id=new_record_id("EVT"),
            creator=modifier,
            created_time=now,
            last_modified_time=now,
        )
        return await self.table.create(record)

    async def update_event_log(
        self, event_id: str, patch: Mapping[str, Any], modifier: str
    ) -> EventLog:
        found = await _locate(self.reader.find_event_log_row, event_id, "Event log")
        logger.info("Updating event log %s by %s", event_id, modifier)
        return await self.table.patch(
            found, patch, _EVENT_LOG_UPDATABLE, stamp={"last_modified_time": now_iso()}
        )

    async def delete_event_log(self, event_id: str) -> None:
        found = await _locate(self.reader.find_event_log_row, event_id, "Event log")
        await self.table.delete(found)


# ── Weekly business ───────────────────────────────────────────────────────────

_WEEKLY_UPDATABLE = ("entry_date", "week_id", "category", "topic", "participants", "summary", "todo")


def week_id_for(day: str) -> str:
    """ISO week label for a date cell, e.g. ``2024-W18``."""
    parsed = parse_timestamp(day)
    if parsed is None:
        raise ValueError(f"Not a date: {day!r}")
    year, week, _ = parsed.date().isocalendar()
    return f"{year}-W{week:02d}"


class WeeklyBusinessWriter:

    def __init__(self, writer: RowWriter, reader: WeeklyBusinessReader) -> None:
        self.reader = reader
        self.table: RecordTable[WeeklyBusinessEntry] = RecordTable(
            writer, WeeklyBusinessEntry, reader.range, WEEKLY_BUSINESS_KEY
        )

    async def create_entry(self, data: Mapping[str, Any], modifier: str) -> WeeklyBusinessEntry:
        now = now_iso()
        record = self.table.build(
            data,
            record_id=new_record_id("WK"),
            created_time=now,
            last_update_time=now,
            creator=modifier,
        )
        record.entry_date = record.entry_date or now[:10]
        record.week_id = record.week_id or week_id_for(record.entry_date)
        return await self.table.create(record)

    async def update_entry(
        self, record_id: str, patch: Mapping[str, Any], modifier: str
    ) -> WeeklyBusinessEntry:
        found = await _locate(self.reader.find_entry_row, record_id, "Weekly entry")
        logger.info("Updating weekly entry %s by %s", record_id, modifier)
        return await self.table.patch(
            found, patch, _WEEKLY_UPDATABLE, stamp={"last_update_time": now_iso()}
        )

    async def delete_entry(self, record_id: str) -> None:
        found = await _locate(self.reader.find_entry_row, record_id, "Weekly entry")
        await self.table.delete(found)


# ── Announcements ─────────────────────────────────────────────────────────────

_ANNOUNCEMENT_UPDATABLE = ("title", "content", "status", "is_pinned")


class AnnouncementWriter:

    def __init__(self, writer: RowWriter, reader: AnnouncementReader) -> None:
        self.reader = reader
        self.table: RecordTable[Announcement] = RecordTable(
            writer, Announcement, reader.range, ANNOUNCEMENTS_KEY
        )

    async def create_announcement(self, data: Mapping[str, Any], modifier: str) -> Announcement:
        now = now_iso()
        record = self.table.build(
            data,
            announcement_id=new_record_id("ANN"),
            creator=modifier,
            created_time=now,
            last_update_time=now,
        )
        record.status = record.status or "active"
        record.is_pinned = "TRUE" if record.is_pinned.strip().upper() == "TRUE" else "FALSE"
        return await self.table.create(record)

    async def update_announcement(
        self, announcement_id: str, patch: Mapping[str, Any], modifier: str
    ) -> Announcement:
        found = await _locate(self.reader.find_announcement_row, announcement_id, "Announcement")
        logger.info("Updating announcement %s by %s", announcement_id, modifier)
        return await self.table.patch(
            found, patch, _ANNOUNCEMENT_UPDATABLE, stamp={"last_update_time": now_iso()}
        )

    async def delete_announcement(self, announcement_id: str) -> None:
        found = await _locate(self.reader.find_announcement_row, announcement_id, "Announcement")
        await self.table.delete(found)


# ── System ────────────────────────────────────────────────────────────────────

def _lower(value: str) -> str:
    return value.strip().lower()


class SystemWriter:
    """User-roster mutations against the auth spreadsheet."""

    def __init__(self, writer: RowWriter, reader: SystemReader) -> None:
        self.writer = writer
        self.reader = reader

    async def update_password(
        self, ref: Optional[RowRef], new_hash: str, username: Optional[str] = None
    ) -> None:
        """
        Overwrite the password hash (column B) on the user's exact row.

        With username given, the row is re-read first and must still belong to
        that user. A user without a row position cannot be updated at all.
        """
        if ref is None:
            raise RowIndexUnknownError("User record has no row position")
        logger.info(
            "Updating password hash (row %d, sheet ...%s)", ref.index, self.writer.spreadsheet_id[-6:]
        )
        if username is not None:
            await self.writer.verify(ref, 0, username, "C", key=_lower)
        await self.writer.update(ref, [new_hash], USERS_KEY, first_col="B", value_input_option="RAW")

    async def update_user_password(self, user: User, new_hash: str) -> None:
        await self.update_password(user.ref, new_hash, username=user.username)
