"""
Entity readers — one per CRM table, each a thin composition of CachedStore,
a range, a cache key and a row parser.

Business readers propagate read failures. SystemReader is the exception: the
settings sheet and the user roster degrade to defaults / an empty roster so a
flaky auth spreadsheet turns into a failed login rather than a crash.
"""
from __future__ import annotations

import logging
from typing import Optional

from .config import (
    CONFIG_CALENDAR_FILTER,
    CONFIG_EVENT_TYPE,
    DEFAULT_EVENT_TYPES,
    Settings,
)
from .matching import CompanyIndex, normalize_company_name
from .models import (
    Announcement,
    Company,
    ConfigItem,
    Contact,
    EventLog,
    FoundRow,
    Interaction,
    Opportunity,
    PotentialContact,
    RowRef,
    User,
    WeeklyBusinessEntry,
    last_column,
    record_from_row,
)
from .store import CachedStore
from .timestamps import parse_timestamp

logger = logging.getLogger(__name__)

# Cache keys (logical table names shared with the writers)
COMPANIES_KEY = "companyList"
CONTACTS_KEY = "contactList"
RAW_CONTACTS_KEY = "contacts"
OPPORTUNITIES_KEY = "opportunities"
INTERACTIONS_KEY = "interactions"
EVENT_LOGS_KEY = "eventLogs"
WEEKLY_BUSINESS_KEY = "weeklyBusiness"
ANNOUNCEMENTS_KEY = "announcements"
SYSTEM_CONFIG_KEY = "systemConfig"
USERS_KEY = "users"

_SYSTEM_CONFIG_COLUMNS = "A:I"
_USERS_COLUMNS = "A:C"


def full_range(sheet: str, cls: type) -> str:
    """Whole-column range covering every column of a record class, e.g. ``Companies!A:M``."""
    return f"{sheet}!A:{last_column(cls)}"


def _sort_key_desc(*values: str) -> float:
    for v in values:
        dt = parse_timestamp(v)
        if dt is not None:
            return -dt.timestamp()
    return float("inf")


# ── Row parsers ───────────────────────────────────────────────────────────────

def _parse_company(row: list[str], ref: RowRef) -> Optional[Company]:
    company = record_from_row(Company, row, ref)
    return company if (company.company_id or company.company_name) else None


def _parse_contact(row: list[str], ref: RowRef) -> Optional[Contact]:
    contact = record_from_row(Contact, row, ref)
    return contact if (contact.contact_id or contact.name) else None


def _parse_potential_contact(row: list[str], ref: RowRef) -> Optional[PotentialContact]:
    if not any(cell.strip() for cell in row):
        return None
    return record_from_row(PotentialContact, row, ref)


def _parse_opportunity(row: list[str], ref: RowRef) -> Optional[Opportunity]:
    opp = record_from_row(Opportunity, row, ref)
    return opp if opp.opportunity_id else None


def _parse_interaction(row: list[str], ref: RowRef) -> Optional[Interaction]:
    interaction = record_from_row(Interaction, row, ref)
    return interaction if interaction.interaction_id else None


def _parse_event_log(row: list[str], ref: RowRef) -> Optional[EventLog]:
    log = record_from_row(EventLog, row, ref)
    return log if log.event_id else None


def _parse_weekly_entry(row: list[str], ref: RowRef) -> Optional[WeeklyBusinessEntry]:
    entry = record_from_row(WeeklyBusinessEntry, row, ref)
    return entry if entry.record_id else None


def _parse_announcement(row: list[str], ref: RowRef) -> Optional[Announcement]:
    post = record_from_row(Announcement, row, ref)
    return post if post.announcement_id else None


def _parse_user(row: list[str], ref: RowRef) -> Optional[User]:
    cells = row + [""] * (3 - len(row))
    username, password_hash, display_name = (c.strip() for c in cells[:3])
    if not username or not password_hash:
        return None
    return User(username=username, password_hash=password_hash, display_name=display_name, ref=ref)


def _parse_order(raw: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError):
        return 99


def _parse_config_row(row: list[str], ref: RowRef) -> Optional[tuple[str, ConfigItem]]:
    cells = row + [""] * (9 - len(row))
    type_, item, order, enabled, note, color, value2, value3, category = cells[:9]
    if enabled.strip().upper() != "TRUE" or not type_ or not item:
        return None
    return type_, ConfigItem(
        value=item,
        note=note or item,
        order=_parse_order(order),
        color=color or None,
        value2=value2 or None,
        value3=value3 or None,
        category=category or "Other",
    )


# ── Company ───────────────────────────────────────────────────────────────────

class CompanyReader:
    """Company master list (name is the de-facto natural key)."""

    def __init__(self, store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.range = full_range(settings.sheets.companies, Company)

    async def get_company_list(self) -> list[Company]:
        return await self.store.fetch(COMPANIES_KEY, self.range, _parse_company)

    async def get_company(self, name: str) -> Optional[Company]:
        """Company whose normalized name matches, from the cached list."""
        return CompanyIndex(await self.get_company_list()).find(name)

    async def get_company_by_id(self, company_id: str) -> Optional[Company]:
        for company in await self.get_company_list():
            if company.company_id == company_id:
                return company
        return None

    async def find_company_row(self, name: str) -> Optional[FoundRow]:
        """Fresh raw row for a company name (normalized match), bypassing the cache."""
        if not normalize_company_name(name):
            return None
        return await self.store.find(self.range, 1, name, key=normalize_company_name)

    def invalidate(self) -> None:
        self.store.invalidate(COMPANIES_KEY)


# ── Contacts ──────────────────────────────────────────────────────────────────

class ContactReader:
    """Established contacts plus the raw business-card leads sheet."""

    def __init__(self, store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.range = full_range(settings.sheets.contacts, Contact)
        self.raw_range = full_range(settings.sheets.raw_contacts, PotentialContact)

    async def get_contact_list(self) -> list[Contact]:
        """Contacts linked to a company by company_id."""
        return await self.store.fetch(CONTACTS_KEY, self.range, _parse_contact)

    async def get_contacts(self, limit: Optional[int] = None) -> list[PotentialContact]:
        """
        Raw (potential) contacts in sheet order; with a limit, the newest ``limit``
        by created time.
        """
        contacts = await self.store.fetch(RAW_CONTACTS_KEY, self.raw_range, _parse_potential_contact)
        if limit is None:
            return contacts
        return sorted(contacts, key=lambda c: _sort_key_desc(c.created_time))[:limit]

    async def get_contacts_for_company(self, company_id: str) -> list[Contact]:
        return [c for c in await self.get_contact_list() if c.company_id == company_id]

    async def find_contact_by_row(self, row_index: int) -> Optional[PotentialContact]:
        for contact in await self.get_contacts():
            if contact.ref and contact.ref.index == row_index:
                return contact
        return None

    async def find_contact_row(self, contact_id: str) -> Optional[FoundRow]:
        return await self.store.find(self.range, 0, contact_id)


# ── Opportunities ─────────────────────────────────────────────────────────────

class OpportunityReader:

    def __init__(self, store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.range = full_range(settings.sheets.opportunities, Opportunity)

    async def get_opportunities(self) -> list[Opportunity]:
        return await self.store.fetch(OPPORTUNITIES_KEY, self.range, _parse_opportunity)

    async def get_opportunity(self, opportunity_id: str) -> Optional[Opportunity]:
        for opp in await self.get_opportunities():
            if opp.opportunity_id == opportunity_id:
                return opp
        return None

    async def find_opportunity_row(self, opportunity_id: str) -> Optional[FoundRow]:
        return await self.store.find(self.range, 0, opportunity_id)


# ── Interactions / event logs ─────────────────────────────────────────────────

class InteractionReader:

    def __init__(self, store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.range = full_range(settings.sheets.interactions, Interaction)

    async def get_interactions(self) -> list[Interaction]:
        return await self.store.fetch(INTERACTIONS_KEY, self.range, _parse_interaction)

    async def find_interaction_row(self, interaction_id: str) -> Optional[FoundRow]:
        return await self.store.find(self.range, 0, interaction_id)


class EventLogReader:

    def __init__(self, store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.range = full_range(settings.sheets.event_logs, EventLog)

    async def get_event_logs(self) -> list[EventLog]:
        return await self.store.fetch(EVENT_LOGS_KEY, self.range, _parse_event_log)

    async def find_event_log_row(self, event_id: str) -> Optional[FoundRow]:
        return await self.store.find(self.range, 0, event_id)


# ── Weekly business / announcements ───────────────────────────────────────────

class WeeklyBusinessReader:

    def __init__(self, store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.range = full_range(settings.sheets.weekly_business, WeeklyBusinessEntry)

    async def get_entries(self, week_id: Optional[str] = None) -> list[WeeklyBusinessEntry]:
        """All entries, or only those of one week (e.g. ``2024-W18``)."""
        entries = await self.store.fetch(WEEKLY_BUSINESS_KEY, self.range, _parse_weekly_entry)
        if week_id is None:
            return entries
        return [e for e in entries if e.week_id == week_id]

    async def find_entry_row(self, record_id: str) -> Optional[FoundRow]:
        return await self.store.find(self.range, 0, record_id)


class AnnouncementReader:

    def __init__(self, store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.range = full_range(settings.sheets.announcements, Announcement)

    async def get_announcements(self, active_only: bool = True) -> list[Announcement]:
        """Pinned posts first, then newest first."""
        posts = await self.store.fetch(ANNOUNCEMENTS_KEY, self.range, _parse_announcement)
        if active_only:
            posts = [p for p in posts if p.status.strip().lower() != "archived"]
        return sorted(
            posts,
            key=lambda p: (not p.pinned, _sort_key_desc(p.last_update_time, p.created_time)),
        )

    async def find_announcement_row(self, announcement_id: str) -> Optional[FoundRow]:
        return await self.store.find(self.range, 0, announcement_id)


# ── System ────────────────────────────────────────────────────────────────────

def default_system_config() -> dict[str, list[ConfigItem]]:
    """Built-in settings used as the seed and as the fallback on read failure."""
    return {
        CONFIG_EVENT_TYPE: [ConfigItem(**item) for item in DEFAULT_EVENT_TYPES],
        CONFIG_CALENDAR_FILTER: [],
    }


class SystemReader:
    """
    System settings (business spreadsheet) and the user roster (auth
    spreadsheet, falling back to the business one when none is configured).
    """

    def __init__(self, store: CachedStore, auth_store: CachedStore, settings: Settings) -> None:
        self.store = store
        self.auth_store = auth_store
        self.config_range = f"{settings.sheets.system_config}!{_SYSTEM_CONFIG_COLUMNS}"
        self.users_range = f"{settings.sheets.users}!{_USERS_COLUMNS}"

    async def get_system_config(self) -> dict[str, list[ConfigItem]]:
        """
        Enabled settings grouped by type and sorted by order. A repeated item
        overrides the note and order of the earlier one.
        """
        settings = default_system_config()
        try:
            rows = await self.store.fetch(SYSTEM_CONFIG_KEY, self.config_range, _parse_config_row)
        except Exception as exc:
            logger.warning("System config unavailable, using defaults: %s", exc)
            return settings

        for type_, item in rows:
            bucket = settings.setdefault(type_, [])
            existing = next((i for i in bucket if i.value == item.value), None)
            if existing:
                existing.note = item.note
                existing.order = item.order
            else:
                bucket.append(ConfigItem(**vars(item)))

        for bucket in settings.values():
            bucket.sort(key=lambda i: i.order)
        return settings

    async def get_config_note(self, config_type: str, value: str) -> str:
        """Display label for a setting value, or the value itself."""
        config = await self.get_system_config()
        for item in config.get(config_type, []):
            if item.value == value:
                return item.note
        return value or "N/A"

    async def get_users(self) -> list[User]:
        """User roster with row positions; [] if the auth sheet cannot be read."""
        logger.debug("Reading users from ...%s", self.auth_store.spreadsheet_id[-6:])
        try:
            return await self.auth_store.fetch(USERS_KEY, self.users_range, _parse_user)
        except Exception as exc:
            logger.warning("User roster unavailable: %s", exc)
            return []

    async def find_user(self, username: str, fresh: bool = False) -> Optional[User]:
        """Case-insensitive username lookup; fresh=True drops the cached roster first."""
        if fresh:
            self.invalidate_users()
        wanted = username.strip().lower()
        for user in await self.get_users():
            if user.username.lower() == wanted:
                return user
        return None

    def invalidate_users(self) -> None:
        self.auth_store.invalidate(USERS_KEY)
