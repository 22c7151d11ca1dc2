"""
Typed data models for every CRM table.

All classes are plain dataclasses. For the sheet-backed records, field order
mirrors the worksheet column order (column A first); the trailing ``ref`` field
is not a column but the row position the record was loaded from.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Optional, Type, TypeVar

T = TypeVar("T")


# ── Row addressing ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RowRef:
    """Physical position of a record: 1-based row ``index`` on ``sheet`` in ``spreadsheet_id``."""

    spreadsheet_id: str
    sheet: str
    index: int

    def a1(self, first_col: str = "A", last_col: Optional[str] = None) -> str:
        """A1 range covering this row, e.g. ``Companies!A7:M7``."""
        end = f":{last_col}{self.index}" if last_col else ""
        return f"{self.sheet}!{first_col}{self.index}{end}"


@dataclass
class FoundRow:
    """A raw, unparsed row located by a linear scan."""

    ref: RowRef
    values: list[str]


# ── Column mapping ────────────────────────────────────────────────────────────

def column_names(cls: type) -> list[str]:
    """Column-backed field names of a record class, in sheet order."""
    return [f.name for f in fields(cls) if f.name != "ref"]


def record_from_row(cls: Type[T], row: list[Any], ref: Optional[RowRef] = None) -> T:
    """Build a record from a ragged sheet row; missing trailing cells become ""."""
    names = column_names(cls)
    values = {
        name: (str(row[i]) if i < len(row) and row[i] is not None else "")
        for i, name in enumerate(names)
    }
    return cls(**values, ref=ref)  # type: ignore[call-arg]


def record_to_row(record: Any) -> list[str]:
    """Serialize a record back to its full column list."""
    return [getattr(record, name) for name in column_names(type(record))]


def column_letter(index: int) -> str:
    """0-based column index to A1 letters (0 → A, 25 → Z, 26 → AA)."""
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(65 + rem) + letters
    return letters


def last_column(cls: type) -> str:
    return column_letter(len(column_names(cls)) - 1)


# ── Companies ─────────────────────────────────────────────────────────────────

@dataclass
class Company:
    """One row of the company master list (columns A:M)."""

    company_id: str = ""
    company_name: str = ""
    phone: str = ""
    address: str = ""
    created_time: str = ""
    last_update_time: str = ""
    county: str = ""
    creator: str = ""
    last_modifier: str = ""
    introduction: str = ""
    company_type: str = ""
    customer_stage: str = ""
    engagement_rating: str = ""
    ref: Optional[RowRef] = None


# ── Contacts ──────────────────────────────────────────────────────────────────

@dataclass
class Contact:
    """An established contact, linked to a company by ``company_id`` (columns A:M)."""

    contact_id: str = ""
    source_id: str = ""
    name: str = ""
    company_id: str = ""
    department: str = ""
    position: str = ""
    mobile: str = ""
    phone: str = ""
    email: str = ""
    created_time: str = ""
    last_update_time: str = ""
    creator: str = ""
    last_modifier: str = ""
    ref: Optional[RowRef] = None


@dataclass
class PotentialContact:
    """
    A raw business-card lead (columns A:M). ``company`` is free text and not yet
    linked to any Company record.
    """

    created_time: str = ""
    name: str = ""
    company: str = ""
    position: str = ""
    department: str = ""
    phone: str = ""
    mobile: str = ""
    email: str = ""
    address: str = ""
    drive_link: str = ""
    status: str = ""
    line_user_id: str = ""
    user_nickname: str = ""
    ref: Optional[RowRef] = None


# ── Opportunities ─────────────────────────────────────────────────────────────

@dataclass
class Opportunity:
    """
    A sales opportunity (columns A:O). ``customer_company`` is the company *name*,
    not its id; joins go through crmsheets.matching.
    """

    opportunity_id: str = ""
    opportunity_name: str = ""
    customer_company: str = ""
    main_contact: str = ""
    assignee: str = ""
    opportunity_type: str = ""
    opportunity_source: str = ""
    current_stage: str = ""
    expected_close_date: str = ""
    opportunity_value: str = ""
    current_status: str = ""
    created_time: str = ""
    last_update_time: str = ""
    last_modifier: str = ""
    county: str = ""
    ref: Optional[RowRef] = None


# ── Activity ──────────────────────────────────────────────────────────────────

@dataclass
class Interaction:
    """An interaction, owned by an opportunity and/or a company (columns A:M)."""

    interaction_id: str = ""
    opportunity_id: str = ""
    interaction_time: str = ""
    event_type: str = ""
    event_title: str = ""
    content_summary: str = ""
    participants: str = ""
    next_action: str = ""
    attachment: str = ""
    calendar_event_id: str = ""
    recorder: str = ""
    created_time: str = ""
    company_id: str = ""
    ref: Optional[RowRef] = None


@dataclass
class EventLog:
    """An event report (columns A:I); company-scoped when ``opportunity_id`` is empty."""

    event_id: str = ""
    event_name: str = ""
    opportunity_id: str = ""
    company_id: str = ""
    creator: str = ""
    created_time: str = ""
    last_modified_time: str = ""
    event_type: str = ""
    content: str = ""
    ref: Optional[RowRef] = None


@dataclass
class WeeklyBusinessEntry:
    """A weekly business-review line item (columns A:K)."""

    record_id: str = ""
    entry_date: str = ""
    week_id: str = ""
    category: str = ""
    topic: str = ""
    participants: str = ""
    summary: str = ""
    todo: str = ""
    created_time: str = ""
    last_update_time: str = ""
    creator: str = ""
    ref: Optional[RowRef] = None


@dataclass
class Announcement:
    """A bulletin-board post (columns A:H)."""

    announcement_id: str = ""
    title: str = ""
    content: str = ""
    creator: str = ""
    created_time: str = ""
    last_update_time: str = ""
    status: str = ""
    is_pinned: str = ""
    ref: Optional[RowRef] = None

    @property
    def pinned(self) -> bool:
        return self.is_pinned.strip().upper() == "TRUE"


# ── System ────────────────────────────────────────────────────────────────────

@dataclass
class ConfigItem:
    """One enabled entry of the system settings sheet, grouped by type."""

    value: str
    note: str
    order: int = 99
    color: Optional[str] = None
    value2: Optional[str] = None
    value3: Optional[str] = None
    category: str = "Other"


@dataclass
class User:
    """A login roster row. ``ref`` is load-bearing: password updates address it."""

    username: str
    password_hash: str
    display_name: str = ""
    ref: Optional[RowRef] = None


# ── Aggregated views ──────────────────────────────────────────────────────────

@dataclass
class CompanyActivity:
    """A company annotated with its latest activity and open-opportunity count."""

    company: Company
    last_activity: Optional[datetime]
    opportunity_count: int = 0


@dataclass
class OpportunityActivity:
    """An opportunity with max(own update time, latest related interaction)."""

    opportunity: Opportunity
    effective_last_activity: Optional[datetime]


@dataclass
class CompanyDetails:
    """Join-shaped view of one company and everything linked to it."""

    company_name: str
    company: Optional[Company] = None
    is_potential: bool = False
    contacts: list[Contact] = field(default_factory=list)
    opportunities: list[OpportunityActivity] = field(default_factory=list)
    potential_contacts: list[PotentialContact] = field(default_factory=list)
    interactions: list[Interaction] = field(default_factory=list)
    event_logs: list[EventLog] = field(default_factory=list)

    @property
    def company_id(self) -> Optional[str]:
        return self.company.company_id if self.company else None


@dataclass
class CompanyRef:
    """Identity returned by find-or-create."""

    id: str
    name: str
    row_index: Optional[int]
    created: bool = False


@dataclass
class CreateResult:
    """Outcome of a quick-create: either the new company or the existing one."""

    created: bool
    company: CompanyRef
    reason: str = ""
