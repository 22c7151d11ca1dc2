"""
Runtime configuration for the CRM data-access core.

Values come from the process environment, optionally seeded from a .env file
(CRMSHEETS_ENV_FILE, default ./.env). Everything a reader or writer needs to
address the spreadsheet lives on Settings so tests can build one directly.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

DEFAULT_CACHE_DURATION = 300.0  # seconds

# ── Tab names ─────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class SheetNames:
    """Worksheet tab titles inside the business (and auth) spreadsheet."""

    companies: str = "Companies"
    contacts: str = "Contacts"
    raw_contacts: str = "RawContacts"
    opportunities: str = "Opportunities"
    interactions: str = "Interactions"
    event_logs: str = "EventLogs"
    weekly_business: str = "WeeklyBusiness"
    announcements: str = "Announcements"
    system_config: str = "SystemConfig"
    users: str = "Users"

    @classmethod
    def from_env(cls) -> "SheetNames":
        """Apply SHEET_<FIELD> overrides, e.g. SHEET_COMPANIES=公司總表."""
        overrides = {}
        for name in cls.__dataclass_fields__:
            value = os.environ.get(f"SHEET_{name.upper()}")
            if value:
                overrides[name] = value
        return cls(**overrides)


# ── System config keys and defaults ───────────────────────────────────────────

CONFIG_EVENT_TYPE = "EventType"
CONFIG_CALENDAR_FILTER = "CalendarFilterRule"
CONFIG_CUSTOMER_STAGE = "CustomerStage"
CONFIG_ENGAGEMENT_RATING = "EngagementRating"
CONFIG_COMPANY_TYPE = "CompanyType"

DEFAULT_EVENT_TYPES: list[dict[str, Any]] = [
    {"value": "general", "note": "General", "order": 1, "color": "#6c757d"},
    {"value": "iot",     "note": "IOT",     "order": 2, "color": "#007bff"},
    {"value": "dt",      "note": "DT",      "order": 3, "color": "#28a745"},
    {"value": "dx",      "note": "DX",      "order": 4, "color": "#ffc107"},
    {"value": "legacy",  "note": "Legacy",  "order": 5, "color": "#dc3545"},
]

# Used by quick-create so new companies never land half-classified
QUICK_CREATE_DEFAULTS: dict[str, str] = {
    "company_type": "Unclassified",
    "customer_stage": "01_initial_contact",
    "engagement_rating": "C",
}

# Legacy sheets carry the Chinese labels; newer rows use the English ones.
ARCHIVED_STATUSES = frozenset({"archived", "已封存"})
CANCELLED_STATUSES = frozenset({"cancelled", "canceled", "已取消"})
TERMINAL_STATUSES = ARCHIVED_STATUSES | CANCELLED_STATUSES

DEFAULT_OPPORTUNITY_STAGE = "01_initial_contact"
DEFAULT_OPPORTUNITY_STATUS = "open"
SYSTEM_EVENT_TYPE = "system"


def is_terminal_status(status: str) -> bool:
    return (status or "").strip().lower() in TERMINAL_STATUSES


def is_archived_status(status: str) -> bool:
    return (status or "").strip().lower() in ARCHIVED_STATUSES


# ── Settings ──────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Settings:
    """
    Addressing and cache policy for the data-access core.

    spreadsheet_id holds the business tables; auth_spreadsheet_id, when set,
    holds the user roster instead. cache_duration is the TTL in seconds.
    """

    spreadsheet_id: str
    auth_spreadsheet_id_override: Optional[str] = None
    cache_duration: float = DEFAULT_CACHE_DURATION
    sheets: SheetNames = field(default_factory=SheetNames)
    service_account_file: Optional[str] = None
    client_secret_file: Optional[str] = None
    token_file: Optional[str] = None

    @property
    def auth_spreadsheet_id(self) -> str:
        """Spreadsheet holding users: the dedicated auth sheet, else the business one."""
        return self.auth_spreadsheet_id_override or self.spreadsheet_id

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """Load .env (if present) and build Settings from the environment."""
        path = env_file or os.environ.get("CRMSHEETS_ENV_FILE", ".env")
        load_dotenv(Path(path).expanduser())

        spreadsheet_id = os.environ.get("SPREADSHEET_ID", "")
        if not spreadsheet_id:
            raise ValueError("SPREADSHEET_ID is not set (environment or .env)")

        ttl_raw = os.environ.get("CACHE_DURATION_SECONDS")
        return cls(
            spreadsheet_id=spreadsheet_id,
            auth_spreadsheet_id_override=os.environ.get("AUTH_SPREADSHEET_ID") or None,
            cache_duration=float(ttl_raw) if ttl_raw else DEFAULT_CACHE_DURATION,
            sheets=SheetNames.from_env(),
            service_account_file=os.environ.get("GOOGLE_SERVICE_ACCOUNT_FILE") or None,
            client_secret_file=os.environ.get("GOOGLE_CLIENT_SECRET_FILE") or None,
            token_file=os.environ.get("GOOGLE_TOKEN_FILE") or None,
        )
