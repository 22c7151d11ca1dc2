"""Tests for the entity readers and the system reader's degraded modes."""

from __future__ import annotations

import pytest

from crmsheets.config import CONFIG_CUSTOMER_STAGE, CONFIG_EVENT_TYPE, Settings
from crmsheets.container import build_services
from crmsheets.models import (
    Announcement,
    Company,
    Contact,
    PotentialContact,
    RowRef,
    WeeklyBusinessEntry,
)
from crmsheets.readers import full_range
from fakes import AUTH, BIZ, FakeSheetsClient, seed_headers


def test_full_range_covers_every_column():
    assert full_range("Companies", Company) == "Companies!A:M"
    assert full_range("Announcements", Announcement) == "Announcements!A:H"


# ── Companies / contacts ──────────────────────────────────────────────────────


async def test_company_lookups(services, fake):
    fake.add_records(
        "Companies",
        Company(company_id="COM1", company_name="Acme Co., Ltd."),
        Company(company_id="COM2", company_name="Beta"),
    )
    reader = services.company_reader

    assert (await reader.get_company("ACME  CO")).company_id == "COM1"
    assert (await reader.get_company_by_id("COM2")).company_name == "Beta"
    assert await reader.get_company("Gamma") is None

    found = await reader.find_company_row("acme")
    assert found.ref == RowRef(BIZ, "Companies", 2)


async def test_contacts_for_company(services, fake):
    fake.add_records(
        "Contacts",
        Contact(contact_id="CON1", name="Ann", company_id="COM1"),
        Contact(contact_id="CON2", name="Bob", company_id="COM2"),
    )

    contacts = await services.contact_reader.get_contacts_for_company("COM1")

    assert [c.name for c in contacts] == ["Ann"]


async def test_raw_contacts_limit_returns_newest(services, fake):
    fake.add_records(
        "RawContacts",
        PotentialContact(created_time="2024-01-01T00:00:00Z", name="Old"),
        PotentialContact(created_time="2024-03-01T00:00:00Z", name="Newest"),
        PotentialContact(created_time="2024/02/01 10:00:00", name="Middle"),
    )
    reader = services.contact_reader

    assert [c.name for c in await reader.get_contacts()] == ["Old", "Newest", "Middle"]
    assert [c.name for c in await reader.get_contacts(limit=2)] == ["Newest", "Middle"]
    lead = await reader.find_contact_by_row(4)
    assert lead.name == "Middle"


# ── Weekly business / announcements ───────────────────────────────────────────


async def test_weekly_entries_filter_by_week(services, fake):
    fake.add_records(
        "WeeklyBusiness",
        WeeklyBusinessEntry(record_id="WK1", week_id="2024-W18", topic="A"),
        WeeklyBusinessEntry(record_id="WK2", week_id="2024-W19", topic="B"),
    )

    entries = await services.weekly_business_reader.get_entries("2024-W19")

    assert [e.topic for e in entries] == ["B"]
    assert len(await services.weekly_business_reader.get_entries()) == 2


async def test_announcements_pinned_first_then_newest(services, fake):
    fake.add_records(
        "Announcements",
        Announcement(announcement_id="ANN1", title="old", created_time="2024-01-01", status="active"),
        Announcement(announcement_id="ANN2", title="new", created_time="2024-03-01", status="active"),
        Announcement(
            announcement_id="ANN3", title="pinned", created_time="2023-01-01",
            status="active", is_pinned="TRUE",
        ),
        Announcement(announcement_id="ANN4", title="gone", created_time="2024-04-01", status="archived"),
    )
    reader = services.announcement_reader

    assert [a.title for a in await reader.get_announcements()] == ["pinned", "new", "old"]
    assert len(await reader.get_announcements(active_only=False)) == 4


# ── System config ─────────────────────────────────────────────────────────────


async def test_system_config_merges_rows_into_defaults(services, fake):
    fake.add_rows(
        "SystemConfig",
        ["EventType", "iot", "9", "TRUE", "IoT Projects"],
        ["EventType", "training", "3", "TRUE", "Training", "#123456"],
        ["CustomerStage", "02_proposal", "2", "TRUE", "Proposal"],
        ["CustomerStage", "01_initial_contact", "x", "TRUE", "Initial contact"],
        ["CustomerStage", "99_hidden", "1", "FALSE", "Hidden"],
    )

    config = await services.system_reader.get_system_config()

    event_types = [(i.value, i.note, i.order) for i in config[CONFIG_EVENT_TYPE]]
    assert ("iot", "IoT Projects", 9) in event_types
    assert event_types[-1] == ("iot", "IoT Projects", 9)
    training = next(i for i in config[CONFIG_EVENT_TYPE] if i.value == "training")
    assert training.color == "#123456"
    assert training.category == "Other"
    assert [i.value for i in config[CONFIG_CUSTOMER_STAGE]] == ["02_proposal", "01_initial_contact"]
    assert config[CONFIG_CUSTOMER_STAGE][1].order == 99


async def test_system_config_defaults_are_not_shared(services, fake):
    fake.add_rows("SystemConfig", ["EventType", "iot", "9", "TRUE", "IoT Projects"])

    first = await services.system_reader.get_system_config()
    first[CONFIG_EVENT_TYPE].clear()
    second = await services.system_reader.get_system_config()

    assert len(second[CONFIG_EVENT_TYPE]) == 5


async def test_system_config_falls_back_to_defaults_on_failure(services, fake):
    fake.fail("read_range", "SystemConfig")

    config = await services.system_reader.get_system_config()

    assert [i.value for i in config[CONFIG_EVENT_TYPE]] == ["general", "iot", "dt", "dx", "legacy"]
    assert config["CalendarFilterRule"] == []


async def test_config_note_lookup(services, fake):
    fake.add_rows("SystemConfig", ["CustomerStage", "02_proposal", "2", "TRUE", "Proposal"])
    reader = services.system_reader

    assert await reader.get_config_note(CONFIG_CUSTOMER_STAGE, "02_proposal") == "Proposal"
    assert await reader.get_config_note(CONFIG_CUSTOMER_STAGE, "unknown") == "unknown"
    assert await reader.get_config_note(CONFIG_CUSTOMER_STAGE, "") == "N/A"


# ── Users ─────────────────────────────────────────────────────────────────────


async def test_users_come_from_auth_spreadsheet(services, fake):
    fake.add_rows(
        "Users",
        ["alice", "hash-a", "Alice"],
        ["", "orphan-hash"],
        ["bob", "hash-b"],
        spreadsheet_id=AUTH,
    )

    users = await services.system_reader.get_users()

    assert [(u.username, u.ref.index) for u in users] == [("alice", 2), ("bob", 4)]
    assert users[0].ref.spreadsheet_id == AUTH
    assert users[1].display_name == ""
    assert (await services.system_reader.find_user("ALICE")).password_hash == "hash-a"
    assert await services.system_reader.find_user("carol") is None


async def test_users_fall_back_to_business_spreadsheet(clock):
    settings = Settings(spreadsheet_id=BIZ)
    client = FakeSheetsClient()
    seed_headers(client, settings)
    client.add_rows("Users", ["alice", "hash-a"], spreadsheet_id=BIZ)
    services = build_services(client, settings, clock=clock)

    users = await services.system_reader.get_users()

    assert users[0].ref == RowRef(BIZ, "Users", 2)


async def test_users_unreadable_returns_empty_roster(services, fake):
    fake.fail("read_range", "Users")

    assert await services.system_reader.get_users() == []
    assert await services.system_reader.find_user("alice") is None


async def test_find_user_fresh_drops_cached_roster(services, fake):
    fake.add_rows("Users", ["alice", "hash-a"], spreadsheet_id=AUTH)
    await services.system_reader.get_users()
    fake.add_rows("Users", ["bob", "hash-b"], spreadsheet_id=AUTH)

    assert await services.system_reader.find_user("bob") is None
    assert (await services.system_reader.find_user("bob", fresh=True)).username == "bob"


async def test_business_read_failure_propagates(services, fake):
    fake.fail("read_range", "Opportunities")

    with pytest.raises(RuntimeError):
        await services.opportunity_reader.get_opportunities()
