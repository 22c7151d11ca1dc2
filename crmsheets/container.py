"""
ServiceContainer — wires one shared transport client into every reader and writer.

build_services() is pure composition and takes any SheetsClient-shaped
transport, which is how tests run the whole stack against an in-memory sheet.
initialize_services() builds the process-wide container once from Settings.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from .cache import TTLCache
from .company_service import CompanyService
from .config import Settings
from .google_factory import GoogleServiceFactory
from .locks import KeyedLock
from .readers import (
    AnnouncementReader,
    CompanyReader,
    ContactReader,
    EventLogReader,
    InteractionReader,
    OpportunityReader,
    SystemReader,
    WeeklyBusinessReader,
)
from .sheets_client import SheetsClient
from .store import CachedStore, RowWriter, Transport
from .writers import (
    AnnouncementWriter,
    CompanyWriter,
    ContactWriter,
    EventLogWriter,
    InteractionWriter,
    OpportunityWriter,
    SystemWriter,
    WeeklyBusinessWriter,
)

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """The application's service registry."""

    settings: Settings
    client: Transport
    cache: TTLCache

    company_reader: CompanyReader
    contact_reader: ContactReader
    opportunity_reader: OpportunityReader
    interaction_reader: InteractionReader
    event_log_reader: EventLogReader
    system_reader: SystemReader
    weekly_business_reader: WeeklyBusinessReader
    announcement_reader: AnnouncementReader

    company_writer: CompanyWriter
    contact_writer: ContactWriter
    opportunity_writer: OpportunityWriter
    interaction_writer: InteractionWriter
    event_log_writer: EventLogWriter
    system_writer: SystemWriter
    weekly_business_writer: WeeklyBusinessWriter
    announcement_writer: AnnouncementWriter

    company_service: CompanyService


def build_services(
    client: Transport,
    settings: Settings,
    clock: Callable[[], float] = time.monotonic,
) -> ServiceContainer:
    """Compose readers, writers and the company service over one transport client."""
    cache = TTLCache(settings.cache_duration, clock=clock)
    store = CachedStore(client, settings.spreadsheet_id, cache)
    auth_store = CachedStore(client, settings.auth_spreadsheet_id, cache)
    writer = RowWriter(store)

    company_reader = CompanyReader(store, settings)
    contact_reader = ContactReader(store, settings)
    opportunity_reader = OpportunityReader(store, settings)
    interaction_reader = InteractionReader(store, settings)
    event_log_reader = EventLogReader(store, settings)
    system_reader = SystemReader(store, auth_store, settings)
    weekly_business_reader = WeeklyBusinessReader(store, settings)
    announcement_reader = AnnouncementReader(store, settings)

    company_writer = CompanyWriter(writer, company_reader, KeyedLock())
    interaction_writer = InteractionWriter(writer, interaction_reader)

    return ServiceContainer(
        settings=settings,
        client=client,
        cache=cache,
        company_reader=company_reader,
        contact_reader=contact_reader,
        opportunity_reader=opportunity_reader,
        interaction_reader=interaction_reader,
        event_log_reader=event_log_reader,
        system_reader=system_reader,
        weekly_business_reader=weekly_business_reader,
        announcement_reader=announcement_reader,
        company_writer=company_writer,
        contact_writer=ContactWriter(writer, contact_reader),
        opportunity_writer=OpportunityWriter(writer, opportunity_reader),
        interaction_writer=interaction_writer,
        event_log_writer=EventLogWriter(writer, event_log_reader),
        system_writer=SystemWriter(RowWriter(auth_store), system_reader),
        weekly_business_writer=WeeklyBusinessWriter(writer, weekly_business_reader),
        announcement_writer=AnnouncementWriter(writer, announcement_reader),
        company_service=CompanyService(
            company_reader=company_reader,
            contact_reader=contact_reader,
            opportunity_reader=opportunity_reader,
            interaction_reader=interaction_reader,
            event_log_reader=event_log_reader,
            system_reader=system_reader,
            company_writer=company_writer,
            interaction_writer=interaction_writer,
        ),
    )


# ── Process-wide container ────────────────────────────────────────────────────

_services: Optional[ServiceContainer] = None


def initialize_services(settings: Optional[Settings] = None) -> ServiceContainer:
    """Build the container on first call (from the environment if no settings); reuse after."""
    global _services
    if _services is not None:
        return _services

    settings = settings or Settings.from_env()
    logger.info("Initializing services (spreadsheet ...%s)", settings.spreadsheet_id[-6:])
    client = SheetsClient(GoogleServiceFactory(settings))
    _services = build_services(client, settings)
    logger.info("Services ready")
    return _services


def reset_services() -> None:
    """Forget the process-wide container (tests, credential rotation)."""
    global _services
    _services = None
