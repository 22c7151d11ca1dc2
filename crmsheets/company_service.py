"""
CompanyService — the cross-entity computations the spreadsheet cannot do itself.

Every view here is a join performed in memory over full-table snapshots:
companies ranked by latest activity, the company detail page (contacts,
opportunities, leads, interactions and event logs for one company), and the
referential-integrity checks that gate company deletion.

Audit interactions ("company created", "company deleted", ...) are a
best-effort side channel: they run as background tasks, and a failed audit
is logged but never changes the result of the operation that triggered it.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from .config import (
    CONFIG_COMPANY_TYPE,
    CONFIG_CUSTOMER_STAGE,
    CONFIG_ENGAGEMENT_RATING,
    QUICK_CREATE_DEFAULTS,
    SYSTEM_EVENT_TYPE,
    is_archived_status,
    is_terminal_status,
)
from .errors import BusinessRuleError, RecordNotFoundError
from .matching import CompanyIndex, normalize_company_name
from .models import (
    Company,
    CompanyActivity,
    CompanyDetails,
    CompanyRef,
    CreateResult,
    OpportunityActivity,
)
from .readers import (
    CompanyReader,
    ContactReader,
    EventLogReader,
    InteractionReader,
    OpportunityReader,
    SystemReader,
)
from .timestamps import first_timestamp, latest
from .writers import CompanyWriter, InteractionWriter

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)

# (field, system-config type, label) tracked in the company change log
_TRACKED_CHANGES = (
    ("customer_stage", CONFIG_CUSTOMER_STAGE, "Customer stage"),
    ("engagement_rating", CONFIG_ENGAGEMENT_RATING, "Engagement rating"),
    ("company_type", CONFIG_COMPANY_TYPE, "Company type"),
)


def _recency(value: Optional[datetime]) -> datetime:
    return value or _OLDEST


class CompanyService:
    """
    Company aggregation over the entity readers and writers.

    Usage:
        services = initialize_services()
        ranked   = await services.company_service.get_company_list_with_activity()
        details  = await services.company_service.get_company_details("Acme Co")
    """

    def __init__(
        self,
        company_reader: CompanyReader,
        contact_reader: ContactReader,
        opportunity_reader: OpportunityReader,
        interaction_reader: InteractionReader,
        event_log_reader: EventLogReader,
        system_reader: SystemReader,
        company_writer: CompanyWriter,
        interaction_writer: InteractionWriter,
    ) -> None:
        self.company_reader = company_reader
        self.contact_reader = contact_reader
        self.opportunity_reader = opportunity_reader
        self.interaction_reader = interaction_reader
        self.event_log_reader = event_log_reader
        self.system_reader = system_reader
        self.company_writer = company_writer
        self.interaction_writer = interaction_writer
        self._audit_tasks: set[asyncio.Task] = set()
        self.failed_audits = 0

    # ── Audit side channel ────────────────────────────────────────────────────

    def _log_company_interaction(
        self, company_id: str, title: str, summary: str, modifier: str
    ) -> asyncio.Task:
        """Schedule a system interaction on the company; never raises."""
        task = asyncio.create_task(self._write_audit(company_id, title, summary, modifier))
        self._audit_tasks.add(task)
        task.add_done_callback(self._audit_tasks.discard)
        return task

    async def _write_audit(self, company_id: str, title: str, summary: str, modifier: str) -> None:
        try:
            await self.interaction_writer.create_interaction(
                {
                    "company_id": company_id,
                    "event_type": SYSTEM_EVENT_TYPE,
                    "event_title": title,
                    "content_summary": summary,
                    "recorder": modifier,
                }
            )
        except Exception as exc:
            self.failed_audits += 1
            logger.warning("Company audit log failed (company %s): %s", company_id, exc)

    async def drain_audit(self) -> None:
        """Wait for every scheduled audit write to finish."""
        while self._audit_tasks:
            await asyncio.gather(*list(self._audit_tasks))

    # ── Lookups ───────────────────────────────────────────────────────────────

    async def resolve_company_id(self, name: str) -> Optional[str]:
        """Company id for a free-text name under the normalized-name relation."""
        return CompanyIndex(await self.company_reader.get_company_list()).resolve_company_id(name)

    # ── Create / update ───────────────────────────────────────────────────────

    async def create_company(self, name: str, modifier: str) -> CreateResult:
        """Quick-create with default classification; an existing match is returned as-is."""
        trimmed = (name or "").strip()
        if not trimmed:
            raise BusinessRuleError("Company name must not be empty", code="EMPTY_NAME")

        existing = await self.company_reader.get_company(trimmed)
        if existing is not None:
            return CreateResult(
                created=False,
                company=CompanyRef(
                    id=existing.company_id,
                    name=existing.company_name,
                    row_index=existing.ref.index if existing.ref else None,
                ),
                reason="EXISTS",
            )

        ref = await self.company_writer.get_or_create_company(
            trimmed, {}, modifier, QUICK_CREATE_DEFAULTS
        )
        if not ref.created:
            return CreateResult(created=False, company=ref, reason="EXISTS")

        self._log_company_interaction(
            ref.id, "Company created", f'Quick-created company "{trimmed}"', modifier
        )
        return CreateResult(created=True, company=ref)

    async def update_company(
        self, name: str, patch: Mapping[str, Any], modifier: str
    ) -> Company:
        """Write the patch, then audit changes to stage / rating / type by their labels."""
        if not normalize_company_name(name):
            raise BusinessRuleError("Company name must not be empty", code="EMPTY_NAME")
        original = await self.company_reader.get_company(name)
        if original is None:
            raise RecordNotFoundError(f"Company not found: {name}")

        changes = []
        for field_name, config_type, label in _TRACKED_CHANGES:
            if field_name not in patch:
                continue
            old, new = getattr(original, field_name), str(patch[field_name] or "")
            if new != old:
                old_note = await self.system_reader.get_config_note(config_type, old)
                new_note = await self.system_reader.get_config_note(config_type, new)
                changes.append(f"{label} changed from [{old_note}] to [{new_note}]")

        updated = await self.company_writer.update_company(name, patch, modifier)
        if changes:
            self._log_company_interaction(
                original.company_id, "Company updated", "; ".join(changes), modifier
            )
        return updated

    # ── Ranked list ───────────────────────────────────────────────────────────

    async def get_company_list_with_activity(self) -> list[CompanyActivity]:
        """
        Companies with their latest activity (own update time or any interaction,
        direct or via one of their opportunities) and open-opportunity count,
        most recently active first.
        """
        companies, interactions, opportunities = await asyncio.gather(
            self.company_reader.get_company_list(),
            self.interaction_reader.get_interactions(),
            self.opportunity_reader.get_opportunities(),
        )

        activity: dict[str, Optional[datetime]] = {}
        open_counts: dict[str, int] = {}
        for company in companies:
            activity[company.company_id] = first_timestamp(
                company.last_update_time, company.created_time
            )
            open_counts[company.company_id] = 0

        index = CompanyIndex(companies)
        opportunity_owner: dict[str, str] = {}
        for opp in opportunities:
            company_id = index.resolve_company_id(opp.customer_company)
            if company_id is None:
                continue
            opportunity_owner[opp.opportunity_id] = company_id
            if not is_terminal_status(opp.current_status):
                open_counts[company_id] += 1

        for interaction in interactions:
            company_id = interaction.company_id or opportunity_owner.get(interaction.opportunity_id)
            if company_id not in activity:
                continue
            when = first_timestamp(interaction.interaction_time, interaction.created_time)
            activity[company_id] = latest(activity[company_id], when)

        ranked = [
            CompanyActivity(
                company=company,
                last_activity=activity[company.company_id],
                opportunity_count=open_counts[company.company_id],
            )
            for company in companies
        ]
        ranked.sort(key=lambda c: _recency(c.last_activity), reverse=True)
        return ranked

    # ── Detail view ───────────────────────────────────────────────────────────

    async def get_company_details(self, name: str) -> CompanyDetails:
        """
        Everything linked to one company. A name only known from raw leads comes
        back as a potential (unregistered) company with just those leads.
        """
        companies, contacts, opportunities, potentials, event_logs = await asyncio.gather(
            self.company_reader.get_company_list(),
            self.contact_reader.get_contact_list(),
            self.opportunity_reader.get_opportunities(),
            self.contact_reader.get_contacts(),
            self.event_log_reader.get_event_logs(),
        )
        interactions = await self.interaction_reader.get_interactions()
        logger.info("Computing activity for %d opportunities", len(opportunities))

        latest_by_opportunity: dict[str, Optional[datetime]] = {}
        for interaction in interactions:
            if not interaction.opportunity_id:
                continue
            when = first_timestamp(interaction.interaction_time, interaction.created_time)
            latest_by_opportunity[interaction.opportunity_id] = latest(
                latest_by_opportunity.get(interaction.opportunity_id), when
            )

        key = normalize_company_name(name)
        related_potentials = [
            pc for pc in potentials if pc.company and normalize_company_name(pc.company) == key
        ]

        company = CompanyIndex(companies).find(name)
        if company is None:
            if related_potentials:
                return CompanyDetails(
                    company_name=related_potentials[0].company,
                    is_potential=True,
                    potential_contacts=related_potentials,
                )
            raise RecordNotFoundError(f"Company not found: {name}")

        related_opportunities = [
            OpportunityActivity(
                opportunity=opp,
                effective_last_activity=latest(
                    first_timestamp(opp.last_update_time, opp.created_time),
                    latest_by_opportunity.get(opp.opportunity_id),
                ),
            )
            for opp in opportunities
            if normalize_company_name(opp.customer_company) == key
        ]
        related_opportunities.sort(key=lambda o: _recency(o.effective_last_activity), reverse=True)
        opportunity_ids = {o.opportunity.opportunity_id for o in related_opportunities}

        related_interactions = sorted(
            (
                i for i in interactions
                if i.company_id == company.company_id or i.opportunity_id in opportunity_ids
            ),
            key=lambda i: _recency(first_timestamp(i.interaction_time, i.created_time)),
            reverse=True,
        )
        related_logs = sorted(
            (log for log in event_logs if log.company_id == company.company_id),
            key=lambda log: _recency(first_timestamp(log.last_modified_time, log.created_time)),
            reverse=True,
        )
        details = CompanyDetails(
            company_name=company.company_name,
            company=company,
            contacts=[c for c in contacts if c.company_id == company.company_id],
            opportunities=related_opportunities,
            potential_contacts=related_potentials,
            interactions=related_interactions,
            event_logs=related_logs,
        )
        logger.info(
            "Company details for %s: %d contacts, %d opportunities, %d interactions, %d event logs",
            company.company_name,
            len(details.contacts),
            len(details.opportunities),
            len(details.interactions),
            len(details.event_logs),
        )
        return details

    # ── Delete ────────────────────────────────────────────────────────────────

    async def delete_company(self, name: str, modifier: str) -> str:
        """
        Delete a company once nothing references it: no non-archived opportunity
        and no company-scoped event log. Returns the deleted company id.
        """
        logger.info("Delete requested for company %s by %s", name, modifier)
        key = normalize_company_name(name)
        if not key:
            raise BusinessRuleError("Company name must not be empty", code="EMPTY_NAME")

        opportunities = await self.opportunity_reader.get_opportunities()
        blocking = [
            o for o in opportunities
            if normalize_company_name(o.customer_company) == key
            and not is_archived_status(o.current_status)
        ]
        if blocking:
            raise BusinessRuleError(
                f"Cannot delete {name}: {len(blocking)} linked opportunities remain",
                code="HAS_OPPORTUNITIES",
            )

        company = await self.company_reader.get_company(name)
        if company is not None:
            event_logs = await self.event_log_reader.get_event_logs()
            company_logs = [
                log for log in event_logs
                if not log.opportunity_id and log.company_id == company.company_id
            ]
            if company_logs:
                raise BusinessRuleError(
                    f"Cannot delete {name}: {len(company_logs)} event logs remain",
                    code="HAS_EVENT_LOGS",
                )
            self._log_company_interaction(
                company.company_id,
                "Company deleted",
                f"Company {name} (ID: {company.company_id}) deletion requested by {modifier}",
                modifier,
            )

        deleted_id = await self.company_writer.delete_company(name)
        logger.info("Company %s deleted", name)
        return deleted_id
