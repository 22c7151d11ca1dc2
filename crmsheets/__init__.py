"""
CRM Sheets — spreadsheet-backed CRM data-access core.

Package structure:
    crmsheets.config           — Settings (env / .env driven), tab names, defaults
    crmsheets.google_auth      — credential acquisition (service account or OAuth token)
    crmsheets.google_factory   — GoogleServiceFactory (single credential, lazy Sheets service)
    crmsheets.sheets_client    — SheetsClient (synchronous range transport)
    crmsheets.errors           — CrmError hierarchy
    crmsheets.models           — Typed dataclasses (Company, Contact, Opportunity, ...)
    crmsheets.cache            — TTLCache
    crmsheets.locks            — KeyedLock (per-key asyncio locks)
    crmsheets.store            — CachedStore / RowWriter primitives
    crmsheets.matching         — company-name normalization and name→id resolution
    crmsheets.readers          — entity readers
    crmsheets.writers          — entity writers
    crmsheets.company_service  — CompanyService (cross-entity aggregation)
    crmsheets.container        — ServiceContainer wiring
    crmsheets.base             — BaseScript abstract class (logging, timing, CLI)
"""
