"""
GoogleServiceFactory — single credential shared by every reader and writer.

The Sheets service object is built lazily and cached per thread. A service
wraps one httplib2.Http, which is not thread-safe, and the async core runs
transport calls on worker threads; each worker therefore gets its own
service while all of them share one credential (one auth flow).

Usage:
    factory = GoogleServiceFactory(settings)
    sheets_svc = factory.sheets

    # Or pass the factory to the typed transport:
    from crmsheets.sheets_client import SheetsClient
    client = SheetsClient(factory)
"""
from __future__ import annotations

import threading
from typing import Any, Optional

from google.auth.credentials import Credentials
from googleapiclient.discovery import build

from .config import Settings
from .google_auth import SHEETS_SCOPES, get_credentials


class GoogleServiceFactory:
    """
    Constructs and caches Google API service objects from a single credential.

    Service objects are built at most once per (api_name, version) pair per thread.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        scopes: Optional[list[str]] = None,
    ) -> None:
        self._settings = settings
        self._scopes: list[str] = scopes or SHEETS_SCOPES
        self._creds: Optional[Credentials] = None
        self._creds_lock = threading.Lock()
        self._local = threading.local()

    # ── Credentials ───────────────────────────────────────────────────────────

    @property
    def credentials(self) -> Credentials:
        """Return valid (auto-refreshed) credentials."""
        with self._creds_lock:
            if self._creds is None or not self._creds.valid:
                self._creds = get_credentials(self._scopes, self._settings)
            return self._creds

    # ── Internal builder ──────────────────────────────────────────────────────

    def _build(self, name: str, version: str) -> Any:
        """Build and cache a googleapiclient service object for the calling thread."""
        services = getattr(self._local, "services", None)
        if services is None:
            services = self._local.services = {}
        key = f"{name}/{version}"
        if key not in services:
            services[key] = build(
                name, version, credentials=self.credentials, cache_discovery=False
            )
        return services[key]

    # ── Service properties ────────────────────────────────────────────────────

    @property
    def sheets(self) -> Any:
        """Google Sheets API v4 service object."""
        return self._build("sheets", "v4")
