"""
Google credential helper with token persistence.

Two sources, tried in order:
  1. A service-account JSON key (GOOGLE_SERVICE_ACCOUNT_FILE) — servers, CI.
  2. An installed-app OAuth token persisted to GOOGLE_TOKEN_FILE, refreshed
     silently or re-authorized through the browser flow.

Usage:
    from crmsheets.google_auth import get_credentials
    creds = get_credentials(SHEETS_SCOPES, settings)
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from google.auth.credentials import Credentials as BaseCredentials
from google.auth.transport.requests import Request
from google.oauth2 import service_account
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow

from .config import Settings

logger = logging.getLogger(__name__)

SHEETS_SCOPES: list[str] = ["https://www.googleapis.com/auth/spreadsheets"]

DEFAULT_CLIENT_SECRET_FILE = str(Path("~/cred/google_oauth_client.json").expanduser())
DEFAULT_TOKEN_FILE = str(Path("~/cred/crmsheets_token.json").expanduser())


def get_credentials(
    scopes: list[str], settings: Optional[Settings] = None
) -> BaseCredentials:
    """
    Return valid Google credentials for the given scopes.
    The browser flow only runs on first use or if the stored token is revoked.
    """
    sa_file = settings.service_account_file if settings else None
    if sa_file:
        logger.info("Using service account credentials from %s", sa_file)
        return service_account.Credentials.from_service_account_file(sa_file, scopes=scopes)

    client_secret_file = (
        (settings.client_secret_file if settings else None) or DEFAULT_CLIENT_SECRET_FILE
    )
    token_file = (settings.token_file if settings else None) or DEFAULT_TOKEN_FILE

    creds = None
    if os.path.exists(token_file):
        creds = Credentials.from_authorized_user_file(token_file, scopes)

    if not creds or not creds.valid:
        if creds and creds.expired and creds.refresh_token:
            creds.refresh(Request())
            logger.info("Token refreshed silently")
        else:
            flow = InstalledAppFlow.from_client_secrets_file(client_secret_file, scopes)
            creds = flow.run_local_server(port=0)
            logger.info("OAuth flow completed")

        Path(token_file).parent.mkdir(parents=True, exist_ok=True)
        with open(token_file, "w") as f:
            f.write(creds.to_json())
        logger.info("Token saved to %s", token_file)

    return creds
