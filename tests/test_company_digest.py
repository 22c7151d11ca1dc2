"""Tests for the company digest script."""

from __future__ import annotations

import importlib.util
import json
import logging
from pathlib import Path

import pytest

from crmsheets.errors import RecordNotFoundError
from crmsheets.models import Company, Opportunity, PotentialContact

SCRIPT = Path(__file__).resolve().parents[1] / "scripts" / "company_digest.py"


@pytest.fixture
def digest(monkeypatch, tmp_path, services):
    monkeypatch.setenv("CRMSHEETS_LOG_DIR", str(tmp_path))
    spec = importlib.util.spec_from_file_location("company_digest", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    monkeypatch.setattr(module, "initialize_services", lambda: services)

    root = logging.getLogger("crmsheets")
    saved = list(root.handlers)
    root.handlers.clear()
    yield module
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = saved


def test_lists_companies_by_activity(digest, fake, tmp_path, capsys):
    fake.add_records(
        "Companies",
        Company(company_id="COM1", company_name="Acme", last_update_time="2024-01-01T00:00:00Z"),
        Company(company_id="COM2", company_name="Beta", last_update_time="2024-05-01T00:00:00Z"),
    )
    fake.add_records("Opportunities", Opportunity(opportunity_id="OPP1", customer_company="acme co"))

    result = digest.CompanyDigest.main(["--limit", "1"])

    assert result["company_count"] == 2
    assert [c["company_id"] for c in result["companies"]] == ["COM2"]
    assert result["companies"][0]["last_activity"].startswith("2024-05-01")
    printed = json.loads(capsys.readouterr().out)
    assert printed == result
    assert (tmp_path / "companydigest.log").exists()


def test_company_detail_mode(digest, fake):
    fake.add_records("RawContacts", PotentialContact(name="Eve", company="Delta Ltd"))

    result = digest.CompanyDigest.main(["--company", "Delta"])

    assert result["company"] is None
    assert result["is_potential"] is True
    assert result["potential_contacts"] == 1


def test_failure_is_logged_and_raised(digest):
    with pytest.raises(RecordNotFoundError):
        digest.CompanyDigest.main(["--company", "Nowhere"])
