"""
Company Digest — ranked company activity, or one company's detail view, as JSON.

Usage:
    python scripts/company_digest.py                  # top 20 companies by activity
    python scripts/company_digest.py --limit 50
    python scripts/company_digest.py --company "Acme Co"
    python scripts/company_digest.py --debug

Configuration comes from the environment / .env (see crmsheets.config).
"""
from __future__ import annotations

import argparse
from typing import Any

from crmsheets.base import BaseScript
from crmsheets.container import initialize_services
from crmsheets.models import CompanyActivity, CompanyDetails


class CompanyDigest(BaseScript):
    """
    Company activity digest.

    Output schema (list mode):
        {
            "company_count": int,
            "companies": [ { company_id, company_name, customer_stage,
                             last_activity, opportunity_count } ]
        }

    Output schema (--company):
        {
            "company": { ... } | null,
            "is_potential": bool,
            "contacts": int, "opportunities": [ ... ], "potential_contacts": int,
            "interactions": int, "event_logs": int
        }
    """

    @classmethod
    def add_arguments(cls, parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--company", metavar="NAME", help="Show one company's detail view")
        parser.add_argument(
            "--limit", type=int, default=20, metavar="N",
            help="How many companies to list (default: 20)",
        )

    # ── run() ─────────────────────────────────────────────────────────────────

    async def run(self) -> dict[str, Any]:
        services = initialize_services()
        company_service = services.company_service

        if getattr(self.args, "company", None):
            self.logger.info("Building detail view for %s", self.args.company)
            details = await company_service.get_company_details(self.args.company)
            return _fmt_details(details)

        ranked = await company_service.get_company_list_with_activity()
        limit = getattr(self.args, "limit", 20)
        self.logger.info("Ranked %d companies, showing %d", len(ranked), min(limit, len(ranked)))
        return {
            "company_count": len(ranked),
            "companies": [_fmt_activity(c) for c in ranked[:limit]],
        }


# ── Formatters ────────────────────────────────────────────────────────────────

def _fmt_activity(item: CompanyActivity) -> dict:
    return {
        "company_id":        item.company.company_id,
        "company_name":      item.company.company_name,
        "customer_stage":    item.company.customer_stage,
        "last_activity":     item.last_activity.isoformat() if item.last_activity else None,
        "opportunity_count": item.opportunity_count,
    }


def _fmt_details(details: CompanyDetails) -> dict:
    company = details.company
    return {
        "company": {
            "company_id":   company.company_id,
            "company_name": company.company_name,
            "phone":        company.phone,
            "address":      company.address,
            "company_type": company.company_type,
        } if company else None,
        "company_name": details.company_name,
        "is_potential": details.is_potential,
        "contacts": len(details.contacts),
        "opportunities": [
            {
                "opportunity_id":   o.opportunity.opportunity_id,
                "opportunity_name": o.opportunity.opportunity_name,
                "current_status":   o.opportunity.current_status,
                "effective_last_activity": (
                    o.effective_last_activity.isoformat() if o.effective_last_activity else None
                ),
            }
            for o in details.opportunities
        ],
        "potential_contacts": len(details.potential_contacts),
        "interactions": len(details.interactions),
        "event_logs": len(details.event_logs),
    }


if __name__ == "__main__":
    CompanyDigest.main()
