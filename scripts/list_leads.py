"""
Inspect leads already in Instantly.

Usage:
    python scripts/list_leads.py --campaign-id <uuid>
    python scripts/list_leads.py --campaign-id <uuid> --max 200
    python scripts/list_leads.py --email jane@acme.com [--campaign-id <uuid>]
"""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from leadflow.errors import LeadflowError
from leadflow.services.instantly_leads import fetch_all_leads, get_lead_by_email

SEP = "─" * 64


def _ok(label: str, value: str) -> None:
    print(f"  ✓ {label:<20} {value}")


def _fail(label: str, value: str) -> None:
    print(f"  ✗ {label:<20} {value}")


async def main(campaign_id: str | None, email: str | None, max_leads: int) -> int:
    print(f"\n{SEP}")

    if email:
        try:
            lead = await get_lead_by_email(email, campaign_id)
        except LeadflowError as e:
            _fail("Lookup", str(e))
            return 1
        if lead is None:
            _fail("Lead", f"{email} not found")
            return 0
        _ok("Lead", lead.email)
        _ok("Name", " ".join(p for p in (lead.first_name, lead.last_name) if p) or "-")
        _ok("Company", lead.company_name or "-")
        _ok("Campaign", lead.campaign or lead.campaign_id or "-")
        return 0

    page = await fetch_all_leads(campaign_id, max_leads=max_leads)
    if page.error:
        _fail("List", page.error)
    _ok("Leads", f"{len(page.leads)}{'+' if page.has_more else ''}")
    for lead in page.leads:
        name = " ".join(p for p in (lead.first_name, lead.last_name) if p)
        print(f"    {lead.email:<40} {name}")
    return 1 if page.error else 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="List or look up Instantly leads.")
    parser.add_argument("--campaign-id", default=None, help="Restrict to one campaign")
    parser.add_argument("--email", default=None, help="Look up a single email instead of listing")
    parser.add_argument("--max", type=int, default=1000, dest="max_leads", help="Max leads to list (default: 1000)")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.campaign_id, args.email, args.max_leads)))
