"""
One-shot campaign run: fetch → filter → dedupe → send in a single call,
without stage state or persistence.

Useful for scheduled runs where nobody is around to re-run a stage by hand.
Returns plain counters; nothing is stored locally.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel

from leadflow.errors import PreconditionError, UpstreamError
from leadflow.models.contact import MAX_DAILY_LIMIT, is_valid_email, normalize_email
from leadflow.services.apollo_client import fetch_contacts
from leadflow.services.bulk_sender import send_bulk_to_instantly
from leadflow.services.contact_filter import filter_contacts, remove_duplicate_emails
from leadflow.services.instantly_leads import get_leads_batch

logger = logging.getLogger(__name__)


class CampaignRunRequest(BaseModel):
    apollo_filters: dict[str, Any]
    instantly_campaign_id: str
    daily_limit: int
    test_mode: bool
    test_email: Optional[str] = None


class CampaignRunResponse(BaseModel):
    fetched: int = 0
    verified: int = 0
    skipped_duplicates: int = 0
    sent: int = 0
    test_sent: int = 0
    errors: int = 0


def validate_run_request(body: Any) -> CampaignRunRequest:
    """
    Check a raw (JSON-decoded) run request and return it typed.

    Raises:
        PreconditionError: With a message naming the offending field.
    """
    if not body or not isinstance(body, dict):
        raise PreconditionError("Request body is required")

    filters = body.get("apollo_filters")
    if not isinstance(filters, dict):
        raise PreconditionError("apollo_filters is required and must be an object")

    campaign_id = body.get("instantly_campaign_id")
    if not campaign_id or not isinstance(campaign_id, str):
        raise PreconditionError("instantly_campaign_id is required")
    if not campaign_id.strip():
        raise PreconditionError("instantly_campaign_id cannot be empty")

    daily_limit = body.get("daily_limit")
    if isinstance(daily_limit, bool) or not isinstance(daily_limit, int) or daily_limit <= 0:
        raise PreconditionError("daily_limit must be a positive number")
    if daily_limit > MAX_DAILY_LIMIT:
        raise PreconditionError(f"daily_limit cannot exceed {MAX_DAILY_LIMIT}")

    test_mode = body.get("test_mode")
    if not isinstance(test_mode, bool):
        raise PreconditionError("test_mode must be a boolean")

    test_email = body.get("test_email")
    if test_mode:
        if not test_email or not isinstance(test_email, str):
            raise PreconditionError("test_email is required when test_mode is true")
        if not is_valid_email(test_email.strip()):
            raise PreconditionError("test_email must be a valid email address")

    return CampaignRunRequest(
        apollo_filters=filters,
        instantly_campaign_id=campaign_id.strip(),
        daily_limit=daily_limit,
        test_mode=test_mode,
        test_email=test_email.strip() if isinstance(test_email, str) else None,
    )


async def run_campaign(request: CampaignRunRequest) -> CampaignRunResponse:
    """
    Run all four steps for ``request`` and return the counters.

    Raises:
        UpstreamError: If Apollo fails (``details`` carries Apollo's message).
        ConfigurationError: If Instantly is not configured and dedupe is needed.
    """
    response = CampaignRunResponse()

    logger.info("Fetching up to %d contacts from Apollo", request.daily_limit)
    fetched = await fetch_contacts(request.apollo_filters, request.daily_limit)
    if fetched.error:
        raise UpstreamError("Failed to fetch contacts from Apollo", details=fetched.error)

    response.fetched = fetched.total_fetched
    if not fetched.contacts:
        logger.info("No contacts matched the filters")
        return response

    filtered = filter_contacts(fetched.contacts)
    response.verified = len(filtered.valid_contacts)
    logger.info(
        "%d verified; filtered out %d no-email, %d unverified, %d generic",
        response.verified,
        filtered.filtered_out.no_email,
        filtered.filtered_out.unverified,
        filtered.filtered_out.generic,
    )
    if not filtered.valid_contacts:
        return response

    contacts = remove_duplicate_emails(filtered.valid_contacts)

    if not request.test_mode:
        existing = await get_leads_batch([c.email for c in contacts], request.instantly_campaign_id)
        fresh = [c for c in contacts if normalize_email(c.email) not in existing]
        response.skipped_duplicates = len(contacts) - len(fresh)
        contacts = fresh
        logger.info("Skipped %d existing lead(s)", response.skipped_duplicates)
    else:
        logger.info("Test mode: skipping Instantly dedupe")

    if not contacts:
        logger.info("Nothing new to send")
        return response

    result = await send_bulk_to_instantly(
        contacts, request.instantly_campaign_id, request.test_mode, request.test_email,
    )
    if request.test_mode:
        response.test_sent = result.successful
    else:
        response.sent = result.successful
    response.errors = result.failed

    for err in result.errors:
        logger.error("Send error for %s: %s", err.email, err.error)

    logger.info(
        "Campaign run complete: sent=%d test_sent=%d errors=%d",
        response.sent, response.test_sent, response.errors,
    )
    return response
