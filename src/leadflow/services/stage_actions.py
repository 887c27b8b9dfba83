"""
Stage actions: one async function per pipeline stage.

Each action calls its service and folds every outcome, exceptions included,
into the stage's result model. The orchestrator only looks at
``result.status``; nothing raised here reaches it.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

from leadflow.models.contact import ApolloContact, ValidatedContact, normalize_email
from leadflow.models.pipeline import (
    DedupeStageResult,
    FetchStageResult,
    FilteredOut,
    FilterStageResult,
    SendStageResult,
    StageStatus,
)
from leadflow.services.apollo_client import fetch_contacts
from leadflow.services.bulk_sender import send_bulk_to_instantly
from leadflow.services.contact_filter import filter_contacts, remove_duplicate_emails
from leadflow.services.instantly_leads import get_leads_batch

logger = logging.getLogger(__name__)


async def fetch_contacts_action(filters: dict[str, Any], daily_limit: int) -> FetchStageResult:
    try:
        result = await fetch_contacts(filters, daily_limit)
    except Exception as e:
        logger.exception("Fetch stage failed")
        return FetchStageResult(status=StageStatus.ERROR, error=f"Failed to fetch contacts: {e}")

    if result.error:
        return FetchStageResult(
            status=StageStatus.ERROR,
            error=result.error,
            contacts=result.contacts,
            total_fetched=result.total_fetched,
        )
    return FetchStageResult(
        status=StageStatus.COMPLETED,
        contacts=result.contacts,
        total_fetched=result.total_fetched,
    )


async def filter_contacts_action(contacts: list[ApolloContact]) -> FilterStageResult:
    """Validate contacts, then drop intra-batch duplicate emails."""
    try:
        result = filter_contacts(contacts)
        unique = remove_duplicate_emails(result.valid_contacts)
    except Exception as e:
        logger.exception("Filter stage failed")
        return FilterStageResult(
            status=StageStatus.ERROR,
            error=f"Failed to filter contacts: {e}",
            filtered_out=FilteredOut(),
        )

    logger.info(
        "Filter: %d verified, filtered out %d no-email / %d unverified / %d generic",
        len(unique),
        result.filtered_out.no_email,
        result.filtered_out.unverified,
        result.filtered_out.generic,
    )
    return FilterStageResult(
        status=StageStatus.COMPLETED,
        contacts=unique,
        total_verified=len(unique),
        filtered_out=result.filtered_out,
    )


async def dedupe_contacts_action(
    contacts: list[ValidatedContact],
    test_mode: bool,
    campaign_id: Optional[str] = None,
) -> DedupeStageResult:
    """Drop contacts already known to Instantly. Test mode passes everything through."""
    if test_mode:
        logger.info("Dedupe: test mode, skipping Instantly lookup")
        return DedupeStageResult(status=StageStatus.COMPLETED, contacts=list(contacts), skipped_duplicates=0)

    try:
        existing = await get_leads_batch([c.email for c in contacts], campaign_id)
    except Exception as e:
        logger.error("Dedupe stage failed: %s", e)
        return DedupeStageResult(status=StageStatus.ERROR, error=f"Failed to dedupe contacts: {e}")

    fresh = [c for c in contacts if normalize_email(c.email) not in existing]
    skipped = len(contacts) - len(fresh)
    logger.info("Dedupe: skipped %d existing lead(s), %d new", skipped, len(fresh))
    return DedupeStageResult(status=StageStatus.COMPLETED, contacts=fresh, skipped_duplicates=skipped)


async def send_contacts_action(
    contacts: list[ValidatedContact],
    campaign_id: str,
    test_mode: bool,
    test_email: Optional[str] = None,
) -> SendStageResult:
    if not contacts:
        return SendStageResult(status=StageStatus.COMPLETED)

    try:
        result = await send_bulk_to_instantly(contacts, campaign_id, test_mode, test_email)
    except Exception as e:
        logger.exception("Send stage failed")
        return SendStageResult(
            status=StageStatus.ERROR,
            error=f"Failed to send contacts: {e}",
            errors=len(contacts),
        )

    for err in result.errors:
        logger.warning("Send error for %s: %s", err.email, err.error)

    if result.errors and result.successful == 0:
        return SendStageResult(
            status=StageStatus.ERROR,
            error=result.errors[0].error or "Failed to send leads to Instantly",
            errors=result.failed,
        )

    return SendStageResult(
        status=StageStatus.COMPLETED,
        sent=0 if test_mode else result.successful,
        test_sent=result.successful if test_mode else 0,
        errors=result.failed,
    )
