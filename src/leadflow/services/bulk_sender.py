"""
Bulk sender - Stage 4 (Send) of the campaign pipeline.

Builds one Instantly lead per contact and uploads the whole batch in a single
/leads/add call with skip_if_in_campaign set.

Test mode: the outbound address is replaced by the operator's test email and
the contact's real address travels in the ``original_email`` custom variable,
so runs stay traceable without ever mailing a real prospect.

Instantly only reports an aggregate ``uploaded`` count. The first N contacts
are assumed to be the successful ones; the API does not promise that ordering,
so ``successful_contacts`` is an approximation.
"""
from __future__ import annotations

import logging
from typing import Optional

import httpx

from leadflow.config import get_settings
from leadflow.errors import PreconditionError, UpstreamError
from leadflow.models.contact import ValidatedContact
from leadflow.models.instantly import BulkSendResult, InstantlyLead, LeadError
from leadflow.services.http import bearer_headers, open_client, raise_for_upstream

logger = logging.getLogger(__name__)

_INSTANTLY_BULK_ADD_URL = "https://api.instantly.ai/api/v2/leads/add"


def build_lead(contact: ValidatedContact, test_mode: bool, test_email: Optional[str] = None) -> InstantlyLead:
    """
    Map a contact to an Instantly lead record.

    Raises:
        PreconditionError: If ``test_mode`` is set without a test email.
    """
    if test_mode and not (test_email and test_email.strip()):
        raise PreconditionError("Test email is required in test mode")

    custom_variables = {"source": "apollo"}
    if contact.first_name:
        custom_variables["first_name"] = contact.first_name
    if contact.company:
        custom_variables["company"] = contact.company
    if contact.title:
        custom_variables["title"] = contact.title
    if test_mode:
        custom_variables["original_email"] = contact.email

    return InstantlyLead(
        email=test_email.strip() if test_mode else contact.email,
        first_name=contact.first_name or None,
        last_name=contact.last_name or None,
        company_name=contact.company or None,
        custom_variables=custom_variables,
    )


async def send_bulk_to_instantly(
    contacts: list[ValidatedContact],
    campaign_id: str,
    test_mode: bool,
    test_email: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> BulkSendResult:
    """
    Upload ``contacts`` to an Instantly campaign in one call.

    Never raises: credential, validation and transport problems come back as
    a result with ``successful=0`` and a synthetic ``email="all"`` error.
    """
    if not contacts:
        return BulkSendResult()

    api_key = get_settings().instantly_api_key
    if not api_key:
        return _all_failed(contacts, "Instantly API key not configured")

    try:
        leads = [build_lead(c, test_mode, test_email) for c in contacts]
    except PreconditionError as e:
        return _all_failed(contacts, str(e))

    payload = {
        "campaign_id": campaign_id,
        "skip_if_in_campaign": True,
        "leads": [lead.model_dump(exclude_none=True) for lead in leads],
    }

    logger.info("Uploading %d lead(s) to campaign %s (test_mode=%s)", len(leads), campaign_id, test_mode)
    async with open_client(client) as http:
        try:
            resp = await http.post(_INSTANTLY_BULK_ADD_URL, headers=bearer_headers(api_key), json=payload)
            raise_for_upstream(resp, "Instantly")
            data = resp.json()
        except UpstreamError as e:
            logger.error("Bulk upload rejected: %s", e)
            return _all_failed(contacts, str(e))
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Bulk upload failed: %s", e)
            return _all_failed(contacts, f"Failed to send to Instantly: {e}")

    if data.get("status") == "error":
        return _all_failed(contacts, data.get("message") or "Unknown Instantly error")

    uploaded = data.get("uploaded")
    successful = len(contacts) if uploaded is None else max(0, min(int(uploaded), len(contacts)))
    errors = [LeadError.model_validate(e) for e in data.get("errors") or []]

    logger.info("Instantly accepted %d/%d lead(s)", successful, len(contacts))
    return BulkSendResult(
        total_processed=len(contacts),
        successful=successful,
        failed=len(contacts) - successful,
        successful_contacts=[] if test_mode else list(contacts[:successful]),
        errors=errors,
    )


def _all_failed(contacts: list[ValidatedContact], message: str) -> BulkSendResult:
    return BulkSendResult(
        total_processed=len(contacts),
        successful=0,
        failed=len(contacts),
        errors=[LeadError(email="all", error=message)],
    )
