"""
Instantly lead lookups - the duplicate check behind Stage 3 (Dedupe).

Instantly has no bulk "which of these emails exist" call, so every email is
looked up on its own through /leads/search. Lookups run concurrently inside
fixed-size batches of 50, with a short pause between batches to stay under
the rate limit.

Failure policy:
  - A single lookup that fails (HTTP error, network error, bad JSON) counts
    as "not found". The pipeline would rather risk one duplicate send than
    stall on a flaky lookup.
  - A missing API key raises ConfigurationError. Treating every email as new
    in that case would mean a mass duplicate send, so the caller must stop.

Also exposes single-email lookup and cursor-paginated lead listing.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

import httpx

from leadflow.config import get_settings
from leadflow.errors import ConfigurationError, UpstreamError
from leadflow.models.contact import normalize_email
from leadflow.models.instantly import InstantlyLeadData, LeadPage
from leadflow.services.http import bearer_headers, open_client, raise_for_upstream

logger = logging.getLogger(__name__)

_INSTANTLY_LEADS_SEARCH_URL = "https://api.instantly.ai/api/v2/leads/search"
_INSTANTLY_LEADS_LIST_URL   = "https://api.instantly.ai/api/v2/leads/list"

LOOKUP_BATCH_SIZE = 50

_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Duplicate check
# ---------------------------------------------------------------------------


async def get_leads_batch(
    emails: list[str],
    campaign_id: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
    batch_delay: float = 0.2,
) -> set[str]:
    """
    Return the normalized emails that already exist as Instantly leads
    (within ``campaign_id`` when given).

    Raises:
        ConfigurationError: If no Instantly API key is configured.
    """
    api_key = _api_key("Instantly API key not configured. Cannot perform deduplication.")
    existing: set[str] = set()
    if not emails:
        return existing

    normalized = [normalize_email(e) for e in emails]
    total_batches = (len(normalized) + LOOKUP_BATCH_SIZE - 1) // LOOKUP_BATCH_SIZE
    logger.info("Checking %d email(s) against Instantly", len(normalized))

    async with open_client(client) as http:
        for i in range(0, len(normalized), LOOKUP_BATCH_SIZE):
            batch = normalized[i:i + LOOKUP_BATCH_SIZE]
            logger.debug("Lookup batch %d/%d", i // LOOKUP_BATCH_SIZE + 1, total_batches)

            found = await asyncio.gather(
                *(_exists(http, api_key, email, campaign_id) for email in batch)
            )
            existing.update(email for email, hit in zip(batch, found) if hit)

            if i + LOOKUP_BATCH_SIZE < len(normalized):
                await asyncio.sleep(batch_delay)

    logger.info("Found %d existing lead(s) out of %d checked", len(existing), len(normalized))
    return existing


async def get_lead_by_email(
    email: str,
    campaign_id: Optional[str] = None,
    *,
    client: Optional[httpx.AsyncClient] = None,
) -> Optional[InstantlyLeadData]:
    """
    Look up one lead by email. Returns None when not found.

    Raises:
        ConfigurationError: If no Instantly API key is configured.
        UpstreamError: If the search call fails.
    """
    api_key = _api_key()
    async with open_client(client) as http:
        items = await _search(http, api_key, normalize_email(email), campaign_id)
    if not items:
        return None
    return InstantlyLeadData.model_validate(items[0])


# ---------------------------------------------------------------------------
# Lead listing
# ---------------------------------------------------------------------------


async def list_leads(
    campaign_id: Optional[str] = None,
    *,
    limit: int = 100,
    starting_after: Optional[str] = None,
    client: Optional[httpx.AsyncClient] = None,
) -> LeadPage:
    """Fetch one page of leads. Errors are reported on ``LeadPage.error``."""
    try:
        api_key = _api_key()
    except ConfigurationError as e:
        return LeadPage(error=str(e))

    body: dict = {"limit": limit}
    # Instantly rejects campaign ids that are not UUIDs
    if campaign_id and _UUID_RE.match(campaign_id):
        body["campaign_id"] = campaign_id
    if starting_after:
        body["starting_after"] = starting_after

    async with open_client(client) as http:
        try:
            resp = await http.post(_INSTANTLY_LEADS_LIST_URL, headers=bearer_headers(api_key), json=body)
            raise_for_upstream(resp, "Instantly")
            data = resp.json()
        except UpstreamError as e:
            return LeadPage(error=str(e))
        except (httpx.HTTPError, ValueError) as e:
            return LeadPage(error=f"Failed to fetch Instantly leads: {e}")

    if not isinstance(data, dict):
        return LeadPage(error=f"Failed to fetch Instantly leads: unexpected body {resp.text[:200]}")

    cursor = data.get("next_starting_after")
    return LeadPage(
        leads=[InstantlyLeadData.model_validate(item) for item in data.get("items") or []],
        next_starting_after=cursor,
        has_more=bool(cursor),
    )


async def fetch_all_leads(
    campaign_id: Optional[str] = None,
    *,
    max_leads: int = 1000,
    client: Optional[httpx.AsyncClient] = None,
    page_delay: float = 0.1,
) -> LeadPage:
    """Follow the listing cursor until exhausted or ``max_leads`` is reached."""
    leads: list[InstantlyLeadData] = []
    cursor: Optional[str] = None
    has_more = True

    async with open_client(client) as http:
        while has_more and len(leads) < max_leads:
            page = await list_leads(campaign_id, limit=100, starting_after=cursor, client=http)
            if page.error:
                return LeadPage(leads=leads, has_more=False, error=page.error)
            leads.extend(page.leads)
            cursor = page.next_starting_after
            has_more = page.has_more
            if has_more:
                await asyncio.sleep(page_delay)

    return LeadPage(leads=leads[:max_leads], has_more=len(leads) >= max_leads)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _exists(client: httpx.AsyncClient, api_key: str, email: str, campaign_id: Optional[str]) -> bool:
    try:
        return bool(await _search(client, api_key, email, campaign_id))
    except (UpstreamError, httpx.HTTPError, ValueError) as e:
        logger.debug("Lookup for %s failed, treating as new: %s", email, e)
        return False


async def _search(client: httpx.AsyncClient, api_key: str, email: str, campaign_id: Optional[str]) -> list[dict]:
    params = {"email": email, "limit": "1"}
    if campaign_id:
        params["campaign_id"] = campaign_id
    try:
        resp = await client.get(
            _INSTANTLY_LEADS_SEARCH_URL,
            headers={"Authorization": f"Bearer {api_key}"},
            params=params,
        )
    except httpx.RequestError as e:
        raise UpstreamError(f"Instantly lead search failed: {e}") from e
    raise_for_upstream(resp, "Instantly")
    data = resp.json()
    if not isinstance(data, dict):
        raise UpstreamError(
            f"Instantly lead search returned an unexpected body: {resp.text[:200]}",
            status_code=resp.status_code,
        )
    return data.get("items") or []


def _api_key(message: str = "Instantly API key not configured") -> str:
    key = get_settings().instantly_api_key
    if not key:
        raise ConfigurationError(message)
    return key
