"""
Apollo contact source - Stage 1 (Fetch) of the campaign pipeline.

Pages through Apollo's people search until one of these happens:
  - the requested daily limit is reached
  - a page comes back empty
  - Apollo reports no further pages (or a short page when no pagination info)
  - the hard page ceiling (500) is hit

The result is truncated to exactly ``daily_limit`` contacts. Contacts that
came back without an email are then resolved through the bulk_match endpoint
in batches of 10 (Apollo's ceiling for that call).

Partial-success contract: when a search call fails mid-way the contacts
accumulated so far are returned together with an ``error`` string, so callers
must check ``error`` even when ``contacts`` is non-empty.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from leadflow.config import get_settings
from leadflow.errors import ConfigurationError, UpstreamError
from leadflow.models.contact import ApolloContact
from leadflow.services.http import open_client, raise_for_upstream

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_APOLLO_SEARCH_URL     = "https://api.apollo.io/api/v1/mixed_people/api_search"
_APOLLO_BULK_MATCH_URL = "https://api.apollo.io/api/v1/people/bulk_match"

MAX_PER_PAGE = 100
MAX_PAGES = 500
REVEAL_BATCH_SIZE = 10


@dataclass
class FetchContactsResult:
    contacts: list[ApolloContact] = field(default_factory=list)
    total_fetched: int = 0
    error: Optional[str] = None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def fetch_contacts(
    filters: dict[str, Any],
    daily_limit: int,
    *,
    client: Optional[httpx.AsyncClient] = None,
    reveal_delay: float = 0.1,
) -> FetchContactsResult:
    """
    Fetch up to ``daily_limit`` contacts matching ``filters`` and fill in
    missing emails.

    ``filters`` uses Apollo's own keys (person_titles, q_keywords, ...).
    Never raises for API problems; see the module docstring.
    """
    try:
        api_key = _api_key()
    except ConfigurationError as e:
        return FetchContactsResult(error=str(e))

    all_contacts: list[ApolloContact] = []
    per_page = min(int(filters.get("per_page") or MAX_PER_PAGE), MAX_PER_PAGE)
    page = 1

    async with open_client(client) as http:
        try:
            while len(all_contacts) < daily_limit:
                request_per_page = min(per_page, daily_limit - len(all_contacts))
                people, total_pages = await _search_page(
                    http, api_key, filters, page=page, per_page=request_per_page,
                )

                if not people:
                    logger.info("Apollo returned no more people (page %d)", page)
                    break

                logger.info("Apollo page %d: %d contact(s)", page, len(people))
                all_contacts.extend(people)

                if total_pages:
                    has_more = page < total_pages
                else:
                    has_more = len(people) >= request_per_page
                if not has_more or len(people) < request_per_page:
                    logger.info("Reached end of Apollo results")
                    break

                page += 1
                if page > MAX_PAGES:
                    logger.warning("Reached Apollo page ceiling (%d)", MAX_PAGES)
                    break
        except UpstreamError as e:
            logger.error("Apollo search failed: %s", e)
            return FetchContactsResult(
                contacts=all_contacts,
                total_fetched=len(all_contacts),
                error=str(e),
            )
        except Exception as e:
            logger.exception("Apollo search failed")
            return FetchContactsResult(
                contacts=all_contacts,
                total_fetched=len(all_contacts),
                error=f"Failed to fetch Apollo contacts: {e}",
            )

        limited = all_contacts[:daily_limit]
        logger.info("Fetched %d contact(s), revealing missing emails", len(limited))
        contacts = await reveal_emails(limited, api_key, client=http, batch_delay=reveal_delay)

    return FetchContactsResult(contacts=contacts, total_fetched=len(all_contacts))


async def reveal_emails(
    contacts: list[ApolloContact],
    api_key: str,
    *,
    client: Optional[httpx.AsyncClient] = None,
    batch_delay: float = 0.1,
) -> list[ApolloContact]:
    """
    Resolve emails for contacts that have none, via Apollo bulk_match.

    A failing batch is logged and skipped: those contacts keep no email and
    are later counted as ``no_email`` by the filter stage. Returns a new list;
    the input is not modified.
    """
    needs_reveal = [c for c in contacts if not c.email]
    if not needs_reveal:
        logger.info("All contacts already have emails")
        return contacts

    revealed: dict[str, dict[str, Any]] = {}
    total_batches = (len(needs_reveal) + REVEAL_BATCH_SIZE - 1) // REVEAL_BATCH_SIZE

    async with open_client(client) as http:
        for i in range(0, len(needs_reveal), REVEAL_BATCH_SIZE):
            batch = needs_reveal[i:i + REVEAL_BATCH_SIZE]
            batch_num = i // REVEAL_BATCH_SIZE + 1
            logger.debug("bulk_match batch %d/%d (%d contacts)", batch_num, total_batches, len(batch))

            try:
                matches = await _bulk_match(http, api_key, [c.id for c in batch])
            except (UpstreamError, httpx.HTTPError, ValueError) as e:
                logger.warning("bulk_match batch %d failed: %s", batch_num, e)
                matches = []

            for match in matches:
                if match and match.get("id") and match.get("email"):
                    revealed[match["id"]] = match

            if i + REVEAL_BATCH_SIZE < len(needs_reveal):
                await asyncio.sleep(batch_delay)

    merged: list[ApolloContact] = []
    for contact in contacts:
        match = revealed.get(contact.id)
        if match:
            contact = contact.model_copy(update={
                "email": match["email"],
                "email_status": match.get("email_status") or contact.email_status,
            })
        merged.append(contact)

    with_email = sum(1 for c in merged if c.email)
    logger.info("Contacts with emails: %d/%d", with_email, len(merged))
    return merged


# ---------------------------------------------------------------------------
# Apollo endpoints
# ---------------------------------------------------------------------------


async def _search_page(
    client: httpx.AsyncClient,
    api_key: str,
    filters: dict[str, Any],
    *,
    page: int,
    per_page: int,
) -> tuple[list[ApolloContact], Optional[int]]:
    """Fetch one search page. Returns (people, total_pages or None)."""
    body = {**filters, "page": page, "per_page": per_page}
    try:
        resp = await client.post(_APOLLO_SEARCH_URL, headers=_headers(api_key), json=body)
    except httpx.RequestError as e:
        raise UpstreamError(f"Failed to fetch Apollo contacts: {e}") from e

    raise_for_upstream(resp, "Apollo")

    data = resp.json()
    raw_people = data.get("people") or data.get("contacts") or []
    people = [ApolloContact.model_validate(p) for p in raw_people]
    total_pages = (data.get("pagination") or {}).get("total_pages")
    return people, total_pages


async def _bulk_match(client: httpx.AsyncClient, api_key: str, ids: list[str]) -> list[dict[str, Any]]:
    resp = await client.post(
        _APOLLO_BULK_MATCH_URL,
        headers=_headers(api_key),
        params={"reveal_personal_emails": "true"},
        json={"details": [{"id": i} for i in ids]},
    )
    raise_for_upstream(resp, "Apollo")
    return resp.json().get("matches") or []


# ---------------------------------------------------------------------------
# Config / helpers
# ---------------------------------------------------------------------------


def _api_key() -> str:
    key = get_settings().apollo_api_key
    if not key:
        raise ConfigurationError("Apollo API key not configured")
    return key


def _headers(api_key: str) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        "Cache-Control": "no-cache",
        "x-api-key": api_key,
    }
