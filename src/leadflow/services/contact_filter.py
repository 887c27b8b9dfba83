"""
Contact filter - Stage 2 of the campaign pipeline.

Keeps only contacts with a verified, person-addressed email. Rejections are
counted by the first rule that fails, in this order:

  1. no_email    - email missing, blank or without an "@"
  2. unverified  - Apollo email_status is anything but "verified"
  3. generic     - role address such as info@, support@, sales@

Everything here is pure and synchronous: the same input always produces the
same output.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from leadflow.models.contact import ApolloContact, ValidatedContact, normalize_email
from leadflow.models.pipeline import FilteredOut

GENERIC_EMAIL_PREFIXES: frozenset[str] = frozenset({
    "info", "admin", "support", "sales", "hello", "contact", "help", "team",
    "enquiries", "inquiries", "noreply", "no-reply", "webmaster", "marketing",
    "pr", "press", "media", "careers", "jobs", "hr", "recruitment", "billing",
    "accounts", "finance", "legal", "privacy", "abuse", "postmaster", "hostmaster",
})


@dataclass
class FilterContactsResult:
    valid_contacts: list[ValidatedContact] = field(default_factory=list)
    total_processed: int = 0
    filtered_out: FilteredOut = field(default_factory=FilteredOut)


def is_generic_email(email: str) -> bool:
    """True when the local part is a role address (info@, sales@, ...)."""
    local, _, _ = normalize_email(email).partition("@")
    return local in GENERIC_EMAIL_PREFIXES


def filter_contacts(contacts: list[ApolloContact]) -> FilterContactsResult:
    no_email = unverified = generic = 0
    valid: list[ValidatedContact] = []

    for contact in contacts:
        if not _has_usable_email(contact):
            no_email += 1
            continue
        if contact.email_status != "verified":
            unverified += 1
            continue
        if is_generic_email(contact.email):
            generic += 1
            continue
        valid.append(_to_validated(contact))

    return FilterContactsResult(
        valid_contacts=valid,
        total_processed=len(contacts),
        filtered_out=FilteredOut(no_email=no_email, unverified=unverified, generic=generic),
    )


def remove_duplicate_emails(contacts: list[ValidatedContact]) -> list[ValidatedContact]:
    """Drop later contacts whose normalized email was already seen."""
    seen: set[str] = set()
    unique: list[ValidatedContact] = []
    for contact in contacts:
        key = normalize_email(contact.email)
        if key in seen:
            continue
        seen.add(key)
        unique.append(contact)
    return unique


def _to_validated(contact: ApolloContact) -> ValidatedContact:
    return ValidatedContact(
        apollo_id=contact.id,
        email=normalize_email(contact.email or ""),
        first_name=contact.first_name,
        last_name=contact.last_name,
        title=contact.title,
        company=contact.organization.name if contact.organization else None,
        linkedin_url=contact.linkedin_url,
    )


def _has_usable_email(contact: ApolloContact) -> bool:
    email = normalize_email(contact.email or "")
    return bool(email) and "@" in email
