"""
Contact and search-configuration models.

ApolloContact is the raw person record returned by the Apollo search API.
ValidatedContact is what survives the filter stage and travels on to the
dedupe and send stages.
"""
from __future__ import annotations

import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MAX_DAILY_LIMIT = 1000


def normalize_email(email: str) -> str:
    return email.strip().lower()


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


class ApolloOrganization(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: Optional[str] = None
    website_url: Optional[str] = None
    industry: Optional[str] = None
    estimated_num_employees: Optional[int] = None


class ApolloContact(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    email_status: Optional[str] = None   # unverified | verifying | verified | invalid
    title: Optional[str] = None
    organization: Optional[ApolloOrganization] = None
    linkedin_url: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None


class ValidatedContact(BaseModel):
    model_config = ConfigDict(frozen=True)

    apollo_id: str
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    title: Optional[str] = None
    company: Optional[str] = None
    linkedin_url: Optional[str] = None

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: str) -> str:
        value = normalize_email(value)
        if not value or "@" not in value:
            raise ValueError(f"not a usable email address: {value!r}")
        return value

    def to_apollo_contact(self) -> ApolloContact:
        """Rebuild the raw shape (a verified contact) from this record."""
        org = ApolloOrganization(name=self.company) if self.company else None
        return ApolloContact(
            id=self.apollo_id,
            first_name=self.first_name,
            last_name=self.last_name,
            email=self.email,
            email_status="verified",
            title=self.title,
            organization=org,
            linkedin_url=self.linkedin_url,
        )


class SearchFilters(BaseModel):
    """Search selectors as the operator picks them, plus the daily limit."""

    person_titles: list[str] = []
    person_seniorities: list[str] = []
    locations: list[str] = []
    employee_ranges: list[str] = []
    industries: list[str] = []
    keywords: str = ""
    daily_limit: int = 50

    def has_filters(self) -> bool:
        return bool(
            self.person_titles
            or self.person_seniorities
            or self.locations
            or self.employee_ranges
            or self.industries
            or self.keywords.strip()
        )

    def validation_error(self) -> Optional[str]:
        if not self.has_filters():
            return "Please select at least one search filter"
        if self.daily_limit <= 0:
            return "Daily limit must be greater than 0"
        if self.daily_limit > MAX_DAILY_LIMIT:
            return f"Daily limit cannot exceed {MAX_DAILY_LIMIT}"
        return None

    def to_apollo_filters(self) -> dict[str, Any]:
        """Map to Apollo's search body keys, leaving out empty selectors."""
        filters: dict[str, Any] = {}
        if self.person_titles:
            filters["person_titles"] = list(self.person_titles)
        if self.person_seniorities:
            filters["person_seniorities"] = list(self.person_seniorities)
        if self.locations:
            filters["organization_locations"] = list(self.locations)
        if self.employee_ranges:
            filters["organization_num_employees_ranges"] = list(self.employee_ranges)
        if self.industries:
            filters["organization_industry_tag_ids"] = list(self.industries)
        if self.keywords.strip():
            filters["q_keywords"] = self.keywords.strip()
        return filters


class CampaignSettings(BaseModel):
    instantly_campaign_id: str = ""
    test_mode: bool = False
    test_email: str = ""

    def validation_error(self) -> Optional[str]:
        if not self.instantly_campaign_id.strip():
            return "Instantly Campaign ID is required"
        if self.test_mode and not self.test_email.strip():
            return "Test email is required in test mode"
        if self.test_mode and not is_valid_email(self.test_email.strip()):
            return "Invalid test email"
        return None
