"""
Instantly lead records: what we upload and what the lead search returns.
"""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from leadflow.models.contact import ValidatedContact


class InstantlyLead(BaseModel):
    """One entry of the bulk lead-add payload."""

    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    custom_variables: dict[str, str] = {}


class InstantlyLeadData(BaseModel):
    """A lead as Instantly reports it from search/list endpoints."""

    model_config = ConfigDict(extra="ignore")

    email: str
    id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company_name: Optional[str] = None
    campaign: Optional[str] = None
    campaign_id: Optional[str] = None
    status: Optional[int | str] = None
    list_id: Optional[str] = None
    custom_variables: Optional[dict] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class LeadError(BaseModel):
    model_config = ConfigDict(extra="ignore")

    email: str = ""
    error: str = ""


class BulkSendResult(BaseModel):
    total_processed: int = 0
    successful: int = 0
    failed: int = 0
    successful_contacts: list[ValidatedContact] = []
    errors: list[LeadError] = []


class LeadPage(BaseModel):
    leads: list[InstantlyLeadData] = []
    next_starting_after: Optional[str] = None
    has_more: bool = False
    error: Optional[str] = None
