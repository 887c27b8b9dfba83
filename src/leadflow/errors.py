"""
Error taxonomy shared by the services and the pipeline.

  ConfigurationError - a required credential is missing. Fatal to the stage,
                       message is shown as-is, never retried.
  UpstreamError      - Apollo or Instantly answered non-2xx or the request
                       never completed. Carries status/body context.
  PreconditionError  - inputs are not good enough to start (empty filters,
                       missing campaign id, invalid test email, no contacts).
                       Raised before any network call.

Partial failures of bulk operations are not exceptions: they are reported as
counts on the result objects.
"""
from __future__ import annotations

from typing import Optional


class LeadflowError(Exception):
    """Base class for all leadflow errors."""


class ConfigurationError(LeadflowError):
    """Raised when an API credential is not configured."""


class UpstreamError(LeadflowError):
    """Raised when an external API call fails."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class PreconditionError(LeadflowError):
    """Raised when a run request or stage input fails validation."""
