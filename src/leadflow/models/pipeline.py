"""
Pipeline stage models: status, per-stage results and the persisted snapshot.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator

from leadflow.models.contact import ApolloContact, ValidatedContact


class Stage(str, Enum):
    FETCH  = "fetch"
    FILTER = "filter"
    DEDUPE = "dedupe"
    SEND   = "send"


class StageStatus(str, Enum):
    IDLE      = "idle"
    RUNNING   = "running"
    COMPLETED = "completed"
    ERROR     = "error"


class StageState(BaseModel):
    status: StageStatus = StageStatus.IDLE
    error: Optional[str] = None

    @model_validator(mode="after")
    def _error_only_on_failure(self) -> "StageState":
        if self.status is StageStatus.ERROR:
            if not self.error:
                raise ValueError("error state requires a message")
        elif self.error is not None:
            raise ValueError(f"{self.status.value} state cannot carry an error")
        return self

    @classmethod
    def idle(cls) -> "StageState":
        return cls(status=StageStatus.IDLE)

    @classmethod
    def running(cls) -> "StageState":
        return cls(status=StageStatus.RUNNING)

    @classmethod
    def completed(cls) -> "StageState":
        return cls(status=StageStatus.COMPLETED)

    @classmethod
    def failed(cls, message: str) -> "StageState":
        return cls(status=StageStatus.ERROR, error=message)

    @property
    def is_running(self) -> bool:
        return self.status is StageStatus.RUNNING

    @property
    def is_completed(self) -> bool:
        return self.status is StageStatus.COMPLETED


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------


class StageResult(BaseModel):
    status: StageStatus
    error: Optional[str] = None


class FetchStageResult(StageResult):
    contacts: list[ApolloContact] = []
    total_fetched: int = 0


class FilteredOut(BaseModel):
    no_email: int = 0
    unverified: int = 0
    generic: int = 0

    @property
    def total(self) -> int:
        return self.no_email + self.unverified + self.generic


class FilterStageResult(StageResult):
    contacts: list[ValidatedContact] = []
    total_verified: int = 0
    filtered_out: FilteredOut = FilteredOut()


class DedupeStageResult(StageResult):
    contacts: list[ValidatedContact] = []
    skipped_duplicates: int = 0


class SendStageResult(StageResult):
    sent: int = 0
    test_sent: int = 0
    errors: int = 0


# ---------------------------------------------------------------------------
# Persisted snapshot / read model
# ---------------------------------------------------------------------------


class PipelineSnapshot(BaseModel):
    fetch_state: StageState = StageState()
    filter_state: StageState = StageState()
    dedupe_state: StageState = StageState()
    send_state: StageState = StageState()

    fetched_contacts: list[ApolloContact] = []
    filtered_contacts: list[ValidatedContact] = []
    deduped_contacts: list[ValidatedContact] = []

    fetch_result: Optional[FetchStageResult] = None
    filter_result: Optional[FilterStageResult] = None
    dedupe_result: Optional[DedupeStageResult] = None
    send_result: Optional[SendStageResult] = None

    saved_at: float = 0.0   # epoch seconds; 0 means never saved


class PipelineState(BaseModel):
    fetch_state: StageState
    filter_state: StageState
    dedupe_state: StageState
    send_state: StageState

    fetch_result: Optional[FetchStageResult] = None
    filter_result: Optional[FilterStageResult] = None
    dedupe_result: Optional[DedupeStageResult] = None
    send_result: Optional[SendStageResult] = None

    is_any_running: bool = False
