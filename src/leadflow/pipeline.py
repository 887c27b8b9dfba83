"""
Campaign pipeline orchestrator.

Four stages, always in this order:

  Fetch   - pull contacts from Apollo (bounded by the daily limit)
  Filter  - keep verified, non-generic emails; drop in-batch duplicates
  Dedupe  - drop contacts Instantly already has (skipped in test mode)
  Send    - upload the survivors to the Instantly campaign

Each stage can be run on its own; ``run_all_stages`` chains them and stops at
the first failure. A stage only runs when the stage before it is completed
and produced at least one contact; otherwise it fails with a message telling
the operator which stage to re-run.

On success a stage resets every downstream stage to idle, drops their data,
and writes one snapshot covering all of it. That single write is what lets a
new process resume from the last completed stage without repeating network
calls.

Stage data (the three contact lists) lives in plain attributes next to the
status flags and is only ever replaced, never mutated in place.

``reset_all`` bumps a generation counter. A stage call that was started
before the reset discards its result when it resolves.
"""
from __future__ import annotations

import logging
from typing import Optional

from leadflow.models.contact import ApolloContact, CampaignSettings, SearchFilters, ValidatedContact
from leadflow.models.pipeline import (
    DedupeStageResult,
    FetchStageResult,
    FilterStageResult,
    PipelineState,
    SendStageResult,
    Stage,
    StageState,
    StageStatus,
)
from leadflow.services import stage_actions
from leadflow.services.state_store import SessionStateStore

logger = logging.getLogger(__name__)


class CampaignPipeline:
    def __init__(
        self,
        filters: SearchFilters,
        settings: CampaignSettings,
        *,
        store: Optional[SessionStateStore] = None,
    ) -> None:
        self.filters = filters
        self.settings = settings
        self.store = store or SessionStateStore()
        self._generation = 0

        snapshot = self.store.load()

        self._fetch_state = snapshot.fetch_state
        self._filter_state = snapshot.filter_state
        self._dedupe_state = snapshot.dedupe_state
        self._send_state = snapshot.send_state

        self._fetched_contacts: list[ApolloContact] = list(snapshot.fetched_contacts)
        self._filtered_contacts: list[ValidatedContact] = list(snapshot.filtered_contacts)
        self._deduped_contacts: list[ValidatedContact] = list(snapshot.deduped_contacts)

        self._fetch_result: Optional[FetchStageResult] = snapshot.fetch_result
        self._filter_result: Optional[FilterStageResult] = snapshot.filter_result
        self._dedupe_result: Optional[DedupeStageResult] = snapshot.dedupe_result
        self._send_result: Optional[SendStageResult] = snapshot.send_result

        if snapshot.saved_at:
            logger.info("Resumed pipeline state from %s", self.store.path)

    # ------------------------------------------------------------------
    # Read model
    # ------------------------------------------------------------------

    @property
    def is_any_running(self) -> bool:
        return any(s.is_running for s in self.stage_states().values())

    def stage_states(self) -> dict[Stage, StageState]:
        return {
            Stage.FETCH: self._fetch_state,
            Stage.FILTER: self._filter_state,
            Stage.DEDUPE: self._dedupe_state,
            Stage.SEND: self._send_state,
        }

    @property
    def state(self) -> PipelineState:
        return PipelineState(
            fetch_state=self._fetch_state,
            filter_state=self._filter_state,
            dedupe_state=self._dedupe_state,
            send_state=self._send_state,
            fetch_result=self._fetch_result,
            filter_result=self._filter_result,
            dedupe_result=self._dedupe_result,
            send_result=self._send_result,
            is_any_running=self.is_any_running,
        )

    @property
    def fetched_contacts(self) -> list[ApolloContact]:
        return list(self._fetched_contacts)

    @property
    def filtered_contacts(self) -> list[ValidatedContact]:
        return list(self._filtered_contacts)

    @property
    def deduped_contacts(self) -> list[ValidatedContact]:
        return list(self._deduped_contacts)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def run_fetch(self) -> bool:
        error = self.filters.validation_error()
        if error:
            self._fetch_state = StageState.failed(error)
            return False

        generation = self._generation
        self._fetch_state = StageState.running()
        self._fetch_result = None

        result = await stage_actions.fetch_contacts_action(
            self.filters.to_apollo_filters(), self.filters.daily_limit,
        )
        if self._is_stale(generation, Stage.FETCH):
            return False
        if result.status is not StageStatus.COMPLETED:
            self._fetch_state = StageState.failed(result.error or "Fetch failed")
            return False

        self._fetched_contacts = list(result.contacts)
        self._fetch_result = result
        self._fetch_state = StageState.completed()
        self._reset_after(Stage.FETCH)

        self.store.save(
            fetch_state=self._fetch_state,
            fetched_contacts=self._fetched_contacts,
            fetch_result=result,
            **self._downstream_snapshot(Stage.FETCH),
        )
        return True

    async def run_filter(self) -> bool:
        if not self._fetch_state.is_completed or not self._fetched_contacts:
            self._filter_state = StageState.failed("No contacts to filter. Run Fetch first.")
            return False

        generation = self._generation
        self._filter_state = StageState.running()
        self._filter_result = None

        result = await stage_actions.filter_contacts_action(self._fetched_contacts)
        if self._is_stale(generation, Stage.FILTER):
            return False
        if result.status is not StageStatus.COMPLETED:
            self._filter_state = StageState.failed(result.error or "Filter failed")
            return False

        self._filtered_contacts = list(result.contacts)
        self._filter_result = result
        self._filter_state = StageState.completed()
        self._reset_after(Stage.FILTER)

        self.store.save(
            filter_state=self._filter_state,
            filtered_contacts=self._filtered_contacts,
            filter_result=result,
            **self._downstream_snapshot(Stage.FILTER),
        )
        return True

    async def run_dedupe(self) -> bool:
        if not self._filter_state.is_completed or not self._filtered_contacts:
            self._dedupe_state = StageState.failed("No contacts to dedupe. Run Filter first.")
            return False

        generation = self._generation
        self._dedupe_state = StageState.running()
        self._dedupe_result = None

        result = await stage_actions.dedupe_contacts_action(
            self._filtered_contacts,
            self.settings.test_mode,
            self.settings.instantly_campaign_id.strip() or None,
        )
        if self._is_stale(generation, Stage.DEDUPE):
            return False
        if result.status is not StageStatus.COMPLETED:
            self._dedupe_state = StageState.failed(result.error or "Dedupe failed")
            return False

        self._deduped_contacts = list(result.contacts)
        self._dedupe_result = result
        self._dedupe_state = StageState.completed()
        self._reset_after(Stage.DEDUPE)

        self.store.save(
            dedupe_state=self._dedupe_state,
            deduped_contacts=self._deduped_contacts,
            dedupe_result=result,
            **self._downstream_snapshot(Stage.DEDUPE),
        )
        return True

    async def run_send(self) -> bool:
        error = self.settings.validation_error()
        if error:
            self._send_state = StageState.failed(error)
            return False
        if not self._dedupe_state.is_completed or not self._deduped_contacts:
            self._send_state = StageState.failed("No contacts to send. Run Dedupe first.")
            return False

        generation = self._generation
        self._send_state = StageState.running()
        self._send_result = None

        test_mode = self.settings.test_mode
        result = await stage_actions.send_contacts_action(
            self._deduped_contacts,
            self.settings.instantly_campaign_id.strip(),
            test_mode,
            self.settings.test_email.strip() if test_mode else None,
        )
        if self._is_stale(generation, Stage.SEND):
            return False
        if result.status is not StageStatus.COMPLETED:
            self._send_state = StageState.failed(result.error or "Send failed")
            return False

        self._send_result = result
        self._send_state = StageState.completed()
        self.store.save(send_state=self._send_state, send_result=result)
        return True

    async def run_all_stages(self) -> bool:
        """Run Fetch → Filter → Dedupe → Send, stopping at the first failure."""
        for run in (self.run_fetch, self.run_filter, self.run_dedupe, self.run_send):
            if not await run():
                return False
        return True

    def reset_all(self) -> None:
        self._generation += 1
        self._fetch_state = StageState.idle()
        self._fetched_contacts = []
        self._fetch_result = None
        self._reset_after(Stage.FETCH)
        self.store.clear()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_stale(self, generation: int, stage: Stage) -> bool:
        if generation == self._generation:
            return False
        logger.info("Discarding %s result: pipeline was reset while it ran", stage.value)
        return True

    def _reset_after(self, stage: Stage) -> None:
        """Return every stage after ``stage`` to idle and drop its data."""
        if stage is Stage.FETCH:
            self._filter_state = StageState.idle()
            self._filtered_contacts = []
            self._filter_result = None
        if stage in (Stage.FETCH, Stage.FILTER):
            self._dedupe_state = StageState.idle()
            self._deduped_contacts = []
            self._dedupe_result = None
        if stage in (Stage.FETCH, Stage.FILTER, Stage.DEDUPE):
            self._send_state = StageState.idle()
            self._send_result = None

    def _downstream_snapshot(self, stage: Stage) -> dict:
        """Snapshot fields for the (just cleared) stages after ``stage``."""
        fields: dict = {}
        if stage is Stage.FETCH:
            fields.update(filter_state=self._filter_state, filtered_contacts=[], filter_result=None)
        if stage in (Stage.FETCH, Stage.FILTER):
            fields.update(dedupe_state=self._dedupe_state, deduped_contacts=[], dedupe_result=None)
        if stage in (Stage.FETCH, Stage.FILTER, Stage.DEDUPE):
            fields.update(send_state=self._send_state, send_result=None)
        return fields
