"""
Session-scoped JSON storage for the pipeline snapshot.

One file per session:  data/state/campaign_run_state__<session_id>.json

The snapshot is the in-progress state of a single operator's run, not
business data (Instantly is the system of record), so it is short-lived:
  - a snapshot older than the TTL (1 hour by default) is treated as absent
    and deleted on read
  - a stage persisted as "running" is read back as "idle"; the network call
    it stood for can't be known to have finished
  - a missing or unreadable file reads as the default (all idle, no data)

Files are plain JSON and can be inspected by hand.
"""
from __future__ import annotations

import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from leadflow.config import get_settings
from leadflow.models.pipeline import PipelineSnapshot, StageState

logger = logging.getLogger(__name__)

STORAGE_KEY = "campaign_run_state"

_STATE_FIELDS = ("fetch_state", "filter_state", "dedupe_state", "send_state")


class SessionStateStore:
    def __init__(
        self,
        session_id: str = "default",
        *,
        state_dir: Optional[Path] = None,
        ttl_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        settings = get_settings()
        self.state_dir = Path(state_dir if state_dir is not None else settings.state_dir)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.state_ttl_seconds
        self.path = self.state_dir / f"{STORAGE_KEY}__{_slug(session_id)}.json"
        self._clock = clock

    def save(self, **fields: Any) -> PipelineSnapshot:
        """
        Merge ``fields`` over the stored snapshot, stamp ``saved_at`` and write.

        Keys are PipelineSnapshot field names. Returns the snapshot written.
        """
        unknown = set(fields) - set(PipelineSnapshot.model_fields)
        if unknown:
            raise ValueError(f"Unknown snapshot fields: {sorted(unknown)}")

        merged = self.load().model_dump()
        merged.update(fields)
        merged["saved_at"] = self._clock()
        snapshot = PipelineSnapshot.model_validate(merged)

        self.state_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(snapshot.model_dump(mode="json"), f, indent=2, ensure_ascii=False)

        return snapshot

    def load(self) -> PipelineSnapshot:
        if not self.path.exists():
            return PipelineSnapshot()

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
            snapshot = PipelineSnapshot.model_validate(data)
        except (OSError, ValueError, ValidationError) as e:
            logger.warning("Discarding unreadable pipeline state %s: %s", self.path, e)
            return PipelineSnapshot()

        if self._clock() - snapshot.saved_at > self.ttl_seconds:
            logger.info("Pipeline state in %s is older than %ds, clearing", self.path, self.ttl_seconds)
            self.clear()
            return PipelineSnapshot()

        coerced = {
            name: StageState.idle()
            for name in _STATE_FIELDS
            if getattr(snapshot, name).is_running
        }
        return snapshot.model_copy(update=coerced) if coerced else snapshot

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


def _slug(text: str) -> str:
    """Convert a session id to a safe filename segment."""
    text = text.lower().strip()
    text = re.sub(r"[^\w-]", "_", text)
    return text[:40] or "default"
