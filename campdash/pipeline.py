"""Fetch -> normalize as one guarded refresh, with a tagged outcome for the caller.

Only one refresh runs at a time. A caller that arrives while a refresh is in
flight waits for it and receives the same outcome instead of starting a second
fetch. Aggregation works from the latest outcome, so a filter change never
re-fetches the sheet.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from campdash.config import IngestConfig, SourceSettings, load_ingest_config
from campdash.errors import IngestError, SourceNotConfigured
from campdash.ingest import load_records
from campdash.models import Record
from campdash.sources import TableSource, build_source, range_id_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RefreshOutcome:
    records: List[Record] = field(default_factory=list)
    error: Optional[IngestError] = None
    ignored: bool = False
    generation: int = 0

    @property
    def ok(self) -> bool:
        return self.error is None and not self.ignored

    def to_dict(self) -> Dict[str, Any]:
        if self.ignored:
            return {"error": "A refresh is already in progress.", "type": "RefreshInProgress"}
        if self.error is not None:
            return self.error.to_dict()
        return {"data": [r.to_dict() for r in self.records]}


class RefreshGuard:
    """Single-flight gate: one refresh runs, later callers can wait for its outcome."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._running = False
        self._waiting = 0
        self._generation = 0
        self._last: Optional[RefreshOutcome] = None

    def try_acquire(self) -> bool:
        with self._cond:
            if self._running:
                return False
            self._running = True
            self._generation += 1
            return True

    def release(self, outcome: Optional[RefreshOutcome] = None) -> None:
        with self._cond:
            self._running = False
            if outcome is not None:
                self._last = outcome
            self._cond.notify_all()

    def wait_for_outcome(self, timeout: Optional[float] = None) -> Optional[RefreshOutcome]:
        """Block until the in-flight refresh finishes; None if it did not finish in time."""
        with self._cond:
            started = self._generation
            self._waiting += 1
            try:
                finished = self._cond.wait_for(lambda: not self._running, timeout)
            finally:
                self._waiting -= 1
            if not finished or self._last is None:
                return None
            # A refresh that failed without an outcome leaves an older one behind.
            if self._last.generation < started:
                return None
            return self._last

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._running

    @property
    def generation(self) -> int:
        with self._cond:
            return self._generation

    @property
    def waiting(self) -> int:
        with self._cond:
            return self._waiting

    @property
    def last(self) -> Optional[RefreshOutcome]:
        with self._cond:
            return self._last


class SalesPipeline:
    def __init__(
        self,
        settings: SourceSettings,
        *,
        source: Optional[TableSource] = None,
        config: Optional[IngestConfig] = None,
    ) -> None:
        self.settings = settings
        self._source = source
        self.config = config or load_ingest_config(settings.ingest_config_path)
        self.guard = RefreshGuard()

    @property
    def source(self) -> TableSource:
        if self._source is None:
            self._source = build_source(self.settings)
        return self._source

    @property
    def wait_timeout(self) -> float:
        # The fetch is bounded by the source timeout; ingestion itself is quick.
        return self.settings.timeout_seconds * 2

    def refresh(self, *, wait: bool = True) -> RefreshOutcome:
        if not self.guard.try_acquire():
            if wait:
                shared = self.guard.wait_for_outcome(self.wait_timeout)
                if shared is not None:
                    logger.info("Joined in-flight refresh #%d", shared.generation)
                    return shared
            logger.info("Refresh ignored: another refresh is still running")
            return RefreshOutcome(ignored=True)

        outcome: Optional[RefreshOutcome] = None
        try:
            generation = self.guard.generation
            outcome = self._load(generation)
            return outcome
        finally:
            self.guard.release(outcome)

    def current(self) -> RefreshOutcome:
        """Latest loaded records; fetches only when nothing has loaded successfully yet."""
        last = self.guard.last
        if last is not None and last.ok:
            return last
        return self.refresh()

    def _load(self, generation: int) -> RefreshOutcome:
        try:
            if not self.settings.spreadsheet_id:
                raise SourceNotConfigured("CAMPDASH_SPREADSHEET_ID is not configured.")
            records = load_records(
                self.source,
                self.settings.spreadsheet_id,
                range_id_for(self.settings),
                self.config,
            )
            return RefreshOutcome(records=records, generation=generation)
        except IngestError as exc:
            logger.warning("Refresh failed (%s): %s", exc.kind, exc.message)
            return RefreshOutcome(error=exc, generation=generation)
