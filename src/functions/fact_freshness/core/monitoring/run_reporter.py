"""Aggregate item outcomes and errors for one orchestrator run."""

from __future__ import annotations

import logging
import threading
from typing import Dict, Optional

from ..contracts.run_report import ErrorRecord, ItemOutcome, RunReport
from ..errors import FreshnessError

logger = logging.getLogger(__name__)


class RunReporter:
    """Collects counters, details and errors with thread safety.

    ``processed`` always equals ``successful + failed + skipped``. Successful
    clusters contribute one per updated member; skips and failures count once
    per item.
    """

    def __init__(self) -> None:
        self._report = RunReport()
        self._lock = threading.Lock()

    def record_success(self, outcome: ItemOutcome) -> None:
        updated = outcome.facts_updated if outcome.item_type == "cluster" else 1
        with self._lock:
            self._report.processed += updated
            self._report.successful += updated
            self._count_item(outcome.item_type)
            self._report.details.append(outcome)

    def record_skip(self, outcome: ItemOutcome) -> None:
        with self._lock:
            self._report.processed += 1
            self._report.skipped += 1
            self._count_item(outcome.item_type)
            self._report.details.append(outcome)
        logger.info("Skipped %s %s: %s", outcome.item_type, outcome.item_id, outcome.reason)

    def record_failure(
        self,
        item_type: str,
        item_id: str,
        exc: BaseException,
        *,
        name: Optional[str] = None,
        duration_ms: int = 0,
    ) -> None:
        stage = getattr(exc, "stage", "general")
        retryable = exc.retryable if isinstance(exc, FreshnessError) else False
        error = ErrorRecord(
            item_type=item_type,
            item_id=item_id,
            stage=stage,
            message=str(exc),
            exception_type=type(exc).__name__,
            retryable=retryable,
        )
        outcome = ItemOutcome(
            item_type=item_type,
            item_id=item_id,
            status="failed",
            name=name,
            reason=str(exc),
            duration_ms=duration_ms,
        )
        with self._lock:
            self._report.processed += 1
            self._report.failed += 1
            self._count_item(item_type)
            self._report.errors.append(error)
            self._report.details.append(outcome)
        logger.error("%s %s failed at %s: %s", item_type, item_id, stage, exc)

    def build(
        self,
        *,
        success: bool = True,
        message: str = "",
        config_snapshot: Optional[Dict[str, object]] = None,
        maintenance: Optional[Dict[str, object]] = None,
    ) -> RunReport:
        """Finalise and return the report."""

        with self._lock:
            self._report.success = success
            self._report.message = message
            self._report.config_snapshot = dict(config_snapshot or {})
            self._report.maintenance = dict(maintenance or {})
            self._report.finish()
            return self._report

    def _count_item(self, item_type: str) -> None:
        if item_type == "cluster":
            self._report.clusters += 1
        else:
            self._report.single_facts += 1
