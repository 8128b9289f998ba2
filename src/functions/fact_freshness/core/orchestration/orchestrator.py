"""One scheduler run: due clusters, then due unclustered facts, then maintenance."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from ..contracts.config import OrchestratorConfig
from ..contracts.facts import Cluster, Fact, utcnow
from ..contracts.run_report import RunReport
from ..db.due_work_finder import DueWorkFinder
from ..db.fact_store import FactStore
from ..errors import FreshnessError, NotFoundError
from ..monitoring.run_reporter import RunReporter
from .cascade_coordinator import CascadeCoordinator
from .single_fact_coordinator import SingleFactCoordinator

logger = logging.getLogger(__name__)


class FreshnessOrchestrator:
    """Drives a single pass over due work with per-item failure isolation.

    ``DueWorkUnavailableError`` from the finder propagates to the caller; any
    other per-item error is recorded in the run report and the run moves on.
    """

    def __init__(
        self,
        *,
        store: FactStore,
        cascade: CascadeCoordinator,
        single: SingleFactCoordinator,
        config: OrchestratorConfig,
        finder: Optional[DueWorkFinder] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._cascade = cascade
        self._single = single
        self._config = config
        self._finder = finder or DueWorkFinder(store)
        self._clock = clock

    def run(self) -> RunReport:
        now = self._clock()
        reporter = RunReporter()
        logger.info("Fact freshness run starting (dry_run=%s)", self._config.dry_run)

        work = self._finder.find(now)
        if work.is_empty:
            logger.info("No updates due at this time")
            return reporter.build(
                message="No updates due",
                config_snapshot=self._config.snapshot(),
                maintenance=self._maintenance(now),
            )

        for cluster, problem in work.rejected_clusters:
            reporter.record_failure(
                "cluster",
                cluster.id,
                FreshnessError(f"Cluster {cluster.id} is invalid: {problem}", stage="cluster_integrity"),
                name=cluster.name,
            )

        for cluster in work.clusters:
            self._process_cluster(cluster, reporter)

        for fact in work.facts:
            self._process_fact(fact, reporter)

        report = reporter.build(
            message="Updates completed",
            config_snapshot=self._config.snapshot(),
            maintenance=self._maintenance(now),
        )
        logger.info(
            "Run finished in %dms: %d/%d successful, %d failed, %d skipped",
            report.duration_ms,
            report.successful,
            report.processed,
            report.failed,
            report.skipped,
        )
        return report

    def trigger_cluster(self, cluster_id: str) -> RunReport:
        """Refresh one cluster on demand, regardless of its due time."""

        reporter = RunReporter()
        try:
            cluster = self._store.get_cluster(cluster_id)
        except NotFoundError as exc:
            reporter.record_failure("cluster", cluster_id, exc)
            return reporter.build(success=False, message=str(exc), config_snapshot=self._config.snapshot())

        problem = cluster.integrity_problem()
        if problem:
            reporter.record_failure(
                "cluster",
                cluster.id,
                FreshnessError(f"Cluster {cluster.id} is invalid: {problem}", stage="cluster_integrity"),
                name=cluster.name,
            )
        else:
            self._process_cluster(cluster, reporter, method="manual")
        return reporter.build(message="Manual cluster update", config_snapshot=self._config.snapshot())

    def trigger_fact(self, fact_id: str) -> RunReport:
        """Refresh one fact on demand; clustered facts refresh their whole cluster."""

        reporter = RunReporter()
        try:
            fact = self._store.get_fact(fact_id)
        except NotFoundError as exc:
            reporter.record_failure("single_fact", fact_id, exc)
            return reporter.build(success=False, message=str(exc), config_snapshot=self._config.snapshot())

        if fact.cluster_id:
            logger.info("Fact %s belongs to cluster %s; refreshing the cluster", fact.id, fact.cluster_id)
            return self.trigger_cluster(fact.cluster_id)

        self._process_fact(fact, reporter, method="manual")
        return reporter.build(message="Manual fact update", config_snapshot=self._config.snapshot())

    def _process_cluster(self, cluster: Cluster, reporter: RunReporter, *, method: Optional[str] = None) -> None:
        try:
            outcome = self._cascade.process(cluster, method=method)
        except Exception as exc:  # noqa: BLE001
            reporter.record_failure("cluster", cluster.id, exc, name=cluster.name)
            return
        if outcome.status == "skipped":
            reporter.record_skip(outcome)
        else:
            reporter.record_success(outcome)

    def _process_fact(self, fact: Fact, reporter: RunReporter, *, method: Optional[str] = None) -> None:
        try:
            outcome = self._single.process(fact, method=method)
        except Exception as exc:  # noqa: BLE001
            reporter.record_failure("single_fact", fact.id, exc, name=fact.subtype or None)
            return
        if outcome.status == "skipped":
            reporter.record_skip(outcome)
        else:
            reporter.record_success(outcome)

    def _maintenance(self, now: datetime) -> Dict[str, object]:
        if not self._config.run_maintenance or self._config.dry_run:
            return {"skipped": True}
        return self._store.run_maintenance(now)
