"""In-memory stand-ins for the fact store and external services used across tests."""

from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from src.functions.fact_freshness.core.categories import FactCategory
from src.functions.fact_freshness.core.contracts.config import QualityThresholds
from src.functions.fact_freshness.core.contracts.facts import (
    Article,
    Cluster,
    Fact,
    UpdateRecord,
    parse_timestamp,
)
from src.functions.fact_freshness.core.contracts.resolution import ClusterProposal, ValueProposal
from src.functions.fact_freshness.core.contracts.staging import (
    CorrectionProposal,
    FinalValidation,
    QualityAssessment,
    QualityIssue,
    QualityScores,
)
from src.functions.fact_freshness.core.errors import LeaseLost, NotFoundError, PersistenceError

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

_COLUMN_TO_ATTR = {
    "current_value": "current_value",
    "last_updated": "last_refreshed",
    "next_update": "next_due",
    "update_count": "refresh_count",
    "confidence_score": "confidence",
    "source_url": "source_url",
}
_TIMESTAMP_COLUMNS = {"last_updated", "next_update"}


def make_fact(
    fact_id: str,
    value: str = "$100",
    *,
    category: FactCategory = FactCategory.CRYPTO,
    cadence: int = 60,
    due_in_minutes: int = -5,
    priority: int = 0,
    cluster_id: Optional[str] = None,
    primary: bool = False,
    is_active: bool = True,
) -> Fact:
    return Fact(
        id=fact_id,
        article_id="article-1",
        category=category,
        subtype=f"{category.value}_price",
        current_value=value,
        cadence_minutes=cadence,
        next_due=NOW + timedelta(minutes=due_in_minutes),
        last_refreshed=NOW - timedelta(hours=2),
        refresh_count=3,
        confidence=0.7,
        priority=priority,
        is_active=is_active,
        cluster_id=cluster_id,
        is_primary_in_cluster=primary,
    )


def make_cluster(cluster_id: str, members: Sequence[Fact], *, priority: int = 0, name: Optional[str] = None) -> Cluster:
    primaries = [member for member in members if member.is_primary_in_cluster]
    primary = primaries[0] if len(primaries) == 1 else None
    return Cluster(
        id=cluster_id,
        name=name or f"Cluster {cluster_id}",
        relation_type="comparison",
        priority=priority,
        semantic_rule="values must stay consistent",
        primary_fact_id=primary.id if primary else None,
        member_ids=[member.id for member in members],
        primary=primary,
        primary_candidates=len(primaries),
    )


class FakeStore:
    """Dict-backed fact store with failure injection."""

    def __init__(self, facts: Sequence[Fact] = (), clusters: Sequence[Cluster] = ()) -> None:
        self.facts: Dict[str, Fact] = {fact.id: replace(fact) for fact in facts}
        self.clusters: Dict[str, Cluster] = {cluster.id: cluster for cluster in clusters}
        self.articles: Dict[str, Article] = {}
        self.records: List[UpdateRecord] = []
        self.pending: Dict[str, List[UpdateRecord]] = {}
        self.touched: List[str] = []
        self.update_calls: List[str] = []
        self.fail_update_for: set = set()
        self.fail_history = False
        self.fail_due_reads: Optional[Exception] = None
        self.steal_claims: set = set()
        self.maintenance_runs = 0

    # due work
    def fetch_due_clusters(self, now: datetime) -> List[Cluster]:
        if self.fail_due_reads is not None:
            raise self.fail_due_reads
        result = []
        for cluster in self.clusters.values():
            if cluster.primary is not None:
                cluster.primary = replace(self.facts[cluster.primary.id])
            result.append(cluster)
        return result

    def fetch_due_facts(self, now: datetime) -> List[Fact]:
        if self.fail_due_reads is not None:
            raise self.fail_due_reads
        return [replace(fact) for fact in self.facts.values() if fact.cluster_id is None]

    # lookups
    def get_fact(self, fact_id: str) -> Fact:
        if fact_id not in self.facts:
            raise NotFoundError("fact", fact_id)
        return replace(self.facts[fact_id])

    def get_cluster(self, cluster_id: str) -> Cluster:
        if cluster_id not in self.clusters:
            raise NotFoundError("cluster", cluster_id)
        return self.clusters[cluster_id]

    def fetch_cluster_members(self, cluster_id: str) -> List[Fact]:
        return [replace(fact) for fact in self.facts.values() if fact.cluster_id == cluster_id]

    def fetch_article(self, article_id: str) -> Article:
        if article_id not in self.articles:
            raise NotFoundError("article", article_id)
        return self.articles[article_id]

    def fetch_pending_updates(self, article_id: str) -> List[UpdateRecord]:
        return list(self.pending.get(article_id, []))

    # writes
    def update_fact(self, fact_id: str, fields: Dict[str, object], *, lease_until: Optional[datetime] = None) -> None:
        self.update_calls.append(fact_id)
        if fact_id in self.fail_update_for:
            raise PersistenceError(f"Failed to update fact {fact_id}: injected")
        if fact_id not in self.facts:
            raise PersistenceError(f"Fact {fact_id} was not updated (row missing)")
        if lease_until is not None and self.facts[fact_id].next_due != lease_until:
            raise LeaseLost(fact_id)
        changes = {}
        for column, value in fields.items():
            if column in _TIMESTAMP_COLUMNS:
                value = parse_timestamp(value)
            changes[_COLUMN_TO_ATTR[column]] = value
        self.facts[fact_id] = replace(self.facts[fact_id], **changes)

    def restore_fact(self, snapshot: Fact) -> None:
        self.facts[snapshot.id] = replace(snapshot)

    def claim_fact(self, fact_id: str, observed_next_due: Optional[datetime], lease_until: datetime) -> bool:
        if fact_id in self.steal_claims:
            return False
        fact = self.facts[fact_id]
        if fact.next_due != observed_next_due:
            return False
        self.facts[fact_id] = replace(fact, next_due=lease_until)
        return True

    def release_fact(self, fact_id: str, lease_until: datetime, restore_to: Optional[datetime]) -> bool:
        fact = self.facts[fact_id]
        if fact.next_due != lease_until:
            return False
        self.facts[fact_id] = replace(fact, next_due=restore_to)
        return True

    def touch_cluster(self, cluster_id: str, at: datetime) -> None:
        self.touched.append(cluster_id)

    def insert_update_records(self, records) -> None:
        records = list(records)
        if self.fail_history:
            raise PersistenceError(f"Failed to insert {len(records)} update record(s): injected")
        self.records.extend(records)

    def insert_update_record(self, record: UpdateRecord) -> None:
        self.insert_update_records([record])

    def run_maintenance(self, now: datetime) -> Dict[str, object]:
        self.maintenance_runs += 1
        return {"cache_cleanup": "ok", "stats_refresh": "ok"}


class FakeResolver:
    """Returns queued proposals or raises queued exceptions."""

    def __init__(self) -> None:
        self.fact_results: Dict[str, object] = {}
        self.cluster_results: Dict[str, object] = {}
        self.fact_calls: List[tuple] = []
        self.cluster_calls: List[tuple] = []
        self.on_resolve: Optional[Callable[[str], None]] = None

    def resolve_fact(self, fact: Fact, *, method: str = "scheduled") -> ValueProposal:
        self.fact_calls.append((fact.id, method))
        if self.on_resolve:
            self.on_resolve(fact.id)
        result = self.fact_results[fact.id]
        if isinstance(result, Exception):
            raise result
        return result

    def resolve_cluster(self, cluster: Cluster, primary: Fact, members, *, method: str = "scheduled") -> ClusterProposal:
        self.cluster_calls.append((cluster.id, primary.id, method))
        if self.on_resolve:
            self.on_resolve(cluster.id)
        result = self.cluster_results[cluster.id]
        if isinstance(result, Exception):
            raise result
        return result


class FakeQualityService:
    """Scripted content quality service; each queue entry is a result or exception."""

    def __init__(
        self,
        *,
        assessment=None,
        corrections: Optional[Dict[str, object]] = None,
        validation=None,
        delay: float = 0.0,
    ) -> None:
        self.assessment = assessment
        self.corrections = corrections or {}
        self.validation = validation
        self.delay = delay
        self.assess_calls: List[str] = []
        self.correction_calls: List[str] = []
        self.validation_calls: List[str] = []

    async def assess_quality(self, original_content, draft_content, *, article_context=None, update_count=0):
        self.assess_calls.append(draft_content)
        if self.delay:
            await asyncio.sleep(self.delay)
        if isinstance(self.assessment, Exception):
            raise self.assessment
        return self.assessment

    async def correct_issue(self, issue, current_content, *, original_content, article_context=None):
        self.correction_calls.append(issue.affected_text)
        result = self.corrections.get(issue.affected_text)
        if isinstance(result, Exception):
            raise result
        if result is None:
            return CorrectionProposal(success=False, reasoning="no fix")
        return result

    async def validate_final(self, original_content, candidate_content, *, article_context=None, correction_count=0):
        self.validation_calls.append(candidate_content)
        if isinstance(self.validation, Exception):
            raise self.validation
        return self.validation


def passing_assessment() -> QualityAssessment:
    return QualityAssessment(
        scores=QualityScores(grammar=0.95, semantic=0.9, tone=0.9, meaning=0.95, overall=0.92),
        thresholds=QualityThresholds(),
    )


def failing_assessment(issues: Sequence[QualityIssue]) -> QualityAssessment:
    return QualityAssessment(
        scores=QualityScores(grammar=0.6, semantic=0.9, tone=0.9, meaning=0.9, overall=0.7),
        thresholds=QualityThresholds(),
        issues=list(issues),
    )


def approved_validation(confidence: float = 0.9) -> FinalValidation:
    return FinalValidation(
        approved=True,
        confidence=confidence,
        final_score=0.9,
        recommendation="approve_for_preview",
        readiness="ready",
    )
