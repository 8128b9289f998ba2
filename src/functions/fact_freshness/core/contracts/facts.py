"""Store-backed records: facts, clusters and update history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional

from ..categories import FactCategory, clamp_cadence

CONFIDENCE_SCORES = {"high": 0.9, "medium": 0.7, "low": 0.5}

RELATION_TYPES = frozenset({"comparison", "trend", "forecast", "composition", "dependency"})
UPDATE_METHODS = frozenset({"scheduled", "manual"})
VALIDATION_STATUSES = frozenset({"approved", "pending"})
OUTCOMES = frozenset({"updated", "skipped", "failed"})


def confidence_score(label: Optional[str]) -> float:
    """Map a confidence label (high/medium/low) to the stored numeric score."""

    return CONFIDENCE_SCORES.get(str(label or "").strip().lower(), 0.5)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp from the store; naive values are taken as UTC."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


@dataclass(slots=True)
class Fact:
    """One trackable, time-varying text span embedded in an article."""

    id: str
    article_id: Optional[str]
    category: FactCategory
    subtype: str
    current_value: str
    cadence_minutes: int
    next_due: Optional[datetime]
    last_refreshed: Optional[datetime] = None
    refresh_count: int = 0
    confidence: float = 0.0
    priority: int = 0
    is_active: bool = True
    cluster_id: Optional[str] = None
    is_primary_in_cluster: bool = False
    selected_text: Optional[str] = None
    static_prefix: Optional[str] = None
    static_suffix: Optional[str] = None
    surrounding_text: Optional[str] = None
    article_context: Optional[str] = None
    prompt_template: Optional[str] = None
    source_url: Optional[str] = None

    @property
    def cadence(self) -> timedelta:
        return timedelta(minutes=self.cadence_minutes)

    def is_due(self, now: datetime) -> bool:
        """Return True when the fact is active and its next-due time has passed."""

        return self.is_active and self.next_due is not None and self.next_due <= now

    def context_text(self) -> str:
        """Return the best available surrounding text for resolution prompts."""

        return self.surrounding_text or self.selected_text or self.current_value

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Fact":
        category = FactCategory.parse(row.get("pulse_type") or row.get("category"))
        return cls(
            id=str(row["id"]),
            article_id=row.get("article_id"),
            category=category,
            subtype=str(row.get("specific_type") or row.get("subtype") or ""),
            current_value=str(row.get("current_value") or ""),
            cadence_minutes=clamp_cadence(row.get("update_frequency"), category),
            next_due=parse_timestamp(row.get("next_update")),
            last_refreshed=parse_timestamp(row.get("last_updated")),
            refresh_count=_to_int(row.get("update_count")),
            confidence=_to_float(row.get("confidence_score")),
            priority=_to_int(row.get("update_priority")),
            is_active=row.get("is_active") is not False,
            cluster_id=row.get("semantic_cluster_id"),
            is_primary_in_cluster=bool(row.get("is_primary_in_cluster")),
            selected_text=row.get("selected_text"),
            static_prefix=row.get("static_prefix"),
            static_suffix=row.get("static_suffix"),
            surrounding_text=row.get("surrounding_sentences"),
            article_context=row.get("article_context"),
            prompt_template=row.get("prompt_template"),
            source_url=row.get("source_url"),
        )


@dataclass(slots=True)
class Cluster:
    """A set of facts whose values must change together; triggered by its primary."""

    id: str
    name: str
    relation_type: str
    priority: int
    semantic_rule: str
    primary_fact_id: Optional[str]
    member_ids: List[str] = field(default_factory=list)
    is_active: bool = True
    updated_at: Optional[datetime] = None
    primary: Optional[Fact] = None
    primary_candidates: int = 0

    def integrity_problem(self) -> Optional[str]:
        """Return a description of why the cluster cannot be scheduled, if any."""

        if self.primary_candidates > 1:
            return f"cluster has {self.primary_candidates} facts flagged as primary"
        if not self.primary_fact_id:
            return "cluster has no designated primary fact"
        if self.primary is None:
            return "primary fact row is missing"
        if self.primary.id != self.primary_fact_id:
            return "primary fact does not match the designated primary id"
        return None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Cluster":
        joined = row.get("pulses")
        if isinstance(joined, Mapping):
            joined = [joined]
        joined_rows = [item for item in (joined or []) if isinstance(item, Mapping)]
        primaries = [item for item in joined_rows if item.get("is_primary_in_cluster")]

        primary: Optional[Fact] = None
        if len(primaries) == 1:
            primary = Fact.from_row({**primaries[0], "semantic_cluster_id": row.get("id")})

        primary_id = row.get("primary_pulse_id")
        if not primary_id and primary is not None:
            primary_id = primary.id

        relation = str(row.get("cluster_type") or "dependency").strip().lower()
        if relation not in RELATION_TYPES:
            relation = "dependency"

        members = row.get("member_pulse_ids") or [item.get("id") for item in joined_rows]
        return cls(
            id=str(row["id"]),
            name=str(row.get("cluster_name") or row.get("id")),
            relation_type=relation,
            priority=_to_int(row.get("update_priority")),
            semantic_rule=str(row.get("semantic_rule") or ""),
            primary_fact_id=str(primary_id) if primary_id else None,
            member_ids=[str(member) for member in members if member],
            is_active=row.get("is_active") is not False,
            updated_at=parse_timestamp(row.get("updated_at")),
            primary=primary,
            primary_candidates=len(primaries),
        )


@dataclass(slots=True)
class UpdateRecord:
    """Append-only history entry written once per fact per refresh attempt."""

    fact_id: str
    previous_value: Optional[str]
    new_value: Optional[str]
    source: Optional[str]
    method: str = "scheduled"
    validation_status: str = "pending"
    outcome: str = "updated"
    confidence: float = 0.0
    cluster_id: Optional[str] = None
    reasoning: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)
    id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.method not in UPDATE_METHODS:
            raise ValueError(f"Unsupported update method: {self.method!r}")
        if self.validation_status not in VALIDATION_STATUSES:
            raise ValueError(f"Unsupported validation status: {self.validation_status!r}")
        if self.outcome not in OUTCOMES:
            raise ValueError(f"Unsupported outcome: {self.outcome!r}")

    def to_row(self) -> Dict[str, Any]:
        return {
            "pulse_id": self.fact_id,
            "cluster_id": self.cluster_id,
            "old_value": self.previous_value,
            "new_value": self.new_value,
            "update_source": self.source,
            "update_method": self.method,
            "validation_status": self.validation_status,
            "outcome": self.outcome,
            "confidence_score": self.confidence,
            "reasoning": self.reasoning,
            "data_source_metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "UpdateRecord":
        return cls(
            id=str(row["id"]) if row.get("id") is not None else None,
            fact_id=str(row.get("pulse_id")),
            cluster_id=row.get("cluster_id"),
            previous_value=row.get("old_value"),
            new_value=row.get("new_value"),
            source=row.get("update_source"),
            method=row.get("update_method") or "scheduled",
            validation_status=row.get("validation_status") or "pending",
            outcome=row.get("outcome") or "updated",
            confidence=_to_float(row.get("confidence_score")),
            reasoning=row.get("reasoning"),
            metadata=dict(row.get("data_source_metadata") or {}),
            created_at=parse_timestamp(row.get("created_at")) or utcnow(),
        )


@dataclass(slots=True)
class Article:
    """Article content needed to stage a preview."""

    id: str
    content: str
    context: Optional[str] = None
    title: Optional[str] = None

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Article":
        return cls(
            id=str(row["id"]),
            content=str(row.get("content_html") or row.get("raw_content") or ""),
            context=row.get("article_context"),
            title=row.get("title"),
        )
