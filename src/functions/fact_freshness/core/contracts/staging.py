"""Contracts exchanged between the stages of the preview staging pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from .config import QualityThresholds

ISSUE_TYPES = frozenset(
    {
        "grammar_error",
        "semantic_break",
        "tone_mismatch",
        "meaning_drift",
        "coherence_issue",
        "flow_disruption",
    }
)
SEVERITY_RANK = {"critical": 4, "high": 3, "medium": 2, "low": 1}
ISSUE_LOCATIONS = frozenset({"sentence", "paragraph", "article"})
RECOMMENDATIONS = frozenset(
    {
        "approve_for_preview",
        "needs_minor_fixes",
        "requires_major_revision",
        "manual_review_required",
    }
)
READINESS = frozenset({"ready", "conditional", "not_ready"})
PREVIEW_STATUSES = frozenset({"blocked", "conditional", "caution", "approved"})
SCORE_DIMENSIONS = ("grammar", "semantic", "tone", "meaning", "overall")


def _clamp(value: Any, minimum: float = 0.0, maximum: float = 1.0) -> float:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return minimum
    return max(minimum, min(maximum, numeric))


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] is not None:
            return payload[key]
    return None


@dataclass
class FactUpdate:
    """A pending replacement of one fact's value inside article content."""

    original_value: str
    updated_value: str
    fact_id: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "FactUpdate":
        return cls(
            fact_id=_first(payload, "fact_id", "factId", "pulse_id", "pulseId"),
            original_value=str(_first(payload, "original_value", "originalValue", "old_value") or ""),
            updated_value=str(_first(payload, "updated_value", "updatedValue", "new_value") or ""),
        )

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "fact_id": self.fact_id,
            "original_value": self.original_value,
            "updated_value": self.updated_value,
        }


@dataclass
class ClusterUpdate:
    """All member replacements produced by one cluster refresh."""

    cluster_id: Optional[str]
    updates: List[FactUpdate] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ClusterUpdate":
        members = _first(payload, "updates", "members") or []
        return cls(
            cluster_id=_first(payload, "cluster_id", "clusterId"),
            updates=[FactUpdate.from_payload(item) for item in members if isinstance(item, Mapping)],
        )


@dataclass
class QualityIssue:
    """One problem reported by the quality assessment."""

    type: str
    severity: str
    description: str = ""
    location: str = "sentence"
    affected_text: Optional[str] = None
    suggested_fix: Optional[str] = None
    confidence: float = 0.0

    def __post_init__(self) -> None:
        issue_type = (self.type or "").strip().lower()
        if issue_type not in ISSUE_TYPES:
            raise ValueError(f"Unsupported issue type: {self.type!r}")
        self.type = issue_type
        severity = (self.severity or "").strip().lower()
        if severity not in SEVERITY_RANK:
            raise ValueError(f"Unsupported issue severity: {self.severity!r}")
        self.severity = severity
        location = (self.location or "sentence").strip().lower()
        self.location = location if location in ISSUE_LOCATIONS else "sentence"
        self.confidence = _clamp(self.confidence)
        if self.affected_text is not None and not self.affected_text.strip():
            self.affected_text = None

    @property
    def severity_rank(self) -> int:
        return SEVERITY_RANK[self.severity]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity": self.severity,
            "location": self.location,
            "description": self.description,
            "affected_text": self.affected_text,
            "suggested_fix": self.suggested_fix,
            "confidence": self.confidence,
        }


@dataclass
class QualityScores:
    """Five independent quality scores in [0, 1]."""

    grammar: float = 0.0
    semantic: float = 0.0
    tone: float = 0.0
    meaning: float = 0.0
    overall: float = 0.0

    def __post_init__(self) -> None:
        for dimension in SCORE_DIMENSIONS:
            setattr(self, dimension, _clamp(getattr(self, dimension)))

    def failing_dimensions(self, thresholds: QualityThresholds) -> List[str]:
        """Return the dimensions scoring below their threshold."""

        return [
            dimension
            for dimension in SCORE_DIMENSIONS
            if getattr(self, dimension) < getattr(thresholds, dimension)
        ]

    def to_dict(self) -> Dict[str, float]:
        return {dimension: getattr(self, dimension) for dimension in SCORE_DIMENSIONS}


@dataclass
class QualityAssessment:
    """Scores and issues for a draft, judged against local thresholds."""

    scores: QualityScores
    thresholds: QualityThresholds = field(default_factory=QualityThresholds)
    issues: List[QualityIssue] = field(default_factory=list)
    degraded: bool = False
    error: Optional[str] = None

    @property
    def passes_threshold(self) -> bool:
        return not self.scores.failing_dimensions(self.thresholds)

    @classmethod
    def worst_case(cls, thresholds: QualityThresholds, error: str) -> "QualityAssessment":
        """Conservative result used when the assessment could not be obtained."""

        return cls(scores=QualityScores(), thresholds=thresholds, issues=[], degraded=True, error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scores": self.scores.to_dict(),
            "thresholds": self.thresholds.model_dump(),
            "passes_threshold": self.passes_threshold,
            "failing_dimensions": self.scores.failing_dimensions(self.thresholds),
            "issues": [issue.to_dict() for issue in self.issues],
            "degraded": self.degraded,
            "error": self.error,
        }


@dataclass
class CorrectionProposal:
    """Replacement text proposed for a single issue's affected span."""

    success: bool
    corrected_text: Optional[str] = None
    change_summary: Optional[str] = None
    reasoning: Optional[str] = None
    confidence: float = 0.0

    def __post_init__(self) -> None:
        self.confidence = _clamp(self.confidence)


@dataclass
class CorrectionRecord:
    """A correction that was applied to the content."""

    issue_type: str
    severity: str
    original_text: str
    corrected_text: str
    reasoning: Optional[str] = None
    confidence: float = 0.0
    change_summary: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue_type": self.issue_type,
            "severity": self.severity,
            "original_text": self.original_text,
            "corrected_text": self.corrected_text,
            "reasoning": self.reasoning,
            "confidence": self.confidence,
            "change_summary": self.change_summary,
        }


@dataclass
class FinalValidation:
    """Independent go/no-go assessment of the candidate content."""

    approved: bool
    confidence: float
    final_score: float = 0.0
    recommendation: str = "manual_review_required"
    readiness: str = "not_ready"
    remaining_issues: List[Dict[str, Any]] = field(default_factory=list)
    editor_notes: Optional[str] = None
    degraded: bool = False
    error: Optional[str] = None

    def __post_init__(self) -> None:
        self.approved = bool(self.approved)
        self.confidence = _clamp(self.confidence)
        self.final_score = _clamp(self.final_score)
        recommendation = (self.recommendation or "").strip().lower()
        self.recommendation = recommendation if recommendation in RECOMMENDATIONS else "manual_review_required"
        readiness = (self.readiness or "").strip().lower()
        self.readiness = readiness if readiness in READINESS else "not_ready"

    @classmethod
    def failed(cls, error: str) -> "FinalValidation":
        """Fail-safe result used when validation could not be obtained."""

        return cls(
            approved=False,
            confidence=0.0,
            final_score=0.0,
            recommendation="manual_review_required",
            readiness="not_ready",
            degraded=True,
            error=error,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "approved": self.approved,
            "confidence": self.confidence,
            "final_score": self.final_score,
            "recommendation": self.recommendation,
            "readiness": self.readiness,
            "remaining_issues": list(self.remaining_issues),
            "editor_notes": self.editor_notes,
            "degraded": self.degraded,
            "error": self.error,
        }


@dataclass(frozen=True)
class PreviewStatus:
    """Publish-readiness decision with a human readable reason and action."""

    status: str
    reason: str
    action: str

    def __post_init__(self) -> None:
        if self.status not in PREVIEW_STATUSES:
            raise ValueError(f"Unsupported preview status: {self.status!r}")

    def to_dict(self) -> Dict[str, str]:
        return {"status": self.status, "reason": self.reason, "action": self.action}


@dataclass
class StagingMetadata:
    """Summary numbers describing one staging run."""

    processing_timestamp: str
    duration_ms: int
    initial_scores: Dict[str, float]
    final_score: float
    score_improvement: float
    thresholds_met: bool
    total_corrections: int
    correction_types: Dict[str, int]
    correction_success_rate: float
    high_confidence_corrections: int
    remaining_issue_count: int
    assessment_degraded: bool = False
    validation_degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processing_timestamp": self.processing_timestamp,
            "duration_ms": self.duration_ms,
            "quality_summary": {
                "initial_scores": dict(self.initial_scores),
                "final_score": self.final_score,
                "improvement": self.score_improvement,
                "thresholds_met": self.thresholds_met,
                "assessment_degraded": self.assessment_degraded,
            },
            "corrections_summary": {
                "total_corrections": self.total_corrections,
                "correction_types": dict(self.correction_types),
                "success_rate": self.correction_success_rate,
                "high_confidence_corrections": self.high_confidence_corrections,
            },
            "validation_summary": {
                "remaining_issues_count": self.remaining_issue_count,
                "validation_degraded": self.validation_degraded,
            },
        }


@dataclass
class StagingResult:
    """Terminal output of the staging pipeline for one article."""

    original_content: str
    draft_content: str
    final_content: str
    assessment: QualityAssessment
    corrections: List[CorrectionRecord]
    final_validation: FinalValidation
    preview_status: PreviewStatus
    metadata: StagingMetadata
    article_id: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def ready_for_preview(self) -> bool:
        return self.preview_status.status == "approved"

    @property
    def correction_count(self) -> int:
        return len(self.corrections)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "article_id": self.article_id,
            "ready_for_preview": self.ready_for_preview,
            "original_content": self.original_content,
            "draft_content": self.draft_content,
            "final_content": self.final_content,
            "quality_assessment": self.assessment.to_dict(),
            "corrections": [record.to_dict() for record in self.corrections],
            "final_validation": self.final_validation.to_dict(),
            "preview_status": self.preview_status.to_dict(),
            "staging_metadata": self.metadata.to_dict(),
            "created_at": self.created_at,
        }
