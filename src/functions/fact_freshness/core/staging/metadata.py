"""Summary metadata for a staging run."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Sequence

from ..contracts.staging import CorrectionRecord, FinalValidation, QualityAssessment, StagingMetadata

_SUCCESSFUL_CONFIDENCE = 0.7
_HIGH_CONFIDENCE = 0.8


def build_metadata(
    assessment: QualityAssessment,
    corrections: Sequence[CorrectionRecord],
    validation: FinalValidation,
    *,
    duration_ms: int,
) -> StagingMetadata:
    initial_overall = assessment.scores.overall
    return StagingMetadata(
        processing_timestamp=datetime.now(timezone.utc).isoformat(),
        duration_ms=max(0, duration_ms),
        initial_scores=assessment.scores.to_dict(),
        final_score=validation.final_score,
        score_improvement=round(validation.final_score - initial_overall, 4),
        thresholds_met=validation.approved,
        total_corrections=len(corrections),
        correction_types=dict(Counter(record.issue_type for record in corrections)),
        correction_success_rate=round(
            sum(1 for record in corrections if record.confidence > _SUCCESSFUL_CONFIDENCE) / max(len(corrections), 1),
            4,
        ),
        high_confidence_corrections=sum(1 for record in corrections if record.confidence > _HIGH_CONFIDENCE),
        remaining_issue_count=len(validation.remaining_issues),
        assessment_degraded=assessment.degraded,
        validation_degraded=validation.degraded,
    )
