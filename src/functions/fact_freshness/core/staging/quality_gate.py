"""Five-dimension quality gate over an assembled draft."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from ..contracts.config import QualityThresholds
from ..contracts.staging import CorrectionProposal, FinalValidation, QualityAssessment, QualityIssue
from .budget import Budget

logger = logging.getLogger(__name__)


class ContentQualityService(Protocol):
    """Assessment, single-issue correction and final validation of article content."""

    async def assess_quality(
        self,
        original_content: str,
        draft_content: str,
        *,
        article_context: Optional[str] = None,
        update_count: int = 0,
    ) -> QualityAssessment: ...

    async def correct_issue(
        self,
        issue: QualityIssue,
        current_content: str,
        *,
        original_content: str,
        article_context: Optional[str] = None,
    ) -> CorrectionProposal: ...

    async def validate_final(
        self,
        original_content: str,
        candidate_content: str,
        *,
        article_context: Optional[str] = None,
        correction_count: int = 0,
    ) -> FinalValidation: ...


async def assess_draft(
    service: ContentQualityService,
    original_content: str,
    draft_content: str,
    *,
    thresholds: QualityThresholds,
    budget: Budget,
    article_context: Optional[str] = None,
    update_count: int = 0,
) -> QualityAssessment:
    """Score the draft; any service failure yields the degraded worst case."""

    try:
        assessment = await budget.bound(
            service.assess_quality(
                original_content,
                draft_content,
                article_context=article_context,
                update_count=update_count,
            )
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Quality assessment unavailable, assuming worst case: %s", str(exc) or type(exc).__name__)
        return QualityAssessment.worst_case(thresholds, error=str(exc) or type(exc).__name__)

    # Pass/fail is always judged against our thresholds, never the service's
    assessment.thresholds = thresholds
    failing = assessment.scores.failing_dimensions(thresholds)
    logger.info(
        "Quality assessment: overall=%.2f failing=%s issues=%d",
        assessment.scores.overall,
        failing or "none",
        len(assessment.issues),
    )
    return assessment
