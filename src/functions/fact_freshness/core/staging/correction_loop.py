"""Apply issue-scoped corrections to a draft that failed the quality gate."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

from ..contracts.staging import CorrectionRecord, QualityIssue
from .budget import Budget
from .quality_gate import ContentQualityService

logger = logging.getLogger(__name__)


def order_issues(issues: Sequence[QualityIssue]) -> List[QualityIssue]:
    """Most severe first; issues of equal severity keep their reported order."""

    return sorted(issues, key=lambda issue: -issue.severity_rank)


async def run_corrections(
    service: ContentQualityService,
    content: str,
    issues: Sequence[QualityIssue],
    *,
    original_content: str,
    budget: Budget,
    article_context: Optional[str] = None,
) -> Tuple[str, List[CorrectionRecord]]:
    """Correct issues one at a time against the current content.

    A failed correction leaves the content untouched and the loop continues.
    """

    current = content
    records: List[CorrectionRecord] = []
    for issue in order_issues(issues):
        span = issue.affected_text
        if not span or span not in current:
            logger.debug("Skipping %s issue: affected text not found in content", issue.type)
            continue
        try:
            proposal = await budget.bound(
                service.correct_issue(
                    issue,
                    current,
                    original_content=original_content,
                    article_context=article_context,
                )
            )
        except Exception as exc:  # noqa: BLE001
            logger.warning("Correction for %s issue failed: %s", issue.type, str(exc) or type(exc).__name__)
            continue
        if not proposal.success or proposal.corrected_text is None:
            logger.info("Correction service declined %s issue: %s", issue.type, proposal.reasoning)
            continue

        current = current.replace(span, proposal.corrected_text, 1)
        records.append(
            CorrectionRecord(
                issue_type=issue.type,
                severity=issue.severity,
                original_text=span,
                corrected_text=proposal.corrected_text,
                reasoning=proposal.reasoning,
                confidence=proposal.confidence,
                change_summary=proposal.change_summary,
            )
        )
    logger.info("Applied %d of %d corrections", len(records), len(issues))
    return current, records
