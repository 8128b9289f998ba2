"""Publish-readiness decision from the final validation."""

from __future__ import annotations

from ..contracts.staging import FinalValidation, PreviewStatus

BLOCKED = PreviewStatus("blocked", "Quality standards not met", "Manual review required")
CONDITIONAL = PreviewStatus("conditional", "Low confidence in corrections", "Editor review recommended")
CAUTION = PreviewStatus("caution", "Many corrections applied", "Review corrections before publishing")
APPROVED = PreviewStatus("approved", "All quality checks passed", "Ready for live preview")


def decide_preview_status(
    validation: FinalValidation,
    correction_count: int,
    *,
    confidence_floor: float = 0.7,
    max_corrections: int = 5,
) -> PreviewStatus:
    """Evaluated in order: not approved, low confidence, too many corrections, approved."""

    if not validation.approved:
        return BLOCKED
    if validation.confidence < confidence_floor:
        return CONDITIONAL
    if correction_count > max_corrections:
        return CAUTION
    return APPROVED
