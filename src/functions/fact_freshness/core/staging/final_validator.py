"""Independent final validation of the candidate content."""

from __future__ import annotations

import logging
from typing import Optional

from ..contracts.staging import FinalValidation
from .budget import Budget
from .quality_gate import ContentQualityService

logger = logging.getLogger(__name__)


async def validate_candidate(
    service: ContentQualityService,
    original_content: str,
    candidate_content: str,
    *,
    budget: Budget,
    article_context: Optional[str] = None,
    correction_count: int = 0,
) -> FinalValidation:
    """Return the service verdict, or a not-approved result if it cannot be obtained."""

    try:
        return await budget.bound(
            service.validate_final(
                original_content,
                candidate_content,
                article_context=article_context,
                correction_count=correction_count,
            )
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("Final validation unavailable, blocking preview: %s", str(exc) or type(exc).__name__)
        return FinalValidation.failed(str(exc) or type(exc).__name__)
