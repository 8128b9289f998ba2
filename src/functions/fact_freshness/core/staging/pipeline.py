"""Staging pipeline: draft, assess, correct, validate, decide."""

from __future__ import annotations

import logging
import time
from typing import Iterable, List, Optional

from ..contracts.config import StagingConfig
from ..contracts.staging import ClusterUpdate, CorrectionRecord, FactUpdate, StagingResult
from .budget import Budget
from .correction_loop import run_corrections
from .draft_assembler import assemble_draft, expand_updates
from .final_validator import validate_candidate
from .metadata import build_metadata
from .quality_gate import ContentQualityService, assess_draft
from .status_decision import decide_preview_status

logger = logging.getLogger(__name__)


class StagingPipeline:
    """Turns pending updates for one article into a publish-readiness decision.

    Always terminates with a decision: service failures and an exhausted time
    budget degrade to conservative results instead of raising.
    """

    def __init__(self, service: ContentQualityService, config: Optional[StagingConfig] = None) -> None:
        self._service = service
        self._config = config or StagingConfig()

    async def stage(
        self,
        original_content: str,
        *,
        fact_updates: Iterable[FactUpdate] = (),
        cluster_updates: Iterable[ClusterUpdate] = (),
        article_context: Optional[str] = None,
        article_id: Optional[str] = None,
    ) -> StagingResult:
        started = time.monotonic()
        budget = Budget(self._config.timeout_seconds)
        fact_updates = list(fact_updates)
        cluster_updates = list(cluster_updates)
        update_count = len(expand_updates(fact_updates, cluster_updates))

        draft = assemble_draft(original_content, fact_updates, cluster_updates)
        logger.info("Staging article %s with %d updates", article_id or "<inline>", update_count)

        assessment = await assess_draft(
            self._service,
            original_content,
            draft,
            thresholds=self._config.thresholds,
            budget=budget,
            article_context=article_context,
            update_count=update_count,
        )

        final_content = draft
        corrections: List[CorrectionRecord] = []
        if not assessment.passes_threshold:
            final_content, corrections = await run_corrections(
                self._service,
                draft,
                assessment.issues,
                original_content=original_content,
                budget=budget,
                article_context=article_context,
            )

        validation = await validate_candidate(
            self._service,
            original_content,
            final_content,
            budget=budget,
            article_context=article_context,
            correction_count=len(corrections),
        )
        status = decide_preview_status(
            validation,
            len(corrections),
            confidence_floor=self._config.confidence_floor,
            max_corrections=self._config.max_corrections,
        )
        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info("Staging decided %s for article %s in %dms", status.status, article_id or "<inline>", duration_ms)

        return StagingResult(
            article_id=article_id,
            original_content=original_content,
            draft_content=draft,
            final_content=final_content,
            assessment=assessment,
            corrections=corrections,
            final_validation=validation,
            preview_status=status,
            metadata=build_metadata(assessment, corrections, validation, duration_ms=duration_ms),
        )
