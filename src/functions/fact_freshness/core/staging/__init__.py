"""Preview staging pipeline for articles with pending fact updates."""

from .draft_assembler import assemble_draft, expand_updates, order_updates
from .pipeline import StagingPipeline
from .preview_service import PreviewService, group_pending_updates
from .quality_gate import ContentQualityService
from .status_decision import decide_preview_status

__all__ = [
    "ContentQualityService",
    "PreviewService",
    "StagingPipeline",
    "assemble_draft",
    "decide_preview_status",
    "expand_updates",
    "group_pending_updates",
    "order_updates",
]
