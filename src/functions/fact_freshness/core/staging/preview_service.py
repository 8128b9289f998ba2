"""Stage a live preview for a stored article from its pending update records."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Sequence, Tuple

from ..contracts.facts import UpdateRecord
from ..contracts.staging import ClusterUpdate, FactUpdate, StagingResult
from ..db.fact_store import FactStore
from .pipeline import StagingPipeline

logger = logging.getLogger(__name__)


def group_pending_updates(records: Sequence[UpdateRecord]) -> Tuple[List[FactUpdate], List[ClusterUpdate]]:
    """Split history records into single-fact updates and per-cluster update groups."""

    singles: List[FactUpdate] = []
    clusters: Dict[str, ClusterUpdate] = {}
    for record in records:
        if record.outcome != "updated" or record.validation_status != "pending":
            continue
        if not record.previous_value or not record.new_value:
            continue
        update = FactUpdate(
            fact_id=record.fact_id,
            original_value=record.previous_value,
            updated_value=record.new_value,
        )
        if record.cluster_id:
            clusters.setdefault(record.cluster_id, ClusterUpdate(cluster_id=record.cluster_id)).updates.append(update)
        else:
            singles.append(update)
    return singles, list(clusters.values())


class PreviewService:
    def __init__(self, store: FactStore, pipeline: StagingPipeline) -> None:
        self._store = store
        self._pipeline = pipeline

    async def preview_article(self, article_id: str) -> Tuple[StagingResult, str | None]:
        """Return the staging result and article title; NotFoundError if the article is unknown."""

        article = await asyncio.to_thread(self._store.fetch_article, article_id)
        records = await asyncio.to_thread(self._store.fetch_pending_updates, article_id)
        singles, clusters = group_pending_updates(records)
        logger.info(
            "Article %s has %d pending single updates and %d cluster groups",
            article_id,
            len(singles),
            len(clusters),
        )
        result = await self._pipeline.stage(
            article.content,
            fact_updates=singles,
            cluster_updates=clusters,
            article_context=article.context,
            article_id=article.id,
        )
        return result, article.title
