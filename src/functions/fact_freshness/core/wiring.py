"""Assemble the orchestrator and preview service from configuration."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Mapping, Optional

from .db.fact_store import FactStore
from .integration.value_resolution import ValueResolutionClient
from .llm.gemini_client import GeminiQualityClient
from .orchestration.cascade_coordinator import CascadeCoordinator
from .orchestration.config_loader import (
    build_llm_config,
    build_orchestrator_config,
    build_resolution_endpoint,
    build_staging_config,
    build_supabase_settings,
)
from .orchestration.orchestrator import FreshnessOrchestrator
from .orchestration.single_fact_coordinator import SingleFactCoordinator
from .staging.pipeline import StagingPipeline
from .staging.preview_service import PreviewService

logger = logging.getLogger(__name__)


@contextmanager
def orchestrator_session(overrides: Optional[Mapping[str, object]] = None) -> Iterator[FreshnessOrchestrator]:
    """Yield a wired orchestrator and close its HTTP client afterwards.

    Raises ``ConfigurationError`` before anything is opened if settings are missing.
    """

    endpoint = build_resolution_endpoint()
    config = build_orchestrator_config(overrides, resolution_timeout_seconds=endpoint.timeout_seconds)
    store = FactStore(build_supabase_settings())
    resolver = ValueResolutionClient(endpoint)
    try:
        yield FreshnessOrchestrator(
            store=store,
            cascade=CascadeCoordinator(store=store, resolver=resolver, config=config),
            single=SingleFactCoordinator(store=store, resolver=resolver, config=config),
            config=config,
        )
    finally:
        resolver.close()


def build_staging_pipeline(overrides: Optional[Mapping[str, object]] = None) -> StagingPipeline:
    staging_config = build_staging_config(overrides)
    service = GeminiQualityClient(build_llm_config(), thresholds=staging_config.thresholds)
    return StagingPipeline(service, staging_config)


def build_preview_service(overrides: Optional[Mapping[str, object]] = None) -> PreviewService:
    return PreviewService(FactStore(build_supabase_settings()), build_staging_pipeline(overrides))
