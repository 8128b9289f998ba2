"""Construct orchestrator and staging configuration from the environment."""

from __future__ import annotations

import logging
import os
from typing import Dict, Mapping, Optional

from src.shared.utils.config_validator import (
    ConfigurationError,
    require_env,
    validate_bool_env,
    validate_int_env,
)
from src.shared.utils.env import get_env

from ..contracts.config import (
    LLMConfig,
    OrchestratorConfig,
    QualityThresholds,
    ServiceEndpointConfig,
    StagingConfig,
    SupabaseSettings,
)

logger = logging.getLogger(__name__)


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def build_orchestrator_config(
    overrides: Optional[Mapping[str, object]] = None,
    *,
    resolution_timeout_seconds: Optional[int] = None,
) -> OrchestratorConfig:
    """Build run settings; a lease must outlive one value resolution call."""

    overrides = overrides or {}
    dry_run = overrides.get("dry_run")
    lease_enabled = overrides.get("lease_enabled")
    max_workers = overrides.get("max_workers")
    run_maintenance = overrides.get("run_maintenance")
    config = OrchestratorConfig(
        max_workers=int(max_workers) if max_workers is not None else validate_int_env("FRESHNESS_MAX_WORKERS", 4, 1, 16),
        dry_run=_as_bool(dry_run) if dry_run is not None else validate_bool_env("FRESHNESS_DRY_RUN", False),
        lease_enabled=(
            _as_bool(lease_enabled) if lease_enabled is not None else validate_bool_env("FRESHNESS_LEASE_ENABLED", True)
        ),
        lease_seconds=validate_int_env("FRESHNESS_LEASE_SECONDS", 300, 30, 3600),
        run_maintenance=(
            _as_bool(run_maintenance)
            if run_maintenance is not None
            else validate_bool_env("FRESHNESS_RUN_MAINTENANCE", True)
        ),
        update_method=str(overrides.get("update_method") or "scheduled"),
    )
    if (
        config.lease_enabled
        and resolution_timeout_seconds is not None
        and config.lease_seconds <= resolution_timeout_seconds
    ):
        raise ConfigurationError(
            f"FRESHNESS_LEASE_SECONDS ({config.lease_seconds}) must exceed "
            f"VALUE_RESOLUTION_TIMEOUT ({resolution_timeout_seconds})"
        )
    return config


def build_staging_config(overrides: Optional[Mapping[str, object]] = None) -> StagingConfig:
    overrides = overrides or {}
    timeout = overrides.get("timeout_seconds")
    if timeout is None:
        timeout = validate_int_env("STAGING_TIMEOUT_SECONDS", 120, 1, 900)
    thresholds = overrides.get("thresholds")
    return StagingConfig(
        thresholds=QualityThresholds(**thresholds) if isinstance(thresholds, Mapping) else QualityThresholds(),
        timeout_seconds=float(timeout),
    )


def build_supabase_settings(overrides: Optional[Mapping[str, object]] = None) -> SupabaseSettings:
    """Build Supabase settings with validation."""

    overrides = overrides or {}
    try:
        url = overrides.get("url") or require_env("SUPABASE_URL", "Supabase project URL")
        key = overrides.get("key") or get_env("SUPABASE_KEY") or require_env("SUPABASE_ANON_KEY", "Supabase API key")
    except ConfigurationError as exc:
        raise ConfigurationError(
            f"{exc}\nRequired for the fact freshness orchestrator. "
            "See .env.example for configuration template."
        ) from exc

    return SupabaseSettings(
        url=url,
        key=key,
        db_schema=overrides.get("schema") or os.getenv("SUPABASE_SCHEMA", "public"),
        fact_table=overrides.get("fact_table") or os.getenv("FRESHNESS_FACT_TABLE", "pulses"),
        cluster_table=overrides.get("cluster_table") or os.getenv("FRESHNESS_CLUSTER_TABLE", "semantic_clusters"),
        history_table=overrides.get("history_table") or os.getenv("FRESHNESS_HISTORY_TABLE", "pulse_updates"),
        article_table=overrides.get("article_table") or os.getenv("FRESHNESS_ARTICLE_TABLE", "articles"),
    )


def build_resolution_endpoint(override: Optional[Mapping[str, object]] = None) -> ServiceEndpointConfig:
    """Build the value resolution endpoint; it is required for every scheduler run."""

    prefix = "VALUE_RESOLUTION"
    override = override or {}
    url = override.get("url") or get_env(f"{prefix}_URL") or get_env(f"{prefix}_ENDPOINT")
    if not url:
        raise ConfigurationError(
            f"Missing required environment variable: {prefix}_URL (value resolution service endpoint)"
        )
    additional_headers: Dict[str, str] = {
        key[len(prefix) + len("_HEADER_") :]: value
        for key, value in os.environ.items()
        if key.startswith(f"{prefix}_HEADER_")
    }
    additional_headers.update(override.get("additional_headers") or {})
    return ServiceEndpointConfig(
        url=url,
        timeout_seconds=int(override.get("timeout_seconds") or validate_int_env(f"{prefix}_TIMEOUT", 60, 5, 300)),
        api_key=override.get("api_key") or get_env(f"{prefix}_API_KEY"),
        authorization=override.get("authorization") or get_env(f"{prefix}_AUTHORIZATION"),
        additional_headers=additional_headers,
    )


def build_llm_config(overrides: Optional[Mapping[str, object]] = None) -> LLMConfig:
    overrides = overrides or {}
    api_key = overrides.get("api_key") or get_env("GEMINI_API_KEY")
    if not api_key:
        raise ConfigurationError("Missing required environment variable: GEMINI_API_KEY (content quality service)")
    return LLMConfig(
        model=str(overrides.get("model") or get_env("GEMINI_MODEL", "gemini-2.5-flash-lite")),
        api_key=str(api_key),
        timeout_seconds=validate_int_env("GEMINI_TIMEOUT_SECONDS", 60, 10, 300),
    )
