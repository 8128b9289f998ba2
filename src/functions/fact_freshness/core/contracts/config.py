"""Configuration models for the fact freshness orchestrator."""

from __future__ import annotations

from typing import Dict, Optional

from pydantic import BaseModel, Field, HttpUrl, ValidationError, field_validator


class SupabaseSettings(BaseModel):
    """Settings required to interact with the fact store tables."""

    url: HttpUrl = Field(..., description="Supabase project URL")
    key: str = Field(..., min_length=10, description="Supabase service role or anon key")
    db_schema: str = Field(default="public", description="Target database schema")
    fact_table: str = Field(default="pulses", description="Table holding tracked facts")
    cluster_table: str = Field(default="semantic_clusters", description="Table holding fact clusters")
    history_table: str = Field(default="pulse_updates", description="Append-only update history")
    article_table: str = Field(default="articles", description="Table holding article content")
    cache_table: str = Field(default="pulse_data_cache", description="Resolution cache expired during maintenance")
    stats_function: str = Field(
        default="refresh_article_pulse_stats",
        description="RPC refreshing per-article fact statistics",
    )


class ServiceEndpointConfig(BaseModel):
    """HTTP endpoint definition for an external service call."""

    url: HttpUrl
    timeout_seconds: int = Field(default=60, ge=5, le=300)
    api_key: Optional[str] = Field(
        default=None,
        description="Optional API key sent via X-API-Key header",
    )
    authorization: Optional[str] = Field(
        default=None,
        description="Optional Authorization header value",
    )
    additional_headers: Dict[str, str] = Field(default_factory=dict)

    def build_headers(self) -> Dict[str, str]:
        """Return headers that should be attached to the request."""

        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        if self.authorization:
            headers["Authorization"] = self.authorization
        headers.update(self.additional_headers)
        return headers


class OrchestratorConfig(BaseModel):
    """Operational configuration for one scheduler run."""

    max_workers: int = Field(default=4, ge=1, le=16, description="Concurrent member writes per cluster")
    dry_run: bool = Field(default=False, description="Resolve values but never write to the store")
    lease_enabled: bool = Field(default=True, description="Claim items before mutating them")
    lease_seconds: int = Field(default=300, ge=30, le=3600)
    run_maintenance: bool = Field(default=True)
    update_method: str = Field(default="scheduled")

    @field_validator("update_method")
    @classmethod
    def _validate_method(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if cleaned not in {"scheduled", "manual"}:
            msg = "update_method must be 'scheduled' or 'manual'"
            raise ValueError(msg)
        return cleaned

    def snapshot(self) -> Dict[str, object]:
        """Return a serialisable snapshot for reporting."""

        try:
            return self.model_dump()
        except ValidationError:  # pragma: no cover
            return {"max_workers": self.max_workers, "dry_run": self.dry_run}


class QualityThresholds(BaseModel):
    """Minimum score per quality dimension."""

    grammar: float = Field(default=0.85, ge=0.0, le=1.0)
    semantic: float = Field(default=0.80, ge=0.0, le=1.0)
    tone: float = Field(default=0.75, ge=0.0, le=1.0)
    meaning: float = Field(default=0.85, ge=0.0, le=1.0)
    overall: float = Field(default=0.80, ge=0.0, le=1.0)


class StagingConfig(BaseModel):
    """Behaviour controls for the staging pipeline."""

    thresholds: QualityThresholds = Field(default_factory=QualityThresholds)
    confidence_floor: float = Field(default=0.7, ge=0.0, le=1.0)
    max_corrections: int = Field(default=5, ge=0)
    timeout_seconds: float = Field(default=120.0, gt=0, le=900)


class LLMConfig(BaseModel):
    """Configuration for the Gemini content quality client."""

    model: str = Field(default="gemini-2.5-flash-lite", min_length=1)
    api_key: str = Field(..., min_length=1)
    timeout_seconds: int = Field(default=60, ge=10, le=300)
    max_requests_per_minute: int = Field(default=60, ge=1)
