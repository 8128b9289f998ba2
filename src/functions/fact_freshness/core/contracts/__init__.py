"""Contracts for the fact freshness orchestrator."""

from .config import (
    LLMConfig,
    OrchestratorConfig,
    QualityThresholds,
    ServiceEndpointConfig,
    StagingConfig,
    SupabaseSettings,
)
from .facts import Article, Cluster, Fact, UpdateRecord, confidence_score
from .resolution import ClusterProposal, MemberUpdate, ValueProposal
from .run_report import ErrorRecord, ItemOutcome, RunReport
from .staging import (
    ClusterUpdate,
    CorrectionProposal,
    CorrectionRecord,
    FactUpdate,
    FinalValidation,
    PreviewStatus,
    QualityAssessment,
    QualityIssue,
    QualityScores,
    StagingMetadata,
    StagingResult,
)

__all__ = [
    "Article",
    "Cluster",
    "ClusterProposal",
    "ClusterUpdate",
    "CorrectionProposal",
    "CorrectionRecord",
    "ErrorRecord",
    "Fact",
    "FactUpdate",
    "FinalValidation",
    "ItemOutcome",
    "LLMConfig",
    "MemberUpdate",
    "OrchestratorConfig",
    "PreviewStatus",
    "QualityAssessment",
    "QualityIssue",
    "QualityScores",
    "QualityThresholds",
    "RunReport",
    "ServiceEndpointConfig",
    "StagingConfig",
    "StagingMetadata",
    "StagingResult",
    "SupabaseSettings",
    "UpdateRecord",
    "ValueProposal",
    "confidence_score",
]
