"""
Shared data models for the dispute case core.

This package provides Pydantic models shared by the status machine, the
analysis orchestrator and the HTTP layer.
"""

from dispute_core_lib.models.case import (
    # Core case model
    Case,
    CaseStatus,
    CaseStatusTransition,
    UserRole,
    is_valid_transition,
    LATERAL_TRANSITIONS,

    # Documents
    CaseDocument,
)

from dispute_core_lib.models.analysis import (
    # Dispatch
    AnalysisPhase,
    DispatchMode,
    AnalysisRequest,
    AnalysisRequestStatus,
    MissingInfoAnswer,

    # Job bookkeeping
    JobStatus,
    ThreadResult,
    RateLimitWindow,

    # Normalized output
    MissingInformationRequirement,
    LegalBasisCitation,
    EvidenceItem,
    Parties,
    KantonCheckResult,
    CaseOverview,
    FullAnalysisResult,
    DocumentExtraction,

    # Persisted
    Analysis,
)

__all__ = [
    # Core case
    "Case", "CaseStatus", "CaseStatusTransition", "UserRole",
    "is_valid_transition", "LATERAL_TRANSITIONS",
    # Documents
    "CaseDocument",
    # Dispatch
    "AnalysisPhase", "DispatchMode", "AnalysisRequest", "AnalysisRequestStatus",
    "MissingInfoAnswer",
    # Job bookkeeping
    "JobStatus", "ThreadResult", "RateLimitWindow",
    # Normalized output
    "MissingInformationRequirement", "LegalBasisCitation", "EvidenceItem",
    "Parties", "KantonCheckResult", "CaseOverview", "FullAnalysisResult",
    "DocumentExtraction",
    # Persisted
    "Analysis",
]
