"""Dispute Core Library

Case lifecycle, analysis orchestration and worker-output normalization for the
dispute case services.
"""

__version__ = "0.1.0"

# Export shared models first (no dependencies)
from dispute_core_lib.models import (
    Case, CaseStatus, CaseDocument, Analysis, AnalysisPhase, AnalysisRequest,
    FullAnalysisResult, KantonCheckResult, DocumentExtraction,
)

from dispute_core_lib.errors import FailureKind, OrchestrationError

from dispute_core_lib.lifecycle import CaseLifecycle, CaseStatusMachine

from dispute_core_lib.orchestration import AnalysisOrchestrator

__all__ = [
    # Models
    "Case", "CaseStatus", "CaseDocument", "Analysis", "AnalysisPhase",
    "AnalysisRequest", "FullAnalysisResult", "KantonCheckResult", "DocumentExtraction",
    # Errors
    "FailureKind", "OrchestrationError",
    # Lifecycle
    "CaseLifecycle", "CaseStatusMachine",
    # Orchestration
    "AnalysisOrchestrator",
]
