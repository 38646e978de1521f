"""API Request/Response Models for the analysis endpoints.

These models keep the HTTP layer separate from the domain models. They handle:
- Request validation
- Response serialization
- Stable field names for the frontend
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from dispute_core_lib.models.analysis import (
    Analysis,
    AnalysisPhase,
    AnalysisRequestStatus,
    DispatchMode,
    DocumentExtraction,
    FullAnalysisResult,
    JobStatus,
    KantonCheckResult,
    MissingInfoAnswer,
    MissingInformationRequirement,
    ThreadResult,
)
from dispute_core_lib.models.case import Case, CaseStatus


# ============================================================
# Requests
# ============================================================

class FullAnalysisRequest(BaseModel):
    """Request to run the full analysis phase."""

    mode: DispatchMode = Field(
        default=DispatchMode.SYNC,
        description="sync blocks until the worker replies; async returns a job id to poll"
    )


class SecondRunRequest(BaseModel):
    """Request to run a follow-up analysis with answers to missing information."""

    missing_info_answers: List[MissingInfoAnswer] = Field(
        default_factory=list,
        description="Answers to items flagged by the previous analysis"
    )

    mode: DispatchMode = Field(default=DispatchMode.SYNC)


class ExtractionRequest(BaseModel):
    """Request to extract dispute facts from one document's text."""

    text: str = Field(description="Raw text of the document", min_length=1, max_length=200_000)

    filename: Optional[str] = Field(default=None, max_length=255)

    purpose: Literal["display", "action"] = Field(
        default="display",
        description="display unblocks showing the data; action gates a monetary/legal step"
    )


# ============================================================
# Responses
# ============================================================

class CaseProgress(BaseModel):
    """Where the case stands in its lifecycle."""

    case_id: str
    status: CaseStatus
    current_step: Optional[str] = None
    next_action_label: Optional[str] = None
    progress_percentage: int = Field(ge=0, le=100)
    updated_at: datetime

    @classmethod
    def from_case(cls, case: Case) -> "CaseProgress":
        """Convert Case domain model to API progress view."""
        return cls(
            case_id=case.case_id,
            status=case.status,
            current_step=case.current_step,
            next_action_label=case.next_action_label,
            progress_percentage=case.progress_percentage,
            updated_at=case.updated_at,
        )


class AnalysisView(BaseModel):
    """Persisted analysis as returned to the frontend."""

    analysis_id: str
    case_id: str
    phase: AnalysisPhase
    version: int
    kanton_check: Optional[KantonCheckResult] = None
    result: Optional[FullAnalysisResult] = None
    missing_information: List[MissingInformationRequirement] = Field(default_factory=list)
    synthesized_sections: List[str] = Field(default_factory=list)
    billing_cost: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_analysis(cls, analysis: Analysis) -> "AnalysisView":
        """Drop the raw payload, which is kept for audit only."""
        return cls(
            analysis_id=analysis.analysis_id,
            case_id=analysis.case_id,
            phase=analysis.phase,
            version=analysis.version,
            kanton_check=analysis.kanton_check,
            result=analysis.result,
            missing_information=analysis.missing_information,
            synthesized_sections=analysis.synthesized_sections,
            billing_cost=analysis.billing_cost,
            created_at=analysis.created_at,
        )


class PhaseRunResponse(BaseModel):
    """Outcome of starting an analysis phase."""

    request_id: str
    phase: AnalysisPhase
    status: AnalysisRequestStatus
    job_id: Optional[str] = Field(default=None, description="Poll /mindstudio/result with this id (async mode)")
    analysis: Optional[AnalysisView] = Field(default=None, description="Present when the phase completed inline")
    case: CaseProgress


class PollResponse(BaseModel):
    """State of one external job."""

    job_id: str
    status: JobStatus
    output: Any = None
    billing_cost: Optional[str] = None
    error: Optional[str] = None
    processed_result: Optional[FullAnalysisResult] = None

    @classmethod
    def from_thread_result(
        cls, result: ThreadResult, processed: Optional[FullAnalysisResult] = None
    ) -> "PollResponse":
        return cls(
            job_id=result.job_id,
            status=result.status,
            output=result.output,
            billing_cost=result.billing_cost,
            error=result.error,
            processed_result=processed,
        )


class CallbackAck(BaseModel):
    """Acknowledgement sent back to the worker."""

    success: bool = True
    job_id: str
    matched_request: bool = Field(description="Whether the job belonged to a tracked analysis request")


class ExtractionResponse(BaseModel):
    """Accepted extraction result."""

    extraction: DocumentExtraction
    threshold: float


class ErrorResponse(BaseModel):
    """Error body for all orchestration failures."""

    kind: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
