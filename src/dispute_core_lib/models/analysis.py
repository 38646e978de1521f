"""Analysis data models - dispatch records, worker results and persisted analyses.

Key Models:
- AnalysisPhase: kanton_check | full_analysis | second_run
- AnalysisRequest: Two-phase dispatch record (persisted before dispatch, settled after)
- ThreadResult: Bookkeeping for one external job (running | done | error)
- KantonCheckResult / FullAnalysisResult: Canonical normalized worker output
- Analysis: Append-only persisted result of one completed phase
- DocumentExtraction: Confidence-scored facts extracted from a single document
- RateLimitWindow: Attempt counter for one (subject x operation) key
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# Phases & Dispatch
# ============================================================

class AnalysisPhase(str, Enum):
    """
    Supported worker invocations, in their implied (not enforced) order.
    """

    KANTON_CHECK = "kanton_check"
    """Decide whether the case belongs before the subdistrict court."""

    FULL_ANALYSIS = "full_analysis"
    """Structured legal analysis of the case and its documents."""

    SECOND_RUN = "second_run"
    """Follow-up analysis with answers to missing information and new uploads."""


class DispatchMode(str, Enum):
    """How the worker reply is delivered"""

    SYNC = "sync"
    """Reply embedded in the dispatch response."""

    ASYNC = "async"
    """Job id returned immediately, result pushed to the callback endpoint."""


class AnalysisRequestStatus(str, Enum):
    """Lifecycle of one dispatch record"""

    PENDING = "pending"
    DISPATCHED = "dispatched"
    COMPLETING = "completing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_settled(self) -> bool:
        """Check if the request reached a final outcome"""
        return self in (AnalysisRequestStatus.COMPLETED, AnalysisRequestStatus.FAILED)


class MissingInfoAnswer(BaseModel):
    """User answer to a previously flagged missing-information item"""

    requirement_id: str = Field(description="Id of the MissingInformationRequirement being answered")
    answer: str = Field(description="Free-text answer", min_length=1)
    label: Optional[str] = Field(default=None, description="Label of the question, echoed for context")


class AnalysisRequest(BaseModel):
    """
    Dispatch record for one invocation attempt.

    Persisted before the worker is called and settled afterwards, so a case
    whose status does not match its analyses can be reconciled from the
    request history. Input fields are never changed once dispatched.
    """

    request_id: str = Field(
        default_factory=lambda: f"req_{uuid4().hex[:12]}",
        description="Unique request identifier"
    )

    case_id: str = Field(description="Case the request belongs to")

    phase: AnalysisPhase = Field(description="Which analysis phase is requested")

    requested_by: str = Field(description="User id that triggered the request")

    dispatch_mode: DispatchMode = Field(default=DispatchMode.SYNC, description="Reply delivery mode")

    input_payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Variables sent to the worker"
    )

    prior_analysis: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Snapshot of the previous analysis (second_run only)"
    )

    missing_info_answers: Optional[List[MissingInfoAnswer]] = Field(
        default=None,
        description="Answers to previously flagged missing items"
    )

    # Outcome
    status: AnalysisRequestStatus = Field(default=AnalysisRequestStatus.PENDING)

    job_id: Optional[str] = Field(default=None, description="External job identifier once dispatched")

    rate_window_start: Optional[float] = Field(
        default=None, description="Start of the rate-limit window the attempt was counted in"
    )

    failure_kind: Optional[str] = Field(default=None, description="FailureKind value when failed")

    failure_message: Optional[str] = Field(default=None, description="Failure detail when failed")

    analysis_id: Optional[str] = Field(default=None, description="Resulting Analysis when completed")

    created_at: datetime = Field(default_factory=_utcnow)

    settled_at: Optional[datetime] = Field(default=None)


# ============================================================
# External Job Bookkeeping
# ============================================================

class JobStatus(str, Enum):
    """State of one external job"""

    RUNNING = "running"
    DONE = "done"
    ERROR = "error"


class ThreadResult(BaseModel):
    """
    Result slot for one external job, keyed by the worker's job id.

    Created as RUNNING at dispatch, mutated once when the result arrives.
    """

    job_id: str = Field(description="Opaque worker job identifier")

    status: JobStatus = Field(default=JobStatus.RUNNING)

    output: Any = Field(default=None, description="Output extracted from the reply (text or object)")

    raw: Optional[Dict[str, Any]] = Field(default=None, description="Verbatim reply payload")

    billing_cost: Optional[str] = Field(default=None, description="Cost metadata reported by the worker")

    error: Optional[str] = Field(default=None, description="Error detail when status is ERROR")

    updated_at: datetime = Field(default_factory=_utcnow)


class RateLimitWindow(BaseModel):
    """Attempt counter for one key within a fixed window that starts at the first attempt"""

    key: str
    count: int = Field(default=0, ge=0)
    window_start: float = Field(description="Epoch/monotonic seconds when the window opened")
    window_seconds: float = Field(gt=0)

    @property
    def expires_at(self) -> float:
        return self.window_start + self.window_seconds

    def is_expired(self, now: float) -> bool:
        """Check if the window has elapsed"""
        return now >= self.expires_at

    def remaining_seconds(self, now: float) -> float:
        """Seconds until the window elapses (never negative)"""
        return max(0.0, self.expires_at - now)


# ============================================================
# Normalized Worker Output
# ============================================================

class MissingInformationRequirement(BaseModel):
    """One piece of information the analysis needs from the user"""

    id: str = Field(description="Stable identifier, used to link answers")
    label: str = Field(description="Human label of what is missing")
    why_needed: Optional[str] = Field(default=None, description="Why the information matters")


class LegalBasisCitation(BaseModel):
    """Statutory basis cited by the analysis"""

    law: str
    article: Optional[str] = None
    note: Optional[str] = None


class EvidenceItem(BaseModel):
    """Evidence the worker found in the uploaded material"""

    source: str = "document"
    doc_name: str
    doc_url: Optional[str] = None
    key_passages: List[str] = Field(default_factory=list)


class Parties(BaseModel):
    """Parties as identified by the worker"""

    claimant_name: Optional[str] = None
    defendant_name: Optional[str] = None
    relationship: Optional[str] = None


class KantonCheckResult(BaseModel):
    """
    Normalized kanton_check verdict.

    A missing verdict normalizes to ok=False so an unreadable reply can never
    be mistaken for a suitable case.
    """

    ok: bool = Field(default=False, description="Worker completed the check")
    decision: Optional[bool] = Field(default=None, description="Case belongs before the kantonrechter")
    reason: Optional[str] = None
    summary: Optional[str] = None
    parties: Parties = Field(default_factory=Parties)
    legal_ground: Optional[str] = Field(default=None, description="Legal ground (grond)")
    amount_eur: Optional[float] = Field(default=None, description="Amount at stake (belang)")
    questions: List[MissingInformationRequirement] = Field(default_factory=list)
    source_shape: Optional[str] = Field(default=None, description="Response shape the verdict came from")

    @property
    def suitable(self) -> bool:
        """The case may proceed to full analysis"""
        return self.ok and self.decision is not False

    @property
    def is_empty(self) -> bool:
        """Nothing usable was found in the reply"""
        return self.source_shape is None


class CaseOverview(BaseModel):
    """Header data of a full analysis"""

    summary: Optional[str] = None
    case_type: Optional[str] = None
    amount_eur: Optional[float] = None
    parties: Parties = Field(default_factory=Parties)


class FullAnalysisResult(BaseModel):
    """
    Canonical normalized full_analysis / second_run output.

    Every list section is always present; sections the worker left empty stay
    empty here and are only filled by the fallback synthesizer, which records
    what it filled in ``synthesized_sections``.
    """

    REQUIRED_SECTIONS: ClassVar[Tuple[str, ...]] = (
        "known_facts",
        "disputed_facts",
        "unclear_facts",
        "evidence_provided",
        "evidence_missing",
        "legal_issues",
        "potential_defenses",
        "risks",
        "legal_basis",
        "next_actions",
    )

    case_overview: CaseOverview = Field(default_factory=CaseOverview)

    known_facts: List[str] = Field(default_factory=list)
    disputed_facts: List[str] = Field(default_factory=list)
    unclear_facts: List[str] = Field(default_factory=list)

    evidence_provided: List[EvidenceItem] = Field(default_factory=list)
    evidence_missing: List[str] = Field(default_factory=list)

    legal_issues: List[str] = Field(default_factory=list)
    potential_defenses: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)
    legal_basis: List[LegalBasisCitation] = Field(default_factory=list)
    next_actions: List[str] = Field(default_factory=list)

    missing_information: List[MissingInformationRequirement] = Field(default_factory=list)

    synthesized_sections: List[str] = Field(
        default_factory=list,
        description="Sections filled with generic placeholder content instead of worker output"
    )

    source_shape: Optional[str] = Field(default=None, description="Response shape the data came from")

    def empty_sections(self) -> List[str]:
        """Required sections that currently hold no entries"""
        return [name for name in self.REQUIRED_SECTIONS if not getattr(self, name)]

    @property
    def is_empty(self) -> bool:
        """Nothing usable was found in the reply"""
        overview = self.case_overview
        has_overview = any([overview.summary, overview.case_type, overview.amount_eur is not None])
        return (
            len(self.empty_sections()) == len(self.REQUIRED_SECTIONS)
            and not self.missing_information
            and not has_overview
        )


class DocumentExtraction(BaseModel):
    """Facts extracted from a single document, with the worker's confidence"""

    document_type: Optional[str] = None
    counterparty_name: Optional[str] = None
    amount_eur: Optional[float] = None
    document_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    description: Optional[str] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source_shape: Optional[str] = None

    @property
    def has_useful_data(self) -> bool:
        return bool(self.counterparty_name or self.amount_eur is not None or self.document_type)


# ============================================================
# Persisted Analysis
# ============================================================

class Analysis(BaseModel):
    """
    Persisted result of one completed phase.

    Append-only: a new analysis never overwrites an old one; "latest" is the
    most recently created record for the case.
    """

    analysis_id: str = Field(default_factory=lambda: f"ana_{uuid4().hex[:12]}")

    case_id: str

    phase: AnalysisPhase

    version: int = Field(default=1, ge=1, description="Per-case sequence number")

    request_id: Optional[str] = Field(default=None, description="AnalysisRequest that produced this record")

    job_id: Optional[str] = None

    raw_payload: Any = Field(default=None, description="Verbatim worker reply, kept for audit")

    kanton_check: Optional[KantonCheckResult] = None

    result: Optional[FullAnalysisResult] = None

    missing_information: List[MissingInformationRequirement] = Field(default_factory=list)

    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    synthesized_sections: List[str] = Field(default_factory=list)

    source_shape: Optional[str] = None

    billing_cost: Optional[str] = None

    prev_analysis_id: Optional[str] = None

    missing_info_answers: Optional[List[MissingInfoAnswer]] = None

    created_at: datetime = Field(default_factory=_utcnow)

    def snapshot(self) -> Dict[str, Any]:
        """Compact view of this analysis handed to the worker on a follow-up run"""
        snapshot: Dict[str, Any] = {
            "analysis_id": self.analysis_id,
            "phase": self.phase.value,
            "version": self.version,
        }
        if self.result is not None:
            snapshot["analysis"] = self.result.model_dump(
                mode="json", exclude={"synthesized_sections", "source_shape"}
            )
            # Placeholder content must not be fed back as if the worker said it
            for section in self.result.synthesized_sections:
                snapshot["analysis"][section] = []
        if self.kanton_check is not None:
            snapshot["kanton_check"] = self.kanton_check.model_dump(mode="json", exclude={"source_shape"})
        snapshot["missing_information"] = [
            item.model_dump(mode="json") for item in self.missing_information
        ]
        return snapshot
