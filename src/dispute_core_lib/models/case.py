"""Case data models - ordered dispute lifecycle.

This module defines the case record as the orchestration core sees it. The
record itself is owned by the case-record store; the core only reads it and
requests status transitions through the status machine.

Key Models:
- Case: Root case entity with status, step labels and timestamps
- CaseStatus: Ordered lifecycle (NEW_INTAKE → ... → JUDGMENT)
- CaseStatusTransition: Immutable audit record of one status change
- CaseDocument: Read-only view of an uploaded document

Architecture:
- Status only moves forward, except for explicit lateral moves
- Progress is derived from the position of the status in the order
- Repository abstraction (no direct database imports)
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator, model_validator


# ============================================================
# Status & Lifecycle Models
# ============================================================

class CaseStatus(str, Enum):
    """
    Case lifecycle status.

    Lifecycle Flow:
      NEW_INTAKE → DOCS_UPLOADED → ANALYZED → LETTER_DRAFTED → BAILIFF_ORDERED
        → SERVED → SUMMONS_DRAFTED → FILED → PROCEEDINGS_ONGOING → JUDGMENT

    Lateral Moves:
      ANALYZED → DOCS_UPLOADED (insufficient information, back to uploads)

    Terminal State: JUDGMENT
    """

    NEW_INTAKE = "NEW_INTAKE"
    """Case created, nothing uploaded yet."""

    DOCS_UPLOADED = "DOCS_UPLOADED"
    """
    At least one document uploaded.

    Also the resting state after an analysis concluded that the case is not
    (yet) suitable, with a corrective next action for the user.
    """

    ANALYZED = "ANALYZED"
    """At least one analysis phase completed successfully."""

    LETTER_DRAFTED = "LETTER_DRAFTED"
    """Demand letter drafted."""

    BAILIFF_ORDERED = "BAILIFF_ORDERED"
    """Bailiff instructed to serve the summons."""

    SERVED = "SERVED"
    """Bailiff confirmed service (via callback)."""

    SUMMONS_DRAFTED = "SUMMONS_DRAFTED"
    """Summons drafted."""

    FILED = "FILED"
    """Case filed with the court."""

    PROCEEDINGS_ONGOING = "PROCEEDINGS_ONGOING"
    """Court proceedings started."""

    JUDGMENT = "JUDGMENT"
    """
    TERMINAL STATE: judgment recorded.

    No further transitions allowed.
    """

    @classmethod
    def ordered(cls) -> List["CaseStatus"]:
        """All statuses in lifecycle order"""
        return list(cls)

    @property
    def position(self) -> int:
        """Zero-based position in the lifecycle order"""
        return CaseStatus.ordered().index(self)

    @property
    def is_terminal(self) -> bool:
        """Check if this status is terminal"""
        return self == CaseStatus.JUDGMENT

    @property
    def progress(self) -> float:
        """Fraction of the lifecycle completed: (index + 1) / total_states"""
        return (self.position + 1) / len(CaseStatus.ordered())

    @property
    def progress_percentage(self) -> int:
        """Progress rounded to a whole percentage for display"""
        return round(self.progress * 100)


# Explicitly allowed moves against the lifecycle order
LATERAL_TRANSITIONS = {
    (CaseStatus.ANALYZED, CaseStatus.DOCS_UPLOADED),
}


def is_valid_transition(from_status: CaseStatus, to_status: CaseStatus) -> bool:
    """
    Validate status transition.

    Valid Transitions:
    - Any forward move in lifecycle order (skipping steps is allowed)
    - Same status (idempotent re-application)
    - Explicit lateral moves (ANALYZED → DOCS_UPLOADED)

    Invalid:
    - Any other backward move
    - JUDGMENT → anything else (terminal)
    """
    if from_status == to_status:
        return True

    if from_status.is_terminal:
        return False

    if (from_status, to_status) in LATERAL_TRANSITIONS:
        return True

    return to_status.position > from_status.position


class CaseStatusTransition(BaseModel):
    """
    Record of one status change.
    Provides audit trail for case lifecycle.
    """

    from_status: CaseStatus = Field(
        description="Status before transition"
    )

    to_status: CaseStatus = Field(
        description="Status after transition"
    )

    triggered_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When transition occurred"
    )

    triggered_by: str = Field(
        default="system",
        description="Who triggered: user_id or 'system' for side-effect driven transitions"
    )

    reason: str = Field(
        default="",
        description="Human-readable reason for transition",
        max_length=500
    )

    @model_validator(mode='after')
    def validate_transition(self):
        """Ensure transition is valid and an actual change"""
        if self.from_status == self.to_status:
            raise ValueError(f"Transition must change status: {self.from_status.value}")
        if not is_valid_transition(self.from_status, self.to_status):
            raise ValueError(
                f"Invalid transition: {self.from_status.value} → {self.to_status.value}"
            )
        return self

    class Config:
        frozen = True  # Immutable once created


class UserRole(str, Enum):
    """Who the user is in the dispute"""

    EISER = "EISER"
    """User is the claimant"""

    GEDAAGDE = "GEDAAGDE"
    """User is the defendant"""


# ============================================================
# Documents
# ============================================================

class CaseDocument(BaseModel):
    """
    Read-only view of a document held by the document store.

    The orchestration core never stores binaries itself; it only needs the
    extracted text and an externally fetchable URL to hand to the worker.
    """

    document_id: str = Field(
        default_factory=lambda: f"doc_{uuid4().hex[:12]}",
        description="Unique document identifier"
    )

    case_id: str = Field(description="Case this document belongs to")

    filename: str = Field(description="Original filename", min_length=1)

    mimetype: str = Field(default="application/octet-stream", description="MIME type")

    size_bytes: int = Field(default=0, ge=0, description="File size in bytes")

    extracted_text: Optional[str] = Field(
        default=None,
        description="Raw text extracted by the document store (may be empty for images)"
    )

    public_url: Optional[str] = Field(
        default=None,
        description="Externally fetchable URL the worker can download the file from"
    )

    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Upload timestamp"
    )

    @property
    def file_type(self) -> str:
        """Coarse file type tag understood by the worker: pdf | img | docx | txt"""
        mimetype = self.mimetype.lower()
        name = self.filename.lower()
        if mimetype == "application/pdf" or name.endswith(".pdf"):
            return "pdf"
        if mimetype.startswith("image/"):
            return "img"
        if "wordprocessingml" in mimetype or name.endswith(".docx"):
            return "docx"
        return "txt"


# ============================================================
# Core Case Model
# ============================================================

class Case(BaseModel):
    """
    Root case entity.
    Represents one dispute walked from intake to judgment.
    """

    # ============================================================
    # Core Identity
    # ============================================================
    case_id: str = Field(
        default_factory=lambda: f"case_{uuid4().hex[:12]}",
        description="Unique case identifier",
        min_length=1,
        max_length=64
    )

    owner_user_id: str = Field(
        description="User who owns the case",
        min_length=1,
        max_length=255
    )

    title: str = Field(
        description="Short case title",
        min_length=1,
        max_length=200
    )

    description: Optional[str] = Field(
        default=None,
        description="Free-text narrative of the dispute as entered at intake"
    )

    category: Optional[str] = Field(
        default=None,
        description="Dispute category chosen at intake (e.g. 'huur', 'koop')"
    )

    claim_amount: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Claimed amount in EUR"
    )

    # ============================================================
    # Parties
    # ============================================================
    claimant_name: Optional[str] = Field(default=None, description="Claimant (eiser) name")
    claimant_address: Optional[str] = Field(default=None, description="Claimant street address")
    claimant_city: Optional[str] = Field(default=None, description="Claimant city")

    counterparty_type: Optional[str] = Field(
        default=None,
        description="individual | company"
    )
    counterparty_name: Optional[str] = Field(default=None, description="Counterparty (gedaagde) name")
    counterparty_address: Optional[str] = Field(default=None, description="Counterparty street address")
    counterparty_city: Optional[str] = Field(default=None, description="Counterparty city")

    user_role: UserRole = Field(
        default=UserRole.EISER,
        description="Role of the user in the dispute"
    )

    # ============================================================
    # Status (User-Facing Lifecycle)
    # ============================================================
    status: CaseStatus = Field(
        default=CaseStatus.NEW_INTAKE,
        description="Current lifecycle status"
    )

    current_step: Optional[str] = Field(
        default=None,
        description="Human label of where the user is in the workflow"
    )

    next_action_label: Optional[str] = Field(
        default=None,
        description="Label of the next required action"
    )

    status_history: List[CaseStatusTransition] = Field(
        default_factory=list,
        description="Complete history of status changes"
    )

    has_unseen_missing_items: bool = Field(
        default=False,
        description="Set after an analysis reports missing information the user has not looked at yet"
    )

    # ============================================================
    # Timestamps
    # ============================================================
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When case was created"
    )

    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="Touched on every state-relevant mutation; callers use it to detect staleness"
    )

    # ============================================================
    # Computed Properties
    # ============================================================
    @property
    def progress(self) -> float:
        """Fraction of the lifecycle completed"""
        return self.status.progress

    @property
    def progress_percentage(self) -> int:
        """Whole-number progress percentage for display"""
        return self.status.progress_percentage

    @property
    def is_terminal(self) -> bool:
        """Check if case reached judgment"""
        return self.status.is_terminal

    # ============================================================
    # Validation
    # ============================================================
    @field_validator('title')
    @classmethod
    def title_not_empty(cls, v):
        """Ensure title is not just whitespace"""
        if not v or not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    @field_validator('status_history')
    @classmethod
    def status_history_ordered(cls, v):
        """Ensure status history is chronologically ordered"""
        for earlier, later in zip(v, v[1:]):
            if earlier.triggered_at > later.triggered_at:
                raise ValueError("Status history must be chronologically ordered")
        return v

    @model_validator(mode='after')
    def validate_timestamp_ordering(self) -> 'Case':
        """created_at must not be after updated_at"""
        if self.created_at > self.updated_at:
            raise ValueError(
                f"created_at ({self.created_at}) cannot be after updated_at ({self.updated_at})"
            )
        return self
