"""Typed failures raised by the orchestration core.

Every failure carries a stable ``kind`` tag, a user-facing message and the HTTP
status the API layer answers with. Library code raises these; only the FastAPI
exception handler turns them into responses.
"""

from enum import Enum
from typing import Any, Dict, Optional


class FailureKind(str, Enum):
    """Stable failure tags recorded on AnalysisRequest.failure_kind"""

    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    WORKER_UNAVAILABLE = "worker_unavailable"
    INVALID_RESPONSE_SHAPE = "invalid_response_shape"
    LOW_CONFIDENCE = "low_confidence"
    PRECONDITION = "precondition"
    CASE_NOT_FOUND = "case_not_found"
    JOB_NOT_FOUND = "job_not_found"
    MALFORMED_CALLBACK = "malformed_callback"


class OrchestrationError(Exception):
    """Base class for all orchestration failures."""

    kind: FailureKind = FailureKind.WORKER_UNAVAILABLE
    http_status: int = 500
    default_message: str = "Analysis failed"

    def __init__(self, message: Optional[str] = None, **details: Any):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class RateLimitedError(OrchestrationError):
    kind = FailureKind.RATE_LIMITED
    http_status = 429

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None, **details: Any):
        self.retry_after_seconds = max(1, int(retry_after_seconds))
        super().__init__(
            message or f"Te veel pogingen, probeer het over {self.retry_after_seconds} seconden opnieuw",
            retry_after_seconds=self.retry_after_seconds,
            **details,
        )


class WorkerTimeoutError(OrchestrationError):
    kind = FailureKind.TIMEOUT
    http_status = 504
    default_message = "De analyse duurde te lang, probeer het later opnieuw"


class WorkerUnavailableError(OrchestrationError):
    kind = FailureKind.WORKER_UNAVAILABLE
    http_status = 503
    default_message = "Analyse is momenteel niet beschikbaar"


class InvalidResponseShapeError(OrchestrationError):
    kind = FailureKind.INVALID_RESPONSE_SHAPE
    http_status = 502
    default_message = "De analyse gaf een onbruikbaar antwoord"


class LowConfidenceError(OrchestrationError):
    kind = FailureKind.LOW_CONFIDENCE
    http_status = 422

    def __init__(self, confidence: float, threshold: float, message: Optional[str] = None):
        self.confidence = confidence
        self.threshold = threshold
        super().__init__(
            message or (
                f"De gegevens konden niet betrouwbaar worden herkend "
                f"(zekerheid {confidence:.0%}, vereist {threshold:.0%})"
            ),
            confidence=confidence,
            threshold=threshold,
        )


class PreconditionError(OrchestrationError):
    kind = FailureKind.PRECONDITION
    http_status = 409
    default_message = "Aan de voorwaarden voor deze stap is niet voldaan"


class CaseNotFoundError(OrchestrationError):
    kind = FailureKind.CASE_NOT_FOUND
    http_status = 404

    def __init__(self, case_id: str):
        self.case_id = case_id
        super().__init__("Zaak niet gevonden", case_id=case_id)


class JobNotFoundError(OrchestrationError):
    kind = FailureKind.JOB_NOT_FOUND
    http_status = 404

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Onbekende analyse-opdracht", job_id=job_id)


class MalformedCallbackError(OrchestrationError):
    kind = FailureKind.MALFORMED_CALLBACK
    http_status = 400
    default_message = "Callback bevat geen job-id"
