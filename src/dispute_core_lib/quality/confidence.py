"""Confidence gate for worker flows that report a numeric confidence."""

import logging
from typing import Any

from dispute_core_lib.errors import LowConfidenceError
from dispute_core_lib.normalization.values import coerce_confidence

logger = logging.getLogger(__name__)


class ConfidenceGate:
    """Accept/reject threshold on a worker confidence score.

    Two standard gates exist: ``display()`` (0.5) unblocks showing extracted
    data, ``action()`` (0.6) gates a monetary or legal step.
    """

    DISPLAY_THRESHOLD = 0.5
    ACTION_THRESHOLD = 0.6

    def __init__(self, threshold: float, name: str = "custom"):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"Threshold must be within [0, 1], got {threshold}")
        self.threshold = threshold
        self.name = name

    @classmethod
    def display(cls) -> "ConfidenceGate":
        return cls(cls.DISPLAY_THRESHOLD, name="display")

    @classmethod
    def action(cls) -> "ConfidenceGate":
        return cls(cls.ACTION_THRESHOLD, name="action")

    @classmethod
    def for_purpose(cls, purpose: str) -> "ConfidenceGate":
        return cls.action() if purpose == "action" else cls.display()

    def evaluate(self, confidence: Any) -> bool:
        return coerce_confidence(confidence) >= self.threshold

    def require(self, confidence: Any) -> float:
        """Return the normalized confidence or raise LowConfidenceError."""
        score = coerce_confidence(confidence)
        if score < self.threshold:
            logger.info(
                f"[ConfidenceGate] {self.name} gate rejected confidence {score:.2f} "
                f"(threshold {self.threshold:.2f})"
            )
            raise LowConfidenceError(confidence=score, threshold=self.threshold)
        return score

    def __repr__(self) -> str:
        return f"ConfidenceGate(name={self.name!r}, threshold={self.threshold})"
