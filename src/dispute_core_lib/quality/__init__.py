"""Output quality: confidence gating and fallback synthesis."""

from dispute_core_lib.quality.confidence import ConfidenceGate
from dispute_core_lib.quality.fallback import CaseHints, FallbackSynthesizer, detect_hints

__all__ = [
    "ConfidenceGate",
    "FallbackSynthesizer",
    "CaseHints",
    "detect_hints",
]
