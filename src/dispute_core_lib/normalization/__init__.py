"""Normalization of unstable worker replies into canonical records."""

from dispute_core_lib.normalization.values import (
    OBJECT_SENTINEL,
    coerce_bool,
    coerce_candidate,
    coerce_confidence,
    coerce_text,
    coerce_text_list,
    parse_amount,
)
from dispute_core_lib.normalization.shapes import (
    SHAPE_PRIORITY,
    ResponseShape,
    iter_candidates,
)
from dispute_core_lib.normalization.normalizer import (
    CallbackEnvelope,
    ResponseNormalizer,
    parse_text_sections,
)

__all__ = [
    "OBJECT_SENTINEL",
    "coerce_bool",
    "coerce_candidate",
    "coerce_confidence",
    "coerce_text",
    "coerce_text_list",
    "parse_amount",
    "SHAPE_PRIORITY",
    "ResponseShape",
    "iter_candidates",
    "CallbackEnvelope",
    "ResponseNormalizer",
    "parse_text_sections",
]
