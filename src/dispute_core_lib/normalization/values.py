"""Candidate-value coercion for worker output.

Worker variables arrive as strings more often than not: JSON encoded objects,
unrendered template placeholders, JavaScript's ``"[object Object]"`` or
Dutch-formatted amounts. These helpers turn one raw candidate into a usable
Python value or ``None``. None of them raise.
"""

import json
import logging
import math
import re
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

OBJECT_SENTINEL = "[object Object]"

_PLACEHOLDER_RE = re.compile(r"\{\{.*?\}\}", re.DOTALL)
_AMOUNT_NOISE_RE = re.compile(r"[^\d,.\-]")
_BULLET_RE = re.compile(r"^\s*(?:[•\-*]|\d+[.)])\s*")

_TRUE_WORDS = {"true", "yes", "ja", "y", "1", "waar"}
_FALSE_WORDS = {"false", "no", "nee", "n", "0", "onwaar"}

# Keys tried, in order, when a list item is an object instead of a string
_TEXT_KEYS = ("text", "label", "description", "issue", "fact", "item", "title", "detail", "value", "name")


def coerce_candidate(value: Any) -> Any:
    """Resolve one raw candidate; ``None`` means absent."""
    if value is None:
        return None

    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if _PLACEHOLDER_RE.search(text):
            return None
        if text.startswith(OBJECT_SENTINEL):
            logger.warning("[Normalizer] Discarding '[object Object]' sentinel value")
            return None
        try:
            parsed = json.loads(text)
        except (ValueError, TypeError):
            return text
        if isinstance(parsed, str):
            return coerce_candidate(parsed) if parsed != text else parsed
        if isinstance(parsed, float) and not math.isfinite(parsed):
            return None
        return parsed

    if isinstance(value, float) and not math.isfinite(value):
        return None

    return value


def parse_amount(value: Any) -> Optional[float]:
    """Parse a monetary amount, tolerating decimal commas and currency noise.

    Examples:
        >>> parse_amount("1.234,56")
        1234.56
        >>> parse_amount("35,49")
        35.49
        >>> parse_amount("€ 1,234.56")
        1234.56
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else None

    if not isinstance(value, str):
        return None

    text = _AMOUNT_NOISE_RE.sub("", value)
    if not text or not any(ch.isdigit() for ch in text):
        return None

    has_comma = "," in text
    has_dot = "." in text

    if has_comma and has_dot:
        # Whichever separator comes last is the decimal point
        if text.rfind(",") > text.rfind("."):
            text = text.replace(".", "").replace(",", ".")
        else:
            text = text.replace(",", "")
    elif has_comma:
        text = text.replace(",", ".") if text.count(",") == 1 else text.replace(",", "")
    elif has_dot and text.count(".") > 1:
        text = text.replace(".", "")

    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def coerce_bool(value: Any) -> Optional[bool]:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS:
            return True
        if word in _FALSE_WORDS:
            return False
    return None


def coerce_text(value: Any) -> Optional[str]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        text = value.strip()
        return text or None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, dict):
        for key in _TEXT_KEYS:
            text = coerce_text(coerce_candidate(value.get(key)))
            if text:
                return text
    return None


def strip_bullet(line: str) -> str:
    return _BULLET_RE.sub("", line).strip()


def coerce_text_list(value: Any) -> List[str]:
    """Coerce a section to a list of non-empty strings."""
    if value is None:
        return []
    if isinstance(value, str):
        lines = [strip_bullet(line) for line in value.splitlines()]
        return [line for line in lines if line]
    if isinstance(value, dict):
        text = coerce_text(value)
        return [text] if text else []
    if not isinstance(value, (list, tuple)):
        text = coerce_text(value)
        return [text] if text else []

    items = []
    for item in value:
        text = coerce_text(coerce_candidate(item))
        if text:
            items.append(strip_bullet(text) or text)
    return items


def coerce_confidence(value: Any) -> float:
    """Confidence on a 0..1 scale; percentages in (1, 100] are rescaled, garbage is 0."""
    if isinstance(value, str):
        value = value.strip().rstrip("%").strip()
    number = parse_amount(value)
    if number is None or number < 0:
        return 0.0
    if number <= 1:
        return number
    if number <= 100:
        return number / 100
    return 0.0


def as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]
