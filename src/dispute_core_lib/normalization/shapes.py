"""Historical response shapes of the analysis worker.

The worker's reply layout changed several times. Each layout is one
``ResponseShape``; ``SHAPE_PRIORITY`` is the order in which they are probed,
newest first. Locators only find raw candidates; deciding whether a candidate
is usable is left to the caller.

Shapes:
    root_result:      {"result": {"<var>": ...}}
    root_variable:    {"<var>": ...}
    thread_variables: {"thread": {"variables": {"<var>": {"value": ...}}}}
    debug_log:        {"thread": {"posts": [{"debugLog": {"newState": {"variables": {"<var>": {"value": ...}}}}}]}}
    message_content:  {"thread": {"posts": [{"message": {"content": "<json>"}}]}}
    legacy_output:    {"result": {"output": ...}} or {"output": ...}
    plain_text:       sectioned free text anywhere the legacy output or a message lives
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Sequence, Tuple

from dispute_core_lib.normalization.values import coerce_candidate


class ResponseShape(str, Enum):
    ROOT_RESULT = "root_result"
    ROOT_VARIABLE = "root_variable"
    THREAD_VARIABLES = "thread_variables"
    DEBUG_LOG = "debug_log"
    MESSAGE_CONTENT = "message_content"
    LEGACY_OUTPUT = "legacy_output"
    PLAIN_TEXT = "plain_text"


# Wrapper keys some worker versions nest the real object under
_WRAPPER_KEYS = ("output_triage_flow", "full_json")


def _as_dict(value: Any) -> Dict[str, Any]:
    value = coerce_candidate(value)
    return value if isinstance(value, dict) else {}


def _unwrap_value(value: Any) -> Any:
    """Thread variables are stored as {"value": ...}."""
    if isinstance(value, dict) and "value" in value:
        return value["value"]
    return value


def _posts(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    posts = _as_dict(payload.get("thread")).get("posts")
    if not isinstance(posts, list):
        return []
    # Newest post first
    return [post for post in reversed(posts) if isinstance(post, dict)]


def _post_content(post: Dict[str, Any]) -> Any:
    if post.get("role") == "user":
        return None
    for key in ("message", "chatMessage"):
        message = post.get(key)
        if isinstance(message, dict) and message.get("role") == "user":
            continue
        if isinstance(message, dict) and message.get("content"):
            return message["content"]
    return None


def unwrap_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    for key in _WRAPPER_KEYS:
        inner = _as_dict(obj.get(key))
        if inner:
            return unwrap_object(inner)
    return obj


def _pick(container: Dict[str, Any], variables: Sequence[str], markers: Sequence[str]) -> List[Any]:
    """Named variables first, then the container itself when it looks like the target object."""
    found = [container[var] for var in variables if var in container]
    unwrapped = unwrap_object(container)
    if markers and any(marker in unwrapped for marker in markers):
        found.append(unwrapped)
    return found


# ============================================================
# Locators
# ============================================================

def locate_root_result(payload, variables, markers) -> List[Any]:
    result = _as_dict(payload.get("result"))
    return _pick(result, variables, markers) if result else []


def locate_root_variable(payload, variables, markers) -> List[Any]:
    return _pick(payload, variables, markers)


def locate_thread_variables(payload, variables, markers) -> List[Any]:
    thread_vars = _as_dict(_as_dict(payload.get("thread")).get("variables"))
    return [_unwrap_value(thread_vars[var]) for var in variables if var in thread_vars]


def locate_debug_log(payload, variables, markers) -> List[Any]:
    found = []
    for post in _posts(payload):
        state_vars = _as_dict(
            _as_dict(_as_dict(post.get("debugLog")).get("newState")).get("variables")
        )
        found.extend(_unwrap_value(state_vars[var]) for var in variables if var in state_vars)
    return found


def locate_message_content(payload, variables, markers) -> List[Any]:
    found = []
    for post in _posts(payload):
        content = _as_dict(_post_content(post))
        if content:
            found.extend(_pick(content, variables, markers))
    return found


def locate_legacy_output(payload, variables, markers) -> List[Any]:
    found = []
    for container in (_as_dict(payload.get("result")), payload):
        output = _as_dict(container.get("output"))
        if output:
            found.extend(_pick(output, variables, markers))
    return found


def locate_plain_text(payload, variables, markers) -> List[Any]:
    """Free text that did not parse as JSON."""
    texts = []
    result = payload.get("result")
    candidates = [result, _as_dict(result).get("output"), payload.get("output")]
    candidates.extend(_post_content(post) for post in _posts(payload))
    for candidate in candidates:
        value = coerce_candidate(candidate)
        if isinstance(value, str):
            texts.append(value)
    return texts


Locator = Callable[[Dict[str, Any], Sequence[str], Sequence[str]], List[Any]]

SHAPE_PRIORITY: Tuple[Tuple[ResponseShape, Locator], ...] = (
    (ResponseShape.ROOT_RESULT, locate_root_result),
    (ResponseShape.ROOT_VARIABLE, locate_root_variable),
    (ResponseShape.THREAD_VARIABLES, locate_thread_variables),
    (ResponseShape.DEBUG_LOG, locate_debug_log),
    (ResponseShape.MESSAGE_CONTENT, locate_message_content),
    (ResponseShape.LEGACY_OUTPUT, locate_legacy_output),
    (ResponseShape.PLAIN_TEXT, locate_plain_text),
)


def iter_candidates(
    payload: Any,
    variables: Sequence[str],
    markers: Sequence[str] = (),
) -> Iterator[Tuple[ResponseShape, Any]]:
    """Yield ``(shape, resolved_value)`` for every candidate, in priority order.

    Absent candidates (placeholders, sentinels, empty strings) are skipped.
    """
    payload = coerce_candidate(payload)
    if isinstance(payload, str):
        yield ResponseShape.PLAIN_TEXT, payload
        return
    if not isinstance(payload, dict):
        return

    for shape, locator in SHAPE_PRIORITY:
        for raw in locator(payload, variables, markers):
            value = coerce_candidate(raw)
            if value is None:
                continue
            if isinstance(value, dict):
                value = unwrap_object(value)
            yield shape, value
