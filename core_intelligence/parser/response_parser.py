"""
Inference response parsing.

Models answer with JSON, but often wrapped in markdown fences or surrounded by
prose. ``parse_inference_response`` turns the text into a tagged result:
``ParsedResponse`` when a JSON value can be recovered, ``RawResponse``
otherwise. Each scheduler decides what a raw answer means for it.
"""

import json
import re
from typing import Any, Dict, List, Optional, Type, TypeVar, Union
from enum import Enum

from domain.models import ParsedResponse, RawResponse
from shared_utils.constants import LogScope
from shared_utils.logging_utils import ContextualLogger


logger = ContextualLogger(scope=LogScope.PARSER)

E = TypeVar("E", bound=Enum)

_FENCE = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)


def _candidates(text: str) -> List[str]:
    """Substrings worth trying as JSON, most specific first."""
    stripped = text.strip()
    found = [stripped]

    fenced = _FENCE.search(stripped)
    if fenced:
        found.append(fenced.group(1).strip())

    # Outermost object / array embedded in prose
    for opener, closer in (("{", "}"), ("[", "]")):
        start = stripped.find(opener)
        end = stripped.rfind(closer)
        if start != -1 and end > start:
            found.append(stripped[start:end + 1])

    return found


def parse_inference_response(text: Optional[str]) -> Union[ParsedResponse, RawResponse]:
    """Decode *text* into a ParsedResponse, or keep it as a RawResponse.

    Scalars (a bare string or number) are not considered structured output.
    """
    if text is None or not text.strip():
        return RawResponse(text=text or "")

    for candidate in _candidates(text):
        try:
            data = json.loads(candidate)
        except (json.JSONDecodeError, ValueError):
            continue
        if isinstance(data, (dict, list)):
            return ParsedResponse(data=data, raw=text)

    logger.debug("inference_response_unparsed", length=len(text))
    return RawResponse(text=text)


# ---------------------------------------------------------------------------
# Field coercion helpers shared by the schedulers
# ---------------------------------------------------------------------------


def coerce_enum(value: Any, enum_cls: Type[E], default: E) -> E:
    """Map a loosely typed model value onto *enum_cls*, falling back to *default*."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            return default
    return default


def coerce_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def coerce_str_list(value: Any) -> List[str]:
    """Accept a list of strings (or a single string); drop empties."""
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]


def coerce_bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def coerce_float(value: Any, lower: float, upper: float) -> Optional[float]:
    """Float clamped to [lower, upper], or None if not numeric."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return max(lower, min(upper, number))


def as_object(data: Any) -> Optional[Dict[str, Any]]:
    """The first JSON object in *data* (an object, or a list starting with one)."""
    if isinstance(data, dict):
        return data
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return None


def as_object_list(data: Any, key: str) -> List[Dict[str, Any]]:
    """Objects from a JSON list, or from ``data[key]`` when wrapped in an object."""
    if isinstance(data, dict):
        data = data.get(key, [])
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]
