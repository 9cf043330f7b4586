"""
Extract a JSON payload from free-text model output.

Models tend to wrap valid JSON in ``` fences or chatty prose, so parsing
is a two-step fallback:

1. strip fence markers and whitespace, parse the whole thing
2. parse the span from the first "{" to the last "}"

Neither step raises. A response with no recoverable JSON yields
StructuredOutput(payload=None), which callers treat differently from a
payload that parses but has the wrong shape.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")


@dataclass(frozen=True)
class StructuredOutput:
    """Tagged parse result: `parsed` is False when no payload was found."""

    payload: Any = None
    parsed: bool = False

    @classmethod
    def unparsed(cls) -> "StructuredOutput":
        return cls(payload=None, parsed=False)


def strip_fences(text: str) -> str:
    """Remove ``` / ```json markers anywhere in the text and trim it."""
    return _FENCE_RE.sub("", text).strip()


def _try_json(candidate: str) -> StructuredOutput:
    try:
        return StructuredOutput(payload=json.loads(candidate), parsed=True)
    except (json.JSONDecodeError, ValueError):
        return StructuredOutput.unparsed()


def extract_structured(text: str | None) -> StructuredOutput:
    """Run the fallback pipeline; the first successful parse wins."""
    if not text:
        return StructuredOutput.unparsed()

    cleaned = strip_fences(text)
    if not cleaned:
        return StructuredOutput.unparsed()

    direct = _try_json(cleaned)
    if direct.parsed:
        return direct

    start = cleaned.find("{")
    end = cleaned.rfind("}")
    if start == -1 or end <= start:
        return StructuredOutput.unparsed()

    return _try_json(cleaned[start : end + 1])
