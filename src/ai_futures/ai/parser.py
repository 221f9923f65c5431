"""Parse free-text + JSON model responses into a decision batch.

The model is asked to think out loud and then emit a JSON array. In practice
the array may be wrapped in a code fence, preceded by prose that itself
contains brackets, or written with smart quotes. Parsing tolerates that noise
but is strict about the decoded shape: either the whole array validates as
``list[TradingDecision]`` or the batch is rejected.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import TypeAdapter, ValidationError

from ai_futures.ai.schemas import TradingDecision

# One character in, one character out: offsets stay valid after normalization.
_QUOTE_TRANSLATION = str.maketrans(
    {
        "“": '"',
        "”": '"',
        "„": '"',
        "＂": '"',
        "‘": "'",
        "’": "'",
    }
)
_TRAILING_COMMA = re.compile(r",(\s*[\]}])")
_OBJECT_ARRAY_START = re.compile(r"\[\s*\{")
_TRAILING_FENCE = re.compile(r"```[A-Za-z]*\s*$")
_DECISIONS_ADAPTER = TypeAdapter(list[TradingDecision])


class MalformedResponseError(ValueError):
    """Raised when no valid decision array can be recovered from a response.

    Carries whatever reasoning trace could be extracted so callers can still
    log what the model was thinking.
    """

    def __init__(self, message: str, *, reasoning_trace: str = "", fragment: str = "") -> None:
        super().__init__(message)
        self.reasoning_trace = reasoning_trace
        self.fragment = fragment


def normalize_quotes(text: str) -> str:
    """Replace smart and full-width quotation marks with ASCII quotes."""
    return text.translate(_QUOTE_TRANSLATION)


def find_matching_bracket(text: str, start: int) -> int:
    """Return the index of the ``]`` closing the ``[`` at ``start``, or -1.

    Brackets inside JSON string literals are ignored.
    """
    if start < 0 or start >= len(text) or text[start] != "[":
        return -1

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "[":
            depth += 1
        elif char == "]":
            depth -= 1
            if depth == 0:
                return index
    return -1


def extract_reasoning_trace(text: str) -> str:
    """Text before the first ``[``; the whole response when there is none."""
    start = text.find("[")
    if start == -1:
        return text.strip()
    return _trace_before(text, start)


def parse_ai_response(text: str) -> tuple[str, list[TradingDecision]]:
    """Split a raw response into ``(reasoning_trace, decisions)``.

    Raises:
        MalformedResponseError: no decodable decision array, or the array
            does not validate as a list of decisions.
    """
    start, payload, fragment = _locate_decision_array(text)
    trace = _trace_before(text, start)
    try:
        decisions = _DECISIONS_ADAPTER.validate_python(payload)
    except ValidationError as exc:
        raise MalformedResponseError(
            f"decision_schema_error: {_describe_validation_error(exc)}",
            reasoning_trace=trace,
            fragment=fragment,
        ) from exc
    return trace, decisions


def _locate_decision_array(text: str) -> tuple[int, list[dict[str, Any]], str]:
    normalized = normalize_quotes(text)
    position = normalized.find("[")
    if position == -1:
        raise MalformedResponseError("json_array_not_found", reasoning_trace=text.strip())

    empty_match: tuple[int, str] | None = None
    failure: tuple[str, str] | None = None

    while position != -1:
        looks_like_objects = _OBJECT_ARRAY_START.match(normalized, position) is not None
        end = find_matching_bracket(normalized, position)
        if end == -1:
            if failure is None and looks_like_objects:
                failure = ("json_array_unterminated", text[position:])
            position = normalized.find("[", position + 1)
            continue

        fragment = text[position : end + 1]
        try:
            payload = _decode_fragment(normalized[position : end + 1], fragment)
        except json.JSONDecodeError as exc:
            if failure is None and looks_like_objects:
                failure = (f"json_decode_error: {exc}", fragment)
        else:
            if isinstance(payload, list):
                object_items = [item for item in payload if isinstance(item, dict)]
                if payload and len(object_items) == len(payload):
                    return position, payload, fragment
                if object_items and failure is None:
                    failure = ("json_array_mixed_items", fragment)
                elif not payload and empty_match is None:
                    empty_match = (position, fragment)
        position = normalized.find("[", end + 1)

    if failure is None and empty_match is not None:
        return empty_match[0], [], empty_match[1]

    trace = extract_reasoning_trace(text)
    if failure is not None:
        raise MalformedResponseError(failure[0], reasoning_trace=trace, fragment=failure[1])
    raise MalformedResponseError("decision_array_not_found", reasoning_trace=trace)


def _decode_fragment(normalized: str, raw: str) -> Any:
    candidates = [normalized]
    repaired = _TRAILING_COMMA.sub(r"\1", normalized)
    if repaired != normalized:
        candidates.append(repaired)
    if raw != normalized:
        # Smart quotes inside an ASCII-quoted string only decode unnormalized.
        candidates.append(raw)

    errors: list[json.JSONDecodeError] = []
    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError as exc:
            errors.append(exc)
    raise errors[0]


def _trace_before(text: str, index: int) -> str:
    trace = text[:index].strip()
    return _TRAILING_FENCE.sub("", trace).rstrip()


def _describe_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = list(first.get("loc", ()))
    if loc and isinstance(loc[0], int):
        prefix = f"decision #{loc[0] + 1}"
        field = ".".join(str(part) for part in loc[1:])
        where = f"{prefix} {field}".strip()
    else:
        where = ".".join(str(part) for part in loc)
    return f"{where}: {first['msg']}"
