"""Small parser combinators for free-form LLM replies.

A parser takes the raw reply text and returns either ``Parsed(value)`` or
``Unparseable(reason)``; it never raises. Parsers are combined with
``first_parsed`` (fixed fallback order) and narrowed with ``expect_type``.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Generic, Sequence, Tuple, Type, TypeVar, Union

T = TypeVar("T")

_THINK_RE = re.compile(r"<think>.*?</think>", flags=re.IGNORECASE | re.DOTALL)
_FENCE_RE = re.compile(r"```[ \t]*([A-Za-z0-9_-]*)[ \t]*\n?(.*?)\n?[ \t]*```", flags=re.DOTALL)


@dataclass(frozen=True)
class Parsed(Generic[T]):
    value: T
    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Unparseable:
    reason: str
    ok: ClassVar[bool] = False


ParseResult = Union[Parsed, Unparseable]
Parser = Callable[[str], ParseResult]


def strip_reasoning(text: Any) -> str:
    return _THINK_RE.sub("", str(text or "")).strip()


def strip_code_fences(text: Any) -> str:
    """Return the body of the first fenced block, or the trimmed text when there is none."""
    cleaned = str(text or "").strip()
    match = _FENCE_RE.search(cleaned)
    if match:
        return match.group(2).strip()
    return cleaned


def parse_json(text: str) -> ParseResult:
    normalized = strip_reasoning(text)
    if not normalized:
        return Unparseable("empty reply")
    try:
        return Parsed(json.loads(normalized))
    except json.JSONDecodeError as exc:
        return Unparseable(f"not JSON: {exc.msg}")


def parse_fenced_json(text: str) -> ParseResult:
    normalized = strip_reasoning(text)
    if "```" not in normalized:
        return Unparseable("no code fence")
    try:
        return Parsed(json.loads(strip_code_fences(normalized)))
    except json.JSONDecodeError as exc:
        return Unparseable(f"fenced block is not JSON: {exc.msg}")


def parse_embedded_json(text: str) -> ParseResult:
    """Decode the first valid JSON object or array found anywhere in the text."""
    normalized = strip_reasoning(text)
    decoder = json.JSONDecoder()
    for index, char in enumerate(normalized):
        if char not in "{[":
            continue
        try:
            decoded, _ = decoder.raw_decode(normalized[index:])
            return Parsed(decoded)
        except json.JSONDecodeError:
            continue
    return Unparseable("no embedded JSON value")


def first_parsed(parsers: Sequence[Parser], text: str) -> ParseResult:
    reasons = []
    for parser in parsers:
        result = parser(text)
        if result.ok:
            return result
        reasons.append(result.reason)
    return Unparseable("; ".join(reasons) or "no parsers")


def expect_type(parser: Parser, expected: Union[Type, Tuple[Type, ...]]) -> Parser:
    def _parser(text: str) -> ParseResult:
        result = parser(text)
        if result.ok and not isinstance(result.value, expected):
            return Unparseable(f"expected {_type_name(expected)}, got {type(result.value).__name__}")
        return result

    return _parser


def _type_name(expected) -> str:
    if isinstance(expected, tuple):
        return " or ".join(t.__name__ for t in expected)
    return expected.__name__


def decode_json_reply(text: str) -> ParseResult:
    return first_parsed((parse_json, parse_fenced_json, parse_embedded_json), text)


parse_json_object: Parser = expect_type(decode_json_reply, dict)
