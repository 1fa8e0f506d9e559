"""
Assertion extraction and fact-checking for based-score results.

Beliefs from a ``BasedScore`` are turned into checkable assertions by one
LLM call per belief group; each fact-checkable assertion is then checked by
a search-augmented model, and the results feed a weighted truthfulness
score. Individual failures are logged and skipped so that a partial result
is still returned.
"""

import logging
import math
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from bob_python_backend.errors import RetryExhaustedError
from bob_python_backend.schemas import Assertion, BasedScore, EnhancedBasedScore, FactCheckResult, PoliticalBelief
from bob_python_backend.services.llm_gateway import ChatCompletionClient, get_llm_client
from bob_python_backend.services.normalizer import clamp
from bob_python_backend.services.parsing import (
    ParseResult,
    Parsed,
    Unparseable,
    expect_type,
    first_parsed,
    parse_fenced_json,
    parse_json,
)
from bob_python_backend.services.prompt_builder import build_assertion_extraction_messages, build_fact_check_messages
from bob_python_backend.services.retry import RETRYABLE_ERRORS, retry_async

logger = logging.getLogger(__name__)

FACT_CHECK_ATTEMPTS = 3
NEUTRAL_TRUTHFULNESS = 50
MAINSTREAM_WEIGHT = 1.2
CONTRARIAN_WEIGHT = 0.8

# Search-augmented request options sent with every Perplexity call.
SEARCH_OPTIONS: Dict[str, Any] = {
    "top_p": 0.9,
    "return_images": False,
    "return_related_questions": False,
    "search_recency_filter": "month",
}

_LINE_PREFIX = r"^[ \t]*(?:[-*]|\d+\.)?[ \t]*"
_SEGMENT_SPLIT_RE = re.compile(r"^(?=[ \t]*(?:assertion\s+\d+\s*:|\d+\.\s))", re.IGNORECASE | re.MULTILINE)
_STATEMENT_RE = re.compile(_LINE_PREFIX + r"(?:statement|claim)\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_CHECKABLE_RE = re.compile(_LINE_PREFIX + r"(?:fact.?checkable|verifiable)\s*:\s*(.+)$", re.IGNORECASE | re.MULTILINE)
_MODEL_CONFIDENCE_RE = re.compile(_LINE_PREFIX + r"(?:model\s+)?confidence\s*:\s*([\d.]+)", re.IGNORECASE | re.MULTILINE)
_USER_CONFIDENCE_RE = re.compile(_LINE_PREFIX + r"user\s+confidence\s*:\s*([\d.]+)", re.IGNORECASE | re.MULTILINE)
_CONTEXT_RE = re.compile(
    _LINE_PREFIX + r"(?:context|analysis|explanation)\s*:\s*(.+?)(?=\n[ \t]*\n|\Z)",
    re.IGNORECASE | re.MULTILINE | re.DOTALL,
)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?|nan", re.IGNORECASE)
_YES_RE = re.compile(r"^\s*(?:yes|true|verifiable)\b", re.IGNORECASE)


def _strip_markup(text: str) -> str:
    return str(text or "").replace("**", "")


def _leading_float(raw: str) -> Optional[float]:
    match = _NUMBER_RE.search(raw or "")
    if not match:
        return None
    return float(match.group(0))


# ---------------------------------------------------------------------------
# Assertion parsing
# ---------------------------------------------------------------------------

def _validate_assertion(item: Any) -> Optional[Assertion]:
    try:
        return Assertion.model_validate(item)
    except PydanticValidationError as exc:
        logger.warning("[FACTCHECK] Discarding invalid assertion %r: %s", item, exc.errors()[:1])
        return None


def parse_assertions_json(text: str) -> ParseResult:
    result = expect_type(lambda t: first_parsed((parse_json, parse_fenced_json), t), list)(text)
    if not result.ok:
        return result
    assertions = [a for a in (_validate_assertion(item) for item in result.value) if a is not None]
    return Parsed(assertions)


def _parse_segment(segment: str) -> Optional[Assertion]:
    statement = _STATEMENT_RE.search(segment)
    if not statement:
        return None

    fields: Dict[str, Any] = {
        "statement": statement.group(1).strip(),
        "isFactCheckable": False,
        "modelConfidence": 0.5,
        "userConfidence": 0.5,
    }
    checkable = _CHECKABLE_RE.search(segment)
    if checkable:
        fields["isFactCheckable"] = bool(_YES_RE.search(checkable.group(1)))
    model_confidence = _MODEL_CONFIDENCE_RE.search(segment)
    if model_confidence:
        fields["modelConfidence"] = _leading_float(model_confidence.group(1))
    user_confidence = _USER_CONFIDENCE_RE.search(segment)
    if user_confidence:
        fields["userConfidence"] = _leading_float(user_confidence.group(1))
    context = _CONTEXT_RE.search(segment)
    if context:
        fields["sourceContext"] = context.group(1).strip()

    return _validate_assertion(fields)


def parse_assertions_markdown(text: str) -> ParseResult:
    """Read ``Assertion N:`` / ``N.`` blocks with labelled fields."""
    segments = _SEGMENT_SPLIT_RE.split(_strip_markup(text))
    assertions = [a for a in (_parse_segment(segment) for segment in segments) if a is not None]
    if not assertions:
        return Unparseable("no assertion blocks with a statement")
    return Parsed(assertions)


def parse_assertions(text: str) -> List[Assertion]:
    result = first_parsed((parse_assertions_json, parse_assertions_markdown), text)
    if not result.ok:
        logger.warning("[FACTCHECK] No assertions found in reply: %s", result.reason)
        return []
    return result.value


# ---------------------------------------------------------------------------
# Fact-check parsing
# ---------------------------------------------------------------------------

def parse_fact_check(text: str, statement: str = "") -> ParseResult:
    is_true: Optional[bool] = None
    confidence: Optional[float] = None
    explanation = ""
    sources: List[str] = []

    for line in _strip_markup(text).splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        label, _, value = stripped.partition(":")
        label = label.strip().lower()
        if label == "determination":
            words = value.strip().lower().split()
            verdict = words[0].strip(".,[]()") if words else ""
            is_true = verdict in {"true", "yes"}
        elif label == "confidence":
            number = _leading_float(value)
            if number is None or math.isnan(number):
                number = 0.5
            confidence = clamp(number, 0.0, 1.0)
        elif label == "explanation":
            explanation = value.strip()
        elif stripped[0] in "-*":
            source = stripped[1:].strip()
            if source:
                sources.append(source)

    missing = [
        name
        for name, present in (
            ("determination", is_true is not None),
            ("confidence", confidence is not None),
            ("explanation", bool(explanation)),
            ("sources", bool(sources)),
        )
        if not present
    ]
    if missing:
        return Unparseable(f"missing {', '.join(missing)}")

    return Parsed(
        FactCheckResult(
            statement=statement,
            is_true=is_true,
            confidence=confidence,
            explanation=explanation,
            sources=sources,
        )
    )


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def calculate_truthfulness_score(fact_checks: Sequence[FactCheckResult], based_score: BasedScore) -> int:
    """
    Average weighted contribution of the checks, 50 when there are none.

    A true check contributes ``confidence * 100 * weight``, where the weight
    is 1.2 when the statement appears inside a mainstream belief and 0.8
    otherwise; a false check contributes 0. The result is clamped to 0..100.
    """
    if not fact_checks:
        return NEUTRAL_TRUTHFULNESS

    total = 0.0
    for check in fact_checks:
        is_mainstream = any(check.statement in belief.belief for belief in based_score.mainstream_beliefs)
        weight = MAINSTREAM_WEIGHT if is_mainstream else CONTRARIAN_WEIGHT
        if check.is_true:
            total += check.confidence * 100 * weight

    # Halves round up, not to even.
    raw = math.floor(total / len(fact_checks) + 0.5)
    if raw > 100:
        logger.warning("[FACTCHECK] Weighted truthfulness %d exceeds 100, clamping", raw)
    return int(clamp(raw, 0, 100))


# ---------------------------------------------------------------------------
# Checker
# ---------------------------------------------------------------------------

class AssertionChecker:
    def __init__(self, client: Optional[ChatCompletionClient] = None, attempts: int = FACT_CHECK_ATTEMPTS) -> None:
        self.client = client or get_llm_client("perplexity")
        self.attempts = attempts

    async def extract_assertions(self, beliefs: Sequence[PoliticalBelief]) -> List[Assertion]:
        if not beliefs:
            return []
        try:
            content = await self.client.complete_text(
                messages=build_assertion_extraction_messages(beliefs),
                temperature=0.2,
                max_tokens=2048,
                **SEARCH_OPTIONS,
            )
        except RETRYABLE_ERRORS as exc:
            logger.error("[FACTCHECK] Assertion extraction failed: %s", exc)
            return []
        assertions = parse_assertions(content)
        logger.info("[FACTCHECK] Extracted %d assertions from %d beliefs", len(assertions), len(beliefs))
        return assertions

    async def _check_one(self, assertion: Assertion) -> Optional[FactCheckResult]:
        try:
            content = await retry_async(
                lambda: self.client.complete_text(
                    messages=build_fact_check_messages(assertion),
                    temperature=0.1,
                    max_tokens=2048,
                    **SEARCH_OPTIONS,
                ),
                attempts=self.attempts,
                delay=lambda attempt: float(2 ** attempt),
                label="fact check",
            )
        except RetryExhaustedError as exc:
            logger.error("[FACTCHECK] Giving up on %r: %s", assertion.statement, exc)
            return None

        result = parse_fact_check(content, statement=assertion.statement)
        if not result.ok:
            logger.warning("[FACTCHECK] Incomplete fact check for %r (%s)", assertion.statement, result.reason)
            return None
        return result.value

    async def fact_check(self, assertions: Sequence[Assertion]) -> List[FactCheckResult]:
        results = []
        for assertion in assertions:
            if not assertion.is_fact_checkable:
                continue
            checked = await self._check_one(assertion)
            if checked is not None:
                results.append(checked)
        logger.info("[FACTCHECK] %d/%d assertions checked", len(results), len(assertions))
        return results

    async def enhance_based_score(self, based_score: BasedScore) -> EnhancedBasedScore:
        mainstream = await self.extract_assertions(based_score.mainstream_beliefs)
        contrarian = await self.extract_assertions(based_score.contrarian_beliefs)
        fact_checks = await self.fact_check(mainstream + contrarian)

        fields = based_score.model_dump()
        fields["truthfulness_score"] = calculate_truthfulness_score(fact_checks, based_score)
        return EnhancedBasedScore(**fields, fact_checks=fact_checks)
