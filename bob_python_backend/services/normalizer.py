"""Validation and normalization of LLM classification replies.

Every function here is total: any JSON-shaped input (including ``None``,
lists and strings) yields a fully-populated result with all scores inside
their declared ranges.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from bob_python_backend.schemas import (
    BasedScore,
    ClassificationResult,
    PoliticalBelief,
    ScoreComponents,
    TribalAffiliation,
)

logger = logging.getLogger(__name__)

DEFAULT_SCORE = 50
DEFAULT_AFFILIATION = TribalAffiliation.SOULLESS_NPC
SCORE_FIELDS = ("based_score", "sincerity_score", "truthfulness_score", "conspiracy_score")
COMPONENT_FIELDS = ("conviction", "authenticity", "intellectual_rigor", "contrarian")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def coerce_float(value: Any, default: float = 0.0) -> float:
    """Read a finite float from a number or numeric string, else ``default``."""
    if not _is_number(value) and not isinstance(value, str):
        return default
    try:
        number = float(value.strip() if isinstance(value, str) else value)
    except (ValueError, OverflowError):
        # OverflowError: JSON integers beyond float range
        return default
    return number if math.isfinite(number) else default


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [value] if value.strip() else []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None and str(item).strip()]


def _as_dict(value: Any, label: str) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if value is not None:
        logger.warning("[NORMALIZE] Expected an object for %s, got %s", label, type(value).__name__)
    return {}


def validate_score(score: Any, field_name: str) -> float:
    if not _is_number(score) or not 0 <= score <= 100 or math.isnan(score):
        logger.warning("Invalid %s: %r, defaulting to %d", field_name, score, DEFAULT_SCORE)
        return DEFAULT_SCORE
    return score


def normalize_classification(raw: Any) -> ClassificationResult:
    analysis = _as_dict(raw, "classification")

    category = analysis.get("category")
    category = str(category).strip() if category is not None else ""

    confidence = clamp(coerce_float(analysis.get("confidence")), 0.0, 1.0)
    conviction = clamp(coerce_float(analysis.get("conviction")), 0.0, 1.0)

    based_score = coerce_float(analysis.get("based_score"))
    if not based_score and conviction:
        based_score = conviction * 100
    based_score = clamp(based_score, 0.0, 100.0)

    components = _as_dict(analysis.get("score_components"), "score_components")

    return ClassificationResult(
        category=category or "unknown",
        confidence=confidence,
        key_indicators=_string_list(analysis.get("key_indicators")),
        secondary_influences=_string_list(analysis.get("secondary_influences")),
        language_patterns=_string_list(analysis.get("language_patterns")),
        conviction=conviction,
        based_score=based_score,
        score_components=ScoreComponents(
            **{name: clamp(coerce_float(components.get(name)), 0.0, 1.0) for name in COMPONENT_FIELDS}
        ),
    )


def match_affiliation(value: Any) -> TribalAffiliation:
    if isinstance(value, TribalAffiliation):
        return value
    wanted = str(value or "").strip().lower()
    for affiliation in TribalAffiliation:
        if affiliation.value.lower() == wanted:
            return affiliation
    logger.warning("Unknown tribal_affiliation %r, defaulting to %r", value, DEFAULT_AFFILIATION.value)
    return DEFAULT_AFFILIATION


def _unit_interval(value: Any, default: float = 0.5) -> float:
    number = coerce_float(value, default)
    # Some replies use a 0-100 scale for belief confidence.
    if 1.0 < number <= 100.0:
        number = number / 100.0
    return clamp(number, 0.0, 1.0)


def normalize_belief(raw: Any) -> Optional[PoliticalBelief]:
    if isinstance(raw, str):
        raw = {"belief": raw}
    if not isinstance(raw, dict):
        return None
    text = str(raw.get("belief") or "").strip()
    if not text:
        return None
    return PoliticalBelief(
        belief=text,
        justification=str(raw.get("justification") or "").strip(),
        confidence=_unit_interval(raw.get("confidence")),
        importance=_unit_interval(raw.get("importance")),
    )


def normalize_beliefs(raw: Any) -> List[PoliticalBelief]:
    if not isinstance(raw, list):
        return []
    beliefs = []
    for item in raw:
        belief = normalize_belief(item)
        if belief is None:
            logger.debug("[NORMALIZE] Dropping unusable belief entry: %r", item)
            continue
        beliefs.append(belief)
    return beliefs


def normalize_based_score(raw: Any) -> BasedScore:
    analysis = _as_dict(raw, "based score")
    justification = analysis.get("justification") or analysis.get("justification_for_basedness") or ""

    return BasedScore(
        tribal_affiliation=match_affiliation(analysis.get("tribal_affiliation")),
        justification=str(justification).strip(),
        contrarian_beliefs=normalize_beliefs(analysis.get("contrarian_beliefs")),
        mainstream_beliefs=normalize_beliefs(analysis.get("mainstream_beliefs")),
        **{name: validate_score(analysis.get(name), name) for name in SCORE_FIELDS},
    )
