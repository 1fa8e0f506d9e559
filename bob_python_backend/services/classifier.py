"""
Ideology analysis of a user's posts.

Three analyses share one LLM client: the category classification against
the taxonomy, the based score with tribal affiliation and beliefs, and the
short tribe write-up. Every reply is retried on transport or parse failure
and then normalized, so callers always receive fully-populated results.
"""

import logging
import re
from typing import Optional, Sequence, Tuple

from bob_python_backend.schemas import BasedScore, Category, ClassificationResult, Post, TribeAnalysis
from bob_python_backend.services import sample_data
from bob_python_backend.services.llm_gateway import LLMClient, complete_with_retry
from bob_python_backend.services.normalizer import clamp, normalize_based_score, normalize_classification
from bob_python_backend.services.parsing import ParseResult, Parsed, Unparseable, parse_json_object
from bob_python_backend.services.prompt_builder import (
    CLASSIFIER_SYSTEM_PROMPT,
    build_based_score_prompt,
    build_classification_prompt,
    build_tribe_prompt,
    load_categories,
    newest_first,
)

logger = logging.getLogger(__name__)

LLM_ATTEMPTS = 5

_TRIBE_RE = re.compile(r"Tribe:\s*([^\n]+)", re.IGNORECASE)
_SCORE_RE = re.compile(r"Based Score:\s*(\d+)", re.IGNORECASE)
_EXPLANATION_RE = re.compile(r"Explanation:\s*([^\n]+(?:\n[^\n]+)*)", re.IGNORECASE)


def parse_tribe_analysis(text: str) -> ParseResult:
    cleaned = str(text or "").replace("**", "")
    tribe = _TRIBE_RE.search(cleaned)
    score = _SCORE_RE.search(cleaned)
    explanation = _EXPLANATION_RE.search(cleaned)
    missing = [name for name, match in (("tribe", tribe), ("score", score), ("explanation", explanation)) if not match]
    if missing:
        return Unparseable(f"tribe analysis missing {', '.join(missing)}")
    return Parsed(
        TribeAnalysis(
            tribe=tribe.group(1).strip(),
            score=int(clamp(int(score.group(1)), 0, 100)),
            explanation=explanation.group(1).strip(),
        )
    )


class ProfileAnalyzer:
    def __init__(
        self,
        client: Optional[LLMClient],
        categories: Optional[Sequence[Category]] = None,
        use_test_data: bool = False,
        attempts: int = LLM_ATTEMPTS,
    ) -> None:
        self.client = client
        self._categories: Optional[Tuple[Category, ...]] = tuple(categories) if categories is not None else None
        self.use_test_data = use_test_data
        self.attempts = attempts

    @property
    def categories(self) -> Tuple[Category, ...]:
        if self._categories is None:
            self._categories = load_categories()
        return self._categories

    async def classify(self, posts: Sequence[Post]) -> ClassificationResult:
        if self.use_test_data:
            logger.info("Using test classification data")
            return sample_data.sample_classification()

        prompt = build_classification_prompt([post.text for post in newest_first(posts)], self.categories)
        raw = await complete_with_retry(
            self.client,
            prompt,
            parse_json_object,
            attempts=self.attempts,
            system=CLASSIFIER_SYSTEM_PROMPT,
            temperature=0.7,
            max_tokens=2000,
        )
        result = normalize_classification(raw)
        logger.info("Classified %d posts as %r (confidence %.2f)", len(posts), result.category, result.confidence)
        return result

    async def based_score(self, posts: Sequence[Post]) -> BasedScore:
        if self.use_test_data:
            logger.info("Using test based score data")
            return sample_data.sample_based_score()

        raw = await complete_with_retry(
            self.client,
            build_based_score_prompt(posts),
            parse_json_object,
            attempts=self.attempts,
            temperature=0.7,
        )
        score = normalize_based_score(raw)
        logger.info(
            "Based score %.0f for tribe %r (%d mainstream, %d contrarian beliefs)",
            score.based_score,
            score.tribal_affiliation.value,
            len(score.mainstream_beliefs),
            len(score.contrarian_beliefs),
        )
        return score

    async def tribe(self, username: str, posts: Sequence[Post]) -> TribeAnalysis:
        if self.use_test_data:
            logger.info("Using test tribe data")
            return sample_data.sample_tribe_analysis()

        return await complete_with_retry(
            self.client,
            build_tribe_prompt(username, [post.text for post in newest_first(posts)]),
            parse_tribe_analysis,
            attempts=self.attempts,
            temperature=0.7,
        )
