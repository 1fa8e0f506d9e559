"""
Prompt templates for the classification, scoring and fact-check LLM calls.

All builders are pure functions of their inputs. Post texts are embedded as
opaque strings (JSON-stringified where they appear as an array).
"""

import json
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from string import Template
from typing import Any, Dict, Iterable, List, Sequence, Tuple

from bob_python_backend.schemas import Assertion, Category, PoliticalBelief, Post, TribalAffiliation

CATEGORIES_FILE = Path(__file__).resolve().parent.parent / "data" / "categories.json"
MAX_PROMPT_POSTS = 20
FEATURES_PER_CATEGORY = 5

CLASSIFIER_SYSTEM_PROMPT = """You are an expert analyst in political psychology and ideological patterns.
Your task is to provide detailed, evidence-based analysis of social media content.

Key Requirements:
- Analyze actual content thoroughly - never return default values
- Look for specific language patterns and belief indicators
- Match content against provided ideological categories
- Calculate scores based on evidence in the content
- Provide specific examples for your classifications
- Return clean JSON without any markdown formatting

If you can't determine a specific category, choose the closest match and explain why in key_indicators."""

CLASSIFICATION_SHAPE = """{
  "category": "Must be one of the provided category names. Choose the best match based on evidence.",
  "confidence": "Score between 0.1 and 1.0 indicating certainty of classification",
  "key_indicators": ["List specific phrases or patterns that support the classification"],
  "secondary_influences": ["List other ideological elements found in the content"],
  "language_patterns": ["Describe specific linguistic patterns observed"],
  "conviction": "Score between 0.1 and 1.0 based on strength of expressed beliefs",
  "based_score": "Score between 1 and 100 measuring originality and independence of thought",
  "score_components": {
    "conviction": "Score between 0.1 and 1.0 measuring belief consistency",
    "authenticity": "Score between 0.1 and 1.0 measuring genuine expression",
    "intellectual_rigor": "Score between 0.1 and 1.0 measuring depth of thought",
    "contrarian": "Score between 0.1 and 1.0 measuring independence from mainstream"
  }
}"""

CLASSIFICATION_TEMPLATE = Template("""Task: Analyze these tweets to determine the user's ideological category and calculate various scores.

Available Categories and their characteristics:
$categories

Tweets to analyze:
$tweets

Important Instructions:
1. Analyze the language patterns, beliefs, and cultural indicators in the tweets
2. Match them against the available categories
3. Identify key phrases and recurring themes
4. Calculate scores based on actual content, avoid default values
5. Consider both explicit statements and implicit indicators
6. Look for evidence of independent thinking vs group alignment
7. Assess the strength and consistency of expressed beliefs

Provide a detailed JSON response with meaningful scores and analysis.
Each score should be justified by the content in the tweets.
Never return default zero values - analyze the actual content.

Response Structure:
$shape""")

CATEGORY_TEMPLATE = Template("""Category: $name
Language Markers: $language_markers
Key Beliefs: $beliefs
Cultural Indicators: $cultural_signifiers
Common Hashtags: $hashtags""")

BASED_SCORE_SHAPE = """{
  "tribal_affiliation": "exactly one of the tribes listed above",
  "justification": "why this tribe and this based score",
  "contrarian_beliefs": [{"belief": "short statement", "justification": "short reason", "confidence": 0.8, "importance": 0.7}],
  "mainstream_beliefs": [{"belief": "short statement", "justification": "short reason", "confidence": 0.9, "importance": 0.6}],
  "based_score": 75,
  "sincerity_score": 80,
  "truthfulness_score": 70,
  "conspiracy_score": 20
}"""

BASED_SCORE_TEMPLATE = Template("""SYSTEM: You are an expert at analyzing social media posts to determine political and social beliefs.
Analyze the following tweets carefully and provide a detailed assessment.

USER MESSAGES:
$messages

TRIBES:
$tribes

ANALYSIS REQUIREMENTS:
1. Score how "based" the user is (0-100) based on originality and independence of thought
2. Identify their tribal affiliation from the provided list
3. Extract both mainstream and contrarian beliefs
4. Assess sincerity (0-100) and truthfulness (0-100)
5. Determine conspiracy thinking level (0-100)

Remember:
- Extract abstract, high-level beliefs
- Contrarian beliefs must directly contradict their tribal affiliation
- Generate at least 10 total beliefs
- Be specific but avoid personal criticism

Respond with a single JSON object of this shape and nothing else:
$shape""")

TRIBE_TEMPLATE = Template("""You are a based detector analyzing tweets. Your task is to determine how based or bluepilled a user is based on their tweets.

Given these tweets from @$username:

$tweets

Provide a concise but engaging analysis in this format:
1. Tribe: [One short phrase describing their ideological tribe]
2. Based Score: [0-100]
3. Explanation: [2-3 sentences explaining why they belong to this tribe and got this score. Be witty and fun but not mean.]

Remember:
- High based scores (70-100) are for independent thinkers and chads
- Medium scores (40-69) are for normies and NPCs
- Low scores (0-39) are for the hopelessly bluepilled

Keep the explanation fun and memey but not cruel. Focus on their ideas, not personal attacks.""")

ASSERTION_SYSTEM_PROMPT = """You are an expert fact-checker analyzing political beliefs.
Return a JSON array of objects with the keys statement, isFactCheckable, modelConfidence, userConfidence and sourceContext.
If you cannot produce JSON, use exactly this format for each belief:

Assertion 1:
Statement: [the factual claim]
Fact-checkable: [yes/no]
Model Confidence: [0-1]
User Confidence: [0-1]
Context: [relevant context or explanation]

Assertion 2:
[and so on...]

Focus on extracting verifiable factual claims from opinions."""

BELIEF_TEMPLATE = Template("""Belief: $belief
Justification: $justification
User Confidence: $confidence
Importance: $importance
""")

FACT_CHECK_SYSTEM_PROMPT = """You are a fact-checking expert. Analyze the claim and provide a response in this exact format:

Determination: [true/false]
Confidence: [number between 0 and 1]
Explanation: [brief explanation of the determination]
Sources:
- [source 1]
- [source 2]
- [source 3]

Do not include any other text or formatting."""

FACT_CHECK_TEMPLATE = Template("""Fact check this claim: "$statement"
Context: $context
User's confidence: $user_confidence

Please provide your analysis in the exact format specified.""")


@lru_cache(maxsize=4)
def load_categories(path: str = str(CATEGORIES_FILE)) -> Tuple[Category, ...]:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    return tuple(Category.model_validate(item) for item in raw)


def describe_categories(categories: Iterable[Category], limit: int = FEATURES_PER_CATEGORY) -> str:
    blocks = []
    for category in categories:
        features = category.features
        blocks.append(
            CATEGORY_TEMPLATE.substitute(
                name=category.name,
                language_markers=", ".join(features.language_markers[:limit]),
                beliefs=", ".join(features.beliefs[:limit]),
                cultural_signifiers=", ".join(features.cultural_signifiers[:limit]),
                hashtags=", ".join(features.hashtags[:limit]),
            )
        )
    return "\n\n".join(blocks)


def build_classification_prompt(post_texts: Sequence[str], categories: Iterable[Category]) -> str:
    return CLASSIFICATION_TEMPLATE.substitute(
        categories=describe_categories(categories),
        tweets=json.dumps(list(post_texts)[:MAX_PROMPT_POSTS], indent=2),
        shape=CLASSIFICATION_SHAPE,
    )


def _created_at_key(post: Post) -> float:
    if not post.created_at:
        return float("-inf")
    try:
        return datetime.fromisoformat(post.created_at.replace("Z", "+00:00")).timestamp()
    except ValueError:
        return float("-inf")


def newest_first(posts: Iterable[Post]) -> List[Post]:
    return sorted(posts, key=_created_at_key, reverse=True)


def build_based_score_prompt(posts: Sequence[Post]) -> str:
    return BASED_SCORE_TEMPLATE.substitute(
        messages="\n\n".join(post.text for post in newest_first(posts)),
        tribes="\n".join(f"- {affiliation.value}" for affiliation in TribalAffiliation),
        shape=BASED_SCORE_SHAPE,
    )


def build_tribe_prompt(username: str, post_texts: Sequence[str]) -> str:
    return TRIBE_TEMPLATE.substitute(username=username, tweets="\n\n".join(post_texts))


def build_assertion_extraction_messages(beliefs: Sequence[PoliticalBelief]) -> List[Dict[str, Any]]:
    listing = "\n".join(
        BELIEF_TEMPLATE.substitute(
            belief=b.belief,
            justification=b.justification,
            confidence=b.confidence,
            importance=b.importance,
        )
        for b in beliefs
    )
    return [
        {"role": "system", "content": ASSERTION_SYSTEM_PROMPT},
        {"role": "user", "content": f"Analyze these political beliefs for factual claims:\n{listing}"},
    ]


def build_fact_check_messages(assertion: Assertion) -> List[Dict[str, Any]]:
    return [
        {"role": "system", "content": FACT_CHECK_SYSTEM_PROMPT},
        {
            "role": "user",
            "content": FACT_CHECK_TEMPLATE.substitute(
                statement=assertion.statement,
                context=assertion.source_context or "None provided",
                user_confidence=assertion.user_confidence,
            ),
        },
    ]
