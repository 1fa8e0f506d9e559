"""Canned user, posts and analysis results served when USE_TEST_DATA is enabled."""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from bob_python_backend.schemas import BasedScore, ClassificationResult, Post, TribeAnalysis
from bob_python_backend.services.normalizer import normalize_based_score, normalize_classification

SAMPLE_DATA_FILE = Path(__file__).resolve().parent.parent / "data" / "sample_data.json"


@lru_cache(maxsize=1)
def _load() -> Dict[str, Any]:
    with open(SAMPLE_DATA_FILE, "r", encoding="utf-8") as f:
        return json.load(f)


def sample_user() -> Dict[str, str]:
    return dict(_load()["user"])


def sample_posts() -> List[Post]:
    return [Post.model_validate(item) for item in _load()["posts"]]


def sample_classification() -> ClassificationResult:
    return normalize_classification(_load()["classification"])


def sample_based_score() -> BasedScore:
    # Raw reply shape, so it goes through the same normalization as live output.
    return normalize_based_score(_load()["based_score"])


def sample_tribe_analysis() -> TribeAnalysis:
    return TribeAnalysis.model_validate(_load()["tribe"])
