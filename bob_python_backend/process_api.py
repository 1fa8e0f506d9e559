"""Profile analysis endpoint: fetch a user's posts and score them."""

import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, HTTPException

from bob_python_backend.dependencies import (
    SocialClientFactory,
    get_assertion_checker,
    get_profile_analyzer,
    get_social_client_factory,
    use_test_data,
)
from bob_python_backend.errors import BobError, ValidationError
from bob_python_backend.schemas import ERROR_RESPONSES, Post, ProcessRequest
from bob_python_backend.services import sample_data
from bob_python_backend.services.assertion_checker import AssertionChecker
from bob_python_backend.services.classifier import ProfileAnalyzer

logger = logging.getLogger(__name__)
router = APIRouter(tags=["process"], responses=ERROR_RESPONSES)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def _load_posts(
    body: ProcessRequest, access_token: str, social_factory: SocialClientFactory, test_data: bool
) -> Tuple[str, str, List[Post]]:
    """Resolve the target user and fetch their posts; returns (user_id, display name, posts)."""
    if test_data:
        logger.info("Using test user and post data")
        user = sample_data.sample_user()
        return user["id"], user["username"], sample_data.sample_posts()

    social = social_factory(access_token)
    requested = (body.userId or "").strip()
    user_id = await social.resolve_user_id(requested)
    display_name = requested.lstrip("@") if requested and not requested.isdigit() else user_id
    posts = await social.user_timeline(user_id)
    return user_id, display_name, posts


@router.post("/process")
async def process_profile(
    body: Optional[ProcessRequest] = None,
    authorization: Optional[str] = Header(None),
    social_factory: SocialClientFactory = Depends(get_social_client_factory),
    analyzer: ProfileAnalyzer = Depends(get_profile_analyzer),
    checker: AssertionChecker = Depends(get_assertion_checker),
    test_data: bool = Depends(use_test_data),
) -> Dict[str, Any]:
    body = body or ProcessRequest()
    try:
        access_token = body.accessToken or bearer_token(authorization)
        if not access_token:
            raise ValidationError(
                "Provide accessToken in the body or an Authorization: Bearer header",
                error="Missing access token",
            )

        user_id, display_name, posts = await _load_posts(body, access_token, social_factory, test_data)
        logger.info("Analyzing %d posts for user %s (mode=%s)", len(posts), user_id, body.mode)

        if body.mode == "classification":
            result = await analyzer.classify(posts)
            return result.model_dump(mode="json")

        if body.mode == "tribe":
            result = await analyzer.tribe(display_name, posts)
            return result.model_dump(mode="json")

        score = await analyzer.based_score(posts)
        if body.factCheck:
            enhanced = await checker.enhance_based_score(score)
            return enhanced.model_dump(mode="json", by_alias=True)
        return score.model_dump(mode="json")

    except (BobError, HTTPException):
        raise
    except Exception as exc:
        logger.exception("Unexpected error processing profile: %s", exc)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred: {str(exc)}")
