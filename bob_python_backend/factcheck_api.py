"""Fact-check endpoint for a based score computed elsewhere."""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException

from bob_python_backend.dependencies import get_assertion_checker
from bob_python_backend.errors import BobError, ValidationError
from bob_python_backend.schemas import ERROR_RESPONSES
from bob_python_backend.services.assertion_checker import AssertionChecker
from bob_python_backend.services.normalizer import normalize_based_score

logger = logging.getLogger(__name__)
router = APIRouter(tags=["factcheck"], responses=ERROR_RESPONSES)


@router.post("/fact_check")
async def fact_check_based_score(
    payload: Dict[str, Any] = Body(...),
    checker: AssertionChecker = Depends(get_assertion_checker),
) -> Dict[str, Any]:
    try:
        if not payload.get("mainstream_beliefs") and not payload.get("contrarian_beliefs"):
            raise ValidationError("No beliefs provided.", error="Missing beliefs")

        based_score = normalize_based_score(payload)
        enhanced = await checker.enhance_based_score(based_score)
        return enhanced.model_dump(mode="json", by_alias=True)

    except (BobError, HTTPException):
        raise
    except Exception as exc:
        logger.exception("[FACTCHECK] Unexpected error: %s", exc)
        raise HTTPException(status_code=500, detail=f"An unexpected error occurred: {str(exc)}")
