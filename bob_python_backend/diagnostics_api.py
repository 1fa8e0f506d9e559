"""Provider connectivity checks: send a fixed prompt and return the raw completion."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from bob_python_backend.dependencies import LLMClientFactory, get_llm_client_factory
from bob_python_backend.schemas import ERROR_RESPONSES
from bob_python_backend.services.llm_gateway import DIAGNOSTIC_PROMPT

logger = logging.getLogger(__name__)
router = APIRouter(tags=["diagnostics"], responses=ERROR_RESPONSES)


async def _ping(provider: str, llm_factory: LLMClientFactory) -> JSONResponse:
    client = llm_factory(provider)
    logger.info("[LLM API] Diagnostic call to %s (%s)", provider, client.model)
    data = await client.chat(
        [{"role": "user", "content": DIAGNOSTIC_PROMPT}],
        temperature=0,
        max_tokens=None,
    )
    return JSONResponse(content=data)


@router.api_route("/openai", methods=["GET", "POST"])
async def ping_openai(llm_factory: LLMClientFactory = Depends(get_llm_client_factory)):
    return await _ping("openai", llm_factory)


@router.api_route("/grok", methods=["GET", "POST"])
async def ping_grok(llm_factory: LLMClientFactory = Depends(get_llm_client_factory)):
    return await _ping("grok", llm_factory)
