"""
FastAPI dependency providers.

Long-lived collaborators (key-value store, shared HTTP client, settings)
live on ``app.state`` and are set up by ``create_app``; request-scoped
services are built from them here so tests can swap any of them through
``app.dependency_overrides``.
"""

from typing import Callable, Optional

import httpx
from fastapi import Depends, Request

from bob_python_backend.config import CLASSIFIER_PROVIDER, FACT_CHECK_PROVIDER, TWITTER_BEARER_TOKEN
from bob_python_backend.services.assertion_checker import AssertionChecker
from bob_python_backend.services.classifier import ProfileAnalyzer
from bob_python_backend.services.kv_store import KeyValueStore
from bob_python_backend.services.llm_gateway import ChatCompletionClient, get_llm_client
from bob_python_backend.services.oauth_service import OAuthExchanger
from bob_python_backend.services.social_client import SocialClient

SocialClientFactory = Callable[[str], SocialClient]
LLMClientFactory = Callable[[str], ChatCompletionClient]


def get_store(request: Request) -> KeyValueStore:
    return request.app.state.store


def get_http_client(request: Request) -> Optional[httpx.AsyncClient]:
    return getattr(request.app.state, "http_client", None)


def use_test_data(request: Request) -> bool:
    return bool(getattr(request.app.state, "use_test_data", False))


def get_llm_client_factory(
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> LLMClientFactory:
    return lambda provider: get_llm_client(provider, http_client=http_client)


def get_social_client_factory(
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> SocialClientFactory:
    return lambda access_token: SocialClient(access_token, bearer_token=TWITTER_BEARER_TOKEN, http_client=http_client)


def get_oauth_exchanger(
    store: KeyValueStore = Depends(get_store),
    http_client: Optional[httpx.AsyncClient] = Depends(get_http_client),
) -> OAuthExchanger:
    return OAuthExchanger(store, http_client=http_client)


def get_profile_analyzer(
    llm_factory: LLMClientFactory = Depends(get_llm_client_factory),
    test_data: bool = Depends(use_test_data),
) -> ProfileAnalyzer:
    return ProfileAnalyzer(llm_factory(CLASSIFIER_PROVIDER), use_test_data=test_data)


def get_assertion_checker(
    llm_factory: LLMClientFactory = Depends(get_llm_client_factory),
) -> AssertionChecker:
    return AssertionChecker(llm_factory(FACT_CHECK_PROVIDER))
