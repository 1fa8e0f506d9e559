"""Services for the Based-or-Biased backend."""

from .assertion_checker import AssertionChecker
from .classifier import ProfileAnalyzer
from .kv_store import InMemoryStore, SqlKeyValueStore
from .llm_gateway import ChatCompletionClient
from .oauth_service import OAuthExchanger
from .rate_limiter import RateLimiter
from .social_client import SocialClient

__all__ = [
    'AssertionChecker',
    'ChatCompletionClient',
    'InMemoryStore',
    'OAuthExchanger',
    'ProfileAnalyzer',
    'RateLimiter',
    'SocialClient',
    'SqlKeyValueStore',
]
