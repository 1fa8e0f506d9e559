"""
OAuth 2.0 authorization-code flow with PKCE against the Twitter authorization server.

Flow: ``start_authorization`` stores the verifier under the generated state
and returns the authorize URL; ``exchange_code`` consumes that state exactly
once and trades the code for tokens; ``refresh`` renews the stored token.
"""

import base64
import hashlib
import logging
import secrets
import time
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx

from bob_python_backend import config
from bob_python_backend.errors import ConfigurationError, StateError, TransportError, ValidationError
from bob_python_backend.schemas import AccessTokenRecord, AuthorizationRequest, OAuthStateRecord, TokenResponse
from bob_python_backend.services.kv_store import KeyValueStore
from bob_python_backend.services.social_client import upstream_error_message

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 600
STATE_KEY_PREFIX = "oauth_state:"
ACCESS_TOKEN_KEY = "access_token:current"
DEFAULT_TOKEN_LIFETIME = 7200


def generate_code_verifier() -> str:
    # 32 random bytes -> 43 url-safe characters
    return secrets.token_urlsafe(32)


def code_challenge_for(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def generate_state() -> str:
    return secrets.token_urlsafe(24)


def state_key(state: str) -> str:
    return f"{STATE_KEY_PREFIX}{state}"


class OAuthExchanger:
    def __init__(
        self,
        store: KeyValueStore,
        client_id: str = config.TWITTER_CLIENT_ID,
        client_secret: str = config.TWITTER_CLIENT_SECRET,
        redirect_uri: str = config.OAUTH_REDIRECT_URI,
        scopes: str = config.OAUTH_SCOPES,
        authorize_url: str = config.TWITTER_AUTHORIZE_URL,
        token_url: str = config.TWITTER_TOKEN_URL,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.authorize_url = authorize_url
        self.token_url = token_url
        self._http_client = http_client
        self._clock = clock

    def _require_client_id(self) -> None:
        if not self.client_id:
            raise ConfigurationError("TWITTER_CLIENT_ID is not configured")

    async def start_authorization(self) -> AuthorizationRequest:
        self._require_client_id()
        purged = await self.store.purge_expired()
        if purged:
            logger.info("[OAUTH] Purged %d expired entries", purged)

        state = generate_state()
        verifier = generate_code_verifier()
        record = OAuthStateRecord(
            state=state,
            code_verifier=verifier,
            expires_at=self._clock() + STATE_TTL_SECONDS,
        )
        await self.store.set(state_key(state), record.model_dump(), ttl_seconds=STATE_TTL_SECONDS)

        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
                "scope": self.scopes,
                "state": state,
                "code_challenge": code_challenge_for(verifier),
                "code_challenge_method": "S256",
            }
        )
        logger.info("[OAUTH] Issued authorization state %s...", state[:8])
        return AuthorizationRequest(
            url=f"{self.authorize_url}?{query}",
            state=state,
            expires_in=STATE_TTL_SECONDS,
        )

    async def exchange_code(self, code: Optional[str], state: Optional[str]) -> TokenResponse:
        if not code or not state:
            raise ValidationError(
                "Both code and state parameters are required",
                error="Missing parameters",
            )

        raw = await self.store.pop(state_key(state))
        if raw is None:
            logger.warning("[OAUTH] Unknown, expired or replayed state %s...", state[:8])
            raise StateError("Please try logging in again")
        record = OAuthStateRecord.model_validate(raw)
        if record.expires_at <= self._clock():
            logger.warning("[OAUTH] State %s... expired at %s", state[:8], record.expires_at)
            raise StateError("Authorization state expired, please try logging in again")

        tokens = await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.redirect_uri,
                "code_verifier": record.code_verifier,
                "client_id": self.client_id,
            }
        )
        stored = await self._store_tokens(tokens)
        logger.info("[OAUTH] Code exchanged for access token")
        return TokenResponse(
            access_token=stored.access_token,
            refresh_token=stored.refresh_token,
            expires_in=int(tokens.get("expires_in") or DEFAULT_TOKEN_LIFETIME),
        )

    async def refresh(self) -> str:
        current = await self.current_token()
        if current is None or not current.refresh_token:
            raise StateError("No refresh token stored, please log in again", error="No refresh token")

        tokens = await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": current.refresh_token,
                "client_id": self.client_id,
            }
        )
        stored = await self._store_tokens(tokens, previous_refresh_token=current.refresh_token)
        logger.info("[OAUTH] Access token refreshed")
        return stored.access_token

    async def current_token(self) -> Optional[AccessTokenRecord]:
        raw = await self.store.get(ACCESS_TOKEN_KEY)
        return AccessTokenRecord.model_validate(raw) if raw else None

    async def _store_tokens(
        self, tokens: Dict[str, Any], previous_refresh_token: Optional[str] = None
    ) -> AccessTokenRecord:
        lifetime = int(tokens.get("expires_in") or DEFAULT_TOKEN_LIFETIME)
        record = AccessTokenRecord(
            access_token=tokens["access_token"],
            refresh_token=tokens.get("refresh_token") or previous_refresh_token,
            expires_at=self._clock() + lifetime,
        )
        await self.store.set(ACCESS_TOKEN_KEY, record.model_dump())
        return record

    async def _token_request(self, form: Dict[str, str]) -> Dict[str, Any]:
        self._require_client_id()
        headers = {
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }
        auth = httpx.BasicAuth(self.client_id, self.client_secret) if self.client_secret else None

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.token_url, data=form, headers=headers, auth=auth)
            else:
                async with httpx.AsyncClient(timeout=15) as client:
                    response = await client.post(self.token_url, data=form, headers=headers, auth=auth)
        except httpx.HTTPError as exc:
            logger.error("[OAUTH] Token endpoint request failed: %s", exc)
            raise TransportError(f"Token endpoint request failed: {exc}", provider="twitter") from exc

        if response.is_error:
            message = upstream_error_message(response)
            logger.error("[OAUTH] Token endpoint status=%s: %s", response.status_code, message)
            raise TransportError(
                f"Token request failed ({response.status_code}): {message}",
                provider="twitter",
                upstream_status=response.status_code,
                error="Failed to exchange token",
            )

        try:
            tokens = response.json()
        except ValueError as exc:
            raise TransportError("Token endpoint returned a non-JSON body", provider="twitter") from exc
        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            raise TransportError("Token endpoint response has no access_token", provider="twitter")
        return tokens
