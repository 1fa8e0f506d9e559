"""
Read-only client for the X/Twitter v2 API.

Fetches the authenticated user, resolves usernames to ids and pulls a user's
recent original posts. Rate-limit responses (429) are retried a bounded
number of times, honouring ``Retry-After`` when the server sends it.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from bob_python_backend.config import TWITTER_API_URL
from bob_python_backend.errors import RetryExhaustedError, TransportError, UpstreamNotFoundError, ValidationError
from bob_python_backend.schemas import Post
from bob_python_backend.services import retry

logger = logging.getLogger("bob_backend")

MAX_RATE_LIMIT_RETRIES = 3
RATE_LIMIT_BASE_DELAY = 1.0
DEFAULT_TIMELINE_SIZE = 100
TWEET_FIELDS = "created_at,author_id,conversation_id,in_reply_to_user_id"


def upstream_error_message(response: httpx.Response) -> str:
    """Pull the most specific message out of an API error body."""
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        return response.text or response.reason_phrase
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if not isinstance(body, dict):
        return "Unknown Twitter API error"
    errors = body.get("errors")
    first_error = errors[0] if isinstance(errors, list) and errors and isinstance(errors[0], dict) else {}
    return (
        body.get("error_description")
        or body.get("error")
        or first_error.get("message")
        or body.get("detail")
        or "Unknown Twitter API error"
    )


class SocialClient:
    def __init__(
        self,
        access_token: str,
        bearer_token: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: str = TWITTER_API_URL,
        timeout_seconds: float = 15,
    ) -> None:
        if not access_token:
            raise ValidationError("Access token is required", error="Missing access token")
        self.access_token = access_token
        self.bearer_token = bearer_token
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    def _token_for(self, path: str) -> str:
        # User-context endpoints must use the user's token; lookups may use the app token.
        if "/users/me" in path or "/tweets" in path:
            return self.access_token
        return self.bearer_token or self.access_token

    async def _send(self, path: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        url = f"{self.base_url}{path}"
        headers = {
            "Authorization": f"Bearer {self._token_for(path)}",
            "Accept": "application/json",
        }
        try:
            if self._http_client is not None:
                return await self._http_client.get(url, params=params, headers=headers)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await client.get(url, params=params, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("[TWITTER] GET %s failed: %s", path, exc)
            raise TransportError(f"Twitter request failed: {exc}", provider="twitter") from exc

    async def request(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        retry_count = 0
        while True:
            response = await self._send(path, params)
            if response.status_code != 429:
                break

            retry_after = response.headers.get("retry-after")
            if retry_after and retry_after.strip().isdigit():
                wait_seconds = float(retry_after)
            else:
                wait_seconds = RATE_LIMIT_BASE_DELAY * (2 ** retry_count)
            logger.warning(
                "[TWITTER] Rate limited on %s (retry %d/%d, reset=%s), waiting %.1fs",
                path,
                retry_count + 1,
                MAX_RATE_LIMIT_RETRIES,
                response.headers.get("x-rate-limit-reset"),
                wait_seconds,
            )
            if retry_count >= MAX_RATE_LIMIT_RETRIES:
                raise RetryExhaustedError(
                    retry_count + 1,
                    TransportError("Twitter API rate limit exceeded", provider="twitter", upstream_status=429),
                    error="Twitter API rate limit exceeded",
                )
            await retry._sleep(wait_seconds)
            retry_count += 1

        if response.is_error:
            message = upstream_error_message(response)
            logger.error("[TWITTER] GET %s status=%s: %s", path, response.status_code, message)
            error_cls = UpstreamNotFoundError if response.status_code == 404 else TransportError
            raise error_cls(
                f"Twitter API error ({response.status_code}): {message}",
                provider="twitter",
                upstream_status=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError("Expected JSON response from Twitter API", provider="twitter") from exc
        if not isinstance(body, dict):
            raise TransportError("Expected JSON object from Twitter API", provider="twitter")
        return body

    async def me(self) -> Dict[str, Any]:
        body = await self.request("/users/me")
        user = body.get("data")
        if not isinstance(user, dict) or not user.get("id"):
            raise UpstreamNotFoundError("Authenticated user not found", provider="twitter")
        return user

    async def lookup_username(self, username: str) -> Dict[str, Any]:
        name = username.strip().lstrip("@")
        body = await self.request(f"/users/by/username/{name}")
        user = body.get("data")
        if not isinstance(user, dict) or not user.get("id"):
            raise UpstreamNotFoundError(f"User not found: {name}", provider="twitter")
        return user

    async def resolve_user_id(self, user_id_or_name: Optional[str]) -> str:
        """Empty means the token's own user; digits are taken as an id; anything else is a username."""
        value = str(user_id_or_name or "").strip()
        if not value:
            return str((await self.me())["id"])
        if value.isdigit():
            return value
        return str((await self.lookup_username(value))["id"])

    async def user_timeline(self, user_id: str, max_results: int = DEFAULT_TIMELINE_SIZE) -> List[Post]:
        body = await self.request(
            f"/users/{user_id}/tweets",
            params={
                "max_results": max(5, min(max_results, 100)),
                "tweet.fields": TWEET_FIELDS,
                "exclude": "retweets,replies",
            },
        )
        items = body.get("data") or []
        posts = [
            Post(
                id=str(item.get("id")),
                text=str(item.get("text") or ""),
                created_at=item.get("created_at"),
                author_id=item.get("author_id"),
                conversation_id=item.get("conversation_id"),
            )
            for item in items
            if isinstance(item, dict) and item.get("id") is not None
        ]
        if not posts:
            raise UpstreamNotFoundError("No tweets found for user", provider="twitter", error="No tweets found")
        logger.info("[TWITTER] Fetched %d posts for user %s", len(posts), user_id)
        return posts
