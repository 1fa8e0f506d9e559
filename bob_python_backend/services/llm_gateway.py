import logging
import os
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from bob_python_backend.errors import ConfigurationError, MalformedResponseError, TransportError
from bob_python_backend.services.llm_config import get_provider_config
from bob_python_backend.services.parsing import Parser
from bob_python_backend.services.retry import backoff_delay, retry_async

logger = logging.getLogger("bob_backend")

_CLIENT_CACHE: Dict[Tuple[str, str, str, str, float], "ChatCompletionClient"] = {}
TRACE_API_CALLS = os.getenv("TRACE_API_CALLS", "true").strip().lower() in {"1", "true", "yes", "on"}
API_LOG_PREVIEW_CHARS = int(os.getenv("API_LOG_PREVIEW_CHARS", "280"))
DIAGNOSTIC_PROMPT = "Testing. Just say hi and hello world and nothing else."


def _preview_text(value: Any, limit: int = API_LOG_PREVIEW_CHARS) -> str:
    text = str(value or "")
    if len(text) <= limit:
        return text
    return f"{text[:limit]}...<truncated {len(text) - limit} chars>"


def extract_message_content(data: Any, provider: str = "llm") -> str:
    try:
        content = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise MalformedResponseError(f"Invalid response format from {provider}: missing choices[0].message.content") from exc
    if not isinstance(content, str):
        raise MalformedResponseError(f"Invalid response format from {provider}: content is {type(content).__name__}")
    return content


class LLMClient(Protocol):
    name: str

    async def complete(
        self,
        prompt: str,
        parser: Parser,
        *,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2000,
    ) -> Any:
        ...


class ChatCompletionClient:
    """OpenAI-compatible chat-completion endpoint (OpenAI, xAI Grok, Perplexity)."""

    def __init__(
        self,
        name: str,
        base_url: str,
        api_key: str,
        model: str,
        timeout_seconds: float = 30,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.name = name
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._http_client = http_client

    async def chat(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.7,
        max_tokens: Optional[int] = 2000,
        **extra: Any,
    ) -> Dict[str, Any]:
        if not self.api_key:
            raise ConfigurationError(f"{self.name} API key is not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "stream": False,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens
        payload.update(extra)

        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if TRACE_API_CALLS:
            logger.info("[LLM API] POST %s provider=%s model=%s messages=%s", url, self.name, self.model, len(messages))

        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("[LLM API] %s request failed: %s", self.name, exc)
            raise TransportError(f"{self.name} request failed: {exc}", provider=self.name) from exc

        if response.is_error:
            logger.error(
                "[LLM API] %s status=%s body=%s",
                self.name,
                response.status_code,
                _preview_text(response.text),
            )
            raise TransportError(
                f"{self.name} API error ({response.status_code}): {response.reason_phrase}",
                provider=self.name,
                upstream_status=response.status_code,
            )

        if TRACE_API_CALLS:
            logger.info("[LLM API] %s status=%s preview=%s", url, response.status_code, _preview_text(response.text))

        try:
            data = response.json()
        except ValueError as exc:
            raise MalformedResponseError(f"{self.name} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise MalformedResponseError(f"{self.name} returned {type(data).__name__} instead of an object")
        return data

    async def complete_text(
        self,
        prompt: Optional[str] = None,
        *,
        messages: Optional[List[Dict[str, Any]]] = None,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = 2000,
        **extra: Any,
    ) -> str:
        if messages is None:
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt or ""})
        data = await self.chat(messages, temperature=temperature, max_tokens=max_tokens, **extra)
        return extract_message_content(data, self.name)

    async def complete(
        self,
        prompt: Optional[str],
        parser: Parser,
        *,
        messages: Optional[List[Dict[str, Any]]] = None,
        system: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = 2000,
        **extra: Any,
    ) -> Any:
        content = await self.complete_text(
            prompt,
            messages=messages,
            system=system,
            temperature=temperature,
            max_tokens=max_tokens,
            **extra,
        )
        result = parser(content)
        if not result.ok:
            logger.warning("[LLM API] %s reply unparseable (%s): %s", self.name, result.reason, _preview_text(content))
            raise MalformedResponseError(f"{self.name} reply could not be parsed: {result.reason}")
        return result.value


def get_llm_client(provider: str, http_client: Optional[httpx.AsyncClient] = None) -> ChatCompletionClient:
    config = get_provider_config(provider)
    if http_client is not None:
        return ChatCompletionClient(
            config["name"],
            config["base_url"],
            config["api_key"],
            config["chat_model"],
            timeout_seconds=config["timeout_seconds"],
            http_client=http_client,
        )

    key = (config["name"], config["base_url"], config["api_key"], config["chat_model"], config["timeout_seconds"])
    if key not in _CLIENT_CACHE:
        _CLIENT_CACHE[key] = ChatCompletionClient(
            config["name"],
            config["base_url"],
            config["api_key"],
            config["chat_model"],
            timeout_seconds=config["timeout_seconds"],
        )
    return _CLIENT_CACHE[key]


async def complete_with_retry(
    client: LLMClient,
    prompt: Optional[str],
    parser: Parser,
    *,
    attempts: int = 5,
    base_delay: float = 1.0,
    **kwargs: Any,
) -> Any:
    return await retry_async(
        lambda: client.complete(prompt, parser, **kwargs),
        attempts=attempts,
        delay=lambda attempt: backoff_delay(attempt, base_delay),
        label=f"{client.name} completion",
    )
