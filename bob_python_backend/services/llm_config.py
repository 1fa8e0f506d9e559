import os
from typing import Any, Dict, Tuple

PROVIDER_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "openai": {
        "base_url": "https://api.openai.com/v1",
        "chat_model": "gpt-4o-mini",
        "key_envs": ("OPENAI_API_KEY",),
    },
    "grok": {
        "base_url": "https://api.x.ai/v1",
        "chat_model": "grok-beta",
        "key_envs": ("GROK_API_KEY", "XAI_API_KEY"),
    },
    "perplexity": {
        "base_url": "https://api.perplexity.ai",
        "chat_model": "sonar",
        "key_envs": ("PERPLEXITY_API_KEY",),
    },
}


def _resolve_api_key(key_envs: Tuple[str, ...]) -> str:
    for env_name in key_envs:
        value = str(os.getenv(env_name, "")).strip()
        if value:
            return value
    return ""


def get_provider_config(provider: str) -> Dict[str, Any]:
    name = str(provider or "").strip().lower()
    if name not in PROVIDER_DEFAULTS:
        raise ValueError(f"Unknown LLM provider: {provider!r}")

    defaults = PROVIDER_DEFAULTS[name]
    prefix = name.upper()
    return {
        "name": name,
        "base_url": os.getenv(f"{prefix}_BASE_URL", defaults["base_url"]).rstrip("/"),
        "api_key": _resolve_api_key(defaults["key_envs"]),
        "chat_model": os.getenv(f"{prefix}_MODEL", defaults["chat_model"]),
        "timeout_seconds": float(os.getenv("LLM_TIMEOUT_SECONDS", "30")),
    }
