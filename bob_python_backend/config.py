"""Shared environment configuration constants for the BOB backend."""
import os


def _to_bool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _to_list(value: str) -> list:
    return [item.strip() for item in str(value).split(",") if item.strip()]


# --- Social API / OAuth ---
TWITTER_CLIENT_ID = os.getenv("TWITTER_CLIENT_ID", "")
TWITTER_CLIENT_SECRET = os.getenv("TWITTER_CLIENT_SECRET", "")
TWITTER_BEARER_TOKEN = os.getenv("TWITTER_BEARER_TOKEN")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
OAUTH_REDIRECT_URI = os.getenv("OAUTH_REDIRECT_URI", f"{FRONTEND_URL}/callback")
OAUTH_SCOPES = os.getenv("OAUTH_SCOPES", "tweet.read users.read offline.access")

# --- External API URLs ---
TWITTER_API_URL = "https://api.twitter.com/2"
TWITTER_AUTHORIZE_URL = "https://twitter.com/i/oauth2/authorize"
TWITTER_TOKEN_URL = "https://api.twitter.com/2/oauth2/token"

# --- Storage ---
# Hosted row store (Supabase Postgres). When unset, an in-memory store is used.
DATABASE_URL = os.getenv("DATABASE_URL")

# --- HTTP surface ---
ALLOWED_ORIGINS = _to_list(
    os.getenv(
        "ALLOWED_ORIGINS",
        "http://localhost:5173,https://basedorbiased.com,https://basedorbiased.vercel.app",
    )
)
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "300"))
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))

# --- Behaviour ---
USE_TEST_DATA = _to_bool(os.getenv("USE_TEST_DATA", "false"))
CLASSIFIER_PROVIDER = os.getenv("CLASSIFIER_PROVIDER", "grok")
FACT_CHECK_PROVIDER = os.getenv("FACT_CHECK_PROVIDER", "perplexity")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
