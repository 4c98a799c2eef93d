"""Process configuration read from environment variables.

Provider API keys are never persisted; they come from the environment only.
"""

import os

REQUIRE_AUTH = os.getenv("REQUIRE_AUTH", "").lower() == "true"

# Every request runs as this user when auth is off
LOCAL_USER_ID = "local"

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY", "")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
PERPLEXITY_API_KEY = os.getenv("PERPLEXITY_API_KEY", "")

SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET", "")
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "")
SENTRY_DSN = os.getenv("SENTRY_DSN", "")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DATABASE_PATH = os.getenv("DATABASE_PATH", "")
HOST = os.getenv("HOST", "")
PORT = int(os.getenv("PORT", "0") or 0)

PERPLEXITY_BASE_URL = "https://api.perplexity.ai"

DEFAULT_CLAUDE_MODEL = "claude-3-5-sonnet-20241022"
DEFAULT_OPENAI_MODEL = "gpt-4o"
DEFAULT_PERPLEXITY_MODEL = "sonar"
PERPLEXITY_ANALYSIS_MODEL = "sonar-pro"

# Display names used in user-facing error messages
PROVIDER_VENDORS = {
    "claude": "Anthropic",
    "openai": "OpenAI",
    "perplexity": "Perplexity",
}


def get_api_key(provider: str) -> str | None:
    """Return the API key for a provider name, or None if unset."""
    key = {
        "claude": ANTHROPIC_API_KEY,
        "openai": OPENAI_API_KEY,
        "perplexity": PERPLEXITY_API_KEY,
    }.get(provider.lower(), "")
    return key or None


def is_provider_configured(provider: str) -> bool:
    return get_api_key(provider) is not None
