"""
Persistent settings store backed by SQLite.

Only non-secret settings (model overrides) live here; provider API keys are
read from the environment by config. Every row belongs to one user, so an
override only affects the caller who set it.

Public API: get_settings, update_settings, get_model_for_provider.
"""

from __future__ import annotations

import config
from api.settings_models import AppSettings, ProviderStatus, SettingsUpdate
from storage.database import get_db

# Non-secret settings stored in SQLite, keyed by provider
_MODEL_KEYS = {
    "claude": "claude_model",
    "openai": "openai_model",
    "perplexity": "perplexity_model",
}

_DEFAULT_MODELS = {
    "claude": config.DEFAULT_CLAUDE_MODEL,
    "openai": config.DEFAULT_OPENAI_MODEL,
    "perplexity": config.DEFAULT_PERPLEXITY_MODEL,
}


def get_settings(user_id: str = config.LOCAL_USER_ID) -> AppSettings:
    """Return the user's current settings (loaded fresh from SQLite)."""
    all_db = get_db().get_all_settings(user_id=user_id)

    providers = {
        provider: ProviderStatus(
            configured=config.is_provider_configured(provider),
            model=all_db.get(key) or _DEFAULT_MODELS[provider],
        )
        for provider, key in _MODEL_KEYS.items()
    }

    return AppSettings(
        claude_model=all_db.get("claude_model"),
        openai_model=all_db.get("openai_model"),
        perplexity_model=all_db.get("perplexity_model"),
        providers=providers,
    )


def update_settings(update: SettingsUpdate, user_id: str = config.LOCAL_USER_ID) -> AppSettings:
    """Apply partial update for one user and return their new settings."""
    db = get_db()

    update_data = update.model_dump(exclude_unset=True)

    for key in _MODEL_KEYS.values():
        if key not in update_data:
            continue
        val = update_data[key]
        if val is None:
            continue
        val = val.strip()
        if val:
            db.set_setting(key, val, user_id=user_id)
        else:
            db.delete_setting(key, user_id=user_id)

    return get_settings(user_id=user_id)


def get_model_for_provider(provider: str, user_id: str = config.LOCAL_USER_ID) -> str:
    """Return the user's stored model override for a provider, or its default."""
    key = _MODEL_KEYS.get(provider)
    if key is None:
        raise ValueError(f"Unknown provider: {provider}")
    return get_db().get_setting(key, user_id=user_id) or _DEFAULT_MODELS[provider]
