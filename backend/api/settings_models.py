"""Pydantic models for the /settings endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

# Provider model identifiers ("gpt-4o", "claude-3-5-sonnet-20241022", "sonar-pro").
# Blank is allowed and clears the override.
MODEL_NAME_PATTERN = r"^\s*$|^\s*[A-Za-z0-9][A-Za-z0-9._:/-]{0,99}\s*$"


class ProviderStatus(BaseModel):
    configured: bool
    model: str


class AppSettings(BaseModel):
    """Current settings for the caller. API keys are never returned, only whether one is set."""

    claude_model: Optional[str] = None
    openai_model: Optional[str] = None
    perplexity_model: Optional[str] = None
    providers: dict[str, ProviderStatus] = {}


class SettingsUpdate(BaseModel):
    """Partial update. An empty string clears a stored override."""

    claude_model: Optional[str] = Field(None, pattern=MODEL_NAME_PATTERN)
    openai_model: Optional[str] = Field(None, pattern=MODEL_NAME_PATTERN)
    perplexity_model: Optional[str] = Field(None, pattern=MODEL_NAME_PATTERN)
