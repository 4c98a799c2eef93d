"""
LLM client abstraction supporting Claude, OpenAI and Perplexity.

- Claude: Anthropic Messages API
- OpenAI: chat completions, optionally in JSON mode (response_format)
- Perplexity: OpenAI-compatible chat completions at api.perplexity.ai,
  reached through the openai SDK with a custom base_url. Search options are
  sent as extra body fields and citations are returned alongside the text.

Clients are cheap and created per call; callers normally use
LLMClient.for_provider() so keys come from the environment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import config

logger = logging.getLogger(__name__)


class LLMProvider(str, Enum):
    CLAUDE = "claude"
    OPENAI = "openai"
    PERPLEXITY = "perplexity"


class ProviderNotConfiguredError(RuntimeError):
    """Raised when a provider is requested but no API key is set."""

    def __init__(self, provider: LLMProvider):
        self.provider = provider
        vendor = config.PROVIDER_VENDORS.get(provider.value, provider.value)
        super().__init__(f"{vendor} API key not configured")


@dataclass
class LLMResponse:
    """Raw response from an LLM API call."""

    provider: LLMProvider
    raw_content: str
    model: str
    input_tokens: int
    output_tokens: int
    citations: list[str] = field(default_factory=list)

    @property
    def text_content(self) -> str:
        """Return the plain text content of the response."""
        return self.raw_content


class LLMClient:
    """Unified LLM client. Instantiated per-request with a key."""

    def __init__(
        self,
        provider: LLMProvider,
        api_key: str,
        model: Optional[str] = None,
    ):
        self.provider = provider
        self.api_key = api_key
        self.model = model or self._default_model()

    @classmethod
    def for_provider(
        cls,
        provider: LLMProvider,
        model: Optional[str] = None,
        user_id: Optional[str] = None,
    ) -> "LLMClient":
        """Build a client from environment keys and the user's stored model override."""
        api_key = config.get_api_key(provider.value)
        if not api_key:
            raise ProviderNotConfiguredError(provider)
        if model is None:
            from api import settings_store
            model = settings_store.get_model_for_provider(
                provider.value, user_id=user_id or config.LOCAL_USER_ID,
            )
        return cls(provider=provider, api_key=api_key, model=model)

    def _default_model(self) -> str:
        if self.provider == LLMProvider.CLAUDE:
            return config.DEFAULT_CLAUDE_MODEL
        if self.provider == LLMProvider.PERPLEXITY:
            return config.DEFAULT_PERPLEXITY_MODEL
        return config.DEFAULT_OPENAI_MODEL

    async def call(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 2000,
        temperature: float = 0.2,
        json_mode: bool = False,
        search_options: Optional[dict[str, Any]] = None,
    ) -> LLMResponse:
        """Send a prompt and return a plain text response.

        json_mode only affects OpenAI; search_options only affect Perplexity.
        """
        if self.provider == LLMProvider.CLAUDE:
            return await self._call_claude_text(
                system_prompt, user_prompt, max_tokens, temperature,
            )
        elif self.provider == LLMProvider.PERPLEXITY:
            return await self._call_perplexity_text(
                system_prompt, user_prompt, max_tokens, temperature,
                search_options or {},
            )
        else:
            return await self._call_openai_text(
                system_prompt, user_prompt, max_tokens, temperature, json_mode,
            )

    async def _call_claude_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
    ) -> LLMResponse:
        import anthropic

        client = anthropic.AsyncAnthropic(api_key=self.api_key)
        response = await client.messages.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )

        raw_text = ""
        for block in response.content:
            if block.type == "text":
                raw_text += block.text

        if not raw_text:
            raise ValueError("Unexpected response format from Anthropic")

        return LLMResponse(
            provider=LLMProvider.CLAUDE,
            raw_content=raw_text,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )

    async def _call_openai_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        json_mode: bool,
    ) -> LLMResponse:
        import openai

        client = openai.AsyncOpenAI(api_key=self.api_key)
        kwargs: dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = await client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            **kwargs,
        )

        choice = response.choices[0]
        raw_text = choice.message.content or ""
        if not raw_text:
            raise ValueError("No response from OpenAI")

        return LLMResponse(
            provider=LLMProvider.OPENAI,
            raw_content=raw_text,
            model=response.model,
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
        )

    async def _call_perplexity_text(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int,
        temperature: float,
        search_options: dict[str, Any],
    ) -> LLMResponse:
        import openai

        client = openai.AsyncOpenAI(
            api_key=self.api_key, base_url=config.PERPLEXITY_BASE_URL,
        )
        response = await client.chat.completions.create(
            model=self.model,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            extra_body=search_options or None,
        )

        if not response.choices:
            raise ValueError("No results from Perplexity")
        raw_text = response.choices[0].message.content or ""

        # Perplexity adds a top-level "citations" list the SDK keeps as an extra field
        citations = getattr(response, "citations", None) or []

        return LLMResponse(
            provider=LLMProvider.PERPLEXITY,
            raw_content=raw_text,
            model=response.model,
            input_tokens=response.usage.prompt_tokens if response.usage else 0,
            output_tokens=response.usage.completion_tokens if response.usage else 0,
            citations=[str(c) for c in citations],
        )
