# =============================================================================
# Multi-Provider LLM Abstraction — Pluggable AI Backend
# =============================================================================
#
# Common interface for LLM completions, with implementations for Anthropic
# (Claude) and OpenAI-compatible APIs (OpenAI, DeepSeek, Qwen, ...).
#
# DESIGN DECISION: Protocol (structural typing) over ABC, matching the
# SimilarityStore pattern in vectorstore.py.
#
# DESIGN DECISION: Schema-constrained output.
# Callers that need fields back (rewritten text + explanation, style scores)
# pass a JSON schema. Each provider uses its native mechanism:
#   - OpenAI-compatible: response_format={"type": "json_schema", ...}
#   - Anthropic: a single tool whose input_schema is the schema, forced
#     with tool_choice
# The parsed object lands in LLMResponse.structured. When the provider
# returns something unparseable, `structured` stays None and callers fall
# back to reading `content`.
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — Claude via native Anthropic SDK
#   ├── OpenAICompatibleProvider — any OpenAI-compatible API
#   └── get_llm_provider()       — lazy singleton, reads from config
# =============================================================================

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Protocol

from app.config import settings
from app.services.errors import ConfigurationError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """Normalised response from any LLM provider."""

    content: str           # Generated text (JSON text for structured calls)
    model: str
    input_tokens: int
    output_tokens: int
    structured: dict | None = None  # Parsed object when a schema was given


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """LLM provider interface."""

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_schema: dict | None = None,
        schema_name: str = "result",
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Dicts with "role" ("user"/"assistant") and "content".
            system: System prompt. Anthropic takes it as a top-level kwarg,
                OpenAI as a leading {"role": "system"} message.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).
            response_schema: JSON schema (object type, all properties
                required, no additional properties) for structured output.
            schema_name: Name given to the schema/tool.
        """
        ...


def _parse_json_object(text: str) -> dict | None:
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError):
        return None
    return parsed if isinstance(parsed, dict) else None


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native async SDK.

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        from anthropic import AsyncAnthropic

        resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
        if not resolved_key:
            raise ConfigurationError(
                "Anthropic API key not configured",
                hint="Set ANTHROPIC_API_KEY or LLM_API_KEY on the server.",
            )

        # SDK-level retries are off: retry policy lives in rewriting.py
        self._client = AsyncAnthropic(api_key=resolved_key, max_retries=0)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_schema: dict | None = None,
        schema_name: str = "result",
    ) -> LLMResponse:
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if system:
            kwargs["system"] = system
        if response_schema is not None:
            kwargs["tools"] = [{
                "name": schema_name,
                "description": "Return the answer in this structure.",
                "input_schema": response_schema,
            }]
            kwargs["tool_choice"] = {"type": "tool", "name": schema_name}

        response = await self._client.messages.create(**kwargs)

        content = ""
        structured: dict | None = None
        for block in response.content:
            if block.type == "tool_use" and structured is None:
                structured = dict(block.input)
                content = content or json.dumps(structured)
            elif block.type == "text" and not content:
                content = block.text

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            structured=structured,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Provider for OpenAI and any API that follows the OpenAI wire format.

        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat

    Note that json_schema response formats are only honoured by providers
    that implement structured outputs. Set LLM_STRUCTURED_OUTPUT=false for
    the others.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
    ) -> None:
        from openai import AsyncOpenAI

        resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
        if not resolved_key:
            raise ConfigurationError(
                "OpenAI API key not configured",
                hint="Set OPENAI_API_KEY or LLM_API_KEY on the server.",
            )

        client_kwargs: dict = {"api_key": resolved_key, "max_retries": 0}
        resolved_base_url = base_url or settings.llm_base_url
        if resolved_base_url:
            client_kwargs["base_url"] = resolved_base_url

        self._client = AsyncOpenAI(**client_kwargs)
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        response_schema: dict | None = None,
        schema_name: str = "result",
    ) -> LLMResponse:
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        kwargs: dict = {
            "model": self._model,
            "messages": all_messages,
            "max_tokens": max_tokens or self._max_tokens,
            "temperature": self._temperature if temperature is None else temperature,
        }
        if response_schema is not None:
            kwargs["response_format"] = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "schema": response_schema,
                    "strict": True,
                },
            }

        response = await self._client.chat.completions.create(**kwargs)

        content = response.choices[0].message.content or ""
        usage = response.usage

        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            structured=(
                _parse_json_object(content) if response_schema is not None else None
            ),
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Return the configured LLM provider (lazy singleton).

    - "anthropic" → AnthropicProvider
    - "openai_compatible" → OpenAICompatibleProvider

    Raises:
        ConfigurationError: If the provider's API key is missing. Nothing
            is cached in that case, so setting the key later takes effect.
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "anthropic":
            _provider = AnthropicProvider()
        else:
            _provider = OpenAICompatibleProvider()
    return _provider
