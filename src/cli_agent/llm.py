# llm.py
# LLM provider interface and vendor implementations.
#
# Planner, Executor and GoalChecker depend only on `LLMProvider.generate`.
# Vendor selection happens once, in create_provider(). Providers never retry:
# a failed call surfaces as a ProviderError and the orchestrator decides.

import logging
from typing import Any, Protocol

import httpx
import openai
from openai import OpenAI
from pydantic import BaseModel

from cli_agent.config import Settings
from cli_agent.errors import (
    ConfigError,
    ProviderInvalidResponse,
    ProviderRateLimited,
    ProviderUnavailable,
)

LOGGER = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEEPSEEK_BASE_URL = "https://api.deepseek.com"
ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

# USD per 1M tokens (input, output). Unlisted models are tracked at zero cost.
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "gpt-4o": (5.0, 15.0),
}


class GenerationOptions(BaseModel):
    temperature: float = 0.2
    max_tokens: int | None = None
    json_mode: bool = False
    system: str | None = None


class LLMProvider(Protocol):
    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        ...


# ---------------------------------------------------------------------------
# Usage tracking
# ---------------------------------------------------------------------------


class UsageTracker:
    """Accumulates token counts and an estimated cost across calls."""

    def __init__(self, prices: dict[str, tuple[float, float]] | None = None) -> None:
        self._prices = MODEL_PRICES if prices is None else prices
        self.calls = 0
        self.prompt_tokens = 0
        self.completion_tokens = 0
        self.total_cost = 0.0

    def record(self, model: str, prompt_tokens: int, completion_tokens: int) -> None:
        self.calls += 1
        self.prompt_tokens += prompt_tokens
        self.completion_tokens += completion_tokens
        input_price, output_price = self._prices.get(model, (0.0, 0.0))
        self.total_cost += (prompt_tokens * input_price + completion_tokens * output_price) / 1_000_000

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


# ---------------------------------------------------------------------------
# OpenAI-compatible vendors (OpenAI, OpenRouter, DeepSeek, Ollama /v1)
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        timeout: float = 120,
        usage: UsageTracker | None = None,
        client: Any = None,
    ) -> None:
        self.model = model
        self.usage = usage
        self._client = client or OpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        options = options or GenerationOptions()
        messages: list[dict] = []
        if options.system:
            messages.append({"role": "system", "content": options.system})
        messages.append({"role": "user", "content": prompt})

        kwargs: dict[str, Any] = {"temperature": options.temperature}
        if options.max_tokens is not None:
            kwargs["max_tokens"] = options.max_tokens
        if options.json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        LOGGER.debug("LLM request model=%s prompt:\n%s", self.model, prompt)
        try:
            response = self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                **kwargs,
            )
        except openai.RateLimitError as exc:
            raise ProviderRateLimited(f"{self.model}: rate limited: {exc}") from exc
        except openai.APIStatusError as exc:
            raise ProviderUnavailable(f"{self.model}: HTTP {exc.status_code}: {exc.message}") from exc
        except openai.APIConnectionError as exc:
            raise ProviderUnavailable(f"{self.model}: {exc}") from exc

        if not response.choices or not response.choices[0].message.content:
            raise ProviderInvalidResponse(f"{self.model}: response held no content")
        content = response.choices[0].message.content.strip()

        if self.usage is not None and response.usage is not None:
            self.usage.record(
                self.model, response.usage.prompt_tokens, response.usage.completion_tokens
            )
        LOGGER.debug("LLM response:\n%s", content)
        return content


# ---------------------------------------------------------------------------
# REST vendors
# ---------------------------------------------------------------------------


def _post_json(
    http: httpx.Client,
    vendor: str,
    url: str,
    payload: dict,
    headers: dict | None = None,
    params: dict | None = None,
) -> dict:
    try:
        response = http.post(url, json=payload, headers=headers, params=params)
    except httpx.TimeoutException as exc:
        raise ProviderUnavailable(f"{vendor}: request timed out") from exc
    except httpx.HTTPError as exc:
        raise ProviderUnavailable(f"{vendor}: {exc}") from exc

    if response.status_code == 429:
        raise ProviderRateLimited(f"{vendor}: rate limited")
    if response.status_code >= 400:
        raise ProviderUnavailable(f"{vendor} API error {response.status_code}: {response.text[:400]}")
    try:
        return response.json()
    except ValueError as exc:
        raise ProviderInvalidResponse(f"{vendor}: response is not JSON") from exc


class ClaudeProvider:
    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 120,
        usage: UsageTracker | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self.usage = usage
        self._api_key = api_key
        self._http = http or httpx.Client(timeout=timeout)

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        options = options or GenerationOptions()
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": options.max_tokens or 4096,
            "temperature": options.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if options.system:
            payload["system"] = options.system

        LOGGER.debug("LLM request model=%s prompt:\n%s", self.model, prompt)
        data = _post_json(
            self._http,
            "Claude",
            ANTHROPIC_URL,
            payload,
            headers={"x-api-key": self._api_key, "anthropic-version": ANTHROPIC_VERSION},
        )
        try:
            content = data["content"][0]["text"].strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderInvalidResponse("Claude: no content in response") from exc
        if not content:
            raise ProviderInvalidResponse("Claude: empty completion")

        usage = data.get("usage") or {}
        if self.usage is not None:
            self.usage.record(self.model, usage.get("input_tokens", 0), usage.get("output_tokens", 0))
        LOGGER.debug("LLM response:\n%s", content)
        return content


class GeminiProvider:
    def __init__(
        self,
        api_key: str,
        model: str,
        timeout: float = 120,
        usage: UsageTracker | None = None,
        http: httpx.Client | None = None,
    ) -> None:
        self.model = model
        self.usage = usage
        self._api_key = api_key
        self._http = http or httpx.Client(timeout=timeout)

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        options = options or GenerationOptions()
        generation_config: dict[str, Any] = {"temperature": options.temperature}
        if options.max_tokens is not None:
            generation_config["maxOutputTokens"] = options.max_tokens
        if options.json_mode:
            generation_config["responseMimeType"] = "application/json"

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": generation_config,
        }
        if options.system:
            payload["systemInstruction"] = {"parts": [{"text": options.system}]}

        LOGGER.debug("LLM request model=%s prompt:\n%s", self.model, prompt)
        data = _post_json(
            self._http,
            "Gemini",
            GEMINI_URL.format(model=self.model),
            payload,
            params={"key": self._api_key},
        )
        try:
            parts = data["candidates"][0]["content"]["parts"]
            content = "".join(part.get("text", "") for part in parts).strip()
        except (KeyError, IndexError, TypeError, AttributeError) as exc:
            raise ProviderInvalidResponse("Gemini: no content in response") from exc
        if not content:
            raise ProviderInvalidResponse("Gemini: empty completion")

        usage = data.get("usageMetadata") or {}
        if self.usage is not None:
            self.usage.record(
                self.model, usage.get("promptTokenCount", 0), usage.get("candidatesTokenCount", 0)
            )
        LOGGER.debug("LLM response:\n%s", content)
        return content


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def _key(value: str | None, vendor: str) -> str:
    if not value:
        raise ConfigError(f"API key for {vendor} is not set")
    return value


def create_provider(settings: Settings, usage: UsageTracker | None = None) -> LLMProvider:
    """Build the provider named by `settings.provider`."""
    model = settings.resolved_model
    timeout = settings.llm_timeout

    if settings.provider == "openai":
        return OpenAICompatibleProvider(
            _key(settings.openai_api_key, "OpenAI"), model, timeout=timeout, usage=usage
        )
    if settings.provider == "openrouter":
        return OpenAICompatibleProvider(
            _key(settings.openrouter_api_key, "OpenRouter"),
            model,
            base_url=OPENROUTER_BASE_URL,
            timeout=timeout,
            usage=usage,
        )
    if settings.provider == "deepseek":
        return OpenAICompatibleProvider(
            _key(settings.deepseek_api_key, "DeepSeek"),
            model,
            base_url=DEEPSEEK_BASE_URL,
            timeout=timeout,
            usage=usage,
        )
    if settings.provider == "ollama":
        return OpenAICompatibleProvider(
            "ollama",
            model,
            base_url=f"{settings.ollama_base_url.rstrip('/')}/v1",
            timeout=timeout,
            usage=usage,
        )
    if settings.provider == "claude":
        return ClaudeProvider(
            _key(settings.anthropic_api_key, "Anthropic Claude"), model, timeout=timeout, usage=usage
        )
    if settings.provider == "gemini":
        return GeminiProvider(
            _key(settings.google_api_key, "Google Gemini"), model, timeout=timeout, usage=usage
        )
    raise ConfigError(f"Unknown provider '{settings.provider}'")
