"""
LLM provider adapters used by the plan orchestrator.

Two providers are supported:
    - Gemini (cheaper, used for the free tier) through Google's OpenAI-compatible
      endpoint, so it is driven by the openai SDK. It walks an ordered model list
      and retries once without forced-JSON output when a model rejects JSON mode.
    - Claude (higher fidelity, used for the paid tier) through the anthropic SDK,
      single model.

Adapters translate SDK exceptions into a ProviderErrorKind so the orchestrator
never inspects vendor error text.
"""

import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

import anthropic
import openai
from anthropic import AsyncAnthropic
from dotenv import load_dotenv
from openai import AsyncOpenAI

from errors import ProviderCallError, ProviderErrorKind

load_dotenv()

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_GEMINI_FALLBACKS = ("gemini-2.5-flash-lite", "gemini-1.5-flash")
DEFAULT_CLAUDE_MODEL = "claude-sonnet-4-20250514"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_OUTPUT_TOKENS = 4096
DEFAULT_TIMEOUT_SECONDS = 60.0

PROVIDER_GEMINI = "gemini"
PROVIDER_CLAUDE = "claude"

# Fragments of a 400 message that mean "this model can't do forced JSON"
_JSON_MODE_MARKERS = ("response_mime_type", "responsemimetype", "response_format", "json mode", "mime type")
_MODEL_MARKERS = ("not found", "unsupported", "not supported", "retired", "deprecated", "invalid value")


def _dedupe(items) -> Tuple[str, ...]:
    seen = []
    for item in items:
        if item and item not in seen:
            seen.append(item)
    return tuple(seen)


@dataclass(frozen=True)
class ProviderConfig:
    """Credentials and model settings for both providers."""
    gemini_api_key: Optional[str] = None
    claude_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    gemini_fallback_models: Tuple[str, ...] = DEFAULT_GEMINI_FALLBACKS
    gemini_base_url: str = GEMINI_BASE_URL
    claude_model: str = DEFAULT_CLAUDE_MODEL
    temperature: float = DEFAULT_TEMPERATURE
    max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS

    @property
    def has_gemini(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def has_claude(self) -> bool:
        return bool(self.claude_api_key)

    @property
    def gemini_models(self) -> Tuple[str, ...]:
        """Primary model first, then fallbacks, without duplicates."""
        return _dedupe((self.gemini_model,) + tuple(self.gemini_fallback_models))

    @classmethod
    def from_env(cls) -> "ProviderConfig":
        return cls(
            gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
            claude_api_key=os.getenv("CLAUDE_API_KEY") or os.getenv("ANTHROPIC_API_KEY") or None,
            gemini_model=os.getenv("GEMINI_MODEL") or DEFAULT_GEMINI_MODEL,
            claude_model=os.getenv("CLAUDE_MODEL") or DEFAULT_CLAUDE_MODEL,
            timeout_seconds=float(os.getenv("LLM_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS)),
        )


@dataclass
class CompletionResult:
    text: str
    model: str
    provider: str
    tokens_used: Optional[Dict[str, int]] = None


# ------------------------ Error classification ------------------------ #

def classify_openai_error(e: Exception) -> ProviderErrorKind:
    if isinstance(e, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return ProviderErrorKind.AUTH
    if isinstance(e, openai.RateLimitError):
        return ProviderErrorKind.RATE_LIMITED
    if isinstance(e, openai.NotFoundError):
        return ProviderErrorKind.MODEL_UNAVAILABLE
    if isinstance(e, openai.BadRequestError):
        msg = str(e).lower()
        if any(marker in msg for marker in _JSON_MODE_MARKERS):
            return ProviderErrorKind.JSON_MODE_UNSUPPORTED
        if "model" in msg and any(marker in msg for marker in _MODEL_MARKERS):
            return ProviderErrorKind.MODEL_UNAVAILABLE
    return ProviderErrorKind.UNKNOWN


def classify_anthropic_error(e: Exception) -> ProviderErrorKind:
    if isinstance(e, (anthropic.AuthenticationError, anthropic.PermissionDeniedError)):
        return ProviderErrorKind.AUTH
    if isinstance(e, anthropic.RateLimitError):
        return ProviderErrorKind.RATE_LIMITED
    if isinstance(e, anthropic.NotFoundError):
        return ProviderErrorKind.MODEL_UNAVAILABLE
    return ProviderErrorKind.UNKNOWN


# ------------------------ Adapters ------------------------ #

class BaseProvider(ABC):
    name = ""

    def __init__(self, config: ProviderConfig, client_factory: Optional[Callable[[], Any]] = None):
        self.config = config
        # Clients are built per call: each request may run on its own event loop
        self._client_factory = client_factory

    @abstractmethod
    def _new_client(self) -> Any:
        pass

    def _client(self) -> Any:
        return self._client_factory() if self._client_factory else self._new_client()

    async def _release(self, client: Any):
        if self._client_factory is None:
            await client.close()

    @abstractmethod
    async def complete(self, system_prompt: str, payload: str, model_hint: Optional[str] = None) -> CompletionResult:
        """Run one completion. Raises ProviderCallError on failure."""


class GeminiProvider(BaseProvider):
    name = PROVIDER_GEMINI

    def _new_client(self) -> AsyncOpenAI:
        return AsyncOpenAI(
            api_key=self.config.gemini_api_key,
            base_url=self.config.gemini_base_url,
            timeout=self.config.timeout_seconds,
            max_retries=0,
        )

    def candidate_models(self, model_hint: Optional[str] = None) -> Tuple[str, ...]:
        if model_hint:
            return _dedupe((model_hint,) + self.config.gemini_models)
        return self.config.gemini_models

    async def complete(self, system_prompt: str, payload: str, model_hint: Optional[str] = None) -> CompletionResult:
        client = self._client()
        try:
            last_error: Optional[ProviderCallError] = None
            for model in self.candidate_models(model_hint):
                try:
                    return await self._complete_with_model(client, system_prompt, payload, model)
                except ProviderCallError as e:
                    if e.kind is not ProviderErrorKind.MODEL_UNAVAILABLE:
                        raise
                    logger.warning("Gemini model %s unavailable, trying next: %s", model, e.message)
                    last_error = e
            raise last_error or ProviderCallError("No Gemini models configured", provider=self.name)
        finally:
            await self._release(client)

    async def _complete_with_model(self, client, system_prompt: str, payload: str, model: str) -> CompletionResult:
        try:
            return await self._request(client, system_prompt, payload, model, json_mode=True)
        except ProviderCallError as e:
            if e.kind is not ProviderErrorKind.JSON_MODE_UNSUPPORTED:
                raise
            logger.warning("Gemini model %s rejected JSON mode, retrying without it", model)
        return await self._request(client, system_prompt, payload, model, json_mode=False)

    async def _request(self, client, system_prompt: str, payload: str, model: str, json_mode: bool) -> CompletionResult:
        kwargs: Dict[str, Any] = dict(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": payload},
            ],
            temperature=self.config.temperature,
            max_tokens=self.config.max_output_tokens,
        )
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            resp = await client.chat.completions.create(**kwargs)
        except openai.APIError as e:
            raise ProviderCallError(str(e), classify_openai_error(e), self.name, model) from e

        text = resp.choices[0].message.content if resp.choices else None
        if not text:
            raise ProviderCallError("Empty response from Gemini", ProviderErrorKind.EMPTY_RESPONSE, self.name, model)

        usage = getattr(resp, "usage", None)
        tokens = None
        if usage is not None:
            tokens = {
                "input": getattr(usage, "prompt_tokens", 0) or 0,
                "output": getattr(usage, "completion_tokens", 0) or 0,
            }
        return CompletionResult(text=text, model=model, provider=self.name, tokens_used=tokens)


class ClaudeProvider(BaseProvider):
    name = PROVIDER_CLAUDE

    def _new_client(self) -> AsyncAnthropic:
        return AsyncAnthropic(
            api_key=self.config.claude_api_key,
            timeout=self.config.timeout_seconds,
            max_retries=0,
        )

    async def complete(self, system_prompt: str, payload: str, model_hint: Optional[str] = None) -> CompletionResult:
        model = model_hint or self.config.claude_model
        client = self._client()
        try:
            resp = await client.messages.create(
                model=model,
                system=system_prompt,
                messages=[{"role": "user", "content": payload}],
                temperature=self.config.temperature,
                max_tokens=self.config.max_output_tokens,
            )
        except anthropic.APIError as e:
            raise ProviderCallError(str(e), classify_anthropic_error(e), self.name, model) from e
        finally:
            await self._release(client)

        text = "".join(
            getattr(block, "text", "") for block in (resp.content or []) if getattr(block, "type", "") == "text"
        )
        if not text:
            raise ProviderCallError("Empty response from Claude", ProviderErrorKind.EMPTY_RESPONSE, self.name, model)

        usage = getattr(resp, "usage", None)
        tokens = None
        if usage is not None:
            tokens = {
                "input": getattr(usage, "input_tokens", 0) or 0,
                "output": getattr(usage, "output_tokens", 0) or 0,
            }
        return CompletionResult(text=text, model=model, provider=self.name, tokens_used=tokens)
