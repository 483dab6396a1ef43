"""Google Gemini provider adapter."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types as genai_types

from ..types import (
    CompletionOptions,
    CompletionResult,
    ErrorCode,
    Message,
    MessageLike,
    ProviderError,
    ProviderType,
    TokenUsage,
)
from .base import BaseProvider, split_system_messages

logger = logging.getLogger("practice_ai.providers.gemini")

_SAFETY_CATEGORIES = (
    genai_types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    genai_types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    genai_types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    genai_types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)


def _to_contents(conversation: List[Message]) -> List[Dict[str, Any]]:
    return [
        {"role": "model" if m.role == "assistant" else "user", "parts": [{"text": m.content}]}
        for m in conversation
    ]


def _enum_value(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(getattr(value, "value", value))


class GeminiProvider(BaseProvider):
    """Adapter for the Gemini ``generateContent`` API."""

    provider_type = ProviderType.GEMINI
    api_key_env = "GEMINI_API_KEY"
    default_model = "gemini-2.0-flash"

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        *,
        defaults: Optional[CompletionOptions] = None,
        enable_search_grounding: bool = False,
    ) -> None:
        super().__init__(api_key, model, defaults=defaults)
        self.enable_search_grounding = enable_search_grounding
        self._client = genai.Client(api_key=api_key)

    def _build_config(self, system: Optional[str], opts: CompletionOptions) -> genai_types.GenerateContentConfig:
        tools = None
        if self.enable_search_grounding:
            tools = [genai_types.Tool(google_search=genai_types.GoogleSearch())]
        return genai_types.GenerateContentConfig(
            system_instruction=system,
            max_output_tokens=opts.max_tokens,
            temperature=opts.temperature,
            stop_sequences=list(opts.stop_sequences) if opts.stop_sequences else None,
            safety_settings=[
                genai_types.SafetySetting(category=category, threshold=genai_types.HarmBlockThreshold.BLOCK_NONE)
                for category in _SAFETY_CATEGORIES
            ],
            tools=tools,
            http_options=genai_types.HttpOptions(timeout=opts.timeout_ms),
        )

    async def complete(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        opts = self.resolve_options(options)
        system, conversation = split_system_messages(messages, opts.system_prompt)

        try:
            response = await self._client.aio.models.generate_content(
                model=self.model,
                contents=_to_contents(conversation),
                config=self._build_config(system, opts),
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise self.map_error(exc) from exc

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            feedback = getattr(response, "prompt_feedback", None)
            block_reason = _enum_value(getattr(feedback, "block_reason", None))
            raise ProviderError(
                f"Prompt blocked by Gemini: {block_reason or 'no candidates returned'}",
                provider=self.provider_type,
                code=ErrorCode.CONTENT_FILTERED if block_reason else ErrorCode.PROVIDER_ERROR,
                retryable=False,
            )

        candidate = candidates[0]
        finish_reason = _enum_value(getattr(candidate, "finish_reason", None))
        parts = getattr(getattr(candidate, "content", None), "parts", None) or []
        content = next((part.text for part in parts if getattr(part, "text", None)), "")
        if not content and finish_reason == "SAFETY":
            raise ProviderError(
                "Response blocked by Gemini safety filters",
                provider=self.provider_type,
                code=ErrorCode.CONTENT_FILTERED,
                retryable=False,
            )

        usage = None
        metadata = getattr(response, "usage_metadata", None)
        prompt_count = getattr(metadata, "prompt_token_count", None)
        output_count = getattr(metadata, "candidates_token_count", None)
        if prompt_count is not None or output_count is not None:
            input_tokens = prompt_count or 0
            output_tokens = output_count or 0
            usage = TokenUsage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=metadata.total_token_count or (input_tokens + output_tokens),
            )

        return CompletionResult(
            content=content,
            provider=self.provider_type,
            model=self.model,
            usage=usage,
            finish_reason=finish_reason,
        )

    def map_error(self, exc: BaseException) -> ProviderError:
        """Translate a google-genai (or transport) exception into the shared taxonomy."""
        if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
            return ProviderError(
                str(exc) or "Request timed out",
                provider=self.provider_type,
                code=ErrorCode.TIMEOUT,
                retryable=True,
                cause=exc,
            )
        if isinstance(exc, httpx.TransportError):
            return ProviderError(
                str(exc) or "Network error",
                provider=self.provider_type,
                code=ErrorCode.NETWORK_ERROR,
                retryable=True,
                cause=exc,
            )

        status = None
        if isinstance(exc, genai_errors.APIError) and isinstance(exc.code, int):
            status = exc.code
        message = str(exc) or type(exc).__name__
        lowered = message.lower()
        code = ErrorCode.PROVIDER_ERROR
        retryable = False

        if status == 429 or (status is None and ("429" in message or "rate limit" in lowered)):
            code, retryable = ErrorCode.RATE_LIMIT, True
        elif "resource_exhausted" in lowered:
            code, retryable = ErrorCode.RATE_LIMIT, True
        elif status == 401 or (status is None and "401" in message) or "api key" in lowered:
            code = ErrorCode.INVALID_API_KEY
        elif status is not None and status >= 500:
            retryable = True
        elif "context" in lowered or "token" in lowered:
            code = ErrorCode.CONTEXT_LENGTH_EXCEEDED
        elif "safety" in lowered or "blocked" in lowered:
            code = ErrorCode.CONTENT_FILTERED
        elif status is None and ("500" in message or "503" in message):
            retryable = True
        elif "timeout" in lowered or "deadline" in lowered:
            code, retryable = ErrorCode.TIMEOUT, True
        elif status is None:
            code = ErrorCode.UNKNOWN_ERROR

        logger.debug("Mapped Gemini error %s to %s", type(exc).__name__, code.value)
        return ProviderError(
            message,
            provider=self.provider_type,
            code=code,
            status_code=status,
            retryable=retryable,
            cause=exc,
        )

    async def aclose(self) -> None:
        close = getattr(self._client.aio, "aclose", None)
        if close is not None:
            await close()
