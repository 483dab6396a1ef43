"""OpenAI provider adapter."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional, Sequence

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
)

from ..types import (
    CompletionOptions,
    CompletionResult,
    ErrorCode,
    MessageLike,
    ProviderError,
    ProviderType,
    TokenUsage,
)
from .base import BaseProvider, split_system_messages

_CONTEXT_CODES = {"context_length_exceeded", "string_above_max_length"}
_CONTENT_CODES = {"content_filter", "content_policy_violation"}


def _build_messages(system: Optional[str], conversation) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.extend({"role": m.role, "content": m.content} for m in conversation)
    return messages


class OpenAIChatProvider(BaseProvider):
    """Adapter for OpenAI Chat Completions API."""

    provider_type = ProviderType.OPENAI
    api_key_env = "OPENAI_API_KEY"
    default_model = "gpt-4o"

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        *,
        defaults: Optional[CompletionOptions] = None,
    ):
        super().__init__(api_key, model, defaults=defaults)
        self._client = AsyncOpenAI(api_key=api_key, max_retries=0)

    async def complete(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        opts = self.resolve_options(options)
        system, conversation = split_system_messages(messages, opts.system_prompt)

        client = self._client.with_options(timeout=opts.timeout_ms / 1000.0)
        request: Dict[str, Any] = {
            "model": self.model,
            "messages": _build_messages(system, conversation),
            "max_tokens": opts.max_tokens,
            "temperature": opts.temperature,
        }
        if opts.stop_sequences:
            request["stop"] = list(opts.stop_sequences)

        try:
            response = await client.chat.completions.create(**request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise self.map_error(exc) from exc

        choice = response.choices[0]
        content = getattr(choice.message, "content", "") or ""
        usage = None
        if response.usage:
            usage = TokenUsage(
                input_tokens=response.usage.prompt_tokens,
                output_tokens=response.usage.completion_tokens,
                total_tokens=response.usage.total_tokens,
            )

        return CompletionResult(
            content=content,
            provider=self.provider_type,
            model=response.model or self.model,
            usage=usage,
            finish_reason=choice.finish_reason,
        )

    def map_error(self, exc: BaseException) -> ProviderError:
        if isinstance(exc, APITimeoutError):
            return ProviderError(
                str(exc), provider=self.provider_type, code=ErrorCode.TIMEOUT, retryable=True, cause=exc
            )
        if isinstance(exc, APIConnectionError):
            return ProviderError(
                str(exc), provider=self.provider_type, code=ErrorCode.NETWORK_ERROR, retryable=True, cause=exc
            )
        if isinstance(exc, APIStatusError):
            status = exc.status_code
            error_code = (getattr(exc, "code", None) or "").lower()
            code = ErrorCode.PROVIDER_ERROR
            retryable = False
            if status == 429:
                code, retryable = ErrorCode.RATE_LIMIT, True
            elif status == 401:
                code = ErrorCode.INVALID_API_KEY
            elif error_code in _CONTEXT_CODES:
                code = ErrorCode.CONTEXT_LENGTH_EXCEEDED
            elif error_code in _CONTENT_CODES:
                code = ErrorCode.CONTENT_FILTERED
            elif status >= 500:
                retryable = True
            return ProviderError(
                str(exc),
                provider=self.provider_type,
                code=code,
                status_code=status,
                retryable=retryable,
                cause=exc,
            )
        return ProviderError(
            str(exc) or "Unknown error",
            provider=self.provider_type,
            code=ErrorCode.UNKNOWN_ERROR,
            retryable=False,
            cause=exc,
        )

    async def aclose(self) -> None:
        await self._client.close()
