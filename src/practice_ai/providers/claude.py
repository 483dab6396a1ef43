"""Anthropic Claude provider adapter."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional, Sequence

import anthropic

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


class ClaudeProvider(BaseProvider):
    """Adapter for the Anthropic Messages API."""

    provider_type = ProviderType.CLAUDE
    api_key_env = "ANTHROPIC_API_KEY"
    default_model = "claude-sonnet-4-20250514"

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        *,
        defaults: Optional[CompletionOptions] = None,
    ) -> None:
        super().__init__(api_key, model, defaults=defaults)
        self._client = anthropic.AsyncAnthropic(api_key=api_key, max_retries=0)

    async def complete(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        opts = self.resolve_options(options)
        system, conversation = split_system_messages(messages, opts.system_prompt)

        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": opts.max_tokens,
            "temperature": opts.temperature,
            "messages": [{"role": m.role, "content": m.content} for m in conversation],
            "timeout": opts.timeout_ms / 1000.0,
        }
        if system:
            request["system"] = system
        if opts.stop_sequences:
            request["stop_sequences"] = list(opts.stop_sequences)

        try:
            response = await self._client.messages.create(**request)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise self.map_error(exc) from exc

        content = ""
        for block in response.content or []:
            if getattr(block, "type", None) == "text":
                content = block.text
                break

        usage = None
        if getattr(response, "usage", None) is not None:
            usage = TokenUsage(
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                total_tokens=response.usage.input_tokens + response.usage.output_tokens,
            )

        return CompletionResult(
            content=content,
            provider=self.provider_type,
            model=self.model,
            usage=usage,
            finish_reason=response.stop_reason or None,
        )

    def map_error(self, exc: BaseException) -> ProviderError:
        """Translate an Anthropic SDK exception into the shared taxonomy."""
        if isinstance(exc, anthropic.APITimeoutError):
            return ProviderError(
                str(exc), provider=self.provider_type, code=ErrorCode.TIMEOUT, retryable=True, cause=exc
            )
        if isinstance(exc, anthropic.APIConnectionError):
            return ProviderError(
                str(exc), provider=self.provider_type, code=ErrorCode.NETWORK_ERROR, retryable=True, cause=exc
            )
        if isinstance(exc, anthropic.APIStatusError):
            status = exc.status_code
            message = str(exc)
            lowered = message.lower()
            code = ErrorCode.PROVIDER_ERROR
            retryable = False
            if status == 429:
                code, retryable = ErrorCode.RATE_LIMIT, True
            elif status == 401:
                code = ErrorCode.INVALID_API_KEY
            elif status == 400 and ("context" in lowered or "too long" in lowered):
                code = ErrorCode.CONTEXT_LENGTH_EXCEEDED
            elif status == 400 and "content" in lowered:
                code = ErrorCode.CONTENT_FILTERED
            elif status >= 500:
                retryable = True
            return ProviderError(
                message,
                provider=self.provider_type,
                code=code,
                status_code=status,
                retryable=retryable,
                cause=exc,
            )
        if isinstance(exc, asyncio.TimeoutError) or "timeout" in str(exc).lower():
            return ProviderError(
                str(exc) or "Request timed out",
                provider=self.provider_type,
                code=ErrorCode.TIMEOUT,
                retryable=True,
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
