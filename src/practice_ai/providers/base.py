"""Provider abstractions for LLM integrations."""

from __future__ import annotations

import asyncio
import json
import re
from abc import ABC, abstractmethod
from time import perf_counter
from typing import ClassVar, List, Optional, Sequence, Tuple

from ..config import ConfigError
from ..types import (
    CompletionOptions,
    CompletionResult,
    JSONCompletion,
    Message,
    MessageLike,
    ProviderHealth,
    ProviderType,
    normalize_messages,
)

DEFAULT_OPTIONS = CompletionOptions(max_tokens=2048, temperature=0.7, timeout_ms=30000)

HEALTHCHECK_PROMPT = "Say 'ok'"
HEALTHCHECK_OPTIONS = CompletionOptions(max_tokens=10, timeout_ms=5000)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*\n?")
_FENCE_CLOSE = re.compile(r"\n?\s*```\s*$")


def strip_code_fences(content: str) -> str:
    """Remove a surrounding Markdown code fence, with or without a ``json`` tag."""
    text = content.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text)
        text = _FENCE_CLOSE.sub("", text)
    return text


def parse_json_content(content: str):
    """Parse model output as JSON. Raises :class:`json.JSONDecodeError` when malformed."""
    return json.loads(strip_code_fences(content))


def split_system_messages(
    messages: Sequence[MessageLike],
    system_prompt: Optional[str] = None,
) -> Tuple[Optional[str], List[Message]]:
    """Merge system turns into one instruction and return it with the remaining turns.

    An explicit ``system_prompt`` replaces the merged system messages.
    """
    normalized = normalize_messages(messages)
    system_parts = [m.content for m in normalized if m.role == "system"]
    conversation = [m for m in normalized if m.role != "system"]
    system = system_prompt or "\n".join(system_parts) or None
    return system, conversation


class BaseProvider(ABC):
    """Uniform completion contract implemented by every backend adapter."""

    provider_type: ClassVar[ProviderType]
    api_key_env: ClassVar[str]
    default_model: ClassVar[str]

    def __init__(
        self,
        api_key: Optional[str],
        model: Optional[str] = None,
        *,
        defaults: Optional[CompletionOptions] = None,
    ) -> None:
        if not api_key:
            raise ConfigError(f"{self.api_key_env} is required")
        self.model = model or self.default_model
        self._defaults = (defaults or DEFAULT_OPTIONS).with_defaults(DEFAULT_OPTIONS)

    @property
    def type(self) -> ProviderType:
        return self.provider_type

    def resolve_options(self, options: Optional[CompletionOptions]) -> CompletionOptions:
        return (options or CompletionOptions()).with_defaults(self._defaults)

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """Produce a model response. Raises :class:`ProviderError` on failure."""

    async def complete_json(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> JSONCompletion:
        result = await self.complete(messages, options)
        return JSONCompletion(data=parse_json_content(result.content), result=result)

    async def health_check(self) -> ProviderHealth:
        """Issue a minimal completion and report latency. Never raises."""
        start = perf_counter()
        try:
            await self.complete([Message(role="user", content=HEALTHCHECK_PROMPT)], HEALTHCHECK_OPTIONS)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            return ProviderHealth(
                healthy=False,
                latency_ms=(perf_counter() - start) * 1000,
                error=str(exc) or type(exc).__name__,
            )
        return ProviderHealth(healthy=True, latency_ms=(perf_counter() - start) * 1000)

    async def aclose(self) -> None:  # pragma: no cover - optional hook
        """Optional async cleanup hook."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(model={self.model!r})"
