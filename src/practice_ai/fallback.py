"""Retry and cross-provider fallback for completion calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, fields
from time import perf_counter
from typing import Callable, List, Optional, Sequence

from .config import ConfigError, get_config, parse_provider_type
from .metrics import CompletionEvent, LoggingMetricsCollector, MetricsCollector
from .providers.base import BaseProvider, parse_json_content
from .providers.factory import ProviderFactory, ProviderName, default_factory
from .types import (
    AttemptError,
    CompletionOptions,
    CompletionResult,
    ErrorCode,
    FallbackChainResult,
    JSONCompletion,
    MessageLike,
    ProviderError,
    ProviderHealthReport,
    ProviderType,
)

FallbackHook = Callable[[ProviderType, ProviderType, ProviderError], None]

LOGGER = logging.getLogger("practice_ai.fallback")


@dataclass
class _ChainState:
    """Position of a single logical call within the provider list."""

    index: int = 0
    attempt: int = 0
    attempts_made: int = 0
    errors: List[AttemptError] = field(default_factory=list)

    @property
    def last_error(self) -> Optional[ProviderError]:
        return self.errors[-1].error if self.errors else None


def _as_provider_error(exc: Exception, provider: BaseProvider) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    return ProviderError(
        str(exc) or type(exc).__name__,
        provider=provider.type,
        code=ErrorCode.UNKNOWN_ERROR,
        retryable=False,
        cause=exc,
    )


class FallbackChain:
    """Attempt completion on an ordered list of providers until one succeeds."""

    def __init__(
        self,
        providers: Sequence[ProviderName],
        *,
        max_retries: int = 1,
        retry_delay_ms: int = 1000,
        on_fallback: Optional[FallbackHook] = None,
        enable_logging: bool = True,
        factory: Optional[ProviderFactory] = None,
        metrics: Optional[MetricsCollector] = None,
        name: str = "custom",
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must be >= 0")

        self.name = name
        self.max_retries = max_retries
        self.retry_delay_ms = retry_delay_ms
        self.enable_logging = enable_logging
        self._on_fallback = on_fallback
        self._metrics = metrics or LoggingMetricsCollector()
        self._requested = [parse_provider_type(p) for p in providers]

        factory = factory or default_factory
        self._providers: List[BaseProvider] = []
        for provider_type in self._requested:
            if not factory.is_available(provider_type):
                continue
            try:
                self._providers.append(factory.get_provider(provider_type))
            except ConfigError as exc:
                if self.enable_logging:
                    LOGGER.warning("Failed to initialize provider %s: %s", provider_type.value, exc)

        if not self._providers:
            requested = ", ".join(p.value for p in self._requested) or "<none>"
            raise ConfigError(f"No providers available from: {requested}")

    @property
    def providers(self) -> List[ProviderType]:
        return [p.type for p in self._providers]

    async def complete(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> FallbackChainResult:
        start = perf_counter()
        state = _ChainState()

        while state.index < len(self._providers):
            provider = self._providers[state.index]
            state.attempts_made += 1
            try:
                result = await provider.complete(messages, options)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = _as_provider_error(exc, provider)
                state.errors.append(AttemptError(provider=provider.type, error=error))
                if self.enable_logging:
                    LOGGER.warning(
                        "AI provider %s failed (attempt %s/%s): %s (code=%s, retryable=%s)",
                        provider.type.value,
                        state.attempt + 1,
                        self.max_retries + 1,
                        error.message,
                        error.code.value,
                        error.retryable,
                    )
                if error.retryable and state.attempt < self.max_retries:
                    await self._backoff(state.attempt)
                    state.attempt += 1
                    continue
                self._advance(state, error)
                continue

            chain_result = self._annotate(result, state)
            self._record(start, state, chain_result)
            return chain_result

        failure = self._exhausted(state)
        self._record(start, state, None, failure)
        raise failure

    async def complete_json(
        self,
        messages: Sequence[MessageLike],
        options: Optional[CompletionOptions] = None,
    ) -> JSONCompletion:
        """Complete, then parse the content as JSON. Parse errors are not retried."""
        result = await self.complete(messages, options)
        return JSONCompletion(data=parse_json_content(result.content), result=result)

    async def health_check(self) -> List[ProviderHealthReport]:
        reports = await asyncio.gather(*(p.health_check() for p in self._providers))
        return [
            ProviderHealthReport(
                provider=provider.type,
                healthy=health.healthy,
                latency_ms=health.latency_ms,
                error=health.error,
            )
            for provider, health in zip(self._providers, reports)
        ]

    async def aclose(self) -> None:
        """Close every provider client held by the chain."""
        await asyncio.gather(*(p.aclose() for p in self._providers))

    async def _backoff(self, attempt: int) -> None:
        delay = self.retry_delay_ms * (attempt + 1)
        if delay > 0:
            await asyncio.sleep(delay / 1000.0)

    def _advance(self, state: _ChainState, error: ProviderError) -> None:
        current = self._providers[state.index]
        state.index += 1
        state.attempt = 0
        if state.index >= len(self._providers):
            return
        upcoming = self._providers[state.index]
        if self.enable_logging:
            LOGGER.info("Falling back from %s to %s", current.type.value, upcoming.type.value)
        if self._on_fallback is not None:
            self._on_fallback(current.type, upcoming.type, error)

    def _annotate(self, result: CompletionResult, state: _ChainState) -> FallbackChainResult:
        is_fallback = state.index > 0
        values = {f.name: getattr(result, f.name) for f in fields(CompletionResult)}
        values.update(
            is_fallback=is_fallback,
            original_provider=self._providers[0].type if is_fallback else None,
            providers_attempted=state.attempts_made,
            errors=tuple(state.errors),
        )
        return FallbackChainResult(**values)

    def _exhausted(self, state: _ChainState) -> ProviderError:
        last = state.last_error
        last_provider = state.errors[-1].provider if state.errors else self._providers[-1].type
        return ProviderError(
            f"All providers failed. Last error: {last.message if last else 'Unknown'}",
            provider=last_provider,
            code=last.code if last else ErrorCode.PROVIDER_ERROR,
            status_code=last.status_code if last else None,
            retryable=False,
            cause=last,
            errors=state.errors,
        )

    def _record(
        self,
        start: float,
        state: _ChainState,
        result: Optional[FallbackChainResult],
        failure: Optional[ProviderError] = None,
    ) -> None:
        duration_ms = (perf_counter() - start) * 1000
        if result is not None:
            event = CompletionEvent(
                chain=self.name,
                status="success",
                provider=result.provider.value,
                model=result.model,
                duration_ms=duration_ms,
                attempts=state.attempts_made,
                is_fallback=result.is_fallback,
            )
        else:
            event = CompletionEvent(
                chain=self.name,
                status="error",
                provider=failure.provider.value if failure else None,
                model=None,
                duration_ms=duration_ms,
                attempts=state.attempts_made,
                retryable=failure.retryable if failure else None,
                error_code=failure.code.value if failure else None,
            )
        self._metrics.record(event)


def create_default_fallback_chain(**overrides) -> FallbackChain:
    """Chain built from the configured fallback order, retries and delay."""
    config = get_config()
    providers = list(config.fallback_providers)
    if not config.enable_fallback:
        providers = [config.default_provider]
    settings = dict(
        providers=providers,
        max_retries=config.fallback_max_retries,
        retry_delay_ms=config.fallback_retry_delay_ms,
        enable_logging=config.enable_logging,
        name="default",
    )
    settings.update(overrides)
    return FallbackChain(**settings)


def create_clinical_fallback_chain(
    on_fallback: Optional[FallbackHook] = None,
    **overrides,
) -> FallbackChain:
    """Accuracy-first ordering with more retries and a longer backoff."""
    settings = dict(
        providers=[ProviderType.CLAUDE, ProviderType.GEMINI],
        max_retries=2,
        retry_delay_ms=2000,
        enable_logging=True,
        on_fallback=on_fallback,
        name="clinical",
    )
    settings.update(overrides)
    return FallbackChain(**settings)


def create_marketing_fallback_chain(
    on_fallback: Optional[FallbackHook] = None,
    **overrides,
) -> FallbackChain:
    """Speed-first ordering with a single retry."""
    settings = dict(
        providers=[ProviderType.GEMINI, ProviderType.CLAUDE],
        max_retries=1,
        retry_delay_ms=1000,
        enable_logging=True,
        on_fallback=on_fallback,
        name="marketing",
    )
    settings.update(overrides)
    return FallbackChain(**settings)
