"""Tests for retry and cross-provider fallback."""

import asyncio
import json

import pytest
from conftest import ScriptedProvider, make_config, make_factory

from practice_ai.config import ConfigError
from practice_ai.fallback import (
    FallbackChain,
    create_clinical_fallback_chain,
    create_default_fallback_chain,
    create_marketing_fallback_chain,
)
from practice_ai.types import ErrorCode, ProviderError, ProviderType

CLAUDE = ProviderType.CLAUDE
GEMINI = ProviderType.GEMINI
OPENAI = ProviderType.OPENAI

MESSAGES = [{"role": "user", "content": "Summarize the visit."}]


def _error(provider, code=ErrorCode.RATE_LIMIT, retryable=True, status=None, message=None):
    return ProviderError(
        message or f"{provider.value} {code.value}",
        provider=provider,
        code=code,
        status_code=status,
        retryable=retryable,
    )


class _RecordingMetrics:
    def __init__(self):
        self.events = []

    def record(self, event):
        self.events.append(event)


def _chain(providers, order=None, **kwargs):
    factory = make_factory(providers)
    kwargs.setdefault("metrics", _RecordingMetrics())
    return FallbackChain(order or list(providers), factory=factory, **kwargs)


@pytest.mark.asyncio
async def test_first_provider_success(sleeps):
    claude = ScriptedProvider(CLAUDE, ["fine"])
    gemini = ScriptedProvider(GEMINI, ["unused"])
    chain = _chain({CLAUDE: claude, GEMINI: gemini})

    result = await chain.complete(MESSAGES)

    assert result.content == "fine"
    assert result.provider is CLAUDE
    assert result.is_fallback is False
    assert result.original_provider is None
    assert result.providers_attempted == 1
    assert result.errors == ()
    assert gemini.calls == []
    assert sleeps == []


@pytest.mark.asyncio
async def test_retryable_error_retries_same_provider(sleeps):
    claude = ScriptedProvider(CLAUDE, [_error(CLAUDE), "second time lucky"])
    chain = _chain({CLAUDE: claude}, max_retries=2, retry_delay_ms=100)

    result = await chain.complete(MESSAGES)

    assert result.content == "second time lucky"
    assert result.is_fallback is False
    assert result.providers_attempted == 2
    assert [e.error.code for e in result.errors] == [ErrorCode.RATE_LIMIT]
    assert sleeps == [0.1]


@pytest.mark.asyncio
async def test_retries_exhausted_then_fallback(sleeps):
    calls = []
    claude = ScriptedProvider(CLAUDE, [_error(CLAUDE, status=429)])
    gemini = ScriptedProvider(GEMINI, ["from gemini"])
    chain = _chain(
        {CLAUDE: claude, GEMINI: gemini},
        max_retries=2,
        retry_delay_ms=1000,
        on_fallback=lambda source, target, error: calls.append((source, target, error.code)),
    )

    result = await chain.complete(MESSAGES)

    assert result.content == "from gemini"
    assert result.provider is GEMINI
    assert result.is_fallback is True
    assert result.original_provider is CLAUDE
    assert result.providers_attempted == 4
    assert len(claude.calls) == 3
    assert [e.provider for e in result.errors] == [CLAUDE, CLAUDE, CLAUDE]
    assert sleeps == [1.0, 2.0]
    assert calls == [(CLAUDE, GEMINI, ErrorCode.RATE_LIMIT)]


@pytest.mark.asyncio
async def test_non_retryable_error_falls_back_immediately(sleeps):
    claude = ScriptedProvider(CLAUDE, [_error(CLAUDE, ErrorCode.INVALID_API_KEY, retryable=False, status=401)])
    gemini = ScriptedProvider(GEMINI, ["ok"])
    chain = _chain({CLAUDE: claude, GEMINI: gemini}, max_retries=3)

    result = await chain.complete(MESSAGES)

    assert len(claude.calls) == 1
    assert result.providers_attempted == 2
    assert result.is_fallback is True
    assert sleeps == []


@pytest.mark.asyncio
async def test_all_providers_fail(sleeps):
    claude_error = _error(CLAUDE, ErrorCode.CONTENT_FILTERED, retryable=False)
    gemini_error = _error(GEMINI, ErrorCode.INVALID_API_KEY, retryable=False, status=401, message="bad key")
    claude = ScriptedProvider(CLAUDE, [claude_error])
    gemini = ScriptedProvider(GEMINI, [gemini_error])
    metrics = _RecordingMetrics()
    chain = _chain({CLAUDE: claude, GEMINI: gemini}, max_retries=2, metrics=metrics)

    with pytest.raises(ProviderError) as exc:
        await chain.complete(MESSAGES)

    error = exc.value
    assert error.message == "All providers failed. Last error: bad key"
    assert error.provider is GEMINI
    assert error.code is ErrorCode.INVALID_API_KEY
    assert error.status_code == 401
    assert error.retryable is False
    assert error.cause is gemini_error
    assert [(a.provider, a.error) for a in error.errors] == [(CLAUDE, claude_error), (GEMINI, gemini_error)]
    assert sleeps == []

    assert len(metrics.events) == 1
    event = metrics.events[0]
    assert event.status == "error"
    assert event.attempts == 2
    assert event.error_code == "INVALID_API_KEY"


@pytest.mark.asyncio
async def test_all_retryable_failures_exhaust_every_provider(sleeps):
    claude = ScriptedProvider(CLAUDE, [_error(CLAUDE, ErrorCode.TIMEOUT)])
    gemini = ScriptedProvider(GEMINI, [_error(GEMINI, ErrorCode.NETWORK_ERROR)])
    chain = _chain({CLAUDE: claude, GEMINI: gemini}, max_retries=1, retry_delay_ms=10)

    with pytest.raises(ProviderError) as exc:
        await chain.complete(MESSAGES)

    assert len(exc.value.errors) == 4
    assert exc.value.code is ErrorCode.NETWORK_ERROR
    assert sleeps == [0.01, 0.01]


@pytest.mark.asyncio
async def test_unexpected_exception_is_wrapped_and_not_retried(sleeps):
    claude = ScriptedProvider(CLAUDE, [RuntimeError("kaput")])
    gemini = ScriptedProvider(GEMINI, ["ok"])
    chain = _chain({CLAUDE: claude, GEMINI: gemini}, max_retries=2)

    result = await chain.complete(MESSAGES)

    assert len(claude.calls) == 1
    wrapped = result.errors[0].error
    assert wrapped.code is ErrorCode.UNKNOWN_ERROR
    assert wrapped.retryable is False
    assert isinstance(wrapped.cause, RuntimeError)


@pytest.mark.asyncio
async def test_cancellation_propagates(sleeps):
    claude = ScriptedProvider(CLAUDE, [asyncio.CancelledError()])
    gemini = ScriptedProvider(GEMINI, ["ok"])
    chain = _chain({CLAUDE: claude, GEMINI: gemini})

    with pytest.raises(asyncio.CancelledError):
        await chain.complete(MESSAGES)

    assert gemini.calls == []


def test_unavailable_providers_are_skipped():
    gemini = ScriptedProvider(GEMINI, ["ok"])
    config = make_config(GEMINI_API_KEY="g-key")
    factory = make_factory({CLAUDE: ScriptedProvider(CLAUDE, ["x"]), GEMINI: gemini}, config=config)

    chain = FallbackChain([CLAUDE, GEMINI], factory=factory)

    assert chain.providers == [GEMINI]


@pytest.mark.asyncio
async def test_skipped_first_provider_is_not_a_fallback(sleeps):
    gemini = ScriptedProvider(GEMINI, ["ok"])
    config = make_config(GEMINI_API_KEY="g-key")
    factory = make_factory({GEMINI: gemini}, config=config)
    chain = FallbackChain([CLAUDE, GEMINI], factory=factory, metrics=_RecordingMetrics())

    result = await chain.complete(MESSAGES)

    assert result.is_fallback is False
    assert result.original_provider is None


def test_no_available_providers_raises():
    factory = make_factory({}, config=make_config())

    with pytest.raises(ConfigError) as exc:
        FallbackChain([CLAUDE, GEMINI], factory=factory)

    assert str(exc.value) == "No providers available from: claude, gemini"


def test_invalid_retry_settings_rejected():
    factory = make_factory({CLAUDE: ScriptedProvider(CLAUDE, ["x"])})

    with pytest.raises(ValueError):
        FallbackChain([CLAUDE], factory=factory, max_retries=-1)
    with pytest.raises(ValueError):
        FallbackChain([CLAUDE], factory=factory, retry_delay_ms=-1)


@pytest.mark.asyncio
async def test_success_records_metrics(sleeps):
    claude = ScriptedProvider(CLAUDE, [_error(CLAUDE, retryable=False)])
    gemini = ScriptedProvider(GEMINI, ["ok"])
    metrics = _RecordingMetrics()
    chain = _chain({CLAUDE: claude, GEMINI: gemini}, metrics=metrics, name="unit")

    await chain.complete(MESSAGES)

    event = metrics.events[0]
    assert event.chain == "unit"
    assert event.status == "success"
    assert event.provider == "gemini"
    assert event.model == "gemini-test"
    assert event.attempts == 2
    assert event.is_fallback is True


@pytest.mark.asyncio
async def test_complete_json_parses_after_fallback(sleeps):
    claude = ScriptedProvider(CLAUDE, [_error(CLAUDE, retryable=False)])
    gemini = ScriptedProvider(GEMINI, ['```json\n{"priority": "high"}\n```'])
    chain = _chain({CLAUDE: claude, GEMINI: gemini})

    completion = await chain.complete_json(MESSAGES)

    assert completion.data == {"priority": "high"}
    assert completion.result.is_fallback is True


@pytest.mark.asyncio
async def test_complete_json_parse_error_is_not_retried(sleeps):
    claude = ScriptedProvider(CLAUDE, ["not json"])
    gemini = ScriptedProvider(GEMINI, ["{}"])
    chain = _chain({CLAUDE: claude, GEMINI: gemini})

    with pytest.raises(json.JSONDecodeError):
        await chain.complete_json(MESSAGES)

    assert len(claude.calls) == 1
    assert gemini.calls == []


@pytest.mark.asyncio
async def test_health_check_reports_each_provider():
    claude = ScriptedProvider(CLAUDE, ["ok"])
    gemini = ScriptedProvider(GEMINI, [_error(GEMINI, message="down")])
    chain = _chain({CLAUDE: claude, GEMINI: gemini})

    reports = await chain.health_check()

    assert [(r.provider, r.healthy) for r in reports] == [(CLAUDE, True), (GEMINI, False)]
    assert reports[1].error == "down"


@pytest.mark.asyncio
async def test_aclose_closes_every_provider():
    claude = ScriptedProvider(CLAUDE, ["ok"])
    gemini = ScriptedProvider(GEMINI, ["ok"])
    chain = _chain({CLAUDE: claude, GEMINI: gemini})

    await chain.aclose()

    assert claude.closed is True
    assert gemini.closed is True


def test_default_chain_follows_config(monkeypatch):
    config = make_config(
        ANTHROPIC_API_KEY="a",
        GEMINI_API_KEY="g",
        OPENAI_API_KEY="o",
        AI_FALLBACK_PROVIDERS="openai,claude",
        AI_FALLBACK_MAX_RETRIES="3",
        AI_FALLBACK_RETRY_DELAY_MS="50",
        AI_ENABLE_LOGGING="false",
    )
    monkeypatch.setattr("practice_ai.fallback.get_config", lambda: config)
    factory = make_factory(
        {
            CLAUDE: ScriptedProvider(CLAUDE, ["x"]),
            OPENAI: ScriptedProvider(OPENAI, ["x"]),
        },
        config=config,
    )

    chain = create_default_fallback_chain(factory=factory)

    assert chain.providers == [OPENAI, CLAUDE]
    assert chain.max_retries == 3
    assert chain.retry_delay_ms == 50
    assert chain.enable_logging is False
    assert chain.name == "default"


def test_default_chain_without_fallback_uses_default_provider(monkeypatch):
    config = make_config(GEMINI_API_KEY="g", ANTHROPIC_API_KEY="a", AI_ENABLE_FALLBACK="false")
    monkeypatch.setattr("practice_ai.fallback.get_config", lambda: config)
    factory = make_factory(
        {CLAUDE: ScriptedProvider(CLAUDE, ["x"]), GEMINI: ScriptedProvider(GEMINI, ["x"])},
        config=config,
    )

    chain = create_default_fallback_chain(factory=factory)

    assert chain.providers == [CLAUDE]


def test_clinical_and_marketing_presets():
    providers = {CLAUDE: ScriptedProvider(CLAUDE, ["x"]), GEMINI: ScriptedProvider(GEMINI, ["x"])}

    clinical = create_clinical_fallback_chain(factory=make_factory(providers))
    marketing = create_marketing_fallback_chain(factory=make_factory(providers))

    assert clinical.providers == [CLAUDE, GEMINI]
    assert (clinical.max_retries, clinical.retry_delay_ms) == (2, 2000)
    assert marketing.providers == [GEMINI, CLAUDE]
    assert (marketing.max_retries, marketing.retry_delay_ms) == (1, 1000)
