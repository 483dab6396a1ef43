"""Shared test fixtures for the AI completion layer."""

import sys
from pathlib import Path

import pytest

# Ensure the source directory is importable without installing the package.
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from practice_ai.config import AIConfig  # noqa: E402
from practice_ai.providers.base import BaseProvider  # noqa: E402
from practice_ai.providers.factory import ProviderFactory  # noqa: E402
from practice_ai.types import CompletionResult, ProviderType  # noqa: E402


class ScriptedProvider(BaseProvider):
    """Provider that replays a list of outcomes: strings succeed, exceptions are raised.

    The last outcome repeats once the script is exhausted.
    """

    provider_type = ProviderType.CLAUDE
    api_key_env = "SCRIPTED_API_KEY"
    default_model = "scripted"

    def __init__(self, provider_type, outcomes, model=None):
        self.provider_type = provider_type
        super().__init__("test-key", model or f"{provider_type.value}-test")
        self.outcomes = list(outcomes)
        self.calls = []
        self.closed = False

    async def complete(self, messages, options=None):
        self.calls.append((list(messages), options))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return CompletionResult(content=outcome, provider=self.provider_type, model=self.model)

    async def aclose(self):
        self.closed = True


def make_config(**env):
    return AIConfig.from_env(env)


def make_factory(providers, config=None):
    """Factory whose builders hand out the given ``{ProviderType: provider}`` instances."""
    if config is None:
        config = make_config(
            ANTHROPIC_API_KEY="claude-key",
            GEMINI_API_KEY="gemini-key",
            OPENAI_API_KEY="openai-key",
        )
    builders = {
        provider_type: (lambda instance: lambda api_key, model, cfg: instance)(instance)
        for provider_type, instance in providers.items()
    }
    return ProviderFactory(config, builders=builders)


@pytest.fixture
def sleeps(monkeypatch):
    """Replace ``asyncio.sleep`` with an instant stub that records requested delays."""
    recorded = []

    async def _instant_sleep(delay, *args, **kwargs):
        recorded.append(delay)

    monkeypatch.setattr("asyncio.sleep", _instant_sleep)
    return recorded
