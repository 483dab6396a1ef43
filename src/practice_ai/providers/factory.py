"""Provider factory and instance cache."""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Union

from ..config import AIConfig, ConfigError, get_config, parse_provider_type
from ..types import ProviderType
from .base import BaseProvider
from .claude import ClaudeProvider
from .gemini import GeminiProvider
from .openai import OpenAIChatProvider

LOGGER = logging.getLogger("practice_ai.providers.factory")

ProviderBuilder = Callable[[str, str, AIConfig], BaseProvider]
ProviderName = Union[ProviderType, str]


def _build_claude(api_key: str, model: str, config: AIConfig) -> BaseProvider:
    return ClaudeProvider(api_key=api_key, model=model, defaults=config.default_options())


def _build_gemini(api_key: str, model: str, config: AIConfig) -> BaseProvider:
    return GeminiProvider(
        api_key=api_key,
        model=model,
        defaults=config.default_options(),
        enable_search_grounding=config.gemini_search_grounding,
    )


def _build_openai(api_key: str, model: str, config: AIConfig) -> BaseProvider:
    return OpenAIChatProvider(api_key=api_key, model=model, defaults=config.default_options())


DEFAULT_BUILDERS: Dict[ProviderType, ProviderBuilder] = {
    ProviderType.CLAUDE: _build_claude,
    ProviderType.GEMINI: _build_gemini,
    ProviderType.OPENAI: _build_openai,
}


class ProviderCache:
    """Mapping of ``type-model`` keys to provider instances."""

    def __init__(self) -> None:
        self._instances: Dict[str, BaseProvider] = {}

    @staticmethod
    def key_for(provider: ProviderType, model: str) -> str:
        return f"{provider.value}-{model}"

    def get(self, key: str) -> Optional[BaseProvider]:
        return self._instances.get(key)

    def set(self, key: str, provider: BaseProvider) -> None:
        self._instances[key] = provider

    def clear(self) -> None:
        # Replace rather than mutate so callers iterating a snapshot are unaffected.
        self._instances = {}

    def __contains__(self, key: object) -> bool:
        return key in self._instances

    def __len__(self) -> int:
        return len(self._instances)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._instances))


class ProviderFactory:
    """Resolve configuration into (cached) provider instances."""

    def __init__(
        self,
        config: Optional[AIConfig] = None,
        *,
        cache: Optional[ProviderCache] = None,
        builders: Optional[Mapping[ProviderType, ProviderBuilder]] = None,
    ) -> None:
        self._config = config
        self.cache = cache if cache is not None else ProviderCache()
        self._builders: Dict[ProviderType, ProviderBuilder] = dict(DEFAULT_BUILDERS)
        if builders:
            self._builders.update(builders)

    @property
    def config(self) -> AIConfig:
        return self._config if self._config is not None else get_config()

    def get_provider(
        self,
        provider: Optional[ProviderName] = None,
        *,
        model: Optional[str] = None,
        api_key: Optional[str] = None,
        use_cache: bool = True,
    ) -> BaseProvider:
        """Return a provider for ``provider`` (or the configured default)."""
        config = self.config
        provider_type = parse_provider_type(provider) if provider is not None else config.default_provider
        settings = config.settings_for(provider_type)
        resolved_model = model or settings.model
        key = ProviderCache.key_for(provider_type, resolved_model)

        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        resolved_key = api_key or settings.api_key
        if not resolved_key:
            raise ConfigError(f"No API key configured for provider {provider_type.value}")

        builder = self._builders.get(provider_type)
        if builder is None:
            raise ConfigError(f"Unsupported provider type: {provider_type.value}")

        instance = builder(resolved_key, resolved_model, config)
        LOGGER.debug("Created provider %s (model=%s)", provider_type.value, resolved_model)
        if use_cache:
            self.cache.set(key, instance)
        return instance

    def get_default_provider(self) -> BaseProvider:
        return self.get_provider()

    def is_available(self, provider: ProviderName) -> bool:
        """Whether a key is configured for ``provider``. Performs no network I/O."""
        return self.config.is_available(provider)

    def available_providers(self) -> List[ProviderType]:
        return self.config.available_providers()

    def clear_cache(self) -> None:
        self.cache.clear()


default_factory = ProviderFactory()


def get_provider(
    provider: Optional[ProviderName] = None,
    *,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    use_cache: bool = True,
) -> BaseProvider:
    return default_factory.get_provider(provider, model=model, api_key=api_key, use_cache=use_cache)


def get_default_provider() -> BaseProvider:
    return default_factory.get_default_provider()


def is_provider_available(provider: ProviderName) -> bool:
    return default_factory.is_available(provider)


def get_available_providers() -> List[ProviderType]:
    return default_factory.available_providers()


def clear_provider_cache() -> None:
    default_factory.clear_cache()


class Providers:
    """Task-oriented provider presets."""

    @staticmethod
    def clinical_analysis() -> BaseProvider:
        """Claude for clinical analysis, where accuracy matters most."""
        return get_provider(ProviderType.CLAUDE)

    @staticmethod
    def web_search_grounded() -> BaseProvider:
        return get_provider(ProviderType.GEMINI)

    @staticmethod
    def fast() -> BaseProvider:
        return get_provider(ProviderType.GEMINI)
