"""Configuration utilities for the AI completion layer."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv

from .types import CompletionOptions, ProviderType

# Local .env values never override the real process environment.
load_dotenv(override=False)

DEFAULT_MODELS: Dict[ProviderType, str] = {
    ProviderType.CLAUDE: "claude-sonnet-4-20250514",
    ProviderType.GEMINI: "gemini-2.0-flash",
    ProviderType.OPENAI: "gpt-4o",
}

ENV_VARS: Dict[str, str] = {
    "ANTHROPIC_API_KEY": "API key for Claude/Anthropic",
    "GEMINI_API_KEY": "API key for Google Gemini (GOOGLE_API_KEY is accepted as an alias)",
    "OPENAI_API_KEY": "API key for OpenAI",
    "ANTHROPIC_MODEL": "Claude model (default: claude-sonnet-4-20250514)",
    "GEMINI_MODEL": "Gemini model (default: gemini-2.0-flash)",
    "OPENAI_MODEL": "OpenAI model (default: gpt-4o)",
    "AI_DEFAULT_PROVIDER": "Default provider: claude, gemini, or openai",
    "AI_DEFAULT_MAX_TOKENS": "Default cap on generated tokens (default: 2048)",
    "AI_DEFAULT_TEMPERATURE": "Default sampling temperature (default: 0.7)",
    "AI_DEFAULT_TIMEOUT": "Default request timeout in milliseconds (default: 30000)",
    "AI_FALLBACK_PROVIDERS": "Comma-separated fallback chain (default: claude,gemini)",
    "AI_FALLBACK_MAX_RETRIES": "Retries per provider before falling back (default: 2)",
    "AI_FALLBACK_RETRY_DELAY_MS": "Base retry delay in milliseconds (default: 1000)",
    "AI_ENABLE_FALLBACK": "Enable fallback chain (default: true)",
    "AI_ENABLE_LOGGING": "Enable AI operation logging (default: true)",
    "GEMINI_SEARCH_GROUNDING": "Enable Gemini search grounding (default: false)",
    "AI_LOG_LEVEL": "Log level for the CLI (default: INFO)",
    "AI_METRICS_BACKEND": "Metrics backend: logging or prometheus (default: logging)",
    "AI_METRICS_PORT": "Port for the Prometheus exporter (optional)",
}


class ConfigError(ValueError):
    """Raised when configuration values are invalid or missing."""


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None or value.strip() == "":
        return None
    return value.strip()


def parse_provider_type(value: object) -> ProviderType:
    """Resolve a provider name (or enum member) to :class:`ProviderType`."""
    if isinstance(value, ProviderType):
        return value
    try:
        return ProviderType(str(value).strip().lower())
    except ValueError as exc:
        choices = ", ".join(p.value for p in ProviderType)
        raise ConfigError(f"Unknown provider type {value!r}; expected one of: {choices}") from exc


@dataclass(frozen=True)
class ProviderSettings:
    """API key and model for one backend."""

    api_key: Optional[str]
    model: str

    @property
    def available(self) -> bool:
        return bool(self.api_key)


@dataclass(frozen=True)
class ConfigValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class AIConfig:
    """Process-wide configuration snapshot for the completion layer."""

    default_provider: ProviderType
    claude: ProviderSettings
    gemini: ProviderSettings
    openai: ProviderSettings
    max_tokens: int
    temperature: float
    timeout_ms: int
    fallback_providers: Tuple[ProviderType, ...]
    fallback_max_retries: int
    fallback_retry_delay_ms: int
    enable_fallback: bool
    enable_logging: bool
    gemini_search_grounding: bool
    log_level: str = "INFO"
    metrics_backend: str = "logging"
    metrics_port: Optional[int] = None

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "AIConfig":
        """Build configuration from environment variables."""
        env = os.environ if env is None else env

        claude_key = _clean(env.get("ANTHROPIC_API_KEY"))
        gemini_key = _clean(env.get("GEMINI_API_KEY")) or _clean(env.get("GOOGLE_API_KEY"))
        openai_key = _clean(env.get("OPENAI_API_KEY"))

        if claude_key:
            default_provider = ProviderType.CLAUDE
        elif gemini_key:
            default_provider = ProviderType.GEMINI
        elif openai_key:
            default_provider = ProviderType.OPENAI
        else:
            default_provider = ProviderType.CLAUDE

        explicit_default = _clean(env.get("AI_DEFAULT_PROVIDER"))
        if explicit_default:
            default_provider = parse_provider_type(explicit_default)

        fallback_raw = env.get("AI_FALLBACK_PROVIDERS", "claude,gemini")
        fallback_providers = tuple(
            parse_provider_type(name) for name in fallback_raw.split(",") if name.strip()
        )

        try:
            max_tokens = int(env.get("AI_DEFAULT_MAX_TOKENS", "2048"))
            temperature = float(env.get("AI_DEFAULT_TEMPERATURE", "0.7"))
            timeout_ms = int(env.get("AI_DEFAULT_TIMEOUT", "30000"))
            fallback_max_retries = int(env.get("AI_FALLBACK_MAX_RETRIES", "2"))
            fallback_retry_delay_ms = int(env.get("AI_FALLBACK_RETRY_DELAY_MS", "1000"))
            metrics_port_raw = _clean(env.get("AI_METRICS_PORT"))
            metrics_port = int(metrics_port_raw) if metrics_port_raw else None
        except ValueError as exc:
            raise ConfigError(f"Invalid numeric configuration: {exc}") from exc

        enable_fallback = _as_bool(env.get("AI_ENABLE_FALLBACK", "true"))
        enable_logging = _as_bool(env.get("AI_ENABLE_LOGGING", "true"))
        gemini_search_grounding = _as_bool(env.get("GEMINI_SEARCH_GROUNDING", "false"))
        log_level = env.get("AI_LOG_LEVEL", "INFO").upper()
        metrics_backend = env.get("AI_METRICS_BACKEND", "logging").strip().lower()

        if max_tokens < 1:
            raise ConfigError("AI_DEFAULT_MAX_TOKENS must be >= 1")
        if temperature < 0:
            raise ConfigError("AI_DEFAULT_TEMPERATURE must be >= 0")
        if timeout_ms < 1:
            raise ConfigError("AI_DEFAULT_TIMEOUT must be >= 1")
        if fallback_max_retries < 0:
            raise ConfigError("AI_FALLBACK_MAX_RETRIES must be >= 0")
        if fallback_retry_delay_ms < 0:
            raise ConfigError("AI_FALLBACK_RETRY_DELAY_MS must be >= 0")
        if metrics_backend not in {"logging", "prometheus"}:
            raise ConfigError("AI_METRICS_BACKEND must be 'logging' or 'prometheus'")
        if metrics_port is not None and metrics_port < 0:
            raise ConfigError("AI_METRICS_PORT must be >= 0 when provided")

        return cls(
            default_provider=default_provider,
            claude=ProviderSettings(
                api_key=claude_key,
                model=env.get("ANTHROPIC_MODEL") or DEFAULT_MODELS[ProviderType.CLAUDE],
            ),
            gemini=ProviderSettings(
                api_key=gemini_key,
                model=env.get("GEMINI_MODEL") or DEFAULT_MODELS[ProviderType.GEMINI],
            ),
            openai=ProviderSettings(
                api_key=openai_key,
                model=env.get("OPENAI_MODEL") or DEFAULT_MODELS[ProviderType.OPENAI],
            ),
            max_tokens=max_tokens,
            temperature=temperature,
            timeout_ms=timeout_ms,
            fallback_providers=fallback_providers,
            fallback_max_retries=fallback_max_retries,
            fallback_retry_delay_ms=fallback_retry_delay_ms,
            enable_fallback=enable_fallback,
            enable_logging=enable_logging,
            gemini_search_grounding=gemini_search_grounding,
            log_level=log_level,
            metrics_backend=metrics_backend,
            metrics_port=metrics_port,
        )

    def settings_for(self, provider: ProviderType) -> ProviderSettings:
        return getattr(self, parse_provider_type(provider).value)

    def is_available(self, provider: ProviderType) -> bool:
        try:
            return self.settings_for(provider).available
        except ConfigError:
            return False

    def available_providers(self) -> List[ProviderType]:
        return [p for p in ProviderType if self.settings_for(p).available]

    def default_options(self) -> CompletionOptions:
        """Completion defaults applied by every provider built from this config."""
        return CompletionOptions(
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout_ms=self.timeout_ms,
        )


_CONFIG: Optional[AIConfig] = None


def get_config() -> AIConfig:
    """Return the cached process configuration, loading it on first use."""
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = AIConfig.from_env()
    return _CONFIG


def reload_config(env: Optional[Mapping[str, str]] = None) -> AIConfig:
    """Rebuild the cached configuration from the environment."""
    global _CONFIG
    _CONFIG = AIConfig.from_env(env)
    return _CONFIG


def is_ai_available() -> bool:
    return bool(get_config().available_providers())


def available_provider_types() -> List[ProviderType]:
    return get_config().available_providers()


def validate_config() -> ConfigValidation:
    errors: List[str] = []
    config = get_config()
    if not config.available_providers():
        errors.append("No AI provider API keys configured.")
    elif not config.is_available(config.default_provider):
        errors.append(f"Default provider {config.default_provider.value} has no API key configured.")
    return ConfigValidation(valid=not errors, errors=errors)
