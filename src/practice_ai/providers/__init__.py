"""Provider registry exports."""

from .base import BaseProvider, parse_json_content, split_system_messages, strip_code_fences
from .claude import ClaudeProvider
from .factory import (
    ProviderCache,
    ProviderFactory,
    Providers,
    clear_provider_cache,
    get_available_providers,
    get_default_provider,
    get_provider,
    is_provider_available,
)
from .gemini import GeminiProvider
from .openai import OpenAIChatProvider

__all__ = [
    "BaseProvider",
    "ClaudeProvider",
    "GeminiProvider",
    "OpenAIChatProvider",
    "ProviderCache",
    "ProviderFactory",
    "Providers",
    "clear_provider_cache",
    "get_available_providers",
    "get_default_provider",
    "get_provider",
    "is_provider_available",
    "parse_json_content",
    "split_system_messages",
    "strip_code_fences",
]
