"""Practice AI - provider-agnostic completion layer with fallback, templating and sanitization."""

from .batching import run_in_batches  # noqa: F401
from .config import (  # noqa: F401
    ENV_VARS,
    AIConfig,
    ConfigError,
    available_provider_types,
    get_config,
    is_ai_available,
    reload_config,
    validate_config,
)
from .fallback import (  # noqa: F401
    FallbackChain,
    create_clinical_fallback_chain,
    create_default_fallback_chain,
    create_marketing_fallback_chain,
)
from .prompts import (  # noqa: F401
    CompiledPrompt,
    PromptTemplate,
    SanitizeOptions,
    SanitizeResult,
    compile_prompt,
    contains_injection,
    escape_for_prompt,
    get_prompt_template,
    has_prompt_template,
    list_prompt_templates,
    prompt_registry,
    sanitize,
    sanitize_object,
    sanitize_user_input,
    validate_input,
)
from .providers import (  # noqa: F401
    BaseProvider,
    ClaudeProvider,
    GeminiProvider,
    OpenAIChatProvider,
    ProviderFactory,
    Providers,
    clear_provider_cache,
    get_available_providers,
    get_default_provider,
    get_provider,
    is_provider_available,
)
from .types import (  # noqa: F401
    CompletionOptions,
    CompletionResult,
    ErrorCode,
    FallbackChainResult,
    Message,
    ProviderError,
    ProviderType,
    TokenUsage,
)

__all__ = [
    "AIConfig",
    "BaseProvider",
    "ClaudeProvider",
    "CompiledPrompt",
    "CompletionOptions",
    "CompletionResult",
    "ConfigError",
    "ENV_VARS",
    "ErrorCode",
    "FallbackChain",
    "FallbackChainResult",
    "GeminiProvider",
    "Message",
    "OpenAIChatProvider",
    "PromptTemplate",
    "ProviderError",
    "ProviderFactory",
    "ProviderType",
    "Providers",
    "SanitizeOptions",
    "SanitizeResult",
    "TokenUsage",
    "__version__",
    "available_provider_types",
    "clear_provider_cache",
    "compile_prompt",
    "contains_injection",
    "create_clinical_fallback_chain",
    "create_default_fallback_chain",
    "create_marketing_fallback_chain",
    "escape_for_prompt",
    "get_available_providers",
    "get_config",
    "get_default_provider",
    "get_prompt_template",
    "get_provider",
    "has_prompt_template",
    "is_ai_available",
    "is_provider_available",
    "list_prompt_templates",
    "prompt_registry",
    "reload_config",
    "run_in_batches",
    "sanitize",
    "sanitize_object",
    "sanitize_user_input",
    "validate_config",
    "validate_input",
]

__version__ = "0.1.0"
