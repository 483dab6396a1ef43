"""Prompt templates and input sanitization."""

from .registry import (
    CompiledPrompt,
    MissingVariablesError,
    PromptRegistry,
    PromptTemplate,
    PromptTemplateError,
    UnknownTemplateError,
    compile_prompt,
    get_prompt_template,
    has_prompt_template,
    list_prompt_templates,
    prompt_registry,
)
from .sanitizer import (
    INJECTION_RULES,
    InjectionRule,
    InputValidation,
    SanitizedObject,
    SanitizeOptions,
    SanitizeResult,
    contains_injection,
    escape_for_prompt,
    sanitize,
    sanitize_object,
    sanitize_user_input,
    validate_input,
)

__all__ = [
    "CompiledPrompt",
    "INJECTION_RULES",
    "InjectionRule",
    "InputValidation",
    "MissingVariablesError",
    "PromptRegistry",
    "PromptTemplate",
    "PromptTemplateError",
    "SanitizeOptions",
    "SanitizeResult",
    "SanitizedObject",
    "UnknownTemplateError",
    "compile_prompt",
    "contains_injection",
    "escape_for_prompt",
    "get_prompt_template",
    "has_prompt_template",
    "list_prompt_templates",
    "prompt_registry",
    "sanitize",
    "sanitize_object",
    "sanitize_user_input",
    "validate_input",
]
