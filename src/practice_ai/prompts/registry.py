"""Named prompt templates with ``{{variable}}`` interpolation."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..types import CompletionOptions, Message
from .sanitizer import SanitizeOptions, sanitize_object

VARIABLE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


class PromptTemplateError(ValueError):
    """Base error for template lookup and compilation problems."""


class UnknownTemplateError(PromptTemplateError):
    def __init__(self, template_id: str):
        super().__init__(f"Prompt template not found: {template_id}")
        self.template_id = template_id


class MissingVariablesError(PromptTemplateError):
    def __init__(self, template_id: str, missing: List[str]):
        super().__init__(f"Missing required variables for {template_id}: {', '.join(missing)}")
        self.template_id = template_id
        self.missing = missing


@dataclass(frozen=True)
class PromptTemplate:
    id: str
    template: str
    name: str = ""
    description: str = ""
    system_prompt: Optional[str] = None
    required_variables: Tuple[str, ...] = ()
    default_variables: Mapping[str, Any] = field(default_factory=dict)
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "required_variables", tuple(self.required_variables))
        object.__setattr__(self, "default_variables", MappingProxyType(dict(self.default_variables)))


@dataclass(frozen=True)
class CompiledPrompt:
    content: str
    template: PromptTemplate
    variables: Mapping[str, Any]
    system_prompt: Optional[str] = None

    def to_messages(self) -> List[Message]:
        messages = []
        if self.system_prompt:
            messages.append(Message(role="system", content=self.system_prompt))
        messages.append(Message(role="user", content=self.content))
        return messages

    def completion_options(self, base: Optional[CompletionOptions] = None) -> CompletionOptions:
        """Options carrying the template's sampling settings. Values set on ``base`` win."""
        own = CompletionOptions(
            max_tokens=self.template.max_tokens,
            temperature=self.template.temperature,
        )
        return (base or CompletionOptions()).with_defaults(own)


def interpolate(text: str, variables: Mapping[str, Any]) -> str:
    """Replace ``{{name}}`` placeholders.

    Names absent from ``variables`` are left untouched; a name bound to ``None``
    renders as an empty string.
    """

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1).strip()
        if name not in variables:
            return match.group(0)
        value = variables[name]
        return "" if value is None else str(value)

    return VARIABLE_PATTERN.sub(_replace, text)


class PromptRegistry:
    """In-process catalog of prompt templates."""

    def __init__(self) -> None:
        self._templates: Dict[str, PromptTemplate] = {}

    def register(self, template: PromptTemplate) -> None:
        # Last registration for an id wins.
        self._templates[template.id] = template

    def get(self, template_id: str) -> Optional[PromptTemplate]:
        return self._templates.get(template_id)

    def has(self, template_id: str) -> bool:
        return template_id in self._templates

    def list(self) -> List[str]:
        return list(self._templates)

    def compile(
        self,
        template_id: str,
        variables: Optional[Mapping[str, Any]] = None,
        *,
        sanitize: bool = False,
        sanitize_options: Optional[SanitizeOptions] = None,
    ) -> CompiledPrompt:
        template = self._templates.get(template_id)
        if template is None:
            raise UnknownTemplateError(template_id)

        merged: Dict[str, Any] = dict(template.default_variables)
        merged.update(variables or {})
        missing = [name for name in template.required_variables if name not in merged]
        if missing:
            raise MissingVariablesError(template_id, missing)

        if sanitize:
            merged = sanitize_object(merged, sanitize_options).data

        return CompiledPrompt(
            content=interpolate(template.template, merged),
            system_prompt=interpolate(template.system_prompt, merged) if template.system_prompt else None,
            template=template,
            variables=MappingProxyType(merged),
        )


prompt_registry = PromptRegistry()


def compile_prompt(template_id: str, variables: Optional[Mapping[str, Any]] = None, **kwargs) -> CompiledPrompt:
    return prompt_registry.compile(template_id, variables, **kwargs)


def get_prompt_template(template_id: str) -> Optional[PromptTemplate]:
    return prompt_registry.get(template_id)


def has_prompt_template(template_id: str) -> bool:
    return prompt_registry.has(template_id)


def list_prompt_templates() -> List[str]:
    return prompt_registry.list()
