"""Cleaning of untrusted text before it is interpolated into a prompt.

Sanitization never fails: problems are reported through ``warnings`` and
``detected_patterns`` and it is up to the caller whether to refuse the input
or merely log it. Detection is regex based and therefore incomplete; novel
phrasings will get through.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Pattern, Sequence, Tuple, Union

PatternLike = Union[str, Pattern[str]]

DEFAULT_MAX_LENGTH = 10000
DEFAULT_REPLACEMENT = "[REMOVED]"

# A removal or a truncation can leave a new match behind ("<scr<script>ipt>",
# "DANGER" cut to "DAN"). Scrubbing repeats until stable, at most this many passes.
_MAX_PASSES = 8


@dataclass(frozen=True)
class InjectionRule:
    name: str
    pattern: Pattern[str]


INJECTION_RULES: Tuple[InjectionRule, ...] = (
    InjectionRule(
        "ignore_instructions",
        re.compile(r"ignore\s+(?:all\s+)?(?:previous|all|above|prior)\s+(?:instructions|prompts|rules)", re.I),
    ),
    InjectionRule("forget_instructions", re.compile(r"forget\s+(?:everything|all|your\s+instructions)", re.I)),
    InjectionRule(
        "disregard_instructions",
        re.compile(r"disregard\s+(?:all|previous|above)\s+(?:instructions|rules)", re.I),
    ),
    InjectionRule(
        "override_instructions",
        re.compile(r"override\s+(?:your|system)\s+(?:instructions|rules)", re.I),
    ),
    InjectionRule("role_reassignment", re.compile(r"you\s+are\s+now\s+(?:a|an|the)\b", re.I)),
    InjectionRule("role_pretend", re.compile(r"pretend\s+(?:to\s+be|you\s+are)", re.I)),
    InjectionRule("prompt_inquiry", re.compile(r"what\s+(?:are|is)\s+your\s+(?:system\s+)?prompt", re.I)),
    InjectionRule("prompt_reveal", re.compile(r"reveal\s+your\s+(?:instructions|prompt|system)", re.I)),
    InjectionRule("dan_marker", re.compile(r"\bDAN\b")),
    InjectionRule("jailbreak", re.compile(r"jailbreak", re.I)),
    InjectionRule("safety_bypass", re.compile(r"bypass\s+(?:safety|filter|restriction)", re.I)),
)

DANGEROUS_HTML = re.compile(
    r"<\s*(?:script|iframe|object|embed|form|input|link|meta|style|base|svg)[^>]*>",
    re.I,
)

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")

_NEWLINES = re.compile(r"[\r\n]+")


@dataclass(frozen=True)
class SanitizeOptions:
    max_length: int = DEFAULT_MAX_LENGTH
    allow_newlines: bool = True
    allow_html: bool = False
    blocked_patterns: Sequence[PatternLike] = ()
    replacement_text: str = DEFAULT_REPLACEMENT


@dataclass(frozen=True)
class SanitizeResult:
    text: str
    was_modified: bool
    warnings: List[str] = field(default_factory=list)
    detected_patterns: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SanitizedObject:
    data: Any
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class InputValidation:
    valid: bool
    issues: List[str] = field(default_factory=list)


def _compile(pattern: PatternLike) -> Pattern[str]:
    return pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)


def _rules_for(extra: Sequence[PatternLike]) -> List[InjectionRule]:
    rules = list(INJECTION_RULES)
    for pattern in extra:
        compiled = _compile(pattern)
        rules.append(InjectionRule(compiled.pattern[:50], compiled))
    return rules


def _scrub_injections(text: str, rules: Sequence[InjectionRule], replacement: str, detected: List[str]) -> str:
    for rule in rules:
        text, count = rule.pattern.subn(replacement, text)
        if count and rule.name not in detected:
            detected.append(rule.name)
    return text


def _scrub(
    text: str,
    opts: SanitizeOptions,
    rules: Sequence[InjectionRule],
    detected: List[str],
) -> Tuple[str, bool]:
    """Strip dangerous HTML and injection phrases until a pass changes nothing.

    Returns the text and whether any HTML was removed.
    """
    html_removed = False
    for _ in range(_MAX_PASSES):
        before = text
        if not opts.allow_html:
            stripped = DANGEROUS_HTML.sub(opts.replacement_text, text)
            html_removed = html_removed or stripped != text
            text = stripped
        text = _scrub_injections(text, rules, opts.replacement_text, detected)
        if text == before:
            break
    return text, html_removed


def sanitize_user_input(input: Any, options: Optional[SanitizeOptions] = None) -> SanitizeResult:
    """Clean ``input`` and report what was changed."""
    opts = options or SanitizeOptions()
    if not input:
        return SanitizeResult(text="", was_modified=False)

    text = input if isinstance(input, str) else str(input)
    original = text
    warnings: List[str] = []
    detected: List[str] = []

    text = CONTROL_CHARS.sub("", text)
    if text != original:
        warnings.append("Control characters removed")

    if not opts.allow_newlines:
        text, count = _NEWLINES.subn(" ", text)
        if count:
            warnings.append("Newlines collapsed")

    rules = _rules_for(opts.blocked_patterns)
    text, html_removed = _scrub(text, opts, rules, detected)

    max_length = max(opts.max_length, 0)
    if len(text) > max_length:
        warnings.append(f"Truncated to {max_length} characters")
        for _ in range(_MAX_PASSES):
            text = text[:max_length]
            rescanned, removed = _scrub(text, opts, rules, detected)
            html_removed = html_removed or removed
            if rescanned == text:
                break
            text = rescanned
        text = text[:max_length]

    if html_removed:
        warnings.append("Dangerous HTML removed")

    if detected:
        warnings.append("Potential prompt injection detected")

    text = text.strip()
    return SanitizeResult(
        text=text,
        was_modified=text != original,
        warnings=warnings,
        detected_patterns=detected,
    )


def sanitize(input: Any, options: Optional[SanitizeOptions] = None) -> str:
    return sanitize_user_input(input, options).text


def contains_injection(input: str, additional_patterns: Sequence[PatternLike] = ()) -> bool:
    """Read-only check against the injection rule table."""
    if not input:
        return False
    return any(rule.pattern.search(input) for rule in _rules_for(additional_patterns))


def escape_for_prompt(input: str) -> str:
    """Escape text for embedding inside a quoted string in a prompt."""
    return (
        input.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\r", "\\r")
        .replace("\t", "\\t")
    )


def sanitize_object(obj: Any, options: Optional[SanitizeOptions] = None) -> SanitizedObject:
    """Sanitize every string leaf of a nested mapping/sequence structure."""
    warnings: List[str] = []

    def _clean(value: Any) -> Any:
        if isinstance(value, str):
            result = sanitize_user_input(value, options)
            warnings.extend(result.warnings)
            return result.text
        if isinstance(value, dict):
            return {key: _clean(item) for key, item in value.items()}
        if isinstance(value, (list, tuple)):
            return [_clean(item) for item in value]
        return value

    return SanitizedObject(data=_clean(obj), warnings=warnings)


def validate_input(input: str, options: Optional[SanitizeOptions] = None) -> InputValidation:
    """Report problems without altering anything. Surrounding whitespace is not an issue."""
    result = sanitize_user_input(input, options)
    issues = list(result.warnings) + [f"Pattern: {name}" for name in result.detected_patterns]
    unchanged = result.text == (input or "").strip()
    return InputValidation(valid=unchanged and not result.warnings, issues=issues)
