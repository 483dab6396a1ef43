"""Shared data structures for the AI completion layer."""

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from enum import Enum
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union


class ProviderType(str, Enum):
    """Closed set of supported completion backends."""

    CLAUDE = "claude"
    GEMINI = "gemini"
    OPENAI = "openai"

    def __str__(self) -> str:
        return self.value


class ErrorCode(str, Enum):
    """Backend-independent error taxonomy."""

    RATE_LIMIT = "RATE_LIMIT"
    INVALID_API_KEY = "INVALID_API_KEY"
    CONTEXT_LENGTH_EXCEEDED = "CONTEXT_LENGTH_EXCEEDED"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"

    def __str__(self) -> str:
        return self.value


MESSAGE_ROLES = ("user", "assistant", "system")


@dataclass(frozen=True)
class Message:
    """Single conversational turn."""

    role: str
    content: str

    def __post_init__(self) -> None:
        if self.role not in MESSAGE_ROLES:
            raise ValueError(f"Unsupported message role: {self.role!r}")


MessageLike = Union[Message, Mapping[str, Any]]


def normalize_messages(messages: Sequence[MessageLike]) -> List[Message]:
    """Coerce mappings with ``role``/``content`` keys into :class:`Message` values."""
    normalized: List[Message] = []
    for item in messages:
        if isinstance(item, Message):
            normalized.append(item)
        elif isinstance(item, Mapping) and "role" in item and "content" in item:
            normalized.append(Message(role=str(item["role"]), content=str(item["content"])))
        else:
            raise ValueError(f"Cannot interpret {item!r} as a message")
    return normalized


@dataclass(frozen=True)
class CompletionOptions:
    """Per-call generation settings. ``None`` means "use the provider default"."""

    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    timeout_ms: Optional[int] = None
    system_prompt: Optional[str] = None
    stop_sequences: Optional[Tuple[str, ...]] = None

    def __post_init__(self) -> None:
        if self.stop_sequences is not None and not isinstance(self.stop_sequences, tuple):
            object.__setattr__(self, "stop_sequences", tuple(self.stop_sequences))

    def with_defaults(self, defaults: Optional["CompletionOptions"]) -> "CompletionOptions":
        """Return a copy with unset fields taken from ``defaults``."""
        if defaults is None:
            return self
        updates = {
            f.name: getattr(defaults, f.name)
            for f in fields(self)
            if getattr(self, f.name) is None and getattr(defaults, f.name) is not None
        }
        return replace(self, **updates) if updates else self


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int
    output_tokens: int
    total_tokens: int


@dataclass(frozen=True)
class CompletionResult:
    """Normalized output of a single successful completion."""

    content: str
    provider: ProviderType
    model: str
    usage: Optional[TokenUsage] = None
    finish_reason: Optional[str] = None
    is_fallback: bool = False
    original_provider: Optional[ProviderType] = None


class ProviderError(Exception):
    """Standard error raised by provider adapters and the fallback chain."""

    def __init__(
        self,
        message: str,
        *,
        provider: ProviderType,
        code: ErrorCode,
        status_code: Optional[int] = None,
        retryable: bool = False,
        cause: Optional[BaseException] = None,
        errors: Optional[Sequence["AttemptError"]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.provider = provider
        self.code = code
        self.status_code = status_code
        self.retryable = retryable
        self.cause = cause
        self.errors: List[AttemptError] = list(errors or [])

    def __repr__(self) -> str:
        return (
            f"ProviderError(provider={self.provider.value!r}, code={self.code.value!r}, "
            f"status_code={self.status_code!r}, retryable={self.retryable!r}, message={self.message!r})"
        )


@dataclass(frozen=True)
class AttemptError:
    """One failed attempt recorded by the fallback chain."""

    provider: ProviderType
    error: ProviderError


@dataclass(frozen=True)
class FallbackChainResult(CompletionResult):
    """Completion result plus the audit trail of the attempts that preceded it."""

    providers_attempted: int = 0
    errors: Tuple[AttemptError, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProviderHealth:
    healthy: bool
    latency_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class ProviderHealthReport:
    """Health of one provider inside a chain."""

    provider: ProviderType
    healthy: bool
    latency_ms: float
    error: Optional[str] = None


@dataclass(frozen=True)
class JSONCompletion:
    """Parsed JSON payload together with the completion it came from."""

    data: Any
    result: CompletionResult
