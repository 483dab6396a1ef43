"""CLI entry point for the AI completion layer."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Awaitable, Callable, List, Optional, TypeVar

import typer

from .config import AIConfig, ConfigError, get_config
from .fallback import FallbackChain, create_default_fallback_chain
from .metrics import create_metrics_collector
from .providers.factory import ProviderFactory
from .prompts.registry import list_prompt_templates
from .prompts.sanitizer import SanitizeOptions, sanitize_user_input
from .types import CompletionOptions, Message, ProviderError

T = TypeVar("T")

app = typer.Typer(help="Inspect and exercise the AI completion layer.")


def _level_for(name: str) -> int:
    level = getattr(logging, name.upper(), logging.INFO)
    if isinstance(level, int):
        return level
    return logging.INFO


def _load_config() -> AIConfig:
    try:
        config = get_config()
    except ConfigError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc
    logging.basicConfig(level=_level_for(config.log_level))
    return config


def _build_chain(config: AIConfig, provider: Optional[str]) -> FallbackChain:
    # Providers built here are private to this chain and closed with it.
    overrides = {"metrics": create_metrics_collector(config), "factory": ProviderFactory(config)}
    if provider:
        overrides["providers"] = [provider]
    try:
        return create_default_fallback_chain(**overrides)
    except ConfigError as exc:
        typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2) from exc


def _run(chain: FallbackChain, call: Callable[[], Awaitable[T]]) -> T:
    """Await ``call()`` on a fresh event loop, closing the chain's clients before it exits."""

    async def _main() -> T:
        try:
            return await call()
        finally:
            await chain.aclose()

    return asyncio.run(_main())


@app.command()
def providers() -> None:
    """List providers with configured API keys."""
    config = _load_config()
    available = config.available_providers()
    if not available:
        typer.secho("No AI provider API keys configured.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)
    for provider_type in available:
        marker = " (default)" if provider_type == config.default_provider else ""
        typer.echo(f"{provider_type.value}: {config.settings_for(provider_type).model}{marker}")


@app.command()
def healthcheck() -> None:
    """Run a minimal completion against every provider in the default chain."""
    config = _load_config()
    chain = _build_chain(config, None)

    reports = _run(chain, chain.health_check)
    for report in reports:
        status = "healthy" if report.healthy else f"unhealthy ({report.error})"
        color = typer.colors.GREEN if report.healthy else typer.colors.RED
        typer.secho(f"{report.provider.value}: {status} in {report.latency_ms:.0f} ms", fg=color)
    if not all(report.healthy for report in reports):
        raise typer.Exit(code=1)


@app.command()
def complete(
    prompt: str = typer.Argument(..., help="User prompt to send."),
    system: Optional[str] = typer.Option(None, "--system", help="System instruction."),
    provider: Optional[str] = typer.Option(None, "--provider", help="Use only this provider."),
    as_json: bool = typer.Option(False, "--json", help="Parse the response as JSON."),
    max_tokens: Optional[int] = typer.Option(None, "--max-tokens"),
    temperature: Optional[float] = typer.Option(None, "--temperature"),
) -> None:
    """Send a prompt through the default fallback chain."""
    config = _load_config()
    chain = _build_chain(config, provider)
    messages: List[Message] = [Message(role="user", content=prompt)]
    options = CompletionOptions(max_tokens=max_tokens, temperature=temperature, system_prompt=system)

    try:
        if as_json:
            completion = _run(chain, lambda: chain.complete_json(messages, options))
            typer.echo(json.dumps(completion.data, indent=2))
            result = completion.result
        else:
            result = _run(chain, lambda: chain.complete(messages, options))
            typer.echo(result.content)
    except ProviderError as exc:
        typer.secho(f"Completion failed [{exc.code.value}]: {exc.message}", fg=typer.colors.RED, err=True)
        for attempt in exc.errors:
            typer.secho(f"  {attempt.provider.value}: {attempt.error.code.value}", err=True)
        raise typer.Exit(code=1) from exc
    except json.JSONDecodeError as exc:
        typer.secho(f"Response was not valid JSON: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc

    suffix = f" (fallback from {result.original_provider.value})" if result.is_fallback else ""
    typer.secho(f"-- {result.provider.value}/{result.model}{suffix}", fg=typer.colors.BLUE, err=True)


@app.command("sanitize")
def sanitize_command(
    text: str = typer.Argument(..., help="Untrusted text to clean."),
    no_newlines: bool = typer.Option(False, "--no-newlines", help="Collapse newlines to spaces."),
) -> None:
    """Print sanitized text; exit 1 when prompt injection is detected."""
    result = sanitize_user_input(text, SanitizeOptions(allow_newlines=not no_newlines))
    typer.echo(result.text)
    for warning in result.warnings:
        typer.secho(f"warning: {warning}", fg=typer.colors.YELLOW, err=True)
    if result.detected_patterns:
        typer.secho(f"detected: {', '.join(result.detected_patterns)}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def templates() -> None:
    """List registered prompt template ids."""
    for template_id in list_prompt_templates():
        typer.echo(template_id)


def main() -> None:
    """Entry point for console script."""
    app()


if __name__ == "__main__":
    main()
