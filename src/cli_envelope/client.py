"""Backend-agnostic client over the supported CLI tools."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, Literal, NamedTuple, TypeVar

from cli_envelope.backends.claude_code import (
    ClaudeCodeOptions,
    claude_code_structured,
    claude_code_text,
    resolve_claude_options,
)
from cli_envelope.backends.codex import (
    CodexOptions,
    codex_structured,
    codex_text,
    resolve_codex_options,
)
from cli_envelope.config import Settings

CliTool = Literal["claude-code", "codex"]
SUPPORTED_TOOLS: tuple[CliTool, ...] = ("claude-code", "codex")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class TextResult:
    text: str


@dataclass(frozen=True, slots=True)
class StructuredResult(Generic[T]):
    structured: T


class _BackendFlow(NamedTuple):
    text: Callable[[str, Any], str]
    structured: Callable[[str, str, Any], Any]


def _claude_structured(prompt: str, json_schema: str, options: ClaudeCodeOptions) -> Any:
    return claude_code_structured(prompt, json_schema, options).structured_output


def _codex_structured(prompt: str, json_schema: str, options: CodexOptions) -> Any:
    return codex_structured(prompt, json_schema, options).structured


_FLOWS: dict[str, _BackendFlow] = {
    "claude-code": _BackendFlow(text=claude_code_text, structured=_claude_structured),
    "codex": _BackendFlow(text=codex_text, structured=_codex_structured),
}


@dataclass(frozen=True, slots=True)
class CliClient:
    """One configured backend; reused across calls, immutable after construction.

    The backend is chosen by ``tool``; retries, process supervision and
    envelope parsing all live in the backend flow.
    """

    tool: CliTool
    model: str
    options: ClaudeCodeOptions | CodexOptions

    def text(self, prompt: str) -> TextResult:
        return TextResult(text=_FLOWS[self.tool].text(prompt, self.options))

    def structured(
        self,
        prompt: str,
        json_schema: str | Mapping[str, Any],
    ) -> StructuredResult[Any]:
        """Request output matching ``json_schema``; validating it is up to the caller.

        A string schema is passed through as already-serialized JSON.
        """

        schema_text = json_schema if isinstance(json_schema, str) else json.dumps(json_schema)
        return StructuredResult(
            structured=_FLOWS[self.tool].structured(prompt, schema_text, self.options),
        )


def create_claude_code_client(
    *,
    model: str | None = None,
    max_budget_usd: float | None = None,
    timeout_seconds: float | None = None,
    options: ClaudeCodeOptions | None = None,
) -> CliClient:
    """Build a claude client; keyword arguments win over ``options`` only when given."""

    resolved = resolve_claude_options(
        options,
        **_given(
            model=model,
            max_budget_usd=max_budget_usd,
            timeout_seconds=timeout_seconds,
        ),
    )
    return CliClient(tool="claude-code", model=resolved.model, options=resolved)


def create_codex_client(
    *,
    model: str | None = None,
    timeout_seconds: float | None = None,
    options: CodexOptions | None = None,
) -> CliClient:
    resolved = resolve_codex_options(
        options,
        **_given(model=model, timeout_seconds=timeout_seconds),
    )
    return CliClient(tool="codex", model=resolved.model, options=resolved)


def create_client(tool: str, **kwargs: Any) -> CliClient:
    """Build a client for ``tool``; ``kwargs`` go to the matching factory."""

    if tool == "codex":
        return create_codex_client(**kwargs)
    if tool == "claude-code":
        return create_claude_code_client(**kwargs)
    raise ValueError(f"Unsupported CLI tool: {tool!r}. Use one of {SUPPORTED_TOOLS}.")


def create_client_from_settings(settings: Settings) -> CliClient:
    """Build the client selected by ``settings.tool``."""

    settings.validate()
    if settings.tool == "codex":
        codex_options = resolve_codex_options(
            codex_path=settings.codex.path,
            sandbox=settings.codex.sandbox,
            profile=settings.codex.profile,
            retries=settings.retries,
            retry_delay_seconds=settings.retry_delay_seconds,
            max_output_bytes=settings.max_output_bytes,
        )
        return create_codex_client(
            model=settings.model,
            timeout_seconds=settings.timeout_seconds,
            options=codex_options,
        )

    claude_options = resolve_claude_options(
        claude_path=settings.claude.path,
        permission_mode=settings.claude.permission_mode,
        retries=settings.retries,
        retry_delay_seconds=settings.retry_delay_seconds,
        max_output_bytes=settings.max_output_bytes,
    )
    return create_claude_code_client(
        model=settings.model,
        max_budget_usd=settings.claude.max_budget_usd,
        timeout_seconds=settings.timeout_seconds,
        options=claude_options,
    )


def _given(**values: Any) -> dict[str, Any]:
    return {name: value for name, value in values.items() if value is not None}
