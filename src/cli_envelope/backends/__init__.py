"""Argument builders and call flows for the supported CLI tools."""

from cli_envelope.backends.claude_code import (
    ClaudeCodeOptions,
    claude_code_structured,
    claude_code_text,
    resolve_claude_options,
)
from cli_envelope.backends.codex import (
    CodexOptions,
    CodexStructuredResult,
    codex_structured,
    codex_text,
    resolve_codex_options,
)

__all__ = [
    "ClaudeCodeOptions",
    "CodexOptions",
    "CodexStructuredResult",
    "claude_code_structured",
    "claude_code_text",
    "codex_structured",
    "codex_text",
    "resolve_claude_options",
    "resolve_codex_options",
]
