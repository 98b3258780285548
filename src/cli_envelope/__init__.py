"""Text and structured output from locally installed AI command-line tools."""

from cli_envelope.backends import (
    ClaudeCodeOptions,
    CodexOptions,
    claude_code_structured,
    claude_code_text,
    codex_structured,
    codex_text,
)
from cli_envelope.client import (
    CliClient,
    CliTool,
    StructuredResult,
    TextResult,
    create_claude_code_client,
    create_client,
    create_client_from_settings,
    create_codex_client,
)
from cli_envelope.config import Settings
from cli_envelope.errors import (
    BufferExceededError,
    CliRunError,
    ErrorEnvelopeError,
    MalformedEnvelopeError,
    NonZeroExitError,
    ProcessTimeoutError,
    SpawnFailedError,
)
from cli_envelope.model_adapter import CliLanguageModel, claude_code, cli_model, codex

__version__ = "0.1.0"

__all__ = [
    "BufferExceededError",
    "ClaudeCodeOptions",
    "CliClient",
    "CliLanguageModel",
    "CliRunError",
    "CliTool",
    "CodexOptions",
    "ErrorEnvelopeError",
    "MalformedEnvelopeError",
    "NonZeroExitError",
    "ProcessTimeoutError",
    "Settings",
    "SpawnFailedError",
    "StructuredResult",
    "TextResult",
    "__version__",
    "claude_code",
    "claude_code_structured",
    "claude_code_text",
    "cli_model",
    "codex",
    "codex_structured",
    "codex_text",
    "create_claude_code_client",
    "create_client",
    "create_client_from_settings",
    "create_codex_client",
]
