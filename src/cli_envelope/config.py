"""Runtime configuration for CLI backend clients."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

DEFAULT_TOOL = "claude-code"
_SUPPORTED_TOOLS = ("claude-code", "codex")
_PERMISSION_MODES = ("default", "acceptEdits", "bypassPermissions", "dontAsk", "plan")
_SANDBOX_MODES = ("read-only", "workspace-write", "danger-full-access")


@dataclass(slots=True)
class ClaudeSettings:
    """Claude Code backend settings."""

    path: str = "claude"
    max_budget_usd: float = 5.0
    permission_mode: str = "dontAsk"


@dataclass(slots=True)
class CodexSettings:
    """Codex backend settings."""

    path: str = "codex"
    sandbox: str = "danger-full-access"
    profile: str = ""


@dataclass(slots=True)
class Settings:
    """Client settings; ``model`` and ``timeout_seconds`` fall back to backend defaults."""

    tool: str = DEFAULT_TOOL
    model: str | None = None
    timeout_seconds: float | None = None
    retries: int = 1
    retry_delay_seconds: float = 0.8
    max_output_bytes: int = 128 * 1024 * 1024
    claude: ClaudeSettings = field(default_factory=ClaudeSettings)
    codex: CodexSettings = field(default_factory=CodexSettings)

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from ``CLI_ENVELOPE_*`` environment variables."""

        timeout_raw = os.getenv("CLI_ENVELOPE_TIMEOUT_SECONDS", "").strip()
        return cls(
            tool=os.getenv("CLI_ENVELOPE_TOOL", DEFAULT_TOOL).strip().lower(),
            model=os.getenv("CLI_ENVELOPE_MODEL", "").strip() or None,
            timeout_seconds=(
                _parse_float("CLI_ENVELOPE_TIMEOUT_SECONDS", timeout_raw) if timeout_raw else None
            ),
            retries=_env_int("CLI_ENVELOPE_RETRIES", 1),
            retry_delay_seconds=_env_float("CLI_ENVELOPE_RETRY_DELAY_SECONDS", 0.8),
            max_output_bytes=_env_int("CLI_ENVELOPE_MAX_OUTPUT_BYTES", 128 * 1024 * 1024),
            claude=ClaudeSettings(
                path=os.getenv("CLI_ENVELOPE_CLAUDE_PATH", "claude"),
                max_budget_usd=_env_float("CLI_ENVELOPE_MAX_BUDGET_USD", 5.0),
                permission_mode=os.getenv("CLI_ENVELOPE_CLAUDE_PERMISSION_MODE", "dontAsk"),
            ),
            codex=CodexSettings(
                path=os.getenv("CLI_ENVELOPE_CODEX_PATH", "codex"),
                sandbox=os.getenv("CLI_ENVELOPE_CODEX_SANDBOX", "danger-full-access"),
                profile=os.getenv("CLI_ENVELOPE_CODEX_PROFILE", ""),
            ),
        )

    def validate(self) -> None:
        """Raise configuration error naming the offending variable."""

        if self.tool not in _SUPPORTED_TOOLS:
            raise ValueError(
                f"Unsupported CLI_ENVELOPE_TOOL: {self.tool!r}. Use claude-code or codex.",
            )
        if self.timeout_seconds is not None and self.timeout_seconds <= 0:
            raise ValueError("CLI_ENVELOPE_TIMEOUT_SECONDS must be > 0.")
        if self.retries < 0:
            raise ValueError("CLI_ENVELOPE_RETRIES must be >= 0.")
        if self.retry_delay_seconds < 0:
            raise ValueError("CLI_ENVELOPE_RETRY_DELAY_SECONDS must be >= 0.")
        if self.max_output_bytes <= 0:
            raise ValueError("CLI_ENVELOPE_MAX_OUTPUT_BYTES must be a positive integer.")
        if self.claude.max_budget_usd <= 0:
            raise ValueError("CLI_ENVELOPE_MAX_BUDGET_USD must be > 0.")
        if self.claude.permission_mode not in _PERMISSION_MODES:
            raise ValueError(
                "Invalid CLI_ENVELOPE_CLAUDE_PERMISSION_MODE: "
                f"{self.claude.permission_mode!r}. Use one of {_PERMISSION_MODES}.",
            )
        if self.codex.sandbox not in _SANDBOX_MODES:
            raise ValueError(
                f"Invalid CLI_ENVELOPE_CODEX_SANDBOX: {self.codex.sandbox!r}. "
                f"Use one of {_SANDBOX_MODES}.",
            )


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return _parse_float(name, value.strip())


def _parse_float(name: str, value: str) -> float:
    try:
        return float(value)
    except ValueError as error:
        raise ValueError(f"Invalid numeric value for {name}: {value!r}") from error
