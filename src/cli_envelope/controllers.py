"""Controllers for cli-envelope command line commands."""

from __future__ import annotations

import dataclasses
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cli_envelope.client import CliClient, create_client_from_settings
from cli_envelope.config import Settings
from cli_envelope.smoke import AgentSmokeSpec, run_smoke_checks


@dataclass(slots=True)
class TextCommand:
    """CLI input for one text call."""

    prompt: str
    tool: str | None = None
    model: str | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class StructuredCommand:
    """CLI input for one structured call."""

    prompt: str
    schema_path: Path
    tool: str | None = None
    model: str | None = None
    timeout_seconds: float | None = None


@dataclass(slots=True)
class SmokeCommand:
    """CLI input for tool smoke checks."""

    tools: tuple[str, ...]
    prompt: str
    expect_substring: str
    timeout_seconds: float
    model: str | None = None


@dataclass(slots=True)
class SmokeCommandResult:
    success: bool
    lines: list[str]


class EnvelopeCliController:
    """Translate parsed CLI input into client calls and printable lines."""

    def text(self, command: TextCommand) -> list[str]:
        client = self._client(
            tool=command.tool,
            model=command.model,
            timeout_seconds=command.timeout_seconds,
        )
        return [client.text(command.prompt).text]

    def structured(self, command: StructuredCommand) -> list[str]:
        schema = _load_schema(command.schema_path)
        client = self._client(
            tool=command.tool,
            model=command.model,
            timeout_seconds=command.timeout_seconds,
        )
        result = client.structured(command.prompt, schema)
        return [json.dumps(result.structured, ensure_ascii=False, indent=2)]

    def smoke(self, command: SmokeCommand) -> SmokeCommandResult:
        settings = Settings.from_env()
        tools = command.tools or (settings.tool,)
        specs = [
            AgentSmokeSpec(
                tool=tool,
                executable=settings.codex.path if tool == "codex" else settings.claude.path,
                model=command.model or settings.model,
            )
            for tool in tools
        ]
        results = run_smoke_checks(
            specs=specs,
            prompt=command.prompt,
            expect_substring=command.expect_substring,
            timeout_seconds=command.timeout_seconds,
        )
        lines: list[str] = []
        for result in results:
            status = "ok" if result.ok else ("skipped" if result.skipped_run else "failed")
            lines.append(
                f"{result.tool}: {status} "
                f"(available={result.available} probe_ok={result.probe_ok} "
                f"run_ok={result.run_ok})",
            )
            if result.error:
                lines.append(f"  error: {result.error}")
            if result.stdout_preview:
                lines.append(f"  output: {result.stdout_preview}")
        return SmokeCommandResult(success=all(result.ok for result in results), lines=lines)

    @staticmethod
    def _client(
        *,
        tool: str | None,
        model: str | None,
        timeout_seconds: float | None,
    ) -> CliClient:
        settings = Settings.from_env()
        overrides: dict[str, Any] = {}
        if tool is not None:
            overrides["tool"] = tool
        if model is not None:
            overrides["model"] = model
        if timeout_seconds is not None:
            overrides["timeout_seconds"] = timeout_seconds
        return create_client_from_settings(dataclasses.replace(settings, **overrides))


def _load_schema(path: Path) -> dict[str, Any]:
    try:
        schema = json.loads(path.read_text("utf-8"))
    except json.JSONDecodeError as error:
        raise ValueError(f"Schema file is not valid JSON: {path}: {error}") from error
    if not isinstance(schema, dict):
        raise ValueError(f"Schema file must contain a JSON object: {path}")
    return schema
