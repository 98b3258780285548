"""Claude Code CLI backend: prints one JSON result envelope on stdout."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from cli_envelope.envelope import ResultEnvelope, parse_structured_envelope, parse_text_envelope
from cli_envelope.process import (
    DEFAULT_MAX_OUTPUT_BYTES,
    ProcessOutput,
    run_process,
    run_with_retries,
)

logger = logging.getLogger(__name__)

LABEL = "claude"
PERMISSION_MODES = ("default", "acceptEdits", "bypassPermissions", "dontAsk", "plan")


@dataclass(frozen=True, slots=True)
class ClaudeCodeOptions:
    """Invocation options for the ``claude`` executable.

    ``cwd`` and ``env`` are filled by ``resolve_claude_options``; only the
    resolved record is handed to the argument builder and the supervisor.
    """

    claude_path: str = "claude"
    cwd: str | None = None
    env: Mapping[str, str] | None = None
    model: str = "opus"
    max_budget_usd: float = 5.0
    timeout_seconds: float = 120.0
    retries: int = 1
    retry_delay_seconds: float = 0.8
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    permission_mode: str = "dontAsk"
    tools: str = ""
    system_prompt: str = ""
    append_system_prompt: str = ""
    allowed_tools: tuple[str, ...] = ()
    disallowed_tools: tuple[str, ...] = ()
    fallback_model: str = ""
    betas: tuple[str, ...] = ()
    agent: str = ""
    agents: str = ""


def resolve_claude_options(
    options: ClaudeCodeOptions | None = None,
    **overrides: Any,
) -> ClaudeCodeOptions:
    """Return a fully populated copy of ``options`` with ``overrides`` applied."""

    resolved = dataclasses.replace(options or ClaudeCodeOptions(), **overrides)
    if resolved.permission_mode not in PERMISSION_MODES:
        raise ValueError(
            f"Unsupported permission mode: {resolved.permission_mode!r}. "
            f"Use one of {PERMISSION_MODES}.",
        )
    if not resolved.model.strip():
        raise ValueError("Claude model id must not be empty.")
    if resolved.timeout_seconds <= 0:
        raise ValueError("Claude timeout_seconds must be > 0.")
    if resolved.retries < 0:
        raise ValueError("Claude retries must be >= 0.")
    return dataclasses.replace(
        resolved,
        cwd=resolved.cwd or os.getcwd(),
        env=dict(resolved.env) if resolved.env is not None else dict(os.environ),
        allowed_tools=tuple(resolved.allowed_tools),
        disallowed_tools=tuple(resolved.disallowed_tools),
        betas=tuple(resolved.betas),
    )


def build_base_args(options: ClaudeCodeOptions) -> list[str]:
    """Flags shared by text and structured calls, in CLI order."""

    args = [
        "--model",
        options.model,
        "-p",
        "--permission-mode",
        options.permission_mode,
        "--tools",
        options.tools,
    ]
    _append_scalar(args, "--system-prompt", options.system_prompt)
    _append_scalar(args, "--append-system-prompt", options.append_system_prompt)
    _append_each(args, "--allowedTools", options.allowed_tools)
    _append_each(args, "--disallowedTools", options.disallowed_tools)
    _append_scalar(args, "--fallback-model", options.fallback_model)
    _append_each(args, "--betas", options.betas)
    _append_scalar(args, "--agent", options.agent)
    _append_scalar(args, "--agents", options.agents)
    return args


def build_text_args(options: ClaudeCodeOptions, prompt: str) -> list[str]:
    return [*build_base_args(options), *_json_output_args(options), prompt]


def build_structured_args(options: ClaudeCodeOptions, prompt: str, json_schema: str) -> list[str]:
    return [
        *build_base_args(options),
        *_json_output_args(options),
        "--json-schema",
        json_schema,
        prompt,
    ]


def claude_code_text(prompt: str, options: ClaudeCodeOptions | None = None) -> str:
    """Run a text call and return the envelope ``result`` (or raw stdout)."""

    resolved = resolve_claude_options(options)
    started = time.monotonic()
    text = run_with_retries(
        lambda: parse_text_envelope(
            _run(resolved, build_text_args(resolved, prompt)).stdout,
            label=LABEL,
        ),
        retries=resolved.retries,
        retry_delay_seconds=resolved.retry_delay_seconds,
        label=LABEL,
    )
    logger.info(
        "claude text call completed: model=%s elapsed=%.1fs",
        resolved.model,
        time.monotonic() - started,
    )
    return text


def claude_code_structured(
    prompt: str,
    json_schema: str | Mapping[str, Any],
    options: ClaudeCodeOptions | None = None,
) -> ResultEnvelope:
    """Run a structured call and return the parsed success envelope."""

    resolved = resolve_claude_options(options)
    schema_text = json_schema if isinstance(json_schema, str) else json.dumps(json_schema)
    started = time.monotonic()
    envelope = run_with_retries(
        lambda: parse_structured_envelope(
            _run(resolved, build_structured_args(resolved, prompt, schema_text)).stdout,
            label=LABEL,
        ),
        retries=resolved.retries,
        retry_delay_seconds=resolved.retry_delay_seconds,
        label=LABEL,
    )
    logger.info(
        "claude structured call completed: model=%s elapsed=%.1fs cost_usd=%s",
        resolved.model,
        time.monotonic() - started,
        envelope.total_cost_usd,
    )
    return envelope


def _run(options: ClaudeCodeOptions, args: list[str]) -> ProcessOutput:
    return run_process(
        executable=options.claude_path,
        args=args,
        cwd=options.cwd,
        env=options.env,
        timeout_seconds=options.timeout_seconds,
        max_output_bytes=options.max_output_bytes,
        label=LABEL,
    )


def _json_output_args(options: ClaudeCodeOptions) -> list[str]:
    return [
        "--max-budget-usd",
        f"{options.max_budget_usd:g}",
        "--output-format",
        "json",
    ]


def _append_scalar(args: list[str], flag: str, value: str) -> None:
    if value:
        args.extend((flag, value))


def _append_each(args: list[str], flag: str, values: tuple[str, ...]) -> None:
    for value in values:
        args.extend((flag, value))
