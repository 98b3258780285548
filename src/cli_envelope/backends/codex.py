"""Codex CLI backend: writes the last message to a file named on the command line."""

from __future__ import annotations

import dataclasses
import json
import logging
import os
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any

from cli_envelope.envelope import load_json_object
from cli_envelope.errors import MalformedEnvelopeError
from cli_envelope.process import DEFAULT_MAX_OUTPUT_BYTES, run_process, run_with_retries

logger = logging.getLogger(__name__)

LABEL = "codex"
SANDBOX_MODES = ("read-only", "workspace-write", "danger-full-access")
_TEMP_PREFIX = "cli-envelope-codex-"
_OUTPUT_FILE = "last.txt"
_SCHEMA_FILE = "schema.json"


@dataclass(frozen=True, slots=True)
class CodexOptions:
    """Invocation options for the ``codex`` executable."""

    codex_path: str = "codex"
    cwd: str | None = None
    env: Mapping[str, str] | None = None
    model: str = "gpt-5.3-codex"
    timeout_seconds: float = 180.0
    retries: int = 1
    retry_delay_seconds: float = 0.8
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES
    skip_git_repo_check: bool = True
    sandbox: str = "danger-full-access"
    profile: str = ""
    config: tuple[str, ...] = ()
    jsonl_events: bool = False
    image: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class CodexStructuredResult:
    """Parsed structured value plus the raw output file text."""

    structured: Any
    raw: str


def resolve_codex_options(options: CodexOptions | None = None, **overrides: Any) -> CodexOptions:
    """Return a fully populated copy of ``options`` with ``overrides`` applied."""

    resolved = dataclasses.replace(options or CodexOptions(), **overrides)
    if resolved.sandbox not in SANDBOX_MODES:
        raise ValueError(
            f"Unsupported codex sandbox: {resolved.sandbox!r}. Use one of {SANDBOX_MODES}.",
        )
    if not resolved.model.strip():
        raise ValueError("Codex model id must not be empty.")
    if resolved.timeout_seconds <= 0:
        raise ValueError("Codex timeout_seconds must be > 0.")
    if resolved.retries < 0:
        raise ValueError("Codex retries must be >= 0.")
    for entry in resolved.config:
        if "=" not in entry:
            raise ValueError(f"Codex config override must be key=value: {entry!r}")
    return dataclasses.replace(
        resolved,
        cwd=resolved.cwd or os.getcwd(),
        env=dict(resolved.env) if resolved.env is not None else dict(os.environ),
        config=tuple(resolved.config),
        image=tuple(resolved.image),
    )


def build_base_args(options: CodexOptions) -> list[str]:
    args = ["exec"]
    if options.skip_git_repo_check:
        args.append("--skip-git-repo-check")
    if options.cwd:
        args.extend(("-C", options.cwd))
    args.extend(("--model", options.model, "--sandbox", options.sandbox))
    if options.profile:
        args.extend(("--profile", options.profile))
    for entry in options.config:
        args.extend(("--config", entry))
    if options.jsonl_events:
        args.append("--json")
    for image_path in options.image:
        args.extend(("--image", image_path))
    return args


def build_text_args(options: CodexOptions, prompt: str, output_path: Path) -> list[str]:
    return [*build_base_args(options), "--output-last-message", str(output_path), prompt]


def build_structured_args(
    options: CodexOptions,
    prompt: str,
    schema_path: Path,
    output_path: Path,
) -> list[str]:
    return [
        *build_base_args(options),
        "--output-schema",
        str(schema_path),
        "--output-last-message",
        str(output_path),
        prompt,
    ]


def codex_text(prompt: str, options: CodexOptions | None = None) -> str:
    """Run a text call and return the last agent message verbatim."""

    resolved = resolve_codex_options(options)
    started = time.monotonic()
    with TemporaryDirectory(prefix=_TEMP_PREFIX) as temp_dir:
        output_path = Path(temp_dir) / _OUTPUT_FILE
        _run(resolved, build_text_args(resolved, prompt, output_path), output_path)
        text = _read_output(output_path)
    logger.info(
        "codex text call completed: model=%s elapsed=%.1fs",
        resolved.model,
        time.monotonic() - started,
    )
    return text


def codex_structured(
    prompt: str,
    json_schema: str | Mapping[str, Any],
    options: CodexOptions | None = None,
) -> CodexStructuredResult:
    """Run a structured call; the schema and the output live in a per-call temp dir."""

    resolved = resolve_codex_options(options)
    schema_text = json_schema if isinstance(json_schema, str) else json.dumps(json_schema)
    started = time.monotonic()
    with TemporaryDirectory(prefix=_TEMP_PREFIX) as temp_dir:
        schema_path = Path(temp_dir) / _SCHEMA_FILE
        output_path = Path(temp_dir) / _OUTPUT_FILE
        schema_path.write_text(schema_text, "utf-8")
        _run(
            resolved,
            build_structured_args(resolved, prompt, schema_path, output_path),
            output_path,
        )
        raw = _read_output(output_path)
    structured = load_json_object(raw, label=LABEL)
    logger.info(
        "codex structured call completed: model=%s elapsed=%.1fs",
        resolved.model,
        time.monotonic() - started,
    )
    return CodexStructuredResult(structured=structured, raw=raw)


def _run(options: CodexOptions, args: list[str], output_path: Path) -> None:
    def attempt() -> None:
        # a timed-out attempt may have left its file behind
        output_path.unlink(missing_ok=True)
        run_process(
            executable=options.codex_path,
            args=args,
            cwd=options.cwd,
            env=options.env,
            timeout_seconds=options.timeout_seconds,
            max_output_bytes=options.max_output_bytes,
            label=LABEL,
        )

    run_with_retries(
        attempt,
        retries=options.retries,
        retry_delay_seconds=options.retry_delay_seconds,
        label=LABEL,
    )


def _read_output(output_path: Path) -> str:
    try:
        return output_path.read_text("utf-8")
    except FileNotFoundError as error:
        raise MalformedEnvelopeError(
            f"{LABEL} exited cleanly but wrote no output file: {output_path.name}",
        ) from error
