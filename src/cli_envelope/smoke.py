"""Lightweight smoke checks for the external CLI tools."""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass

from cli_envelope.backends import ClaudeCodeOptions, CodexOptions
from cli_envelope.client import create_client
from cli_envelope.errors import CliRunError


@dataclass(slots=True)
class AgentSmokeSpec:
    """One tool smoke-check configuration."""

    tool: str
    executable: str
    model: str | None = None


@dataclass(slots=True)
class AgentSmokeResult:
    """One tool smoke-check result."""

    tool: str
    executable: str
    available: bool
    probe_ok: bool
    run_ok: bool
    skipped_run: bool
    error: str | None
    stdout_preview: str
    stderr_preview: str

    @property
    def ok(self) -> bool:
        return self.available and self.probe_ok and self.run_ok


def run_smoke_checks(
    *,
    specs: list[AgentSmokeSpec],
    prompt: str,
    expect_substring: str,
    timeout_seconds: float,
) -> list[AgentSmokeResult]:
    """Run ``--version`` probe plus one real text call for each configured tool."""

    results: list[AgentSmokeResult] = []
    for spec in specs:
        resolved_executable = shutil.which(spec.executable)
        if resolved_executable is None:
            results.append(
                AgentSmokeResult(
                    tool=spec.tool,
                    executable=spec.executable,
                    available=False,
                    probe_ok=False,
                    run_ok=False,
                    skipped_run=True,
                    error=f"Executable not found in PATH: {spec.executable}",
                    stdout_preview="",
                    stderr_preview="",
                ),
            )
            continue

        probe_ok, probe_error, probe_stdout, probe_stderr = _run_probe(
            executable=resolved_executable,
            timeout_seconds=timeout_seconds,
        )
        if not probe_ok:
            results.append(
                AgentSmokeResult(
                    tool=spec.tool,
                    executable=spec.executable,
                    available=True,
                    probe_ok=False,
                    run_ok=False,
                    skipped_run=True,
                    error=f"{probe_error} (resolved executable: {resolved_executable})",
                    stdout_preview=probe_stdout,
                    stderr_preview=probe_stderr,
                ),
            )
            continue

        run_ok, run_error, run_text = _run_text_call(
            spec=spec,
            resolved_executable=resolved_executable,
            prompt=prompt,
            expect_substring=expect_substring,
            timeout_seconds=timeout_seconds,
        )
        results.append(
            AgentSmokeResult(
                tool=spec.tool,
                executable=spec.executable,
                available=True,
                probe_ok=True,
                run_ok=run_ok,
                skipped_run=False,
                error=run_error,
                stdout_preview=run_text,
                stderr_preview="",
            ),
        )

    return results


def _run_probe(*, executable: str, timeout_seconds: float) -> tuple[bool, str | None, str, str]:
    try:
        completed = subprocess.run(  # noqa: S603
            [executable, "--version"],
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_seconds,
        )
    except subprocess.TimeoutExpired:
        return False, "Probe timed out.", "", ""
    except OSError as error:
        return False, f"Probe failed to start: {error}", "", ""

    stdout = _truncate(completed.stdout)
    stderr = _truncate(completed.stderr)
    if completed.returncode != 0:
        return False, f"Probe exit code={completed.returncode}", stdout, stderr
    return True, None, stdout, stderr


def _run_text_call(
    *,
    spec: AgentSmokeSpec,
    resolved_executable: str,
    prompt: str,
    expect_substring: str,
    timeout_seconds: float,
) -> tuple[bool, str | None, str]:
    kwargs: dict[str, object] = {
        "timeout_seconds": timeout_seconds,
        "options": (
            CodexOptions(codex_path=resolved_executable, retries=0)
            if spec.tool == "codex"
            else ClaudeCodeOptions(claude_path=resolved_executable, retries=0)
        ),
    }
    if spec.model:
        kwargs["model"] = spec.model
    client = create_client(spec.tool, **kwargs)
    try:
        text = client.text(prompt).text
    except CliRunError as error:
        return False, str(error), ""
    if expect_substring not in text:
        return (
            False,
            f"Text output missing expected substring: {expect_substring!r}",
            _truncate(text),
        )
    return True, None, _truncate(text)


def _truncate(value: str, *, limit: int = 240) -> str:
    compact = value.strip().replace("\n", " ")
    if len(compact) <= limit:
        return compact
    return compact[:limit] + "..."
