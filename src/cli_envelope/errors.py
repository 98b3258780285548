"""Failure taxonomy for CLI backend invocations."""

from __future__ import annotations

from typing import Any


class CliRunError(RuntimeError):
    """Backend invocation error with retryability hint."""

    def __init__(self, message: str, *, transient: bool = False) -> None:
        super().__init__(message)
        self.transient = transient


class SpawnFailedError(CliRunError):
    """Executable is missing or could not be started."""


class NonZeroExitError(CliRunError):
    """Process exited with a non-zero code or was terminated by a signal."""

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        *,
        exit_code: int | None,
        signal: str | None,
        stdout: str,
        stderr: str,
        timed_out: bool = False,
        force_killed: bool = False,
    ) -> None:
        super().__init__(message, transient=timed_out and not force_killed)
        self.exit_code = exit_code
        self.signal = signal
        self.stdout = stdout
        self.stderr = stderr
        self.timed_out = timed_out
        self.force_killed = force_killed

    @property
    def diagnostics(self) -> str:
        return self.stderr or self.stdout


class ProcessTimeoutError(NonZeroExitError):
    """Process was stopped by the timeout escalation.

    Retryable only when the process exited after the graceful terminate signal.
    A process that had to be force-killed is reported with ``transient=False``.
    """


class BufferExceededError(CliRunError):
    """Captured output grew past the configured cap; the process was killed."""

    def __init__(self, message: str, *, limit_bytes: int) -> None:
        super().__init__(message)
        self.limit_bytes = limit_bytes


class MalformedEnvelopeError(CliRunError):
    """Backend output is not the JSON object a structured call requires."""


class ErrorEnvelopeError(CliRunError):
    """Backend reported its own failure through the result envelope."""

    def __init__(self, message: str, *, subtype: str, envelope: dict[str, Any]) -> None:
        super().__init__(message)
        self.subtype = subtype
        self.envelope = envelope
