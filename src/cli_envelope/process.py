"""Subprocess supervision and retry policy for CLI backends."""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import IO, TypeVar

from cli_envelope.errors import (
    BufferExceededError,
    CliRunError,
    NonZeroExitError,
    ProcessTimeoutError,
    SpawnFailedError,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 128 * 1024 * 1024
GRACEFUL_KILL_SECONDS = 2.0
_POLL_INTERVAL_SECONDS = 0.05
_READ_CHUNK_BYTES = 64 * 1024
_READER_JOIN_SECONDS = 2.0

T = TypeVar("T")


class KillStage(str, Enum):
    """Timeout escalation state of one supervised process."""

    RUNNING = "running"
    TERMINATE_SENT = "terminate_sent"
    KILL_SENT = "kill_sent"
    REAPED = "reaped"


@dataclass(slots=True)
class ProcessOutput:
    """Buffered output of a process that exited with code zero."""

    stdout: str
    stderr: str


@dataclass(slots=True)
class KillTimer:
    """Two-stage timeout escalation for one child process.

    ``running -> terminate_sent -> kill_sent -> reaped``. The ``timed_out`` and
    ``force_killed`` flags survive reaping so the failure classifier reads them
    instead of guessing from the exit signal.
    """

    process: subprocess.Popen[bytes]
    timeout_seconds: float
    label: str
    grace_seconds: float = GRACEFUL_KILL_SECONDS
    stage: KillStage = KillStage.RUNNING
    timed_out: bool = False
    force_killed: bool = False
    _deadline: float = field(default=0.0, repr=False)

    def start(self) -> None:
        self._deadline = time.monotonic() + self.timeout_seconds

    def tick(self, now: float) -> None:
        """Advance the escalation when the current deadline has passed."""

        if now < self._deadline:
            return
        if self.stage is KillStage.RUNNING:
            logger.warning(
                "%s exceeded %.1fs timeout; sending SIGTERM",
                self.label,
                self.timeout_seconds,
            )
            _signal_group(self.process, signal.SIGTERM)
            self.stage = KillStage.TERMINATE_SENT
            self.timed_out = True
            self._deadline = now + self.grace_seconds
        elif self.stage is KillStage.TERMINATE_SENT:
            logger.warning(
                "%s still running %.1fs after SIGTERM; sending SIGKILL",
                self.label,
                self.grace_seconds,
            )
            _signal_group(self.process, signal.SIGKILL)
            self.stage = KillStage.KILL_SENT
            self.force_killed = True

    def reap(self) -> None:
        self.stage = KillStage.REAPED


class _OutputCapture:
    """Drain stdout/stderr on reader threads under one shared byte cap."""

    def __init__(self, *, limit_bytes: int) -> None:
        self._limit_bytes = limit_bytes
        self._lock = threading.Lock()
        self._total = 0
        self._chunks: dict[str, list[bytes]] = {"stdout": [], "stderr": []}
        self._threads: list[threading.Thread] = []
        self.exceeded = threading.Event()

    def attach(self, name: str, stream: IO[bytes]) -> None:
        thread = threading.Thread(
            target=self._drain,
            args=(name, stream),
            name=f"cli-envelope-{name}",
            daemon=True,
        )
        self._threads.append(thread)
        thread.start()

    def join(self) -> bool:
        """Wait for both readers; ``False`` when one is still blocked on its pipe."""

        deadline = time.monotonic() + _READER_JOIN_SECONDS
        for thread in self._threads:
            thread.join(timeout=max(0.0, deadline - time.monotonic()))
        return not any(thread.is_alive() for thread in self._threads)

    def text(self, name: str) -> str:
        with self._lock:
            return b"".join(self._chunks[name]).decode("utf-8", errors="replace")

    def _drain(self, name: str, stream: IO[bytes]) -> None:
        read = getattr(stream, "read1", stream.read)
        while True:
            try:
                chunk = read(_READ_CHUNK_BYTES)
            except (OSError, ValueError):
                # pipe closed by cleanup
                return
            if not chunk:
                return
            with self._lock:
                if self.exceeded.is_set():
                    continue
                self._total += len(chunk)
                if self._total > self._limit_bytes:
                    self.exceeded.set()
                    continue
                self._chunks[name].append(chunk)


def run_process(  # noqa: PLR0913
    *,
    executable: str,
    args: Sequence[str],
    timeout_seconds: float,
    cwd: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
    grace_seconds: float = GRACEFUL_KILL_SECONDS,
    label: str | None = None,
) -> ProcessOutput:
    """Run one command to completion and return its buffered output.

    Raises ``SpawnFailedError``, ``BufferExceededError``, ``ProcessTimeoutError``
    or ``NonZeroExitError``. Exactly one child process is started in its own
    session; it is reaped, and anything left in its process group is killed,
    before this function returns or raises.
    """

    name = label or Path(executable).name
    logger.debug(
        "Starting %s: executable=%s args=%d timeout=%.1fs",
        name,
        executable,
        len(args),
        timeout_seconds,
    )
    try:
        process = subprocess.Popen(  # noqa: S603
            [executable, *args],
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except FileNotFoundError as error:
        raise SpawnFailedError(f"{name} CLI not found: {executable}") from error
    except OSError as error:
        raise SpawnFailedError(f"{name} CLI failed to start: {error}") from error

    capture = _OutputCapture(limit_bytes=max_output_bytes)
    timer = KillTimer(
        process=process,
        timeout_seconds=timeout_seconds,
        grace_seconds=grace_seconds,
        label=name,
    )
    with _supervised(process, capture, name):
        timer.start()
        while process.poll() is None:
            if capture.exceeded.is_set():
                logger.warning("%s output exceeded %d bytes; killing", name, max_output_bytes)
                _signal_group(process, signal.SIGKILL)
                process.wait()
                break
            timer.tick(time.monotonic())
            capture.exceeded.wait(_POLL_INTERVAL_SECONDS)
        timer.reap()

    if capture.exceeded.is_set():
        raise BufferExceededError(
            f"{name} CLI output exceeded {max_output_bytes} bytes",
            limit_bytes=max_output_bytes,
        )

    stdout = capture.text("stdout")
    stderr = capture.text("stderr")
    if process.returncode == 0:
        return ProcessOutput(stdout=stdout, stderr=stderr)
    raise _exit_failure(
        name=name,
        returncode=process.returncode,
        stdout=stdout,
        stderr=stderr,
        timer=timer,
    )


def run_with_retries(
    attempt: Callable[[], T],
    *,
    retries: int,
    retry_delay_seconds: float,
    label: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``attempt`` up to ``1 + retries`` times.

    Only errors flagged ``transient`` are retried, after
    ``retry_delay_seconds * attempt_number``. The last error is re-raised as is.
    """

    attempts = 1 + max(0, retries)
    for attempt_number in range(1, attempts + 1):
        try:
            return attempt()
        except CliRunError as error:
            if not error.transient or attempt_number == attempts:
                raise
            delay = retry_delay_seconds * attempt_number
            logger.warning(
                "%s attempt %d/%d failed (%s); retrying in %.2fs",
                label,
                attempt_number,
                attempts,
                type(error).__name__,
                delay,
            )
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover


@contextmanager
def _supervised(
    process: subprocess.Popen[bytes],
    capture: _OutputCapture,
    name: str,
) -> Iterator[None]:
    if process.stdout is not None:
        capture.attach("stdout", process.stdout)
    if process.stderr is not None:
        capture.attach("stderr", process.stderr)
    try:
        yield
    finally:
        # the group outlives a reaped leader while any descendant is still in it
        _signal_group(process, signal.SIGKILL)
        process.wait()
        if capture.join():
            for stream in (process.stdout, process.stderr):
                if stream is not None:
                    stream.close()
        else:
            logger.warning("%s output pipes still held open after kill; leaving readers", name)


def _exit_failure(
    *,
    name: str,
    returncode: int,
    stdout: str,
    stderr: str,
    timer: KillTimer,
) -> NonZeroExitError:
    exit_code, signal_name = _split_returncode(returncode)
    diagnostics = (stderr or stdout).strip()
    code_text = "?" if exit_code is None else str(exit_code)
    if timer.timed_out:
        how = "killed" if timer.force_killed else "terminated"
        return ProcessTimeoutError(
            f"{name} CLI timed out after {timer.timeout_seconds:g}s and was {how} "
            f"(code={code_text}, signal={signal_name or '-'}): {diagnostics}",
            exit_code=exit_code,
            signal=signal_name,
            stdout=stdout,
            stderr=stderr,
            timed_out=True,
            force_killed=timer.force_killed,
        )
    return NonZeroExitError(
        f"{name} CLI failed (code={code_text}, signal={signal_name or '-'}): {diagnostics}",
        exit_code=exit_code,
        signal=signal_name,
        stdout=stdout,
        stderr=stderr,
    )


def _split_returncode(returncode: int) -> tuple[int | None, str | None]:
    if returncode >= 0:
        return returncode, None
    try:
        return None, signal.Signals(-returncode).name
    except ValueError:
        return None, f"SIG{-returncode}"


def _signal_group(process: subprocess.Popen[bytes], signum: int) -> None:
    """Signal the child and every descendant that stayed in its session."""

    try:
        os.killpg(process.pid, signum)
    except (ProcessLookupError, PermissionError):
        return
