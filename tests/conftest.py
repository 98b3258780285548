"""Shared test fixtures."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path

import pytest

_FAKE_CLI_SOURCE = '''\
import json
import os
import shutil
import sys
import time

argv = sys.argv[1:]
if argv == ["--version"]:
    print(os.environ.get("FAKE_VERSION", "fake-cli 1.0.0"))
    sys.exit(int(os.environ.get("FAKE_VERSION_EXIT_CODE", "0")))

counter_path = os.environ.get("FAKE_COUNTER_PATH")
attempt = 1
if counter_path:
    with open(counter_path, "a", encoding="utf-8") as handle:
        handle.write("attempt\\n")
    with open(counter_path, encoding="utf-8") as handle:
        attempt = len(handle.read().splitlines())

argv_path = os.environ.get("FAKE_ARGV_PATH")
if argv_path:
    with open(argv_path, "w", encoding="utf-8") as handle:
        json.dump(argv, handle)

if attempt == 1 and "--output-last-message" in argv and "FAKE_FIRST_OUTPUT" in os.environ:
    with open(argv[argv.index("--output-last-message") + 1], "w", encoding="utf-8") as handle:
        handle.write(os.environ["FAKE_FIRST_OUTPUT"])

if attempt <= int(os.environ.get("FAKE_HANG_ATTEMPTS", "0")):
    time.sleep(30)

if "--output-schema" in argv and os.environ.get("FAKE_SCHEMA_COPY"):
    shutil.copyfile(argv[argv.index("--output-schema") + 1], os.environ["FAKE_SCHEMA_COPY"])

if "--output-last-message" in argv and "FAKE_OUTPUT" in os.environ:
    with open(argv[argv.index("--output-last-message") + 1], "w", encoding="utf-8") as handle:
        handle.write(os.environ["FAKE_OUTPUT"])

sys.stderr.write(os.environ.get("FAKE_STDERR", ""))
sys.stdout.write(os.environ.get("FAKE_STDOUT", ""))
sys.exit(int(os.environ.get("FAKE_EXIT_CODE", "0")))
'''


@dataclass(slots=True)
class FakeCli:
    """Executable stand-in for the claude/codex tools, driven by FAKE_* variables."""

    path: Path
    workdir: Path

    def env(self, **values: str) -> dict[str, str]:
        env = dict(os.environ)
        env["FAKE_ARGV_PATH"] = str(self.workdir / "argv.json")
        env["FAKE_COUNTER_PATH"] = str(self.workdir / "attempts.txt")
        env.update({f"FAKE_{key.upper()}": value for key, value in values.items()})
        return env

    def argv(self) -> list[str]:
        return json.loads((self.workdir / "argv.json").read_text("utf-8"))

    def attempts(self) -> int:
        counter = self.workdir / "attempts.txt"
        if not counter.exists():
            return 0
        return len(counter.read_text("utf-8").splitlines())


@pytest.fixture()
def fake_cli(tmp_path: Path) -> FakeCli:
    workdir = tmp_path / "fake-cli"
    workdir.mkdir()
    path = workdir / "fake-tool"
    path.write_text(f"#!{sys.executable}\n{_FAKE_CLI_SOURCE}", "utf-8")
    path.chmod(0o755)
    return FakeCli(path=path, workdir=workdir)
