from __future__ import annotations

import json
from pathlib import Path

import allure
import pytest

from cli_envelope.backends.codex import (
    CodexOptions,
    build_base_args,
    codex_structured,
    codex_text,
    resolve_codex_options,
)
from cli_envelope.errors import MalformedEnvelopeError, NonZeroExitError

pytestmark = [
    allure.epic("CLI Runtime"),
    allure.feature("Codex Backend"),
]


def _flag_values(args: list[str], flag: str) -> list[str]:
    return [args[index + 1] for index, value in enumerate(args) if value == flag]


def _options(fake_cli, **env_values: str) -> CodexOptions:
    return CodexOptions(
        codex_path=str(fake_cli.path),
        env=fake_cli.env(**env_values),
        retry_delay_seconds=0.01,
    )


def _output_dir(fake_cli) -> Path:
    argv = fake_cli.argv()
    return Path(_flag_values(argv, "--output-last-message")[0]).parent


def test_resolve_fills_every_default() -> None:
    options = resolve_codex_options()

    assert options.codex_path == "codex"
    assert options.model == "gpt-5.3-codex"
    assert options.timeout_seconds == 180
    assert options.skip_git_repo_check is True
    assert options.sandbox == "danger-full-access"
    assert options.profile == ""
    assert options.config == ()
    assert options.jsonl_events is False
    assert options.image == ()
    assert options.cwd


def test_resolve_preserves_provided_values() -> None:
    options = resolve_codex_options(model="o3", sandbox="read-only", image=["a.png", "b.png"])

    assert options.model == "o3"
    assert options.sandbox == "read-only"
    assert options.image == ("a.png", "b.png")


def test_resolve_rejects_invalid_values() -> None:
    with pytest.raises(ValueError, match="Unsupported codex sandbox"):
        resolve_codex_options(sandbox="none")
    with pytest.raises(ValueError, match="key=value"):
        resolve_codex_options(config=("no-equals-sign",))


def test_base_args_with_defaults(tmp_path: Path) -> None:
    args = build_base_args(resolve_codex_options(cwd=str(tmp_path)))

    assert args == [
        "exec",
        "--skip-git-repo-check",
        "-C",
        str(tmp_path),
        "--model",
        "gpt-5.3-codex",
        "--sandbox",
        "danger-full-access",
    ]


def test_base_args_omit_optional_flags() -> None:
    args = build_base_args(resolve_codex_options(skip_git_repo_check=False))

    for flag in ("--skip-git-repo-check", "--profile", "--config", "--json", "--image"):
        assert flag not in args


def test_base_args_include_optional_flags() -> None:
    args = build_base_args(
        resolve_codex_options(
            profile="my-profile",
            config=("key1=val1", "key2=val2"),
            jsonl_events=True,
            image=("screenshot.png", "diagram.jpg"),
        ),
    )

    assert _flag_values(args, "--profile") == ["my-profile"]
    assert _flag_values(args, "--config") == ["key1=val1", "key2=val2"]
    assert "--json" in args
    assert _flag_values(args, "--image") == ["screenshot.png", "diagram.jpg"]


def test_text_call_returns_output_file_verbatim(fake_cli) -> None:
    text = codex_text("say hi", _options(fake_cli, output="hi there\n"))

    argv = fake_cli.argv()
    assert text == "hi there\n"
    assert argv[0] == "exec"
    assert argv[-1] == "say hi"
    assert argv[-3] == "--output-last-message"
    assert not _output_dir(fake_cli).exists()


def test_structured_call_writes_schema_and_parses_output(fake_cli, tmp_path: Path) -> None:
    schema_copy = tmp_path / "schema-seen.json"
    schema = {"type": "object", "properties": {"answer": {"type": "integer"}}}

    result = codex_structured(
        "answer",
        schema,
        _options(fake_cli, output='{"answer": 42}', schema_copy=str(schema_copy)),
    )

    argv = fake_cli.argv()
    assert result.structured == {"answer": 42}
    assert result.raw == '{"answer": 42}'
    assert json.loads(schema_copy.read_text("utf-8")) == schema
    assert argv.index("--output-schema") < argv.index("--output-last-message")
    assert argv[-1] == "answer"
    assert not _output_dir(fake_cli).exists()


def test_structured_call_rejects_non_json_output(fake_cli) -> None:
    with pytest.raises(MalformedEnvelopeError, match="non-JSON output"):
        codex_structured("q", "{}", _options(fake_cli, output="not json at all"))

    assert not _output_dir(fake_cli).exists()


def test_structured_call_rejects_non_object_output(fake_cli) -> None:
    with pytest.raises(MalformedEnvelopeError, match="non-object JSON"):
        codex_structured("q", "{}", _options(fake_cli, output="[1, 2, 3]"))


def test_missing_output_file_is_malformed(fake_cli) -> None:
    with pytest.raises(MalformedEnvelopeError, match="wrote no output file"):
        codex_text("q", _options(fake_cli))


def test_process_failure_cleans_temp_dir(fake_cli) -> None:
    with pytest.raises(NonZeroExitError, match="sandbox denied"):
        codex_text("q", _options(fake_cli, stderr="sandbox denied", exit_code="2"))

    assert fake_cli.attempts() == 1
    assert not _output_dir(fake_cli).exists()


def test_retry_does_not_read_output_left_by_timed_out_attempt(fake_cli) -> None:
    options = CodexOptions(
        codex_path=str(fake_cli.path),
        env=fake_cli.env(first_output="stale answer", hang_attempts="1"),
        timeout_seconds=0.5,
        retries=1,
        retry_delay_seconds=0.01,
    )

    with pytest.raises(MalformedEnvelopeError, match="wrote no output file"):
        codex_text("q", options)

    assert fake_cli.attempts() == 2


def test_retry_returns_output_of_the_successful_attempt(fake_cli) -> None:
    options = CodexOptions(
        codex_path=str(fake_cli.path),
        env=fake_cli.env(first_output="stale", output="fresh", hang_attempts="1"),
        timeout_seconds=0.5,
        retries=1,
        retry_delay_seconds=0.01,
    )

    assert codex_text("q", options) == "fresh"
