from __future__ import annotations

import dataclasses
import json

import allure
import pytest

from cli_envelope.backends import ClaudeCodeOptions, CodexOptions
from cli_envelope.client import (
    CliClient,
    StructuredResult,
    TextResult,
    create_claude_code_client,
    create_client,
    create_client_from_settings,
    create_codex_client,
)
from cli_envelope.config import ClaudeSettings, CodexSettings, Settings

pytestmark = [
    allure.epic("CLI Runtime"),
    allure.feature("Client"),
]


def test_claude_code_factory_defaults() -> None:
    client = create_claude_code_client()

    assert client.tool == "claude-code"
    assert client.model == "opus"
    assert isinstance(client.options, ClaudeCodeOptions)
    assert client.options.max_budget_usd == 5
    assert client.options.timeout_seconds == 120


def test_codex_factory_defaults() -> None:
    client = create_codex_client()

    assert client.tool == "codex"
    assert client.model == "gpt-5.3-codex"
    assert isinstance(client.options, CodexOptions)
    assert client.options.timeout_seconds == 180


def test_factory_arguments_override_options() -> None:
    client = create_claude_code_client(
        model="sonnet",
        max_budget_usd=1.5,
        options=ClaudeCodeOptions(system_prompt="be brief"),
    )

    assert client.model == "sonnet"
    assert client.options.max_budget_usd == 1.5
    assert client.options.system_prompt == "be brief"


def test_create_client_dispatches_by_tool() -> None:
    assert create_client("claude-code").tool == "claude-code"
    assert create_client("codex", model="o3").model == "o3"


def test_create_client_rejects_unknown_tool() -> None:
    with pytest.raises(ValueError, match="Unsupported CLI tool"):
        create_client("gemini")


def test_client_is_immutable() -> None:
    client = create_codex_client()

    with pytest.raises(dataclasses.FrozenInstanceError):
        client.model = "other"  # type: ignore[misc]


def test_claude_client_structured_call(fake_cli) -> None:
    envelope = {"result": "done", "structured_output": {"answer": 42}}
    client = create_claude_code_client(
        options=ClaudeCodeOptions(
            claude_path=str(fake_cli.path),
            env=fake_cli.env(stdout=json.dumps(envelope)),
        ),
    )

    result = client.structured("q", {"type": "object"})

    assert isinstance(result, StructuredResult)
    assert result.structured == {"answer": 42}
    argv = fake_cli.argv()
    assert json.loads(argv[argv.index("--json-schema") + 1]) == {"type": "object"}


def test_codex_client_text_and_structured_calls(fake_cli) -> None:
    client = create_codex_client(
        options=CodexOptions(
            codex_path=str(fake_cli.path),
            env=fake_cli.env(output='{"answer": 7}'),
        ),
    )

    text = client.text("q")
    structured = client.structured("q", {"type": "object"})

    assert text == TextResult(text='{"answer": 7}')
    assert structured.structured == {"answer": 7}


def test_client_from_settings_selects_backend() -> None:
    settings = Settings(
        tool="codex",
        model="o3",
        timeout_seconds=30,
        retries=2,
        codex=CodexSettings(path="/opt/codex", sandbox="read-only", profile="ci"),
    )

    client = create_client_from_settings(settings)

    assert isinstance(client, CliClient)
    assert client.tool == "codex"
    assert client.model == "o3"
    assert client.options.codex_path == "/opt/codex"
    assert client.options.sandbox == "read-only"
    assert client.options.profile == "ci"
    assert client.options.timeout_seconds == 30
    assert client.options.retries == 2


def test_client_from_settings_uses_backend_defaults() -> None:
    settings = Settings(claude=ClaudeSettings(path="/opt/claude", max_budget_usd=2.0))

    client = create_client_from_settings(settings)

    assert client.tool == "claude-code"
    assert client.model == "opus"
    assert client.options.claude_path == "/opt/claude"
    assert client.options.max_budget_usd == 2.0
    assert client.options.timeout_seconds == 120


def test_client_from_settings_validates_first() -> None:
    with pytest.raises(ValueError, match="CLI_ENVELOPE_TOOL"):
        create_client_from_settings(Settings(tool="gemini"))


def test_factories_keep_option_values_when_arguments_are_omitted() -> None:
    claude = create_claude_code_client(
        options=ClaudeCodeOptions(model="sonnet", timeout_seconds=30, max_budget_usd=0.5),
    )
    codex = create_codex_client(options=CodexOptions(model="o3", timeout_seconds=45))

    assert claude.model == "sonnet"
    assert claude.options.timeout_seconds == 30
    assert claude.options.max_budget_usd == 0.5
    assert codex.model == "o3"
    assert codex.options.timeout_seconds == 45


def test_string_schema_is_passed_through_unchanged(fake_cli) -> None:
    schema_text = '{"type": "object", "required": ["answer"]}'
    envelope = {"result": "done", "structured_output": {"answer": 1}}
    client = create_claude_code_client(
        options=ClaudeCodeOptions(
            claude_path=str(fake_cli.path),
            env=fake_cli.env(stdout=json.dumps(envelope)),
        ),
    )

    client.structured("q", schema_text)

    argv = fake_cli.argv()
    assert argv[argv.index("--json-schema") + 1] == schema_text
