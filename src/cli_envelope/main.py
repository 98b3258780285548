"""CLI entrypoint for cli-envelope."""

import logging
from pathlib import Path

import rich_click as click

from cli_envelope import __version__
from cli_envelope.controllers import (
    EnvelopeCliController,
    SmokeCommand,
    StructuredCommand,
    TextCommand,
)
from cli_envelope.errors import CliRunError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = EnvelopeCliController()
_TOOL_CHOICE = click.Choice(["claude-code", "codex"], case_sensitive=False)


@click.group()
@click.version_option(version=__version__, prog_name="cli-envelope")
@click.option("--verbose", is_flag=True, default=False, help="Enable debug logging.")
def cli_envelope(verbose: bool) -> None:
    """Call local AI command-line tools as one-shot text or structured requests."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli_envelope.command("text")
@click.argument("prompt")
@click.option("--tool", type=_TOOL_CHOICE, default=None, help="Defaults to CLI_ENVELOPE_TOOL.")
@click.option("--model", default=None, help="Model id; defaults to CLI_ENVELOPE_MODEL.")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-attempt timeout; defaults to CLI_ENVELOPE_TIMEOUT_SECONDS.",
)
def text(prompt: str, tool: str | None, model: str | None, timeout_seconds: float | None) -> None:
    """Run one text call and print the result."""

    _emit_lines(
        _guarded(
            CONTROLLER.text,
            TextCommand(
                prompt=prompt,
                tool=tool.lower() if tool else None,
                model=model,
                timeout_seconds=timeout_seconds,
            ),
        ),
    )


@cli_envelope.command("structured")
@click.argument("prompt")
@click.option(
    "--schema",
    "schema_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    required=True,
    help="JSON Schema file the output must follow.",
)
@click.option("--tool", type=_TOOL_CHOICE, default=None, help="Defaults to CLI_ENVELOPE_TOOL.")
@click.option("--model", default=None, help="Model id; defaults to CLI_ENVELOPE_MODEL.")
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Per-attempt timeout; defaults to CLI_ENVELOPE_TIMEOUT_SECONDS.",
)
def structured(
    prompt: str,
    schema_path: Path,
    tool: str | None,
    model: str | None,
    timeout_seconds: float | None,
) -> None:
    """Run one structured call and print the result as JSON."""

    _emit_lines(
        _guarded(
            CONTROLLER.structured,
            StructuredCommand(
                prompt=prompt,
                schema_path=schema_path,
                tool=tool.lower() if tool else None,
                model=model,
                timeout_seconds=timeout_seconds,
            ),
        ),
    )


@cli_envelope.command("smoke")
@click.option(
    "--tool",
    "tools",
    multiple=True,
    type=_TOOL_CHOICE,
    help="Tool to check. Repeat to check several; defaults to CLI_ENVELOPE_TOOL.",
)
@click.option("--model", default=None, help="Optional explicit model id.")
@click.option(
    "--prompt",
    default="Reply with exactly: OK",
    show_default=True,
    help="Synthetic prompt used for the run check.",
)
@click.option(
    "--expect-substring",
    default="OK",
    show_default=True,
    help="Substring required in the text result.",
)
@click.option(
    "--timeout-seconds",
    type=click.FloatRange(min=1, max=600),
    default=60,
    show_default=True,
    help="Timeout for probe and run.",
)
def smoke(
    tools: tuple[str, ...],
    model: str | None,
    prompt: str,
    expect_substring: str,
    timeout_seconds: float,
) -> None:
    """Check that the configured CLI tools are installed and answer a prompt."""

    result = _guarded(
        CONTROLLER.smoke,
        SmokeCommand(
            tools=tuple(tool.lower() for tool in tools),
            model=model,
            prompt=prompt,
            expect_substring=expect_substring,
            timeout_seconds=timeout_seconds,
        ),
    )
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException("CLI smoke check failed.")


def _guarded(handler, command):
    try:
        return handler(command)
    except (CliRunError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    cli_envelope()
