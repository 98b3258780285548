"""Language-model provider shape over ``CliClient``.

The CLI tools run as one-shot batch calls, so streaming performs the full
call first and then yields the whole text as one delta followed by ``finish``.
"""

from __future__ import annotations

import json
from collections.abc import Iterator, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from cli_envelope.client import CliClient, create_client

FINISH_REASON_STOP = "stop"


@dataclass(frozen=True, slots=True)
class Usage:
    prompt_tokens: int = 0
    completion_tokens: int = 0


@dataclass(frozen=True, slots=True)
class RawCall:
    raw_prompt: str
    raw_settings: dict[str, Any]


@dataclass(frozen=True, slots=True)
class GenerateResult:
    text: str
    finish_reason: str
    usage: Usage
    raw_call: RawCall


@dataclass(slots=True)
class StreamResult:
    stream: Iterator[dict[str, Any]]
    raw_call: RawCall
    warnings: list[str] = field(default_factory=list)


def prompt_to_text(prompt: Sequence[Mapping[str, Any]]) -> str:
    """Flatten chat messages into ``role: text`` lines; non-text parts are dropped."""

    lines: list[str] = []
    for message in prompt:
        role = message.get("role", "")
        content = message.get("content")
        if isinstance(content, str):
            text = content
        elif isinstance(content, list):
            text = "".join(
                part["text"]
                for part in content
                if isinstance(part, Mapping)
                and part.get("type") == "text"
                and isinstance(part.get("text"), str)
            )
        else:
            continue
        if text:
            lines.append(f"{role}: {text}")
    return "\n".join(lines)


class CliLanguageModel:
    """Provider-compatible model backed by a local CLI tool."""

    specification_version = "v1"
    default_object_generation_mode = "json"
    supports_structured_outputs = True

    def __init__(self, client: CliClient) -> None:
        self._client = client
        self.provider = client.tool
        self.model_id = client.model

    def do_generate(
        self,
        prompt: Sequence[Mapping[str, Any]],
        mode: Mapping[str, Any] | None = None,
    ) -> GenerateResult:
        resolved_mode = dict(mode or {"type": "regular"})
        prompt_text = prompt_to_text(prompt)
        raw_call = RawCall(raw_prompt=prompt_text, raw_settings={"mode": resolved_mode})

        if resolved_mode.get("type") == "object-json":
            schema = resolved_mode.get("schema")
            if not schema:
                raise ValueError("object-json mode requires a JSON schema")
            result = self._client.structured(prompt_text, schema)
            text = json.dumps(result.structured)
        else:
            text = self._client.text(prompt_text).text

        return GenerateResult(
            text=text,
            finish_reason=FINISH_REASON_STOP,
            usage=Usage(),
            raw_call=raw_call,
        )

    def do_stream(
        self,
        prompt: Sequence[Mapping[str, Any]],
        mode: Mapping[str, Any] | None = None,
    ) -> StreamResult:
        result = self.do_generate(prompt, mode)
        return StreamResult(stream=_single_chunk_stream(result), raw_call=result.raw_call)


def cli_model(
    tool: str,
    model: str,
    client_options: Mapping[str, Any] | None = None,
) -> CliLanguageModel:
    return CliLanguageModel(create_client(tool, model=model, **dict(client_options or {})))


def claude_code(model: str, **client_options: Any) -> CliLanguageModel:
    return cli_model("claude-code", model, client_options)


def codex(model: str, **client_options: Any) -> CliLanguageModel:
    return cli_model("codex", model, client_options)


def _single_chunk_stream(result: GenerateResult) -> Iterator[dict[str, Any]]:
    if result.text:
        yield {"type": "text-delta", "text_delta": result.text}
    yield {"type": "finish", "finish_reason": result.finish_reason, "usage": result.usage}
