"""Normalization of backend result envelopes into text or structured values."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from cli_envelope.errors import ErrorEnvelopeError, MalformedEnvelopeError

_PREVIEW_CHARS = 200


@dataclass(frozen=True, slots=True)
class ResultEnvelope:
    """Canonical view of the JSON object a backend prints for one invocation.

    Fields the backend did not send stay ``None``; ``raw`` keeps the full object.
    """

    type: str | None = None
    subtype: str | None = None
    is_error: bool = False
    result: str | None = None
    structured_output: Any = None
    total_cost_usd: float | None = None
    stop_reason: str | None = None
    session_id: str | None = None
    permission_denials: list[Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> ResultEnvelope:
        cost = payload.get("total_cost_usd")
        denials = payload.get("permission_denials")
        return cls(
            type=_optional_str(payload.get("type")),
            subtype=_optional_str(payload.get("subtype")),
            is_error=payload.get("is_error") is True,
            result=_optional_str(payload.get("result")),
            structured_output=payload.get("structured_output"),
            total_cost_usd=(
                float(cost)
                if isinstance(cost, int | float) and not isinstance(cost, bool)
                else None
            ),
            stop_reason=_optional_str(payload.get("stop_reason")),
            session_id=_optional_str(payload.get("session_id")),
            permission_denials=list(denials) if isinstance(denials, list) else None,
            raw=dict(payload),
        )


def parse_text_envelope(stdout: str, *, label: str) -> str:
    """Return the ``result`` text of a JSON envelope, or raw stdout when it is not one.

    The raw fallback covers tools configured for plain-text output. An envelope
    object flagged ``is_error`` still fails.
    """

    payload = _try_load_object(stdout)
    if payload is None:
        return stdout
    envelope = ResultEnvelope.from_payload(payload)
    _raise_for_error(envelope, label=label)
    if envelope.result is None:
        raise MalformedEnvelopeError(f"{label} envelope has no result text")
    return envelope.result


def parse_structured_envelope(stdout: str, *, label: str) -> ResultEnvelope:
    """Strictly parse a structured-call envelope; error envelopes raise."""

    envelope = ResultEnvelope.from_payload(load_json_object(stdout, label=label))
    _raise_for_error(envelope, label=label)
    if "structured_output" not in envelope.raw:
        raise MalformedEnvelopeError(f"{label} envelope has no structured_output")
    return envelope


def load_json_object(raw: str, *, label: str) -> dict[str, Any]:
    """Decode ``raw`` as a JSON object or raise ``MalformedEnvelopeError``."""

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as error:
        raise MalformedEnvelopeError(
            f"{label} returned non-JSON output. "
            f"First {_PREVIEW_CHARS} chars:\n{raw[:_PREVIEW_CHARS]}",
        ) from error
    if not isinstance(parsed, dict):
        raise MalformedEnvelopeError(
            f"{label} returned non-object JSON ({type(parsed).__name__})",
        )
    return parsed


def _try_load_object(raw: str) -> dict[str, Any] | None:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    return parsed


def _raise_for_error(envelope: ResultEnvelope, *, label: str) -> None:
    if not envelope.is_error:
        return
    subtype = envelope.subtype or "unknown"
    raise ErrorEnvelopeError(
        f"{label} error envelope: {subtype}",
        subtype=subtype,
        envelope=envelope.raw,
    )


def _optional_str(value: object) -> str | None:
    return value if isinstance(value, str) else None
