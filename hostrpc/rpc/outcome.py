"""Outcome of one endpoint invocation and its wire encoding.

Wire shapes:

    {"_tag": "Success", "value": ...}
    {"_tag": "Failure", "cause": {"_tag": "Fail", "error": {...}}}
    {"_tag": "Failure", "cause": {"_tag": "Die", "defect": {"_tag": ..., "message": ...}}}
    {"_tag": "Failure", "cause": {"_tag": "Empty"}}

Defect payloads are sanitized before they are wrapped: no tracebacks, no
source paths, nothing beyond a discriminant, a message and declared fields.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, TypeVar, Union

from pydantic import ValidationError

from hostrpc.rpc.shapes import ErrorShape, SuccessShape, TaggedError
from hostrpc.utils.exceptions import (
    HostRpcError,
    RemoteDefectError,
    WireDecodeError,
    sanitize_error_message,
    strip_source_locations,
)

R = TypeVar("R")


@dataclass(frozen=True, slots=True)
class Success:
    value: Any


@dataclass(frozen=True, slots=True)
class Failure:
    error: Any


@dataclass(frozen=True, slots=True)
class Defect:
    defect: dict[str, Any]

    @classmethod
    def from_value(cls, value: Any, *, redact: bool = True) -> Defect:
        return cls(sanitize_defect(value, redact=redact))


@dataclass(frozen=True, slots=True)
class Empty:
    """Interrupted call, or a failure with no information."""


Outcome = Union[Success, Failure, Defect, Empty]

UNKNOWN_DEFECT = "UnknownDefect"

# Never copied from an untyped defect object onto the wire.
_INTERNAL_KEYS = frozenset({
    "stack",
    "traceback",
    "__traceback__",
    "__cause__",
    "__context__",
    "cause",
    "file",
    "filename",
    "path",
    "lineno",
    "line",
    "frames",
    "locals",
})

_SCALARS = (str, int, float, bool, type(None))


def _clean(message: str, redact: bool) -> str:
    return sanitize_error_message(message) if redact else strip_source_locations(message)


def _clean_value(value: Any, redact: bool) -> Any:
    if isinstance(value, str):
        return _clean(value, redact)
    if isinstance(value, Mapping):
        return {key: _clean_value(item, redact) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clean_value(item, redact) for item in value]
    return value


def _clean_fields(data: Mapping[str, Any], redact: bool) -> dict[str, Any]:
    """Untyped tagged objects: scalar fields only, internal keys dropped."""
    fields: dict[str, Any] = {}
    for key, value in data.items():
        if not isinstance(key, str) or key == "_tag" or key in _INTERNAL_KEYS:
            continue
        if isinstance(value, str):
            fields[key] = _clean(value, redact)
        elif isinstance(value, _SCALARS):
            fields[key] = value
    return fields


def sanitize_defect(value: Any, *, redact: bool = True) -> dict[str, Any]:
    """Reduce an arbitrary defect to a wire-safe ``{"_tag", "message", ...}`` object."""
    if isinstance(value, TaggedError):
        # declared fields are kept whole; only their strings are scrubbed
        fields = {k: v for k, v in value.to_wire().items() if k != "_tag"}
        return {"_tag": value._tag, **_clean_value(fields, redact)}
    if isinstance(value, BaseException):
        tag = getattr(value, "_tag", None)
        if not isinstance(tag, str):
            tag = type(value).__name__
        message = value.message if isinstance(value, HostRpcError) else str(value)
        return {"_tag": tag, "message": _clean(message, redact)}
    if isinstance(value, Mapping):
        tag = value.get("_tag")
        if isinstance(tag, str):
            return {"_tag": tag, **_clean_fields(value, redact)}
        message = value.get("message")
        if isinstance(message, str):
            return {"_tag": "Error", "message": _clean(message, redact)}
        return {"_tag": UNKNOWN_DEFECT, "message": "Unknown defect"}
    if isinstance(value, _SCALARS):
        return {"_tag": UNKNOWN_DEFECT, "message": _clean(str(value), redact)}
    tag = getattr(value, "_tag", None)
    if isinstance(tag, str):
        message = getattr(value, "message", None)
        defect = {"_tag": tag}
        if isinstance(message, str):
            defect["message"] = _clean(message, redact)
        return defect
    return {"_tag": UNKNOWN_DEFECT, "message": type(value).__name__}


def encode_outcome(
    outcome: Outcome,
    success: SuccessShape | None = None,
    error: ErrorShape | None = None,
) -> dict[str, Any]:
    """Encode an outcome into its wire envelope. Success values are validated against ``success``."""
    if isinstance(outcome, Success):
        value = success.encode(outcome.value) if success is not None else outcome.value
        return {"_tag": "Success", "value": value}
    if isinstance(outcome, Failure):
        err = outcome.error
        if isinstance(err, TaggedError):
            encoded = error.encode(err) if error is not None else err.to_wire()
        else:
            encoded = err
        return {"_tag": "Failure", "cause": {"_tag": "Fail", "error": encoded}}
    if isinstance(outcome, Defect):
        return {"_tag": "Failure", "cause": {"_tag": "Die", "defect": dict(outcome.defect)}}
    if isinstance(outcome, Empty):
        return {"_tag": "Failure", "cause": {"_tag": "Empty"}}
    raise TypeError(f"Not an outcome: {outcome!r}")


def decode_outcome(
    wire: Any,
    success: SuccessShape | None = None,
    error: ErrorShape | None = None,
) -> Outcome:
    """Decode a wire envelope. Raises WireDecodeError for anything that is not a valid encoding."""
    if not isinstance(wire, Mapping):
        raise WireDecodeError(f"Outcome must be an object, got {type(wire).__name__}")
    tag = wire.get("_tag")
    if tag == "Success":
        if "value" not in wire:
            raise WireDecodeError("Success outcome has no value")
        if success is None:
            return Success(wire["value"])
        try:
            return Success(success.decode(wire["value"]))
        except ValidationError as exc:
            raise WireDecodeError(f"Success value does not match its shape: {exc.error_count()} error(s)") from exc
    if tag != "Failure":
        raise WireDecodeError(f"Unknown outcome tag: {tag!r}")

    cause = wire.get("cause")
    if not isinstance(cause, Mapping):
        raise WireDecodeError("Failure outcome has no cause")
    cause_tag = cause.get("_tag")
    if cause_tag == "Fail":
        if "error" not in cause:
            raise WireDecodeError("Fail cause has no error")
        data = cause["error"]
        return Failure(error.decode(data) if error else data)
    if cause_tag == "Die":
        defect = cause.get("defect")
        if isinstance(defect, Mapping) and isinstance(defect.get("_tag"), str):
            return Defect(dict(defect))
        return Defect(sanitize_defect(defect))
    if cause_tag == "Empty":
        return Empty()
    raise WireDecodeError(f"Unknown cause tag: {cause_tag!r}")


def exit_json_schema(success: SuccessShape, error: ErrorShape) -> dict[str, Any]:
    """JSON schema of every envelope an endpoint can return."""
    success_schema = success.json_schema()
    error_schema = error.json_schema()
    defs: dict[str, Any] = {}
    for schema in (success_schema, error_schema):
        defs.update(schema.pop("$defs", {}))
        for variant in schema.get("oneOf", ()):
            defs.update(variant.pop("$defs", {}))

    def envelope(tag: str, **properties: Any) -> dict[str, Any]:
        return {
            "type": "object",
            "properties": {"_tag": {"const": tag}, **properties},
            "required": ["_tag", *properties],
        }

    defect_schema = {
        "type": "object",
        "properties": {"_tag": {"type": "string"}, "message": {"type": "string"}},
        "required": ["_tag"],
    }
    causes = [envelope("Die", defect=defect_schema), envelope("Empty")]
    if error:
        causes.insert(0, envelope("Fail", error=error_schema))
    schema: dict[str, Any] = {
        "oneOf": [
            envelope("Success", value=success_schema),
            envelope("Failure", cause={"oneOf": causes}),
        ]
    }
    if defs:
        schema["$defs"] = defs
    return schema


def is_success(outcome: Outcome) -> bool:
    return isinstance(outcome, Success)


def is_failure(outcome: Outcome) -> bool:
    return not isinstance(outcome, Success)


def get_value_or_none(outcome: Outcome) -> Any:
    return outcome.value if isinstance(outcome, Success) else None


def get_failure_or_none(outcome: Outcome) -> Any:
    """Typed failure of a Fail outcome; None for successes, defects and empty causes."""
    return outcome.error if isinstance(outcome, Failure) else None


def get_value_or_raise(outcome: Outcome) -> Any:
    """Unwrap a success. Typed failures are raised as themselves, defects as RemoteDefectError."""
    if isinstance(outcome, Success):
        return outcome.value
    if isinstance(outcome, Failure):
        if isinstance(outcome.error, BaseException):
            raise outcome.error
        raise RemoteDefectError({"_tag": "Fail", "message": repr(outcome.error)})
    if isinstance(outcome, Defect):
        raise RemoteDefectError(outcome.defect)
    raise RemoteDefectError({"_tag": "Empty", "message": "Call was interrupted"})


def match_outcome(
    outcome: Outcome,
    *,
    on_success: Callable[[Any], R],
    on_failure: Callable[[Any], R],
    on_defect: Callable[[dict[str, Any]], R] | None = None,
    on_empty: Callable[[], R] | None = None,
) -> R:
    """Dispatch on the outcome variant. Defects and empty causes fall back to ``on_failure``."""
    if isinstance(outcome, Success):
        return on_success(outcome.value)
    if isinstance(outcome, Failure):
        return on_failure(outcome.error)
    if isinstance(outcome, Defect):
        return on_defect(outcome.defect) if on_defect else on_failure(outcome.defect)
    return on_empty() if on_empty else on_failure(None)
