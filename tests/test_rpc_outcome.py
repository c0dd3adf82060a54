import json
from pathlib import Path
from typing import Any

import pytest

from hostrpc.rpc.outcome import (
    Defect,
    Empty,
    Failure,
    Success,
    decode_outcome,
    encode_outcome,
    exit_json_schema,
    get_failure_or_none,
    get_value_or_none,
    get_value_or_raise,
    is_failure,
    is_success,
    match_outcome,
    sanitize_defect,
)
from hostrpc.rpc.shapes import ErrorShape, SuccessShape, TaggedError
from hostrpc.utils.exceptions import RemoteDefectError, WireDecodeError

GOLDEN = Path(__file__).parent / "golden"


class EmptyFieldError(TaggedError):
    field: str


ERRORS = ErrorShape.of(EmptyFieldError)
INTS = SuccessShape(list[int])


def _golden(name: str) -> dict:
    return json.loads((GOLDEN / f"{name}.json").read_text())


@pytest.mark.parametrize(
    ("name", "outcome"),
    [
        ("success", Success([1, 2, 3])),
        ("fail", Failure(EmptyFieldError(field="name"))),
        ("die", Defect({"_tag": "RuntimeError", "message": "boom"})),
        ("empty", Empty()),
        ("unknown_defect", Defect.from_value(42)),
    ],
)
def test_outcome_matches_golden_encoding(name, outcome) -> None:
    assert encode_outcome(outcome, INTS, ERRORS) == _golden(name)
    assert decode_outcome(_golden(name), INTS, ERRORS) == outcome


def test_encode_defect_from_exception() -> None:
    assert encode_outcome(Defect.from_value(RuntimeError("boom"))) == _golden("die")


def test_decode_without_shapes_keeps_raw_values() -> None:
    outcome = decode_outcome(_golden("fail"))
    assert outcome == Failure({"_tag": "EmptyFieldError", "field": "name"})


def test_defect_never_carries_stack_or_paths() -> None:
    exc = RuntimeError(
        'write failed token=hunter2 File "/home/dev/app/handlers.py", line 42, in add\n'
        "Traceback (most recent call last):\n  frame"
    )
    wire = json.dumps(encode_outcome(Defect.from_value(exc)))
    assert "/home/dev" not in wire
    assert "handlers.py" not in wire
    assert "Traceback" not in wire
    assert "hunter2" not in wire


def test_sanitize_defect_variants() -> None:
    assert sanitize_defect(42) == {"_tag": "UnknownDefect", "message": "42"}
    assert sanitize_defect({"message": "plain"}) == {"_tag": "Error", "message": "plain"}
    assert sanitize_defect({"no": "message"}) == {"_tag": "UnknownDefect", "message": "Unknown defect"}
    assert sanitize_defect(object()) == {"_tag": "UnknownDefect", "message": "object"}
    tagged = sanitize_defect({"_tag": "DbError", "message": "x", "stack": "at db.ts:1", "code": 7, "nested": {}})
    assert tagged == {"_tag": "DbError", "message": "x", "code": 7}
    assert sanitize_defect(EmptyFieldError(field="name")) == {"_tag": "EmptyFieldError", "field": "name"}


def test_sanitize_defect_keeps_declared_fields_of_tagged_errors() -> None:
    class RowConflict(TaggedError):
        row: dict[str, Any]
        path: str
        tokens: list[str]

    defect = sanitize_defect(RowConflict(row={"id": 7, "note": "api_key=abc123"}, path="rows/7", tokens=["a", "b"]))
    assert defect == {
        "_tag": "RowConflict",
        "row": {"id": 7, "note": "[REDACTED]"},
        "path": "rows/7",
        "tokens": ["a", "b"],
    }


def test_sanitize_defect_without_redaction_still_strips_paths() -> None:
    defect = sanitize_defect(ValueError("token=hunter2 at /srv/app/main.py:3"), redact=False)
    assert defect["_tag"] == "ValueError"
    assert "hunter2" in defect["message"]
    assert "/srv/app" not in defect["message"]


@pytest.mark.parametrize(
    "wire",
    [
        "Success",
        {"_tag": "Weird"},
        {"_tag": "Success"},
        {"_tag": "Failure"},
        {"_tag": "Failure", "cause": {"_tag": "Unknown"}},
        {"_tag": "Failure", "cause": {"_tag": "Fail"}},
        {"_tag": "Failure", "cause": {"_tag": "Fail", "error": {"_tag": "Undeclared"}}},
        {"_tag": "Success", "value": ["not", "ints"]},
    ],
)
def test_decode_rejects_malformed_wire(wire) -> None:
    with pytest.raises(WireDecodeError):
        decode_outcome(wire, INTS, ERRORS)


def test_decode_die_with_untagged_defect_is_sanitized() -> None:
    outcome = decode_outcome({"_tag": "Failure", "cause": {"_tag": "Die", "defect": "raw"}})
    assert outcome == Defect({"_tag": "UnknownDefect", "message": "raw"})


def test_outcome_helpers() -> None:
    ok = Success(1)
    failed = Failure(EmptyFieldError(field="name"))
    died = Defect({"_tag": "RuntimeError", "message": "boom"})

    assert is_success(ok) and not is_failure(ok)
    assert is_failure(failed) and is_failure(died) and is_failure(Empty())
    assert get_value_or_none(ok) == 1 and get_value_or_none(failed) is None
    assert get_failure_or_none(failed) == EmptyFieldError(field="name")
    assert get_failure_or_none(died) is None
    assert get_value_or_raise(ok) == 1

    with pytest.raises(EmptyFieldError):
        get_value_or_raise(failed)
    with pytest.raises(RemoteDefectError) as info:
        get_value_or_raise(died)
    assert info.value.defect["_tag"] == "RuntimeError"
    with pytest.raises(RemoteDefectError):
        get_value_or_raise(Empty())


def test_match_outcome_falls_back_to_on_failure() -> None:
    handlers = {"on_success": lambda v: ("ok", v), "on_failure": lambda e: ("failed", e)}
    assert match_outcome(Success(2), **handlers) == ("ok", 2)
    assert match_outcome(Defect({"_tag": "X"}), **handlers) == ("failed", {"_tag": "X"})
    assert match_outcome(Empty(), **handlers) == ("failed", None)
    assert match_outcome(Defect({"_tag": "X"}), on_defect=lambda d: d["_tag"], **handlers) == "X"
    assert match_outcome(Empty(), on_empty=lambda: "empty", **handlers) == "empty"


def test_exit_json_schema_lists_every_envelope() -> None:
    schema = exit_json_schema(INTS, ERRORS)
    success, failure = schema["oneOf"]
    assert success["properties"]["_tag"] == {"const": "Success"}
    causes = [c["properties"]["_tag"]["const"] for c in failure["properties"]["cause"]["oneOf"]]
    assert causes == ["Fail", "Die", "Empty"]
    no_errors = exit_json_schema(INTS, ErrorShape())
    causes = [c["properties"]["_tag"]["const"] for c in no_errors["oneOf"][1]["properties"]["cause"]["oneOf"]]
    assert causes == ["Die", "Empty"]
