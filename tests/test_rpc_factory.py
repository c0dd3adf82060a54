import asyncio
import json

import pytest

from hostrpc.config.schema import ServerConfig
from hostrpc.rpc import (
    EndpointFactory,
    EndpointKind,
    MutationCtx,
    QueryCtx,
    TaggedError,
    UnbuiltEndpoint,
    fork,
    is_wrapper,
    make_rpc_module,
    uninterruptible,
    wrap,
)
from hostrpc.utils.exceptions import RegistrationError


class EmptyFieldError(TaggedError):
    field: str


class Undeclared(TaggedError):
    detail: str


class LookupFailed(TaggedError):
    query: dict[str, int]
    path: str


def _single(unbuilt, tag="add"):
    module = make_rpc_module({tag: unbuilt})
    return module, module.handlers[tag]


@pytest.mark.asyncio
async def test_payload_decode_error_is_defect_not_failure():
    calls = []
    rpc = EndpointFactory()

    @rpc.mutation(payload={"name": str}, success=str, error=EmptyFieldError)
    def add(payload):
        calls.append(payload)
        return payload.name

    _, fn = _single(add)
    wire = await fn(None, {"name": 123})
    assert wire["_tag"] == "Failure"
    assert wire["cause"]["_tag"] == "Die"
    assert wire["cause"]["defect"]["_tag"] == "PayloadDecodeError"
    assert "name" in wire["cause"]["defect"]["message"]
    assert calls == []


@pytest.mark.asyncio
async def test_wrong_primitive_types_are_not_coerced():
    calls = []
    rpc = EndpointFactory()

    @rpc.query(payload={"num_items": int, "flag": (bool, False)}, success=int)
    def page(payload):
        calls.append(payload)
        return payload.num_items

    _, fn = _single(page, tag="page")
    for args in ({"numItems": "3"}, {"numItems": 3, "flag": "yes"}, {"numItems": True}):
        wire = await fn(None, args)
        assert wire["_tag"] == "Failure"
        assert wire["cause"]["_tag"] == "Die"
        assert wire["cause"]["defect"]["_tag"] == "PayloadDecodeError"
    assert calls == []
    assert await fn(None, {"numItems": 3, "flag": True}) == {"_tag": "Success", "value": 3}

@pytest.mark.asyncio
async def test_declared_failure_is_fail():
    rpc = EndpointFactory()

    @rpc.mutation(payload={"name": str}, success=str, error=EmptyFieldError)
    async def add(payload):
        if not payload.name.strip():
            raise EmptyFieldError(field="name")
        return payload.name

    _, fn = _single(add)
    wire = await fn(None, {"name": "   "})
    assert wire == {"_tag": "Failure", "cause": {"_tag": "Fail", "error": {"_tag": "EmptyFieldError", "field": "name"}}}
    assert await fn(None, {"name": "Alice"}) == {"_tag": "Success", "value": "Alice"}


@pytest.mark.asyncio
async def test_undeclared_tagged_error_is_defect():
    rpc = EndpointFactory()

    def add(payload):
        raise Undeclared(detail="surprise")

    _, fn = _single(rpc.mutation(add, success=str, error=EmptyFieldError))
    wire = await fn(None, {})
    assert wire["cause"]["_tag"] == "Die"
    assert wire["cause"]["defect"] == {"_tag": "Undeclared", "detail": "surprise"}


@pytest.mark.asyncio
async def test_undeclared_tagged_error_keeps_nested_and_path_fields():
    def find(payload):
        raise LookupFailed(query={"code": 422}, path="users/42")

    _, fn = _single(EndpointFactory().query(find, success=str, error=EmptyFieldError), tag="find")
    wire = await fn(None, {})
    assert wire["cause"] == {
        "_tag": "Die",
        "defect": {"_tag": "LookupFailed", "query": {"code": 422}, "path": "users/42"},
    }


@pytest.mark.asyncio
async def test_thrown_error_is_sanitized_defect():
    def add(payload):
        raise RuntimeError('failed with secret=hunter2 in File "/srv/secret/app/handlers.py", line 3, in add')

    _, fn = _single(EndpointFactory().mutation(add, success=str))
    wire = await fn(None, {})
    encoded = json.dumps(wire)
    assert wire["cause"]["_tag"] == "Die"
    assert wire["cause"]["defect"]["_tag"] == "RuntimeError"
    assert "hunter2" not in encoded
    assert "/srv/secret" not in encoded
    assert "Traceback" not in encoded


@pytest.mark.asyncio
async def test_redaction_can_be_disabled_but_paths_are_still_stripped():
    def add(payload):
        raise RuntimeError("secret=hunter2 at /srv/app/handlers.py:3")

    rpc = EndpointFactory(config=ServerConfig(redact_defects=False))
    _, fn = _single(rpc.mutation(add, success=str))
    message = (await fn(None, {}))["cause"]["defect"]["message"]
    assert "hunter2" in message
    assert "/srv/app" not in message


@pytest.mark.asyncio
async def test_success_value_not_matching_shape_is_defect():
    _, fn = _single(EndpointFactory().query(lambda payload: "not an int", success=int), tag="count")
    wire = await fn(None, {})
    assert wire["cause"]["_tag"] == "Die"
    assert wire["cause"]["defect"]["_tag"] == "ValidationError"


@pytest.mark.asyncio
async def test_cancellation_is_empty():
    async def slow(payload):
        raise asyncio.CancelledError()

    _, fn = _single(EndpointFactory().action(slow, success=None), tag="slow")
    assert await fn(None, {}) == {"_tag": "Failure", "cause": {"_tag": "Empty"}}


@pytest.mark.asyncio
async def test_handler_receives_decoded_payload_and_ctx():
    rpc = EndpointFactory(base_payload={"private_access_key": str})
    ctx = object()
    seen = {}

    @rpc.query(payload={"num_items": int, "cursor": (str | None, None)}, success=int)
    def page(payload):
        seen["ctx"] = QueryCtx.get()
        seen["mutation_ctx"] = MutationCtx.is_provided()
        return payload.num_items

    _, fn = _single(page, tag="page")
    wire = await fn(ctx, {"privateAccessKey": "k", "numItems": 4})
    assert wire == {"_tag": "Success", "value": 4}
    assert seen == {"ctx": ctx, "mutation_ctx": False}


@pytest.mark.asyncio
async def test_endpoint_payload_overrides_base_field():
    rpc = EndpointFactory(base_payload={"limit": int})
    _, fn = _single(rpc.query(lambda p: p.limit, payload={"limit": (int, 10)}, success=int), tag="list")
    assert await fn(None, {}) == {"_tag": "Success", "value": 10}


def test_declaration_variants_and_descriptor():
    rpc = EndpointFactory(base_payload={"key": str})
    module = make_rpc_module(
        {
            "q": rpc.query(lambda p: 1, success=int, annotations={"doc": "count"}),
            "m": rpc.internal_mutation(lambda p: None, success=None),
            "a": rpc.internal_action(lambda p: None, success=None),
            "iq": rpc.internal_query(lambda p: 1, success=int),
        }
    )
    q = module.descriptor("q")
    assert q.kind is EndpointKind.QUERY
    assert q.kind_name == "query"
    assert q.annotations["doc"] == "count"
    assert q.args_schema()["required"] == ["key"]
    assert module.descriptor("m").kind_name == "internalMutation"
    assert module.descriptor("a").kind_name == "internalAction"
    assert module.descriptor("iq").internal is True


def test_decorator_returns_unbuilt_endpoint():
    rpc = EndpointFactory()

    @rpc.action(success=str)
    def notify(payload):
        return "sent"

    assert isinstance(notify, UnbuiltEndpoint)
    assert notify.kind is EndpointKind.ACTION
    assert "notify" in repr(notify)


def test_non_callable_handler_is_registration_error():
    with pytest.raises(RegistrationError):
        EndpointFactory().query("not callable", success=int)


def test_build_rejects_empty_tag_and_bad_shapes():
    unbuilt = EndpointFactory().query(lambda p: 1, success=int)
    with pytest.raises(RegistrationError):
        unbuilt.build("")
    with pytest.raises(RegistrationError):
        EndpointFactory().query(lambda p: 1, payload={"_private": str}, success=int).build("bad")


def test_wrapper_helpers():
    assert fork(1).fork and not fork(1).uninterruptible
    assert uninterruptible(1).uninterruptible and not uninterruptible(1).fork
    both = wrap(fork=True, uninterruptible=True)(1)
    assert is_wrapper(both) and both.fork and both.uninterruptible and both.value == 1
    assert not is_wrapper({"fork": True})


@pytest.mark.asyncio
async def test_forked_handler_sees_call_context():
    async def lookup():
        return QueryCtx.get()

    ctx = {"db": "memory"}
    _, fn = _single(EndpointFactory().query(lambda p: fork(lookup()), success=dict[str, str]), tag="ctx")
    assert await fn(ctx, {}) == {"_tag": "Success", "value": {"db": "memory"}}
    _, plain = _single(EndpointFactory().query(lambda p: fork(5), success=int), tag="plain")
    assert await plain(None, {}) == {"_tag": "Success", "value": 5}


@pytest.mark.asyncio
async def test_uninterruptible_work_finishes_after_call_is_cancelled():
    started = asyncio.Event()
    release = asyncio.Event()
    done = asyncio.Event()

    async def rebuild_index():
        started.set()
        await release.wait()
        done.set()
        return 1

    _, fn = _single(EndpointFactory().action(lambda p: uninterruptible(rebuild_index()), success=int), tag="rebuild")
    call = asyncio.ensure_future(fn(None, {}))
    await started.wait()
    call.cancel()
    assert await call == {"_tag": "Failure", "cause": {"_tag": "Empty"}}
    assert not done.is_set()
    release.set()
    await asyncio.wait_for(done.wait(), timeout=1)
