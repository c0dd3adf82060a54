"""Endpoint factory and the per-call pipeline.

    rpc = EndpointFactory(base_payload={"private_access_key": str}, middlewares=[auth])

    @rpc.mutation(payload={"name": str}, success=str, error=EmptyFieldError)
    async def add(payload):
        ...

Each call runs: decode payload -> middlewares -> handler -> encode outcome.
The host function always returns a wire envelope and never raises.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import BaseModel, PydanticUserError, ValidationError

from hostrpc.config.schema import ServerConfig
from hostrpc.rpc.descriptor import EndpointDescriptor, EndpointKind
from hostrpc.rpc.error_boundary import outcome_from_exception
from hostrpc.rpc.middleware import MiddlewareEntry, compose_middlewares
from hostrpc.rpc.outcome import Outcome, Success, encode_outcome
from hostrpc.rpc.services import ActionCtx, MutationCtx, QueryCtx, ServiceKey, provide
from hostrpc.rpc.shapes import ErrorShape, SuccessShape, build_payload_model, merge_payload_fields
from hostrpc.rpc.wrappers import HandlerWrapper, run_wrapped
from hostrpc.utils.exceptions import PayloadDecodeError, RegistrationError

Handler = Callable[[Any], Any]
HostFunction = Callable[[Any, Any], Awaitable[dict[str, Any]]]

_CTX_KEYS: dict[EndpointKind, ServiceKey[Any]] = {
    EndpointKind.QUERY: QueryCtx,
    EndpointKind.MUTATION: MutationCtx,
    EndpointKind.ACTION: ActionCtx,
}


class EndpointPipeline:
    """Host-callable function for one built endpoint."""

    __slots__ = ("descriptor", "handler", "middlewares", "config")

    def __init__(
        self,
        descriptor: EndpointDescriptor,
        handler: Handler,
        middlewares: Sequence[MiddlewareEntry],
        config: ServerConfig,
    ):
        self.descriptor = descriptor
        self.handler = handler
        self.middlewares = tuple(middlewares)
        self.config = config

    async def __call__(self, ctx: Any, raw_args: Any) -> dict[str, Any]:
        d = self.descriptor
        if self.config.log_calls:
            logger.debug("RPC {} {} called", d.kind_name, d.tag)
        try:
            payload = self.decode(raw_args)
            computation = compose_middlewares(
                self.middlewares,
                lambda: self._run_handler(payload),
                payload=payload,
                endpoint=d,
            )
            with provide(_CTX_KEYS[d.kind], ctx):
                outcome: Outcome = Success(await computation())
        except (Exception, asyncio.CancelledError) as exc:
            outcome = self._capture(exc)
        return self._encode(outcome)

    def decode(self, raw_args: Any) -> BaseModel:
        if isinstance(raw_args, BaseModel):
            raw_args = raw_args.model_dump(by_alias=True)
        try:
            return self.descriptor.payload_model.model_validate({} if raw_args is None else raw_args)
        except ValidationError as exc:
            raise PayloadDecodeError(self.descriptor.tag, exc.errors()) from exc

    async def _run_handler(self, payload: BaseModel) -> Any:
        result = self.handler(payload)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, HandlerWrapper):
            result = await run_wrapped(result)
        return result

    def _capture(self, exc: BaseException) -> Outcome:
        d = self.descriptor
        return outcome_from_exception(
            exc, tag=d.tag, kind=d.kind_name, error=d.error, redact=self.config.redact_defects
        )

    def _encode(self, outcome: Outcome) -> dict[str, Any]:
        d = self.descriptor
        try:
            return encode_outcome(outcome, d.success, d.error)
        except Exception as exc:
            return encode_outcome(self._capture(exc))


@dataclass(frozen=True, slots=True)
class BuiltEndpoint:
    tag: str
    descriptor: EndpointDescriptor
    host_function: HostFunction


class UnbuiltEndpoint:
    """An endpoint declaration waiting for its tag."""

    __slots__ = ("kind", "internal", "payload_fields", "success", "error", "annotations", "handler", "middlewares", "config")

    def __init__(
        self,
        *,
        kind: EndpointKind,
        internal: bool,
        payload_fields: Mapping[str, Any],
        success: Any,
        error: ErrorShape,
        annotations: Mapping[str, Any],
        handler: Handler,
        middlewares: Sequence[MiddlewareEntry],
        config: ServerConfig,
    ):
        self.kind = kind
        self.internal = internal
        self.payload_fields = dict(payload_fields)
        self.success = success
        self.error = error
        self.annotations = dict(annotations)
        self.handler = handler
        self.middlewares = tuple(middlewares)
        self.config = config

    def build(self, tag: str) -> BuiltEndpoint:
        if not isinstance(tag, str) or not tag:
            raise RegistrationError(f"Endpoint tag must be a non-empty string, got {tag!r}")
        try:
            payload_model = build_payload_model(tag, self.payload_fields)
            success = SuccessShape(self.success)
        except (PydanticUserError, TypeError) as exc:
            raise RegistrationError(f"Invalid shapes for endpoint '{tag}': {exc}", tag=tag) from exc
        descriptor = EndpointDescriptor(
            tag=tag,
            kind=self.kind,
            payload_model=payload_model,
            success=success,
            error=self.error.union(*(m.failure for m in self.middlewares)),
            annotations=self.annotations,
            internal=self.internal,
            middlewares=tuple(m.tag for m in self.middlewares),
        )
        pipeline = EndpointPipeline(descriptor, self.handler, self.middlewares, self.config)
        return BuiltEndpoint(tag=tag, descriptor=descriptor, host_function=pipeline)

    def __repr__(self) -> str:
        name = getattr(self.handler, "__name__", "handler")
        return f"UnbuiltEndpoint({self.kind.value}, handler={name})"


class EndpointFactory:
    """Builds endpoints sharing base payload fields and a middleware chain."""

    def __init__(
        self,
        *,
        base_payload: Mapping[str, Any] | None = None,
        middlewares: Sequence[MiddlewareEntry] = (),
        config: ServerConfig | None = None,
    ):
        self.base_payload = dict(base_payload or {})
        self.middlewares = tuple(middlewares)
        self.config = config or ServerConfig()
        for entry in self.middlewares:
            if not isinstance(entry, MiddlewareEntry):
                raise RegistrationError(f"Expected a middleware entry, got {entry!r}")

    def query(self, handler: Handler | None = None, *, payload=None, success, error=None, annotations=None):
        return self._declare(EndpointKind.QUERY, False, handler, payload, success, error, annotations)

    def mutation(self, handler: Handler | None = None, *, payload=None, success, error=None, annotations=None):
        return self._declare(EndpointKind.MUTATION, False, handler, payload, success, error, annotations)

    def action(self, handler: Handler | None = None, *, payload=None, success, error=None, annotations=None):
        return self._declare(EndpointKind.ACTION, False, handler, payload, success, error, annotations)

    def internal_query(self, handler: Handler | None = None, *, payload=None, success, error=None, annotations=None):
        return self._declare(EndpointKind.QUERY, True, handler, payload, success, error, annotations)

    def internal_mutation(self, handler: Handler | None = None, *, payload=None, success, error=None, annotations=None):
        return self._declare(EndpointKind.MUTATION, True, handler, payload, success, error, annotations)

    def internal_action(self, handler: Handler | None = None, *, payload=None, success, error=None, annotations=None):
        return self._declare(EndpointKind.ACTION, True, handler, payload, success, error, annotations)

    def _declare(
        self,
        kind: EndpointKind,
        internal: bool,
        handler: Handler | None,
        payload: Mapping[str, Any] | None,
        success: Any,
        error: Any,
        annotations: Mapping[str, Any] | None,
    ) -> UnbuiltEndpoint | Callable[[Handler], UnbuiltEndpoint]:
        error_shape = ErrorShape.of(error)
        fields = merge_payload_fields(self.base_payload, payload)

        def declare(fn: Handler) -> UnbuiltEndpoint:
            if not callable(fn):
                raise RegistrationError(f"Endpoint handler must be callable, got {fn!r}")
            return UnbuiltEndpoint(
                kind=kind,
                internal=internal,
                payload_fields=fields,
                success=success,
                error=error_shape,
                annotations=annotations or {},
                handler=fn,
                middlewares=self.middlewares,
                config=self.config,
            )

        if handler is None:
            return declare
        return declare(handler)
