"""Middleware declarations and the middleware composer.

A middleware runs before (or around) an endpoint handler. Three modes:

- NORMAL: run, inject the provided service (if any), then run downstream.
  A failure short-circuits the call.
- OPTIONAL: like NORMAL, but a typed failure falls back to the downstream
  computation without the service.
- WRAPPING: receives the downstream computation as ``options.next`` and
  decides how to run it.

Entries compose so that the first declared middleware runs first.
"""

from __future__ import annotations

import hmac
import inspect
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from loguru import logger

from hostrpc.rpc.retry import RetryPolicy, with_retry
from hostrpc.rpc.services import ServiceKey, provide
from hostrpc.rpc.shapes import ErrorShape, TaggedError
from hostrpc.utils.exceptions import RegistrationError

if TYPE_CHECKING:
    from hostrpc.rpc.descriptor import EndpointDescriptor

Computation = Callable[[], Awaitable[Any]]


class MiddlewareMode(Enum):
    NORMAL = "normal"
    OPTIONAL = "optional"
    WRAPPING = "wrapping"


@dataclass(slots=True)
class MiddlewareOptions:
    """What a middleware sees of the call it guards."""

    payload: Any
    endpoint: EndpointDescriptor
    next: Computation | None = None


MiddlewareImpl = Callable[[MiddlewareOptions], Any]


@dataclass(frozen=True, slots=True)
class MiddlewareEntry:
    tag: str
    impl: MiddlewareImpl
    mode: MiddlewareMode = MiddlewareMode.NORMAL
    provides: ServiceKey[Any] | None = None
    failure: ErrorShape = field(default_factory=ErrorShape)


@dataclass(frozen=True, slots=True)
class MiddlewareTag:
    """
    Declaration of a middleware: what it provides and how it may fail.

        Auth = MiddlewareTag("Auth", provides=CurrentUser, failure=AuthenticationError)
        auth = Auth.of(check_key)
    """

    tag: str
    provides: ServiceKey[Any] | None = None
    failure: Any = None
    optional: bool = False
    wrap: bool = False

    def __post_init__(self) -> None:
        if self.optional and self.wrap:
            raise RegistrationError(f"Middleware {self.tag} cannot be both optional and wrapping", tag=self.tag)
        if self.wrap and self.provides is not None:
            raise RegistrationError(f"Wrapping middleware {self.tag} cannot provide a service", tag=self.tag)
        object.__setattr__(self, "failure", ErrorShape.of(self.failure))

    @property
    def mode(self) -> MiddlewareMode:
        if self.wrap:
            return MiddlewareMode.WRAPPING
        if self.optional:
            return MiddlewareMode.OPTIONAL
        return MiddlewareMode.NORMAL

    def of(self, impl: MiddlewareImpl) -> MiddlewareEntry:
        if not callable(impl):
            raise RegistrationError(f"Middleware {self.tag} has no implementation", tag=self.tag)
        return MiddlewareEntry(tag=self.tag, impl=impl, mode=self.mode, provides=self.provides, failure=self.failure)


async def _invoke(impl: MiddlewareImpl, options: MiddlewareOptions) -> Any:
    result = impl(options)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _run_with(key: ServiceKey[Any] | None, value: Any, downstream: Computation) -> Any:
    if key is None:
        return await downstream()
    with provide(key, value):
        return await downstream()


def apply_middleware(
    entry: MiddlewareEntry,
    downstream: Computation,
    *,
    payload: Any,
    endpoint: EndpointDescriptor,
) -> Computation:
    """Wrap ``downstream`` in one middleware according to its mode."""
    if entry.mode is MiddlewareMode.WRAPPING:
        async def wrapping() -> Any:
            return await _invoke(entry.impl, MiddlewareOptions(payload, endpoint, next=downstream))
        return wrapping

    if entry.mode is MiddlewareMode.OPTIONAL:
        async def optional() -> Any:
            try:
                value = await _invoke(entry.impl, MiddlewareOptions(payload, endpoint))
            except TaggedError as exc:
                logger.debug("Optional middleware {} skipped on {}: {}", entry.tag, endpoint.tag, exc._tag)
                return await downstream()
            return await _run_with(entry.provides, value, downstream)
        return optional

    async def normal() -> Any:
        value = await _invoke(entry.impl, MiddlewareOptions(payload, endpoint))
        return await _run_with(entry.provides, value, downstream)
    return normal


def compose_middlewares(
    entries: Sequence[MiddlewareEntry],
    computation: Computation,
    *,
    payload: Any,
    endpoint: EndpointDescriptor,
) -> Computation:
    """Fold entries around ``computation``; the first entry ends up outermost."""
    composed = computation
    for entry in reversed(entries):
        composed = apply_middleware(entry, composed, payload=payload, endpoint=endpoint)
    return composed


def key_auth_middleware(
    declaration: MiddlewareTag,
    *,
    field_name: str,
    expected_key: str | Callable[[], str],
    on_missing: Callable[[], TaggedError],
    on_invalid: Callable[[], TaggedError],
    provide_value: Callable[[str], Any] | None = None,
) -> MiddlewareEntry:
    """Middleware that checks a shared-secret payload field against ``expected_key``."""

    def check(options: MiddlewareOptions) -> Any:
        supplied = getattr(options.payload, field_name, None)
        if not supplied:
            raise on_missing()
        expected = expected_key() if callable(expected_key) else expected_key
        if not hmac.compare_digest(str(supplied).encode(), str(expected).encode()):
            raise on_invalid()
        return provide_value(supplied) if provide_value else None

    return declaration.of(check)


def retry_middleware(policy: RetryPolicy, *, tag: str = "Retry") -> MiddlewareEntry:
    """Wrapping middleware that re-runs the rest of the call on defects."""

    async def retry(options: MiddlewareOptions) -> Any:
        return await with_retry(options.next, policy, label=options.endpoint.tag)

    return MiddlewareTag(tag, wrap=True).of(retry)
