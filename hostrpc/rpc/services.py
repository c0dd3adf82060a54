"""Per-call scoped services.

Middlewares inject values under a ``ServiceKey`` for the rest of the call;
handlers read them back with ``key.get()``. Scopes live in a ContextVar so
concurrent calls on the same event loop never observe each other's services.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from types import MappingProxyType
from typing import Any, Generic, TypeVar

from hostrpc.utils.exceptions import MissingServiceError

T = TypeVar("T")

_EMPTY: Mapping[Any, Any] = MappingProxyType({})

call_services: ContextVar[Mapping["ServiceKey[Any]", Any]] = ContextVar("hostrpc_call_services", default=_EMPTY)


class ServiceKey(Generic[T]):
    """Identity of a service provided to the downstream part of a call."""

    __slots__ = ("name",)

    def __init__(self, name: str):
        self.name = name

    def get(self) -> T:
        services = call_services.get()
        if self not in services:
            raise MissingServiceError(self.name)
        return services[self]

    def get_or(self, default: T | None = None) -> T | None:
        return call_services.get().get(self, default)

    def is_provided(self) -> bool:
        return self in call_services.get()

    def __repr__(self) -> str:
        return f"ServiceKey({self.name!r})"


@contextmanager
def provide(key: ServiceKey[T], value: T) -> Iterator[T]:
    """Scope ``value`` under ``key`` for the body of the with-block."""
    token = call_services.set(MappingProxyType({**call_services.get(), key: value}))
    try:
        yield value
    finally:
        call_services.reset(token)


# Raw host ctx for the running endpoint, by kind.
QueryCtx: ServiceKey[Any] = ServiceKey("QueryCtx")
MutationCtx: ServiceKey[Any] = ServiceKey("MutationCtx")
ActionCtx: ServiceKey[Any] = ServiceKey("ActionCtx")
