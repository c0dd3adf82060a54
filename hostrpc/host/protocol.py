"""Contracts of the host platform hostrpc runs on."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

Unsubscribe = Callable[[], None]


@runtime_checkable
class DocumentReader(Protocol):
    async def get(self, doc_id: str) -> dict[str, Any] | None: ...
    def query(self, table: str) -> Any: ...


@runtime_checkable
class DocumentWriter(DocumentReader, Protocol):
    async def insert(self, table: str, document: dict[str, Any]) -> str: ...
    async def patch(self, doc_id: str, fields: dict[str, Any]) -> None: ...
    async def replace(self, doc_id: str, document: dict[str, Any]) -> None: ...
    async def delete(self, doc_id: str) -> None: ...


@runtime_checkable
class HostQueryCtx(Protocol):
    db: DocumentReader
    auth: Any


@runtime_checkable
class HostMutationCtx(Protocol):
    db: DocumentWriter
    auth: Any


@runtime_checkable
class HostActionCtx(Protocol):
    auth: Any

    async def run_query(self, path: str, args: dict[str, Any]) -> Any: ...
    async def run_mutation(self, path: str, args: dict[str, Any]) -> Any: ...
    async def run_action(self, path: str, args: dict[str, Any]) -> Any: ...


@runtime_checkable
class HostClient(Protocol):
    """Client-side primitives. Results are the raw wire envelopes returned by host functions."""

    async def query(self, path: str, args: dict[str, Any]) -> Any: ...
    async def mutation(self, path: str, args: dict[str, Any]) -> Any: ...
    async def action(self, path: str, args: dict[str, Any]) -> Any: ...

    def on_update(
        self,
        path: str,
        args: dict[str, Any],
        callback: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Unsubscribe: ...

    async def close(self) -> None: ...
