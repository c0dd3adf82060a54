"""In-memory host platform.

Stands in for the hosted backend in tests and local runs: a document store
with system fields, a function table fed from RPC modules, and live query
updates re-evaluated after every mutation or action. Arguments and results
pass through JSON on the way in and out, as they would over a transport.
"""

from __future__ import annotations

import asyncio
import copy
import itertools
import json
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from loguru import logger

from hostrpc.host.protocol import Unsubscribe
from hostrpc.rpc.descriptor import EndpointKind
from hostrpc.rpc.registrar import HostFunctionSpec, RpcModule
from hostrpc.utils.exceptions import DuplicateTagError, HostCallError

_UNSET = object()


class DocumentNotFoundError(KeyError):
    pass


class DocumentStore:
    """Tables of JSON documents with ``_id`` and ``_creationTime`` system fields."""

    def __init__(self, clock: Callable[[], float] | None = None):
        self._clock = clock or time.time
        self._tables: dict[str, dict[str, dict[str, Any]]] = {}
        self._table_of: dict[str, str] = {}
        self._ids = itertools.count(1)
        self._last_time = 0.0

    def _creation_time(self) -> float:
        now = self._clock() * 1000.0
        if now <= self._last_time:
            now = self._last_time + 0.001
        self._last_time = now
        return now

    @staticmethod
    def _check_fields(document: dict[str, Any]) -> None:
        reserved = [key for key in document if key.startswith("_")]
        if reserved:
            raise ValueError(f"System fields cannot be written: {', '.join(reserved)}")

    def _locate(self, doc_id: str) -> dict[str, dict[str, Any]]:
        table = self._table_of.get(doc_id)
        if table is None:
            raise DocumentNotFoundError(doc_id)
        return self._tables[table]

    def insert(self, table: str, document: dict[str, Any]) -> str:
        self._check_fields(document)
        doc_id = f"{table}|{next(self._ids)}"
        self._tables.setdefault(table, {})[doc_id] = {
            "_id": doc_id,
            "_creationTime": self._creation_time(),
            **copy.deepcopy(document),
        }
        self._table_of[doc_id] = table
        return doc_id

    def get(self, doc_id: str) -> dict[str, Any] | None:
        table = self._table_of.get(doc_id)
        if table is None:
            return None
        return copy.deepcopy(self._tables[table][doc_id])

    def patch(self, doc_id: str, fields: dict[str, Any]) -> None:
        self._check_fields(fields)
        self._locate(doc_id)[doc_id].update(copy.deepcopy(fields))

    def replace(self, doc_id: str, document: dict[str, Any]) -> None:
        self._check_fields(document)
        rows = self._locate(doc_id)
        current = rows[doc_id]
        rows[doc_id] = {"_id": doc_id, "_creationTime": current["_creationTime"], **copy.deepcopy(document)}

    def delete(self, doc_id: str) -> None:
        rows = self._locate(doc_id)
        del rows[doc_id]
        del self._table_of[doc_id]

    def documents(self, table: str) -> list[dict[str, Any]]:
        """Snapshot of a table in creation order."""
        return [copy.deepcopy(doc) for doc in self._tables.get(table, {}).values()]


def _encode_cursor(offset: int) -> str:
    return f"offset:{offset}"


def _decode_cursor(cursor: str | None) -> int:
    if cursor is None:
        return 0
    prefix, _, raw = cursor.partition(":")
    if prefix != "offset" or not raw.isdigit():
        raise ValueError(f"Invalid pagination cursor: {cursor!r}")
    return int(raw)


class DocumentQuery:
    """Immutable query over one table."""

    __slots__ = ("_store", "_table", "_descending", "_predicates")

    def __init__(self, store: DocumentStore, table: str, descending: bool = False, predicates: tuple = ()):
        self._store = store
        self._table = table
        self._descending = descending
        self._predicates = predicates

    def order(self, direction: str) -> DocumentQuery:
        if direction not in ("asc", "desc"):
            raise ValueError(f"Unknown order: {direction!r}")
        return DocumentQuery(self._store, self._table, direction == "desc", self._predicates)

    def filter(self, predicate: Callable[[dict[str, Any]], bool]) -> DocumentQuery:
        return DocumentQuery(self._store, self._table, self._descending, (*self._predicates, predicate))

    def _rows(self) -> list[dict[str, Any]]:
        rows = self._store.documents(self._table)
        if self._descending:
            rows.reverse()
        for predicate in self._predicates:
            rows = [row for row in rows if predicate(row)]
        return rows

    async def collect(self) -> list[dict[str, Any]]:
        return self._rows()

    async def take(self, n: int) -> list[dict[str, Any]]:
        return self._rows()[: max(n, 0)]

    async def first(self) -> dict[str, Any] | None:
        rows = self._rows()
        return rows[0] if rows else None

    async def paginate(self, *, cursor: str | None, num_items: int) -> dict[str, Any]:
        """One page: ``{"page", "isDone", "continueCursor"}``."""
        if num_items < 1:
            raise ValueError("num_items must be at least 1")
        rows = self._rows()
        start = _decode_cursor(cursor)
        end = min(start + num_items, len(rows))
        return {
            "page": rows[start:end],
            "isDone": end >= len(rows),
            "continueCursor": _encode_cursor(end),
        }


class MemoryDatabaseReader:
    def __init__(self, store: DocumentStore):
        self._store = store

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        return self._store.get(doc_id)

    def query(self, table: str) -> DocumentQuery:
        return DocumentQuery(self._store, table)


class MemoryDatabaseWriter(MemoryDatabaseReader):
    async def insert(self, table: str, document: dict[str, Any]) -> str:
        return self._store.insert(table, document)

    async def patch(self, doc_id: str, fields: dict[str, Any]) -> None:
        self._store.patch(doc_id, fields)

    async def replace(self, doc_id: str, document: dict[str, Any]) -> None:
        self._store.replace(doc_id, document)

    async def delete(self, doc_id: str) -> None:
        self._store.delete(doc_id)


@dataclass(slots=True)
class MemoryAuth:
    identity: dict[str, Any] | None = None

    async def get_user_identity(self) -> dict[str, Any] | None:
        return self.identity


@dataclass(slots=True)
class MemoryQueryCtx:
    db: MemoryDatabaseReader
    auth: MemoryAuth


@dataclass(slots=True)
class MemoryMutationCtx:
    db: MemoryDatabaseWriter
    auth: MemoryAuth


class MemoryActionCtx:
    """Actions have no direct database access; they call other functions."""

    def __init__(self, host: InMemoryHost, auth: MemoryAuth):
        self._host = host
        self.auth = auth

    async def run_query(self, path: str, args: dict[str, Any]) -> Any:
        return await self._host.run(path, args, kind=EndpointKind.QUERY)

    async def run_mutation(self, path: str, args: dict[str, Any]) -> Any:
        return await self._host.run(path, args, kind=EndpointKind.MUTATION)

    async def run_action(self, path: str, args: dict[str, Any]) -> Any:
        return await self._host.run(path, args, kind=EndpointKind.ACTION)


def _through_wire(path: str, value: Any) -> Any:
    try:
        return json.loads(json.dumps(value))
    except (TypeError, ValueError) as exc:
        raise HostCallError(path, f"value is not JSON serializable: {exc}") from exc


@dataclass(slots=True)
class _Watch:
    path: str
    args: dict[str, Any]
    callback: Callable[[Any], None]
    on_error: Callable[[Exception], None] | None
    last: Any = _UNSET


class InMemoryHost:
    def __init__(self, *, clock: Callable[[], float] | None = None, identity: dict[str, Any] | None = None):
        self.store = DocumentStore(clock)
        self.auth = MemoryAuth(identity)
        self._functions: dict[str, HostFunctionSpec] = {}
        self._watches: dict[int, _Watch] = {}
        self._watch_ids = itertools.count(1)
        self._pending: set[asyncio.Task[None]] = set()

    def register_module(self, module: RpcModule) -> list[str]:
        paths = []
        for spec in module.host_functions():
            self.register_function(spec)
            paths.append(spec.path)
        logger.info("Registered {} functions from module {}", len(paths), module.name or "<unnamed>")
        return paths

    def register_function(self, spec: HostFunctionSpec) -> None:
        if spec.path in self._functions:
            raise DuplicateTagError(spec.path)
        self._functions[spec.path] = spec

    def paths(self) -> list[str]:
        return list(self._functions)

    def function(self, path: str) -> HostFunctionSpec:
        spec = self._functions.get(path)
        if spec is None:
            raise HostCallError(path, "function not found", 404)
        return spec

    def _context(self, kind: EndpointKind) -> Any:
        if kind is EndpointKind.QUERY:
            return MemoryQueryCtx(db=MemoryDatabaseReader(self.store), auth=self.auth)
        if kind is EndpointKind.MUTATION:
            return MemoryMutationCtx(db=MemoryDatabaseWriter(self.store), auth=self.auth)
        return MemoryActionCtx(self, self.auth)

    async def run(
        self,
        path: str,
        args: dict[str, Any] | None,
        *,
        kind: EndpointKind | None = None,
        allow_internal: bool = True,
    ) -> Any:
        """Invoke a registered function and return its wire envelope."""
        spec = self.function(path)
        if kind is not None and spec.kind is not kind:
            raise HostCallError(path, f"is a {spec.kind.value}, not a {kind.value}", 400)
        if spec.internal and not allow_internal:
            raise HostCallError(path, "internal functions cannot be called from clients", 403)
        result = await spec.handler(self._context(spec.kind), _through_wire(path, args or {}))
        result = _through_wire(path, result)
        if spec.kind is not EndpointKind.QUERY:
            await self._refresh_watches()
        return result

    def watch(
        self,
        path: str,
        args: dict[str, Any],
        callback: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Unsubscribe:
        """Push the query result now and whenever a later write changes it."""
        watch_id = next(self._watch_ids)
        self._watches[watch_id] = _Watch(path, dict(args), callback, on_error)
        task = asyncio.get_running_loop().create_task(self._refresh(watch_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        def unsubscribe() -> None:
            self._watches.pop(watch_id, None)

        return unsubscribe

    def watch_count(self) -> int:
        return len(self._watches)

    async def _refresh(self, watch_id: int) -> None:
        watch = self._watches.get(watch_id)
        if watch is None:
            return
        try:
            result = await self.run(watch.path, watch.args, kind=EndpointKind.QUERY, allow_internal=False)
        except HostCallError as exc:
            logger.warning("Live query {} failed: {}", watch.path, exc.message)
            if watch.on_error is not None:
                watch.on_error(exc)
            return
        if watch_id not in self._watches or result == watch.last:
            return
        watch.last = result
        watch.callback(result)

    async def _refresh_watches(self) -> None:
        for watch_id in list(self._watches):
            await self._refresh(watch_id)

    async def settle(self) -> None:
        """Wait until every initial live-query push has been delivered."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    def client(self) -> InMemoryHostClient:
        return InMemoryHostClient(self)


class InMemoryHostClient:
    """HostClient over an InMemoryHost. Internal functions are not reachable."""

    def __init__(self, host: InMemoryHost):
        self._host = host
        self._unsubscribes: list[Unsubscribe] = []

    async def query(self, path: str, args: dict[str, Any]) -> Any:
        return await self._host.run(path, args, kind=EndpointKind.QUERY, allow_internal=False)

    async def mutation(self, path: str, args: dict[str, Any]) -> Any:
        return await self._host.run(path, args, kind=EndpointKind.MUTATION, allow_internal=False)

    async def action(self, path: str, args: dict[str, Any]) -> Any:
        return await self._host.run(path, args, kind=EndpointKind.ACTION, allow_internal=False)

    def on_update(
        self,
        path: str,
        args: dict[str, Any],
        callback: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Unsubscribe:
        unsubscribe = self._host.watch(path, args, callback, on_error)
        self._unsubscribes.append(unsubscribe)
        return unsubscribe

    async def close(self) -> None:
        for unsubscribe in self._unsubscribes:
            unsubscribe()
        self._unsubscribes.clear()
