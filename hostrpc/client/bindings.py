"""Client bindings: one-shot queries, live subscriptions, function calls, pagination."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel

from hostrpc.client.result import Cell, Result
from hostrpc.host.protocol import HostClient, Unsubscribe
from hostrpc.rpc.descriptor import EndpointDescriptor
from hostrpc.rpc.outcome import decode_outcome, sanitize_defect
from hostrpc.rpc.shapes import PaginationResult
from hostrpc.utils.exceptions import WireDecodeError

if TYPE_CHECKING:
    from hostrpc.client.dispatch import RpcClient

HostCall = Callable[[str, dict[str, Any]], Awaitable[Any]]
SharedFields = Callable[[], Mapping[str, Any]]


def wire_args(args: Any) -> dict[str, Any]:
    """Normalize call arguments to a plain dict."""
    if args is None:
        return {}
    if isinstance(args, BaseModel):
        return args.model_dump(by_alias=True, mode="json")
    if isinstance(args, Mapping):
        return dict(args)
    raise TypeError(f"Call arguments must be a mapping, got {type(args).__name__}")


def stable_key(args: Any) -> str:
    """Order-independent serialization used to key cached cells."""
    return json.dumps(wire_args(args), sort_keys=True, separators=(",", ":"), default=str)


def decode_result(descriptor: EndpointDescriptor, wire: Any) -> Result:
    try:
        outcome = decode_outcome(wire, descriptor.success, descriptor.error)
    except WireDecodeError as exc:
        logger.warning("Undecodable result from {}: {}", descriptor.tag, exc.message)
        return Result.failure(sanitize_defect(exc))
    return Result.from_outcome(outcome)


async def fetch_result(call: HostCall, path: str, args: dict[str, Any], descriptor: EndpointDescriptor) -> Result:
    """Run one host call and turn whatever comes back into a settled Result."""
    try:
        wire = await call(path, args)
    except Exception as exc:
        logger.warning("Host call {} failed: {}", path, exc)
        return Result.failure(sanitize_defect(exc))
    return decode_result(descriptor, wire)


class QueryCell(Cell):
    """One-shot query. ``load()`` runs it once; ``refresh()`` runs it again."""

    def __init__(self, host: HostClient, path: str, args: dict[str, Any], descriptor: EndpointDescriptor):
        super().__init__(label=f"query:{descriptor.tag}")
        self._host = host
        self._path = path
        self._args = args
        self._descriptor = descriptor
        self._task: asyncio.Task[Result] | None = None

    async def load(self) -> Result:
        if self._task is None:
            self._task = asyncio.ensure_future(self._run())
        return await self._task

    async def refresh(self) -> Result:
        self._task = None
        return await self.load()

    async def _run(self) -> Result:
        self.set(Result.waiting(self.state))
        result = await fetch_result(self._host.query, self._path, self._args, self._descriptor)
        self.set(result)
        return result


class SubscriptionCell(Cell):
    """Live query. Each pushed envelope is decoded into a new state."""

    def __init__(self, host: HostClient, path: str, args: dict[str, Any], descriptor: EndpointDescriptor):
        super().__init__(label=f"subscription:{descriptor.tag}")
        self._host = host
        self._path = path
        self._args = args
        self._descriptor = descriptor
        self._unsubscribe: Unsubscribe | None = None

    @property
    def is_open(self) -> bool:
        return self._unsubscribe is not None

    def open(self) -> SubscriptionCell:
        if self._unsubscribe is not None:
            return self
        self.set(Result.waiting(self.state))
        try:
            self._unsubscribe = self._host.on_update(self._path, self._args, self._on_push, self._on_error)
        except Exception as exc:
            logger.warning("Cannot subscribe to {}: {}", self._path, exc)
            self.set(Result.failure(sanitize_defect(exc)))
        return self

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_push(self, wire: Any) -> None:
        self.set(decode_result(self._descriptor, wire))

    def _on_error(self, exc: Exception) -> None:
        self.set(Result.failure(sanitize_defect(exc)))


class LiveQuery(Cell):
    """Mirrors the subscription cell of its current argument key.

    Switching arguments detaches from the previous cell, so late pushes on the
    previous channel never reach this observer. The previous channel itself
    stays open because other callers may share it; ``RpcClient.close()``
    closes every channel.
    """

    def __init__(self, endpoint: QueryEndpoint, args: Any = None):
        super().__init__(label=f"live:{endpoint.tag}")
        self._endpoint = endpoint
        self._current: SubscriptionCell | None = None
        self._detach: Callable[[], None] | None = None
        self.set_args(args)

    @property
    def current(self) -> SubscriptionCell | None:
        return self._current

    def set_args(self, args: Any) -> None:
        cell = self._endpoint.subscription(args)
        if cell is self._current:
            return
        if self._detach is not None:
            self._detach()
        self._current = cell
        self._detach = cell.subscribe(self.set)
        self.set(cell.state)

    def close(self) -> None:
        if self._detach is not None:
            self._detach()
            self._detach = None


class FunctionBinding(Cell):
    """Mutation or action. Every call goes back to WAITING and re-reads the shared fields."""

    def __init__(self, call: HostCall, path: str, descriptor: EndpointDescriptor, get_shared: SharedFields):
        super().__init__(label=f"{descriptor.kind_name}:{descriptor.tag}")
        self._call = call
        self._path = path
        self._descriptor = descriptor
        self._get_shared = get_shared

    async def __call__(self, payload: Any = None) -> Result:
        self.set(Result.waiting(self.state))
        args = {**wire_args(self._get_shared()), **wire_args(payload)}
        result = await fetch_result(self._call, self._path, args, self._descriptor)
        self.set(result)
        return result


@dataclass(frozen=True, slots=True)
class PullState:
    items: tuple[Any, ...]
    chunk: tuple[Any, ...]
    done: bool


def _page_parts(value: Any) -> tuple[list[Any], bool, str | None]:
    if isinstance(value, PaginationResult):
        return list(value.page), value.is_done, value.continue_cursor
    if isinstance(value, Mapping) and isinstance(value.get("page"), list):
        return list(value["page"]), bool(value.get("isDone")), value.get("continueCursor")
    raise WireDecodeError("Paginated result has no page")


class PullCell(Cell):
    """Cursor pagination. Each ``pull()`` fetches the next page until the query reports it is done."""

    def __init__(
        self,
        host: HostClient,
        path: str,
        descriptor: EndpointDescriptor,
        page_size: int,
        args: dict[str, Any],
        get_shared: SharedFields,
    ):
        if page_size < 1:
            raise ValueError("page_size must be at least 1")
        super().__init__(label=f"paginated:{descriptor.tag}")
        self._host = host
        self._path = path
        self._descriptor = descriptor
        self._page_size = page_size
        self._args = args
        self._get_shared = get_shared
        self._cursor: str | None = None
        self._items: list[Any] = []
        self._done = False
        self._lock = asyncio.Lock()

    @property
    def done(self) -> bool:
        return self._done

    @property
    def items(self) -> list[Any]:
        return list(self._items)

    async def pull(self) -> Result:
        async with self._lock:
            if self.state.is_failure:
                return self.state
            if self._done:
                state = Result.success(PullState(tuple(self._items), (), True))
                self.set(state)
                return state
            self.set(Result.waiting(self.state))
            args = {
                **wire_args(self._get_shared()),
                **self._args,
                "cursor": self._cursor,
                "numItems": self._page_size,
            }
            result = await fetch_result(self._host.query, self._path, args, self._descriptor)
            if result.is_failure:
                self.set(result)
                return result
            try:
                page, is_done, cursor = _page_parts(result.value)
            except WireDecodeError as exc:
                failed = Result.failure(sanitize_defect(exc))
                self.set(failed)
                return failed
            self._items.extend(page)
            self._cursor = cursor
            self._done = is_done
            state = Result.success(PullState(tuple(self._items), tuple(page), is_done))
            self.set(state)
            return state

    async def pull_all(self) -> Result:
        result = await self.pull()
        while result.is_success and not self._done:
            result = await self.pull()
        return result


class _EndpointBinding:
    __slots__ = ("_client", "descriptor", "path")

    def __init__(self, client: RpcClient, descriptor: EndpointDescriptor, path: str):
        self._client = client
        self.descriptor = descriptor
        self.path = path

    @property
    def tag(self) -> str:
        return self.descriptor.tag

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.tag!r})"


class QueryEndpoint(_EndpointBinding):
    __slots__ = ()

    def _query_args(self, args: Any) -> dict[str, Any]:
        return {**wire_args(self._client.shared_fields()), **wire_args(args)}

    def query(self, args: Any = None) -> QueryCell:
        key = ("query", self.tag, stable_key(args))
        return self._client.cache.get_or_create(
            key, lambda: QueryCell(self._client.host, self.path, self._query_args(args), self.descriptor)
        )

    def subscription(self, args: Any = None) -> SubscriptionCell:
        key = ("subscription", self.tag, stable_key(args))
        cell = self._client.cache.get_or_create(
            key, lambda: SubscriptionCell(self._client.host, self.path, self._query_args(args), self.descriptor)
        )
        return cell.open()

    def live(self, args: Any = None) -> LiveQuery:
        return LiveQuery(self, args)

    def paginated(self, page_size: int, args: Any = None) -> PullCell:
        return PullCell(
            self._client.host, self.path, self.descriptor, page_size, wire_args(args), self._client.shared_fields
        )


class MutationEndpoint(_EndpointBinding):
    __slots__ = ()

    @property
    def binding(self) -> FunctionBinding:
        return self._client.cache.get_or_create(
            ("mutation", self.tag),
            lambda: FunctionBinding(self._client.host.mutation, self.path, self.descriptor, self._client.shared_fields),
        )

    async def mutate(self, payload: Any = None) -> Result:
        return await self.binding(payload)


class ActionEndpoint(_EndpointBinding):
    __slots__ = ()

    @property
    def binding(self) -> FunctionBinding:
        return self._client.cache.get_or_create(
            ("action", self.tag),
            lambda: FunctionBinding(self._client.host.action, self.path, self.descriptor, self._client.shared_fields),
        )

    async def call(self, payload: Any = None) -> Result:
        return await self.binding(payload)
