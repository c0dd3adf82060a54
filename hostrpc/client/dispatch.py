"""Client dispatch proxy.

    client = RpcClient(module, host.client(), get_shared=lambda: {"privateAccessKey": key})
    await client["add"].mutate({"name": "Alice", "message": "Hi"})
    entries = await client["list"].query().load()

The binding table is built once from the module's public tags. Bindings and
cells live in a cache owned by the client instance; entries are created on
first access and never replaced.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Hashable, Mapping
from typing import Any, TypeVar

import httpx
from loguru import logger

from hostrpc.client.bindings import ActionEndpoint, MutationEndpoint, QueryEndpoint, SubscriptionCell, wire_args
from hostrpc.config.schema import ClientConfig, Config
from hostrpc.host.http import HttpHostClient
from hostrpc.host.protocol import HostClient
from hostrpc.rpc.descriptor import EndpointKind
from hostrpc.rpc.registrar import RpcModule

T = TypeVar("T")

EndpointBinding = QueryEndpoint | MutationEndpoint | ActionEndpoint

_BINDING_TYPES: dict[EndpointKind, type[EndpointBinding]] = {
    EndpointKind.QUERY: QueryEndpoint,
    EndpointKind.MUTATION: MutationEndpoint,
    EndpointKind.ACTION: ActionEndpoint,
}


class ClientBindingCache:
    """Insert-if-absent storage for bindings and cells of one client."""

    def __init__(self):
        self._entries: dict[Hashable, Any] = {}
        self._lock = threading.Lock()

    def get_or_create(self, key: Hashable, factory: Callable[[], T]) -> T:
        entry = self._entries.get(key)
        if entry is not None:
            return entry
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                entry = factory()
                self._entries[key] = entry
            return entry

    def values(self) -> list[Any]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, key: Hashable) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


class RpcClient:
    def __init__(
        self,
        module: RpcModule,
        host: HostClient,
        *,
        get_shared: Callable[[], Mapping[str, Any]] | None = None,
    ):
        self.module = module
        self.host = host
        self.cache = ClientBindingCache()
        self._get_shared = get_shared
        self._table: dict[str, tuple[type[EndpointBinding], str]] = {
            tag: (_BINDING_TYPES[module.endpoints[tag].kind], module.function_path(tag))
            for tag in module.public_tags()
        }

    @classmethod
    def from_config(
        cls,
        module: RpcModule,
        config: ClientConfig | Config | None = None,
        *,
        get_shared: Callable[[], Mapping[str, Any]] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> RpcClient:
        """Client over HTTP. One-shot calls only; subscriptions end in a failed state."""
        if isinstance(config, Config):
            config = config.client
        host = HttpHostClient(config or ClientConfig(), http_client=http_client)
        return cls(module, host, get_shared=get_shared)

    def tags(self) -> list[str]:
        return list(self._table)

    def shared_fields(self) -> dict[str, Any]:
        """Current shared fields; the closure is read on every call."""
        if self._get_shared is None:
            return {}
        return wire_args(self._get_shared())

    def endpoint(self, tag: str) -> Any:
        entry = self._table.get(tag)
        if entry is None:
            raise KeyError(f"Unknown endpoint tag: {tag}")
        binding_type, path = entry
        descriptor = self.module.endpoints[tag]
        return self.cache.get_or_create(("endpoint", tag), lambda: binding_type(self, descriptor, path))

    def __getitem__(self, tag: str) -> Any:
        return self.endpoint(tag)

    def __contains__(self, tag: object) -> bool:
        return tag in self._table

    async def close(self) -> None:
        closed = 0
        for entry in self.cache.values():
            if isinstance(entry, SubscriptionCell) and entry.is_open:
                entry.close()
                closed += 1
        logger.debug("RPC client closed {} live channels", closed)
        await self.host.close()

    async def __aenter__(self) -> RpcClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
