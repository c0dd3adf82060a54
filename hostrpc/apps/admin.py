"""Admin module, guarded by a separate admin key."""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from hostrpc.apps.auth import UnauthorizedError
from hostrpc.apps.guestbook import TABLE, GuestbookEntry
from hostrpc.config.schema import ServerConfig
from hostrpc.rpc import (
    ActionCtx,
    EndpointFactory,
    MiddlewareTag,
    MutationCtx,
    QueryCtx,
    RpcModule,
    SuccessShape,
    TaggedError,
    decode_outcome,
    get_value_or_raise,
    key_auth_middleware,
    make_rpc_module,
)


class NotFoundError(TaggedError):
    resource: str
    id: str


class AdminStats(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_entries: int
    latest_entry_time: float | None = None


AdminAuth = MiddlewareTag("AdminAuth", failure=UnauthorizedError)


def make_admin_module(
    admin_key: str | Callable[[], str],
    *,
    name: str | None = "admin",
    config: ServerConfig | None = None,
) -> RpcModule:
    rpc = EndpointFactory(
        base_payload={"admin_key": (str | None, None)},
        middlewares=[
            key_auth_middleware(
                AdminAuth,
                field_name="admin_key",
                expected_key=admin_key,
                on_missing=lambda: UnauthorizedError("Admin key required"),
                on_invalid=lambda: UnauthorizedError("Invalid admin key"),
            )
        ],
        config=config,
    )

    def path(tag: str) -> str:
        return f"{name}:{tag}" if name else tag

    @rpc.query(success=AdminStats)
    async def get_stats(payload):
        entries = await QueryCtx.get().db.query(TABLE).collect()
        latest = max((e["_creationTime"] for e in entries), default=None)
        return AdminStats(total_entries=len(entries), latest_entry_time=latest)

    @rpc.query(payload={"limit": (int, 100)}, success=list[GuestbookEntry])
    async def list_entries(payload):
        return await QueryCtx.get().db.query(TABLE).order("desc").take(payload.limit)

    @rpc.mutation(payload={"entry_id": str}, success=None, error=NotFoundError)
    async def delete_entry(payload):
        db = MutationCtx.get().db
        if await db.get(payload.entry_id) is None:
            raise NotFoundError(resource=TABLE, id=payload.entry_id)
        await db.delete(payload.entry_id)

    @rpc.internal_mutation(payload={"keep": int}, success=int)
    async def prune_oldest(payload):
        db = MutationCtx.get().db
        entries = await db.query(TABLE).order("desc").collect()
        stale = entries[max(payload.keep, 0):]
        for entry in stale:
            await db.delete(entry["_id"])
        return len(stale)

    @rpc.action(payload={"keep": int}, success=int)
    async def prune(payload):
        wire = await ActionCtx.get().run_mutation(
            path("pruneOldest"),
            {"adminKey": payload.admin_key, "keep": payload.keep},
        )
        return get_value_or_raise(decode_outcome(wire, SuccessShape(int)))

    return make_rpc_module(
        {
            "getStats": get_stats,
            "listEntries": list_entries,
            "deleteEntry": delete_entry,
            "pruneOldest": prune_oldest,
            "prune": prune,
        },
        name=name,
    )
