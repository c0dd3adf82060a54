"""Guestbook module: list, add and paginate entries."""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict, Field

from hostrpc.apps.auth import auth_middleware
from hostrpc.config.schema import ServerConfig
from hostrpc.rpc import (
    PAGINATION_FIELDS,
    EndpointFactory,
    MutationCtx,
    PaginationResult,
    QueryCtx,
    RpcModule,
    TaggedError,
    make_rpc_module,
)

TABLE = "guestbook"
LIST_LIMIT = 50
MAX_NAME_LENGTH = 50
MAX_MESSAGE_LENGTH = 500


class EmptyFieldError(TaggedError):
    field: str


class GuestbookEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    creation_time: float = Field(alias="_creationTime")
    name: str
    message: str


def make_guestbook_module(
    private_access_key: str | Callable[[], str],
    *,
    name: str | None = "guestbook",
    config: ServerConfig | None = None,
) -> RpcModule:
    rpc = EndpointFactory(
        base_payload={"private_access_key": (str | None, None)},
        middlewares=[auth_middleware(private_access_key)],
        config=config,
    )

    @rpc.query(success=list[GuestbookEntry])
    async def list_entries(payload):
        ctx = QueryCtx.get()
        return await ctx.db.query(TABLE).order("desc").take(LIST_LIMIT)

    @rpc.mutation(payload={"name": str, "message": str}, success=str, error=EmptyFieldError)
    async def add(payload):
        entry_name = payload.name.strip()
        message = payload.message.strip()
        if not entry_name:
            raise EmptyFieldError(field="name")
        if not message:
            raise EmptyFieldError(field="message")
        ctx = MutationCtx.get()
        return await ctx.db.insert(
            TABLE,
            {"name": entry_name[:MAX_NAME_LENGTH], "message": message[:MAX_MESSAGE_LENGTH]},
        )

    @rpc.query(payload=PAGINATION_FIELDS, success=PaginationResult[GuestbookEntry])
    async def list_paginated(payload):
        ctx = QueryCtx.get()
        return await ctx.db.query(TABLE).order("desc").paginate(cursor=payload.cursor, num_items=payload.num_items)

    return make_rpc_module(
        {"list": list_entries, "add": add, "listPaginated": list_paginated},
        name=name,
    )
