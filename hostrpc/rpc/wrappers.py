"""Execution hints a handler can attach to its result.

    @rpc.action(success=int)
    def rebuild(payload):
        return uninterruptible(rebuild_index(payload.scope))

``fork`` runs the awaitable as its own task. ``uninterruptible`` also shields
it, so cancelling the call ends the call (an Empty outcome) while the work
itself runs to completion.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class HandlerWrapper:
    value: Any
    fork: bool = False
    uninterruptible: bool = False


def wrap(*, fork: bool = False, uninterruptible: bool = False) -> Callable[[Any], HandlerWrapper]:
    def apply(value: Any) -> HandlerWrapper:
        return HandlerWrapper(value, fork=fork, uninterruptible=uninterruptible)

    return apply


def fork(value: Any) -> HandlerWrapper:
    return HandlerWrapper(value, fork=True)


def uninterruptible(value: Any) -> HandlerWrapper:
    return HandlerWrapper(value, uninterruptible=True)


def is_wrapper(value: Any) -> bool:
    return isinstance(value, HandlerWrapper)


async def run_wrapped(wrapper: HandlerWrapper) -> Any:
    value = wrapper.value
    if not inspect.isawaitable(value):
        return value
    if not (wrapper.fork or wrapper.uninterruptible):
        return await value
    # the task copies the current context, so provided services stay visible
    task = asyncio.ensure_future(value)
    if wrapper.uninterruptible:
        return await asyncio.shield(task)
    return await task
