"""Observable result cells for presentation layers.

A cell moves through INITIAL -> WAITING -> SUCCESS | FAILURE and notifies
its listeners on every transition. Defects and interrupted calls surface as
FAILURE whose error is the sanitized defect object, the same shape a typed
failure has on the wire.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from loguru import logger

from hostrpc.rpc.outcome import Defect, Empty, Failure, Outcome, Success

INTERRUPTED = {"_tag": "Empty", "message": "Call was interrupted"}


class ResultStatus(Enum):
    INITIAL = "initial"
    WAITING = "waiting"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True, slots=True)
class Result:
    status: ResultStatus
    value: Any = None
    error: Any = None

    @classmethod
    def initial(cls) -> Result:
        return cls(ResultStatus.INITIAL)

    @classmethod
    def waiting(cls, previous: Result | None = None) -> Result:
        """In flight; keeps the previous value/error so UIs can show stale data."""
        if previous is None:
            return cls(ResultStatus.WAITING)
        return cls(ResultStatus.WAITING, previous.value, previous.error)

    @classmethod
    def success(cls, value: Any) -> Result:
        return cls(ResultStatus.SUCCESS, value=value)

    @classmethod
    def failure(cls, error: Any) -> Result:
        return cls(ResultStatus.FAILURE, error=error)

    @classmethod
    def from_outcome(cls, outcome: Outcome) -> Result:
        if isinstance(outcome, Success):
            return cls.success(outcome.value)
        if isinstance(outcome, Failure):
            return cls.failure(outcome.error)
        if isinstance(outcome, Defect):
            return cls.failure(dict(outcome.defect))
        if isinstance(outcome, Empty):
            return cls.failure(dict(INTERRUPTED))
        raise TypeError(f"Not an outcome: {outcome!r}")

    @property
    def is_initial(self) -> bool:
        return self.status is ResultStatus.INITIAL

    @property
    def is_waiting(self) -> bool:
        return self.status is ResultStatus.WAITING

    @property
    def is_success(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.status is ResultStatus.FAILURE

    @property
    def is_settled(self) -> bool:
        return self.status in (ResultStatus.SUCCESS, ResultStatus.FAILURE)


Listener = Callable[[Result], None]


class Cell:
    """Holds one Result and notifies listeners when it changes."""

    def __init__(self, label: str = ""):
        self.label = label
        self._state = Result.initial()
        self._listeners: list[Listener] = []

    @property
    def state(self) -> Result:
        return self._state

    def set(self, result: Result) -> None:
        self._state = result
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception("Listener on cell {} raised", self.label or type(self).__name__)

    def subscribe(self, listener: Listener, *, emit_current: bool = False) -> Callable[[], None]:
        self._listeners.append(listener)
        if emit_current:
            listener(self._state)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def listener_count(self) -> int:
        return len(self._listeners)

    async def wait_for(
        self,
        predicate: Callable[[Result], bool] | None = None,
        *,
        timeout: float | None = None,
    ) -> Result:
        """Wait until the state satisfies ``predicate`` (default: settled)."""
        check = predicate or (lambda r: r.is_settled)
        if check(self._state):
            return self._state
        future: asyncio.Future[Result] = asyncio.get_running_loop().create_future()

        def on_change(result: Result) -> None:
            if check(result) and not future.done():
                future.set_result(result)

        unsubscribe = self.subscribe(on_change)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.label!r}, {self._state.status.value})"
