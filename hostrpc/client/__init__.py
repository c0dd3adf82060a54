"""Client side: dispatch proxy, bindings and observable result cells."""

from .bindings import (
    ActionEndpoint,
    FunctionBinding,
    LiveQuery,
    MutationEndpoint,
    PullCell,
    PullState,
    QueryCell,
    QueryEndpoint,
    SubscriptionCell,
    stable_key,
)
from .dispatch import ClientBindingCache, RpcClient
from .result import Cell, Result, ResultStatus

__all__ = [
    "ActionEndpoint",
    "Cell",
    "ClientBindingCache",
    "FunctionBinding",
    "LiveQuery",
    "MutationEndpoint",
    "PullCell",
    "PullState",
    "QueryCell",
    "QueryEndpoint",
    "Result",
    "ResultStatus",
    "RpcClient",
    "SubscriptionCell",
    "stable_key",
]
