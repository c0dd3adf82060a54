"""hostrpc - typed remote procedures over a host platform's function registry."""

__version__ = "0.1.0"

from hostrpc.client import RpcClient
from hostrpc.rpc import (
    EndpointFactory,
    MiddlewareTag,
    RpcModule,
    ServiceKey,
    TaggedError,
    decode_outcome,
    encode_outcome,
    make_rpc_module,
)

__all__ = [
    "EndpointFactory",
    "MiddlewareTag",
    "RpcClient",
    "RpcModule",
    "ServiceKey",
    "TaggedError",
    "__version__",
    "decode_outcome",
    "encode_outcome",
    "make_rpc_module",
]
