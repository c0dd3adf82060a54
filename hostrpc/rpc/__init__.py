"""Server side: endpoint declaration, middleware, outcome encoding, registration."""

from .descriptor import EndpointDescriptor, EndpointGroup, EndpointKind
from .factory import BuiltEndpoint, EndpointFactory, EndpointPipeline, UnbuiltEndpoint
from .middleware import (
    MiddlewareEntry,
    MiddlewareMode,
    MiddlewareOptions,
    MiddlewareTag,
    apply_middleware,
    compose_middlewares,
    key_auth_middleware,
    retry_middleware,
)
from .outcome import (
    Defect,
    Empty,
    Failure,
    Outcome,
    Success,
    decode_outcome,
    encode_outcome,
    get_failure_or_none,
    get_value_or_none,
    get_value_or_raise,
    is_failure,
    is_success,
    match_outcome,
    sanitize_defect,
)
from .registrar import HostFunctionSpec, RpcModule, make_rpc_module, merge_modules
from .retry import RetryPolicy, with_retry
from .services import ActionCtx, MutationCtx, QueryCtx, ServiceKey, provide
from .shapes import PAGINATION_FIELDS, ErrorShape, PaginationResult, SuccessShape, TaggedError
from .wrappers import HandlerWrapper, fork, is_wrapper, uninterruptible, wrap

__all__ = [
    "ActionCtx",
    "BuiltEndpoint",
    "Defect",
    "Empty",
    "EndpointDescriptor",
    "EndpointFactory",
    "EndpointGroup",
    "EndpointKind",
    "EndpointPipeline",
    "ErrorShape",
    "Failure",
    "HandlerWrapper",
    "HostFunctionSpec",
    "MiddlewareEntry",
    "MiddlewareMode",
    "MiddlewareOptions",
    "MiddlewareTag",
    "MutationCtx",
    "Outcome",
    "PAGINATION_FIELDS",
    "PaginationResult",
    "QueryCtx",
    "RetryPolicy",
    "RpcModule",
    "ServiceKey",
    "Success",
    "SuccessShape",
    "TaggedError",
    "UnbuiltEndpoint",
    "apply_middleware",
    "compose_middlewares",
    "decode_outcome",
    "encode_outcome",
    "fork",
    "get_failure_or_none",
    "get_value_or_none",
    "get_value_or_raise",
    "is_failure",
    "is_success",
    "is_wrapper",
    "key_auth_middleware",
    "make_rpc_module",
    "match_outcome",
    "merge_modules",
    "provide",
    "retry_middleware",
    "sanitize_defect",
    "uninterruptible",
    "with_retry",
    "wrap",
]
