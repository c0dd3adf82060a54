"""Utility functions for hostrpc."""

from hostrpc.utils.exceptions import (
    HostRpcError,
    RegistrationError,
    DuplicateTagError,
    PayloadDecodeError,
    MissingServiceError,
    WireDecodeError,
    HostCallError,
    RemoteDefectError,
    UnsupportedOperationError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
    strip_source_locations,
)
from hostrpc.utils.logging import configure_logging, ensure_rotating_log_file

__all__ = [
    "HostRpcError",
    "RegistrationError",
    "DuplicateTagError",
    "PayloadDecodeError",
    "MissingServiceError",
    "WireDecodeError",
    "HostCallError",
    "RemoteDefectError",
    "UnsupportedOperationError",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
    "strip_source_locations",
    "configure_logging",
    "ensure_rotating_log_file",
]
