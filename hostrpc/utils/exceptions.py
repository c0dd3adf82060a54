"""
Framework errors for hostrpc.

These are errors of the machinery itself (bad registrations, undecodable
wire values, transport failures). Domain failures that travel to clients are
``TaggedError`` subclasses in ``hostrpc.rpc.shapes`` instead.

Also home to the message scrubbing used before anything leaves the server:
credentials and source locations are removed from defect messages.
"""

from __future__ import annotations

import asyncio
import json
import re
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    FATAL = "fatal"
    RETRYABLE = "retryable"
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PERMISSION = "permission"
    TIMEOUT = "timeout"
    RATE_LIMIT = "rate_limit"

    @property
    def retryable(self) -> bool:
        return self in (ErrorCategory.RETRYABLE, ErrorCategory.TIMEOUT, ErrorCategory.RATE_LIMIT)


class HostRpcError(Exception):
    """Root of the framework error hierarchy; carries a stable code and a category."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        category: ErrorCategory = ErrorCategory.FATAL,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.details = dict(details or {})

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "category": self.category.value,
            "details": self.details,
        }


class RegistrationError(HostRpcError):
    """Raised while a module is being built; never reaches a client."""

    def __init__(self, message: str, tag: str | None = None, code: str = "REGISTRATION_ERROR"):
        super().__init__(message, code=code, details={"tag": tag} if tag else None)
        self.tag = tag


class DuplicateTagError(RegistrationError):
    def __init__(self, tag: str):
        super().__init__(f"Duplicate endpoint tag: {tag}", tag=tag, code="DUPLICATE_TAG")


class PayloadDecodeError(HostRpcError):
    """Inbound arguments rejected by the endpoint's payload model.

    ``errors`` is pydantic's ``ValidationError.errors()`` list; only the field
    locations are kept, never the offending input values.
    """

    def __init__(self, tag: str, errors: list[dict[str, Any]]):
        fields = sorted({".".join(map(str, err.get("loc", ()))) for err in errors} - {""})
        super().__init__(
            f"Invalid payload for '{tag}': {', '.join(fields) or 'root'}",
            code="PAYLOAD_DECODE_ERROR",
            category=ErrorCategory.VALIDATION,
            details={"tag": tag, "fields": fields},
        )


class MissingServiceError(HostRpcError):
    def __init__(self, service: str):
        super().__init__(f"Service not provided: {service}", code="MISSING_SERVICE", details={"service": service})


class WireDecodeError(HostRpcError):
    """A host value is not a valid outcome encoding."""

    def __init__(self, message: str):
        super().__init__(message, code="WIRE_DECODE_ERROR", category=ErrorCategory.VALIDATION)


class HostCallError(HostRpcError):
    def __init__(self, path: str, message: str, status_code: int | None = None):
        super().__init__(
            f"Host call '{path}' failed: {message}",
            code="HOST_CALL_ERROR",
            category=ErrorCategory.RETRYABLE,
            details={"path": path, "status_code": status_code},
        )


class RemoteDefectError(HostRpcError):
    """Raised client-side for a Die outcome; ``defect`` is the sanitized payload."""

    def __init__(self, defect: dict[str, Any]):
        self.defect = dict(defect)
        message = self.defect.get("message") or self.defect.get("_tag") or "Remote defect"
        super().__init__(str(message), code="REMOTE_DEFECT", details=self.defect)


class UnsupportedOperationError(HostRpcError):
    def __init__(self, operation: str, client: str):
        super().__init__(
            f"{client} does not support {operation}",
            code="UNSUPPORTED_OPERATION",
            details={"operation": operation, "client": client},
        )


_CREDENTIAL_PATTERNS = (
    re.compile(r"\b(?:api|access|admin)?[_-]?(?:key|token|secret|password|auth)[=:]\s*['\"]?[^\s'\"]+['\"]?", re.IGNORECASE),
    re.compile(r"bearer\s+[\w\-.~+/]+=*", re.IGNORECASE),
    re.compile(r"sk-[A-Za-z0-9]{20,}"),
    re.compile(r"[A-Za-z0-9]{32,}"),
)

_SOURCE_PATTERNS = (
    re.compile(r"Traceback \(most recent call last\):.*", re.DOTALL),
    re.compile(r"File \"[^\"]+\", line \d+(?:, in \S+)?"),
    re.compile(r"(?:[A-Za-z]:)?[\w.\-~]*(?:[\\/][\w.\-@]+)+\.(?:pyi?|pyc|so|[mc]?js|tsx?)(?::\d+)*"),
)


def strip_source_locations(message: str) -> str:
    """Replace traceback text and source file paths with ``[PATH]``."""
    for pattern in _SOURCE_PATTERNS:
        message = pattern.sub("[PATH]", message)
    return message.strip()


def sanitize_error_message(message: str, replacement: str = "[REDACTED]") -> str:
    """``strip_source_locations`` plus credential redaction."""
    cleaned = strip_source_locations(message)
    for pattern in _CREDENTIAL_PATTERNS:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned.strip()


# Checked in order; subclasses before their bases.
_BY_TYPE: tuple[tuple[type[BaseException] | tuple[type[BaseException], ...], str, ErrorCategory], ...] = (
    (FileNotFoundError, "FILE_NOT_FOUND", ErrorCategory.NOT_FOUND),
    (PermissionError, "PERMISSION_DENIED", ErrorCategory.PERMISSION),
    ((asyncio.TimeoutError, TimeoutError), "TIMEOUT", ErrorCategory.TIMEOUT),
    (ConnectionError, "CONNECTION_ERROR", ErrorCategory.RETRYABLE),
    (json.JSONDecodeError, "JSON_PARSE_ERROR", ErrorCategory.VALIDATION),
    (ValueError, "INVALID_VALUE", ErrorCategory.VALIDATION),
    (KeyError, "MISSING_KEY", ErrorCategory.VALIDATION),
    (TypeError, "TYPE_ERROR", ErrorCategory.VALIDATION),
)

_BY_MESSAGE: tuple[tuple[tuple[str, ...], str, ErrorCategory], ...] = (
    (("rate limit", "429"), "RATE_LIMIT", ErrorCategory.RATE_LIMIT),
    (("timeout", "timed out"), "TIMEOUT", ErrorCategory.TIMEOUT),
    (("not found", "404"), "NOT_FOUND", ErrorCategory.NOT_FOUND),
    (("forbidden", "403"), "PERMISSION_DENIED", ErrorCategory.PERMISSION),
    (("unauthorized", "401"), "UNAUTHORIZED", ErrorCategory.PERMISSION),
    (("connection", "network"), "CONNECTION_ERROR", ErrorCategory.RETRYABLE),
)


def classify_exception(exc: BaseException) -> tuple[str, ErrorCategory, bool]:
    """Return ``(code, category, should_retry)`` for any exception."""
    if isinstance(exc, HostRpcError):
        return exc.code, exc.category, exc.category.retryable

    for types, code, category in _BY_TYPE:
        if isinstance(exc, types):
            return code, category, category.retryable

    text = str(exc).lower()
    for needles, code, category in _BY_MESSAGE:
        if any(needle in text for needle in needles):
            return code, category, category.retryable

    return "INTERNAL_ERROR", ErrorCategory.FATAL, False
