"""Host platform collaborators: protocols, in-memory host, HTTP client."""

from .http import HttpHostClient
from .memory import DocumentNotFoundError, DocumentQuery, DocumentStore, InMemoryHost, InMemoryHostClient
from .protocol import (
    DocumentReader,
    DocumentWriter,
    HostActionCtx,
    HostClient,
    HostMutationCtx,
    HostQueryCtx,
    Unsubscribe,
)

__all__ = [
    "DocumentNotFoundError",
    "DocumentQuery",
    "DocumentReader",
    "DocumentStore",
    "DocumentWriter",
    "HostActionCtx",
    "HostClient",
    "HostMutationCtx",
    "HostQueryCtx",
    "HttpHostClient",
    "InMemoryHost",
    "InMemoryHostClient",
    "Unsubscribe",
]
