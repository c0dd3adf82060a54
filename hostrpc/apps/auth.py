"""Shared-key authentication used by the collaborating modules."""

from __future__ import annotations

from collections.abc import Callable

from pydantic import BaseModel

from hostrpc.rpc import MiddlewareEntry, MiddlewareTag, ServiceKey, TaggedError, key_auth_middleware


class AuthenticationError(TaggedError):
    message: str


class UnauthorizedError(TaggedError):
    message: str


class User(BaseModel):
    id: str
    email: str


AuthenticatedUser: ServiceKey[User] = ServiceKey("AuthenticatedUser")

Auth = MiddlewareTag("AuthMiddleware", provides=AuthenticatedUser, failure=AuthenticationError)

# Holders of the private access key all act as this user.
KEY_HOLDER = User(id="key-holder", email="key-holder@localhost")


def auth_middleware(private_access_key: str | Callable[[], str]) -> MiddlewareEntry:
    """Require ``privateAccessKey`` in the payload; provides AuthenticatedUser."""
    return key_auth_middleware(
        Auth,
        field_name="private_access_key",
        expected_key=private_access_key,
        on_missing=lambda: AuthenticationError("Missing authentication token"),
        on_invalid=lambda: AuthenticationError("Invalid access key"),
        provide_value=lambda _key: KEY_HOLDER,
    )
