"""Modules built on hostrpc: guestbook and admin."""

from .admin import AdminStats, NotFoundError, make_admin_module
from .auth import AuthenticatedUser, AuthenticationError, UnauthorizedError, User, auth_middleware
from .guestbook import EmptyFieldError, GuestbookEntry, make_guestbook_module

__all__ = [
    "AdminStats",
    "AuthenticatedUser",
    "AuthenticationError",
    "EmptyFieldError",
    "GuestbookEntry",
    "NotFoundError",
    "UnauthorizedError",
    "User",
    "auth_middleware",
    "make_admin_module",
    "make_guestbook_module",
]
