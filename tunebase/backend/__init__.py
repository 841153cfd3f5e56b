"""
Hosted backend access.

Handles REST/RPC/function calls, authentication and object storage.
"""

from .api_client import (
    BackendClient,
    BackendResponse,
    and_,
    contains,
    eq,
    ilike,
    in_,
    literal,
    or_,
)
from .auth import AuthService
from .exceptions import AuthenticationError, BackendError, PermissionDeniedError
from .storage import StorageBucket
from .tokens import AuthSession

__all__ = [
    "BackendClient",
    "BackendResponse",
    "and_",
    "contains",
    "eq",
    "ilike",
    "in_",
    "literal",
    "or_",
    "AuthService",
    "AuthSession",
    "AuthenticationError",
    "BackendError",
    "PermissionDeniedError",
    "StorageBucket",
]
