"""
Backend exceptions.
"""


class BackendError(Exception):
    """Error reported by the hosted backend or raised while reaching it."""

    def __init__(self, message: str, status: int = 0):
        super().__init__(message)
        self.status = status


class AuthenticationError(Exception):
    """Sign-in, token refresh or session error."""

    pass


class PermissionDeniedError(Exception):
    """The signed-in profile may not perform the requested operation."""

    pass
