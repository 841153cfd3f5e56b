"""
Session token management.
"""

import time
from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class AuthSession:
    """Signed-in session returned by the auth endpoint."""

    access_token: str = ""
    refresh_token: str = ""
    expires_at: int = 0  # Seconds (UTC)
    user_id: str = ""
    email: str = ""

    def is_expired(self, buffer_s: int = 60) -> bool:
        """Check if access token is expired or will expire within buffer."""
        if not self.access_token or not self.expires_at:
            return True
        now_s = int(time.time())
        return now_s + buffer_s >= self.expires_at

    def is_valid(self) -> bool:
        """Check if session has all required fields."""
        return bool(self.access_token and self.refresh_token and self.user_id)

    @classmethod
    def from_response(cls, data: dict[str, Any], now: Optional[int] = None) -> "AuthSession":
        """Create from a token grant response."""
        now_s = int(time.time()) if now is None else now
        expires_at = data.get("expires_at")
        if not expires_at:
            expires_at = now_s + int(data.get("expires_in", 0))
        user = data.get("user") or {}
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token", ""),
            expires_at=int(expires_at),
            user_id=str(user.get("id", "")),
            email=user.get("email", "") or "",
        )
