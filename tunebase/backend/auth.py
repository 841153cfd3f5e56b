"""
Account authentication against the hosted auth endpoint.
"""

import logging
from typing import Optional

from tunebase.library.types import Profile

from .api_client import BackendClient, eq
from .exceptions import AuthenticationError, BackendError
from .tokens import AuthSession

logger = logging.getLogger(__name__)


class AuthService:
    """Password sign-in, token refresh and profile lookup."""

    AUTH_PATH = "/auth/v1"
    PROFILES_TABLE = "profiles"

    def __init__(self, client: BackendClient):
        self._client = client
        self._session: Optional[AuthSession] = None

    @property
    def session(self) -> Optional[AuthSession]:
        """Current session, if signed in."""
        return self._session

    @property
    def is_signed_in(self) -> bool:
        return self._session is not None and self._session.is_valid()

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password.

        Raises:
            AuthenticationError: If credentials are rejected or the call fails
        """
        try:
            response = await self._client.request(
                "POST",
                f"{self.AUTH_PATH}/token",
                params={"grant_type": "password"},
                json_body={"email": email, "password": password},
            )
        except BackendError as e:
            raise AuthenticationError(f"Sign-in failed: {e}") from e

        session = AuthSession.from_response(response.json() or {})
        if not session.is_valid():
            raise AuthenticationError("Sign-in response did not contain a session")

        self._activate(session)
        logger.info(f"Signed in as {session.email or session.user_id}")
        return session

    async def refresh(self) -> AuthSession:
        """
        Exchange the refresh token for a new access token.

        Raises:
            AuthenticationError: If not signed in or refresh is rejected
        """
        if not self._session:
            raise AuthenticationError("Not signed in")

        try:
            response = await self._client.request(
                "POST",
                f"{self.AUTH_PATH}/token",
                params={"grant_type": "refresh_token"},
                json_body={"refresh_token": self._session.refresh_token},
            )
        except BackendError as e:
            raise AuthenticationError(f"Token refresh failed: {e}") from e

        session = AuthSession.from_response(response.json() or {})
        if not session.is_valid():
            raise AuthenticationError("Refresh response did not contain a session")

        self._activate(session)
        logger.debug("Access token refreshed")
        return session

    async def ensure_fresh(self, buffer_s: int = 60) -> None:
        """Refresh the access token if it expires within buffer."""
        if self._session and self._session.is_expired(buffer_s):
            await self.refresh()

    async def sign_out(self) -> None:
        """Revoke the session. Local state is cleared even if the call fails."""
        if not self._session:
            return
        try:
            await self._client.request("POST", f"{self.AUTH_PATH}/logout")
        except BackendError as e:
            logger.warning(f"Sign-out request failed: {e}")
        finally:
            self._session = None
            self._client.set_access_token(None)
        logger.info("Signed out")

    async def fetch_profile(self) -> Profile:
        """
        Load the signed-in user's profile (role).

        Raises:
            AuthenticationError: If not signed in
            BackendError: If the profile cannot be read
        """
        if not self._session:
            raise AuthenticationError("Not signed in")
        row = await self._client.select(
            self.PROFILES_TABLE,
            filters={"id": eq(self._session.user_id)},
            single=True,
        )
        return Profile.from_row(row)

    def _activate(self, session: AuthSession) -> None:
        self._session = session
        self._client.set_access_token(session.access_token)
