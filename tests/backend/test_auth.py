"""Tests for the auth service."""

import pytest

from tunebase.backend.api_client import BackendClient
from tunebase.backend.auth import AuthService
from tunebase.backend.exceptions import AuthenticationError

from .conftest import FakeResponse, FakeSession

GRANT = {
    "access_token": "jwt-1",
    "refresh_token": "refresh-1",
    "expires_in": 3600,
    "user": {"id": "u1", "email": "a@b.co"},
}


@pytest.fixture
def auth(client: BackendClient) -> AuthService:
    return AuthService(client)


class TestSignIn:
    """Tests for password sign-in."""

    @pytest.mark.asyncio
    async def test_sign_in(
        self, auth: AuthService, client: BackendClient, session: FakeSession
    ) -> None:
        session.queue(FakeResponse(200, GRANT))

        result = await auth.sign_in("a@b.co", "secret")

        assert result.user_id == "u1"
        assert auth.is_signed_in is True
        assert client.access_token == "jwt-1"
        assert session.last["params"] == {"grant_type": "password"}
        assert session.last["json"] == {"email": "a@b.co", "password": "secret"}
        assert session.last["url"].endswith("/auth/v1/token")

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, auth: AuthService, session: FakeSession) -> None:
        session.queue(FakeResponse(400, {"error_description": "Invalid login credentials"}))

        with pytest.raises(AuthenticationError, match="Invalid login credentials"):
            await auth.sign_in("a@b.co", "wrong")
        assert auth.is_signed_in is False

    @pytest.mark.asyncio
    async def test_response_without_session(
        self, auth: AuthService, session: FakeSession
    ) -> None:
        session.queue(FakeResponse(200, {"user": {"id": "u1"}}))
        with pytest.raises(AuthenticationError):
            await auth.sign_in("a@b.co", "secret")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh(
        self, auth: AuthService, client: BackendClient, session: FakeSession
    ) -> None:
        session.queue(
            FakeResponse(200, GRANT),
            FakeResponse(200, {**GRANT, "access_token": "jwt-2"}),
        )
        await auth.sign_in("a@b.co", "secret")

        await auth.refresh()

        assert client.access_token == "jwt-2"
        assert session.last["params"] == {"grant_type": "refresh_token"}
        assert session.last["json"] == {"refresh_token": "refresh-1"}

    @pytest.mark.asyncio
    async def test_refresh_when_signed_out(self, auth: AuthService) -> None:
        with pytest.raises(AuthenticationError):
            await auth.refresh()

    @pytest.mark.asyncio
    async def test_ensure_fresh_skips_valid_token(
        self, auth: AuthService, session: FakeSession
    ) -> None:
        session.queue(FakeResponse(200, GRANT))
        await auth.sign_in("a@b.co", "secret")

        await auth.ensure_fresh()

        assert len(session.calls) == 1

    @pytest.mark.asyncio
    async def test_ensure_fresh_refreshes_expiring_token(
        self, auth: AuthService, session: FakeSession
    ) -> None:
        session.queue(
            FakeResponse(200, {**GRANT, "expires_in": 10}),
            FakeResponse(200, {**GRANT, "access_token": "jwt-2"}),
        )
        await auth.sign_in("a@b.co", "secret")

        await auth.ensure_fresh()

        assert auth.session is not None
        assert auth.session.access_token == "jwt-2"


class TestSignOut:
    @pytest.mark.asyncio
    async def test_sign_out_clears_even_on_failure(
        self, auth: AuthService, client: BackendClient, session: FakeSession
    ) -> None:
        session.queue(FakeResponse(200, GRANT), FakeResponse(500, b"down"))
        await auth.sign_in("a@b.co", "secret")

        await auth.sign_out()

        assert auth.session is None
        assert client.access_token is None
        assert session.last["url"].endswith("/auth/v1/logout")

    @pytest.mark.asyncio
    async def test_sign_out_when_signed_out(
        self, auth: AuthService, session: FakeSession
    ) -> None:
        await auth.sign_out()
        assert session.calls == []


class TestProfile:
    @pytest.mark.asyncio
    async def test_fetch_profile(self, auth: AuthService, session: FakeSession) -> None:
        session.queue(FakeResponse(200, GRANT), FakeResponse(200, {"id": "u1", "role": "admin"}))
        await auth.sign_in("a@b.co", "secret")

        profile = await auth.fetch_profile()

        assert profile.is_admin is True
        assert session.last["params"]["id"] == "eq.u1"

    @pytest.mark.asyncio
    async def test_fetch_profile_signed_out(self, auth: AuthService) -> None:
        with pytest.raises(AuthenticationError):
            await auth.fetch_profile()
