"""
StudyCare Backend — Auth Gateway Unit Tests
=============================================

What:  SupabaseAuthGateway client handling and error translation with the
       Supabase SDK mocked.

Test Strategy:
    ✅ Sign-in/sign-up share one anon client across calls
    ✅ Rejected credentials become AuthenticationError
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from studycare.exceptions import AuthenticationError
from studycare.services.auth_gateway import SupabaseAuthGateway

USER_ID = "5b0f6f8e-6a43-4a43-9a59-3f1f6c1b2d11"


def _auth_response(token="token-1"):
    user = SimpleNamespace(id=USER_ID, email="kid@example.com", user_metadata={}, email_confirmed_at=None)
    return SimpleNamespace(user=user, session=SimpleNamespace(access_token=token))


@pytest.fixture
def anon_client():
    client = MagicMock()
    client.auth.sign_in_with_password = AsyncMock(return_value=_auth_response())
    client.auth.sign_up = AsyncMock(return_value=_auth_response("token-2"))
    return client


class TestAnonClient:

    @pytest.mark.asyncio
    async def test_one_client_serves_every_sign_in(self, anon_client):
        gateway = SupabaseAuthGateway()
        factory = AsyncMock(return_value=anon_client)

        with patch("studycare.services.auth_gateway.acreate_client", new=factory):
            first = await gateway.sign_in("kid@example.com", "secret-1")
            second = await gateway.sign_in("kid@example.com", "secret-1")
            registered = await gateway.sign_up("new@example.com", "secret-2", {"full_name": "New"})

        assert factory.await_count == 1
        assert anon_client.auth.sign_in_with_password.await_count == 2
        assert first.access_token == second.access_token == "token-1"
        assert registered.access_token == "token-2"

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, anon_client):
        anon_client.auth.sign_in_with_password.side_effect = RuntimeError("Invalid login credentials")
        gateway = SupabaseAuthGateway()

        with patch("studycare.services.auth_gateway.acreate_client", new=AsyncMock(return_value=anon_client)):
            with pytest.raises(AuthenticationError, match="Invalid email or password"):
                await gateway.sign_in("kid@example.com", "wrong")
