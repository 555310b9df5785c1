"""
StudyCare Backend — Supabase Auth Gateway
===========================================

What:  The only module that talks to the authentication provider.
       Token verification, sign-up, password sign-in, and the admin calls
       (list users, confirm email, delete user).
Why:   Services depend on small dataclasses (AuthIdentity, AuthResult)
       instead of SDK objects, so tests can pass a fake gateway.
How:   Two kinds of async Supabase clients:
           - one long-lived service-role client for admin calls and token
             verification (created lazily, shared with StorageService)
           - one long-lived anon-key client for sign-up/sign-in; tokens are
             read from each response, never from the client's session state

Error translation:
    get_user failure           → None (caller raises 401)
    sign_in failure            → AuthenticationError("Invalid email or password")
    sign_up rejected           → ValidationError(<provider message>)
    admin call failure         → AuthProviderError (500)
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from supabase import AsyncClient, acreate_client
from supabase.lib.client_options import AsyncClientOptions

from studycare.config import settings
from studycare.exceptions import AuthenticationError, AuthProviderError, ValidationError

logger = logging.getLogger(__name__)

LIST_USERS_PAGE_SIZE = 1000


@dataclass
class AuthIdentity:
    """An identity as the auth provider knows it (no profile data)."""

    id: uuid.UUID
    email: str
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def full_name(self) -> Optional[str]:
        return self.user_metadata.get("full_name")


@dataclass
class AuthResult:
    identity: AuthIdentity
    # None when the provider requires email confirmation before issuing a session
    access_token: Optional[str]


def _to_identity(user: Any) -> AuthIdentity:
    return AuthIdentity(
        id=uuid.UUID(str(user.id)),
        email=(user.email or "").lower(),
        user_metadata=dict(user.user_metadata or {}),
    )


def _client_options() -> AsyncClientOptions:
    # Server-side clients must never refresh or persist end-user sessions
    return AsyncClientOptions(auto_refresh_token=False, persist_session=False)


class SupabaseAuthGateway:

    def __init__(self):
        self._admin_client: Optional[AsyncClient] = None
        self._anon: Optional[AsyncClient] = None

    async def admin_client(self) -> AsyncClient:
        """Service-role client, created on first use."""
        if self._admin_client is None:
            self._admin_client = await acreate_client(
                settings.supabase_url,
                settings.supabase_service_role_key,
                options=_client_options(),
            )
        return self._admin_client

    async def _anon_client(self) -> AsyncClient:
        """Anon-key client for end-user auth calls, created on first use."""
        if self._anon is None:
            self._anon = await acreate_client(
                settings.supabase_url,
                settings.supabase_anon_key or settings.supabase_service_role_key,
                options=_client_options(),
            )
        return self._anon

    # ── Token verification ────────────────────────────────────────────────
    async def get_user(self, access_token: str) -> Optional[AuthIdentity]:
        """Returns the identity behind a bearer token, or None if it is invalid/expired."""
        client = await self.admin_client()
        try:
            response = await client.auth.get_user(access_token)
        except Exception as e:
            logger.info("Token rejected by auth provider: %s", type(e).__name__)
            return None
        if response is None or response.user is None:
            return None
        return _to_identity(response.user)

    # ── Registration & sign-in ────────────────────────────────────────────
    async def sign_up(
        self, email: str, password: str, metadata: Dict[str, Any]
    ) -> AuthResult:
        client = await self._anon_client()
        try:
            response = await client.auth.sign_up(
                {"email": email, "password": password, "options": {"data": metadata}}
            )
        except Exception as e:
            logger.warning("Sign-up rejected for %s: %s", email, str(e))
            raise ValidationError(message=str(e) or "Registration failed", field="email")

        if response.user is None:
            raise ValidationError(message="Registration failed", field="email")

        token = response.session.access_token if response.session else None
        return AuthResult(identity=_to_identity(response.user), access_token=token)

    async def sign_in(self, email: str, password: str) -> AuthResult:
        client = await self._anon_client()
        try:
            response = await client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            logger.info("Sign-in failed for %s: %s", email, type(e).__name__)
            raise AuthenticationError("Invalid email or password")

        if response.user is None or response.session is None:
            raise AuthenticationError("Invalid email or password")
        return AuthResult(
            identity=_to_identity(response.user),
            access_token=response.session.access_token,
        )

    # ── Admin ─────────────────────────────────────────────────────────────
    async def find_user_by_email(self, email: str) -> Optional[AuthIdentity]:
        """Linear scan of the provider's user list (paged). Email compared case-insensitively."""
        client = await self.admin_client()
        target = email.strip().lower()
        page = 1
        while True:
            try:
                users: List[Any] = await client.auth.admin.list_users(
                    page=page, per_page=LIST_USERS_PAGE_SIZE
                )
            except Exception as e:
                logger.error("Listing auth users failed: %s", str(e))
                raise AuthProviderError(context={"operation": "list_users"})

            for user in users:
                if (user.email or "").lower() == target:
                    return _to_identity(user)
            if len(users) < LIST_USERS_PAGE_SIZE:
                return None
            page += 1

    async def confirm_email(self, user_id: uuid.UUID) -> None:
        client = await self.admin_client()
        try:
            await client.auth.admin.update_user_by_id(str(user_id), {"email_confirm": True})
        except Exception as e:
            logger.error("Confirming email for %s failed: %s", user_id, str(e))
            raise AuthProviderError(context={"operation": "update_user_by_id"})

    async def delete_user(self, user_id: uuid.UUID) -> None:
        client = await self.admin_client()
        try:
            await client.auth.admin.delete_user(str(user_id))
        except Exception as e:
            logger.error("Deleting auth user %s failed: %s", user_id, str(e))
            raise AuthProviderError(context={"operation": "delete_user"})


auth_gateway = SupabaseAuthGateway()
