"""
StudyCare Backend — Request Dependencies
==========================================

What:  FastAPI dependencies that authenticate the caller and gate routes by
       role.
How:   `get_current_user` validates the bearer token with the auth provider,
       loads the caller's profile and, when the profile row is missing
       (identity created but profile insert never happened), provisions it
       from the identity's metadata. `require_roles(...)` builds a dependency
       that checks the loaded profile's role.

Usage:
    router = APIRouter(
        prefix="/api/teacher",
        dependencies=[Depends(require_roles("teacher"))],
    )

    @router.get("/classes")
    async def list_classes(user: User = Depends(get_current_user), ...):
        ...

FastAPI caches a dependency per request, so the router-level role gate and
the handler's `get_current_user` share a single token lookup.
"""

import logging
from typing import Callable, Optional

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import get_db_session
from studycare.exceptions import AuthenticationError, AuthorizationError
from studycare.models import User
from studycare.services.auth_gateway import auth_gateway
from studycare.services.profile_service import profile_service

logger = logging.getLogger(__name__)


def bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    """
    Resolve the authenticated caller's profile.

    Raises:
        AuthenticationError: no bearer token, or the provider rejects it.
    """
    token = bearer_token(request)
    if token is None:
        raise AuthenticationError("No authorization token provided")

    identity = await auth_gateway.get_user(token)
    if identity is None:
        raise AuthenticationError("Invalid or expired token")

    user = await profile_service.get_profile(db, identity.id)
    if user is None:
        metadata = identity.user_metadata or {}
        logger.info("No profile for identity %s; provisioning from metadata", identity.id)
        user = await profile_service.provision_profile(
            db,
            identity,
            role=metadata.get("role") or "student",
            language_preference=metadata.get("language_preference") or "en",
            full_name=identity.full_name,
        )

    # The ORM instance expires when the request session rolls back
    request.state.user_id = str(user.id)
    return user


def require_roles(*roles: str) -> Callable:
    """Dependency factory: 401 without a user, 403 when the role is not in `roles`."""

    async def check_role(request: Request, user: User = Depends(get_current_user)) -> User:
        if user is None:
            raise AuthenticationError("Authentication required")
        if user.role not in roles:
            logger.warning(
                "User %s (role %s) denied on %s; requires %s",
                user.id,
                user.role,
                request.url.path,
                ", ".join(roles),
            )
            raise AuthorizationError("Insufficient permissions")
        return user

    return check_role
