"""
StudyCare Backend — Auth Service
==================================

What:  Registration, login and profile read/update.
How:   The auth provider owns credentials; this service keeps the `users`
       profile in step with it.

Registration Flow:
    1. sign_up with the provider (role/name/language in user metadata)
    2. create the profile (insert, falling back to the SQL procedure)
         → nothing created: delete the identity again, 500
    3. no session returned (email confirmation enabled)?
         → confirm the email through the admin API and sign in
    4. return {user, token}
"""

import logging
import uuid
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from studycare.exceptions import AuthProviderError, DatabaseError, NotFoundError
from studycare.models.common import utcnow
from studycare.models.user import User
from studycare.schemas.user import AuthPayload, RegisterRequest, UpdateProfileRequest, UserProfile
from studycare.services.auth_gateway import SupabaseAuthGateway, auth_gateway
from studycare.services.profile_service import ProfileService, profile_service

logger = logging.getLogger(__name__)


class AuthService:

    def __init__(
        self,
        gateway: Optional[SupabaseAuthGateway] = None,
        profiles: Optional[ProfileService] = None,
    ):
        self.gateway = gateway or auth_gateway
        self.profiles = profiles or profile_service

    async def register(self, db: AsyncSession, data: RegisterRequest) -> AuthPayload:
        language = data.language_preference or "en"
        result = await self.gateway.sign_up(
            data.email,
            data.password,
            metadata={"full_name": data.full_name, "role": data.role, "language_preference": language},
        )
        identity = result.identity
        logger.info("Auth identity %s created for %s", identity.id, data.email)

        try:
            user = await self.profiles.provision_profile(
                db,
                identity,
                role=data.role,
                language_preference=language,
                full_name=data.full_name,
                prefer_procedure=False,
            )
        except DatabaseError:
            logger.error("Profile creation failed for %s; removing auth identity", identity.id)
            try:
                await self.gateway.delete_user(identity.id)
            except AuthProviderError:
                logger.error("Orphaned auth identity %s could not be deleted", identity.id)
            raise DatabaseError(message="Failed to create user profile")

        token = result.access_token
        if token is None:
            try:
                await self.gateway.confirm_email(identity.id)
            except AuthProviderError:
                logger.warning("Email confirmation failed for %s; trying sign-in anyway", identity.id)
            token = (await self.gateway.sign_in(data.email, data.password)).access_token

        logger.info("Registered %s as %s", user.id, user.role)
        return AuthPayload(user=UserProfile.model_validate(user), token=token)

    async def login(self, db: AsyncSession, email: str, password: str) -> AuthPayload:
        result = await self.gateway.sign_in(email, password)
        user = await self.profiles.get_profile(db, result.identity.id)
        if user is None:
            raise NotFoundError("User profile not found", resource="User")
        return AuthPayload(user=UserProfile.model_validate(user), token=result.access_token)

    async def get_profile(self, db: AsyncSession, user_id: uuid.UUID) -> UserProfile:
        user = await self.profiles.get_profile(db, user_id)
        if user is None:
            raise NotFoundError("User not found", resource="User")
        return UserProfile.model_validate(user)

    async def update_profile(
        self, db: AsyncSession, user_id: uuid.UUID, updates: UpdateProfileRequest
    ) -> UserProfile:
        user: Optional[User] = await self.profiles.get_profile(db, user_id)
        if user is None:
            raise NotFoundError("User not found", resource="User")

        for field, value in updates.model_dump(exclude_unset=True).items():
            # full_name is the only nullable column
            if value is None and field != "full_name":
                continue
            setattr(user, field, value)
        user.updated_at = utcnow()
        await db.flush()
        return UserProfile.model_validate(user)


auth_service = AuthService()
