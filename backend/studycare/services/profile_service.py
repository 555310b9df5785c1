"""
StudyCare Backend — Profile Provisioning
==========================================

What:  Loads application profiles (`users` rows) and creates them for auth
       identities that have none yet.
Who:   The authentication dependency (caller has a token but no profile),
       AuthService.register, and the caregiver child-resolution flow.

Provisioning paths (both duplicate-tolerant through create_or_fetch):
    procedure → `SELECT create_user_profile(...)`: a SECURITY DEFINER SQL
                function that can write `users` under row-level security
    insert    → a plain ORM insert

    Registration tries the insert first; provisioning on behalf of someone
    else (a caregiver resolving a child) tries the procedure first.
"""

import logging
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from studycare.database import create_or_fetch
from studycare.models.user import User
from studycare.services.auth_gateway import AuthIdentity

logger = logging.getLogger(__name__)


class ProfileService:

    async def get_profile(self, db: AsyncSession, user_id: uuid.UUID) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_student_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        """Case-insensitive email match restricted to role=student."""
        result = await db.execute(
            select(User)
            .where(User.role == "student", func.lower(User.email) == email.strip().lower())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def provision_profile(
        self,
        db: AsyncSession,
        identity: AuthIdentity,
        role: str = "student",
        language_preference: str = "en",
        full_name: Optional[str] = None,
        prefer_procedure: bool = True,
    ) -> User:
        """
        Create the profile for `identity`, or return the one a concurrent
        caller created first.

        Raises:
            DatabaseError if neither path produced a row and none exists.
        """
        full_name = full_name if full_name is not None else identity.full_name

        async def fetch() -> Optional[User]:
            return await self.get_profile(db, identity.id)

        async def via_procedure() -> Optional[User]:
            result = await db.execute(
                select(
                    func.create_user_profile(
                        identity.id,
                        identity.email,
                        full_name,
                        role,
                        language_preference,
                        False,
                    )
                )
            )
            if result.scalar_one_or_none() is None:
                return None
            return await fetch()

        async def via_insert() -> Optional[User]:
            user = User(
                id=identity.id,
                email=identity.email,
                full_name=full_name,
                role=role,
                language_preference=language_preference,
                simplified_mode=False,
            )
            db.add(user)
            await db.flush()
            return user

        attempts = [via_procedure, via_insert] if prefer_procedure else [via_insert, via_procedure]
        user, created = await create_or_fetch(
            db, attempts, fetch, description=f"profile for {identity.id}"
        )
        if created:
            logger.info("Provisioned %s profile for identity %s", user.role, user.id)
        return user


profile_service = ProfileService()
