"""User domain service: register, authenticate, change password.

All DB operations use the injected AsyncSession. Transactions are managed
by the caller (router layer) via `async with db.begin()`.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.dc_common.errors import EmailExistsError, InvalidCredentialsError
from src.dc_credentials.service import CredentialService
from src.dc_gateway.user.db_models import UserModel

logger = logging.getLogger(__name__)


class UserService:
    """Stateless apart from the credential service it delegates to."""

    def __init__(self, credentials: CredentialService) -> None:
        self._credentials = credentials

    async def _find_by_email(self, email: str, db: AsyncSession) -> UserModel | None:
        result = await db.execute(
            select(UserModel).where(UserModel.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        db: AsyncSession,
    ) -> UserModel:
        """Create a user whose password column holds a fresh credential record.

        The caller must wrap this in `async with db.begin()`.
        """
        # DB UNIQUE constraint is the final guard
        if await self._find_by_email(email, db) is not None:
            raise EmailExistsError()

        user = UserModel(
            name=name,
            email=email.lower(),
            password=await self._credentials.hash(password),
            role="user",
        )
        db.add(user)
        await db.flush()  # Get user.id without committing
        return user

    async def authenticate(
        self,
        email: str,
        password: str,
        db: AsyncSession,
    ) -> UserModel:
        """Check email + password and return the user.

        Unknown email, OAuth-only account and wrong password all raise
        InvalidCredentialsError so responses cannot reveal which one it was.
        """
        user = await self._find_by_email(email, db)
        if user is None or not user.password:
            raise InvalidCredentialsError()

        if not await self._credentials.verify(password, user.password):
            logger.info("Rejected credentials login: user_id=%s", user.id)
            raise InvalidCredentialsError()

        return user

    async def change_password(
        self,
        email: str,
        current_password: str,
        new_password: str,
        db: AsyncSession,
    ) -> UserModel:
        """Replace the credential record after re-checking the current password.

        The caller must wrap this in `async with db.begin()`.
        """
        user = await self.authenticate(email, current_password, db)
        user.password = await self._credentials.hash(new_password)
        user.updated_at = datetime.now(timezone.utc)
        await db.flush()
        return user
