from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import DuplicateUserError
from models.users import User


class UserCRUD:
    """CRUD operations for users."""

    async def get_by_email(self, db: AsyncSession, email: str) -> User | None:
        statement = select(User).where(User.email == email)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_username(self, db: AsyncSession, username: str) -> User | None:
        statement = select(User).where(User.username == username)
        result = await db.execute(statement)
        return result.scalar_one_or_none()

    async def get_by_id(self, db: AsyncSession, user_id: UUID) -> User | None:
        return await db.get(User, user_id)

    async def create(
        self,
        db: AsyncSession,
        email: str,
        username: str,
        hashed_password: str,
    ) -> User:
        """Insert a user; a taken email or username raises DuplicateUserError."""
        new_user = User(
            email=email,
            username=username,
            hashed_password=hashed_password,
        )
        try:
            db.add(new_user)
            await db.commit()
        except IntegrityError as exc:
            # Leave the session usable for the caller
            await db.rollback()
            raise DuplicateUserError(username) from exc
        await db.refresh(new_user)
        return new_user


user_crud = UserCRUD()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    return await user_crud.get_by_email(db, email)


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    return await user_crud.get_by_username(db, username)


async def get_user_by_id(db: AsyncSession, user_id: UUID) -> User | None:
    return await user_crud.get_by_id(db, user_id)


async def create_user(
    db: AsyncSession,
    email: str,
    username: str,
    hashed_password: str,
) -> User:
    return await user_crud.create(db, email, username, hashed_password)
