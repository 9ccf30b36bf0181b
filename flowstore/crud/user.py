from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from flowstore.models.user import User


def normalize_email(email: str) -> str:
    return email.lower().strip()


async def get_user_by_email(session: AsyncSession, email: str) -> User | None:
    """Get user by email (case-insensitive)."""
    result = await session.execute(
        select(User).where(User.email == normalize_email(email))
    )
    return result.scalar_one_or_none()


async def create_user(
    session: AsyncSession, *, email: str, name: str | None = None
) -> User:
    user = User(id=str(uuid.uuid4()), email=normalize_email(email), name=name)
    session.add(user)
    await session.flush()
    return user


async def get_or_create_user(
    session: AsyncSession, *, email: str, name: str | None = None
) -> User:
    user = await get_user_by_email(session, email)
    if user is None:
        user = await create_user(session, email=email, name=name)
    return user
