"""Authentication service."""
import logging

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agility.auth.jwt import get_password_hash, verify_password
from agility.auth.rbac import ROLE_NAMES
from agility.models.user import Role, User, UserRole
from agility.schemas.auth import UserCreate, UserLogin, UserResponse

logger = logging.getLogger(__name__)


async def load_user(db: AsyncSession, user_id: int) -> User:
    """User with roles eagerly loaded."""
    result = await db.execute(
        select(User)
        .where(User.id == user_id)
        .options(selectinload(User.user_roles).selectinload(UserRole.role))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


async def create_user(db: AsyncSession, data: UserCreate) -> User:
    """Create user and attach the named organisation roles."""
    unknown = [r for r in data.roles if r not in ROLE_NAMES]
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown roles: {', '.join(unknown)}")
    user = User(
        email=data.email,
        hashed_password=get_password_hash(data.password),
        full_name=data.full_name,
    )
    db.add(user)
    await db.flush()
    if data.roles:
        result = await db.execute(select(Role).where(Role.name.in_(data.roles)))
        roles = result.scalars().all()
        missing = set(data.roles) - {r.name for r in roles}
        if missing:
            raise HTTPException(status_code=400, detail=f"Roles not seeded: {', '.join(sorted(missing))}")
        for role in roles:
            db.add(UserRole(user_id=user.id, role_id=role.id))
        await db.flush()
    logger.info("Registered user %s with roles %s", user.email, data.roles)
    return await load_user(db, user.id)


async def authenticate_user(db: AsyncSession, data: UserLogin) -> User | None:
    """Authenticate user by email and password."""
    result = await db.execute(select(User).where(User.email == data.email))
    user = result.scalar_one_or_none()
    if not user or not verify_password(data.password, user.hashed_password):
        return None
    return await load_user(db, user.id)


def user_to_response(user: User) -> UserResponse:
    """Convert user to response with roles."""
    return UserResponse(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        is_active=user.is_active,
        roles=[ur.role.name for ur in user.user_roles if ur.role],
    )
