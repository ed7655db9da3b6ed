"""Seed roles and a Growth Team admin user."""
import asyncio
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from sqlalchemy import select

from agility.auth.jwt import get_password_hash
from agility.auth.rbac import Role as RoleName
from agility.database import async_session_maker, close_db, init_db
from agility.models.user import Role, User, UserRole

ROLES = [
    (RoleName.GROWTH_TEAM.value, "Growth Team: creates projects, approves allocations"),
    (RoleName.CONSULTANT.value, "Consultant: plans weekly hours on approved allocations"),
]

ADMIN_EMAIL = "admin@agility.local"
ADMIN_PASSWORD = "admin123"


async def seed():
    await init_db()
    async with async_session_maker() as db:
        for name, desc in ROLES:
            r = await db.execute(select(Role).where(Role.name == name))
            if not r.scalar_one_or_none():
                db.add(Role(name=name, description=desc))
        await db.commit()

        growth_role = (await db.execute(select(Role).where(Role.name == RoleName.GROWTH_TEAM.value))).scalar_one()
        r = await db.execute(select(User).where(User.email == ADMIN_EMAIL))
        if not r.scalar_one_or_none():
            user = User(
                email=ADMIN_EMAIL,
                hashed_password=get_password_hash(ADMIN_PASSWORD),
                full_name="Growth Team Admin",
            )
            db.add(user)
            await db.flush()
            db.add(UserRole(user_id=user.id, role_id=growth_role.id))
        await db.commit()
    await close_db()
    print(f"Seeded roles and admin user ({ADMIN_EMAIL} / {ADMIN_PASSWORD})")


if __name__ == "__main__":
    asyncio.run(seed())
