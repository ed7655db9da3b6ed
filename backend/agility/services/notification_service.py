"""Persisted in-app notifications. Dispatch is best-effort and never fails the caller."""
import logging
from typing import Any, Iterable

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.rbac import Role as RoleName
from agility.models.notification import Notification, NotificationType
from agility.models.user import Role, User, UserRole

logger = logging.getLogger(__name__)


async def get_growth_team_member_ids(db: AsyncSession) -> list[int]:
    result = await db.execute(
        select(User.id)
        .join(UserRole, UserRole.user_id == User.id)
        .join(Role, Role.id == UserRole.role_id)
        .where(Role.name == RoleName.GROWTH_TEAM.value, User.is_active.is_(True))
        .order_by(User.id)
    )
    return list(result.scalars().unique().all())


async def create_notifications_for_users(
    db: AsyncSession,
    user_ids: Iterable[int | None],
    type: NotificationType,
    title: str,
    message: str,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> int:
    """Insert one notification per distinct recipient inside a SAVEPOINT.

    Returns the number created; on a database error the savepoint is rolled back,
    the error logged, and 0 returned so the surrounding transaction carries on.
    """
    recipients = list(dict.fromkeys(uid for uid in user_ids if uid is not None))
    if not recipients:
        return 0
    try:
        async with db.begin_nested():
            for user_id in recipients:
                db.add(Notification(
                    user_id=user_id,
                    type=type.value,
                    title=title,
                    message=message,
                    action_url=action_url,
                    extra=metadata,
                ))
            await db.flush()
    except SQLAlchemyError:
        logger.error("Failed to create %s notifications for %s", type.value, recipients, exc_info=True)
        return 0
    return len(recipients)
