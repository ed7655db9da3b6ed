"""In-app notification model."""
from enum import Enum as PyEnum

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from agility.database import Base


class NotificationType(str, PyEnum):
    PROJECT_ASSIGNMENT = "PROJECT_ASSIGNMENT"
    PHASE_ALLOCATION_PENDING = "PHASE_ALLOCATION_PENDING"
    PHASE_ALLOCATION_APPROVED = "PHASE_ALLOCATION_APPROVED"
    PHASE_ALLOCATION_REJECTED = "PHASE_ALLOCATION_REJECTED"
    PHASE_ALLOCATION_EXPIRED = "PHASE_ALLOCATION_EXPIRED"
    WEEKLY_ALLOCATION_PENDING = "WEEKLY_ALLOCATION_PENDING"
    WEEKLY_ALLOCATION_APPROVED = "WEEKLY_ALLOCATION_APPROVED"
    WEEKLY_ALLOCATION_MODIFIED = "WEEKLY_ALLOCATION_MODIFIED"
    WEEKLY_ALLOCATION_REJECTED = "WEEKLY_ALLOCATION_REJECTED"
    HOUR_CHANGE_REQUEST = "HOUR_CHANGE_REQUEST"
    HOUR_CHANGE_APPROVED = "HOUR_CHANGE_APPROVED"
    HOUR_CHANGE_REJECTED = "HOUR_CHANGE_REJECTED"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    action_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # "metadata" is reserved on declarative classes
    extra: Mapped[dict | None] = mapped_column("metadata", JSON().with_variant(JSONB(), "postgresql"), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
