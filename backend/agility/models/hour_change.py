"""Hour change request model."""
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import DateTime, Enum, ForeignKey, Numeric, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agility.database import Base


class ChangeType(str, PyEnum):
    ADJUSTMENT = "ADJUSTMENT"
    SHIFT = "SHIFT"


class ChangeStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class HourChangeRequest(Base):
    """Request to resize an allocation (ADJUSTMENT) or move hours between consultants (SHIFT)."""

    __tablename__ = "hour_change_requests"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    phase_id: Mapped[int] = mapped_column(ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True)
    phase_allocation_id: Mapped[int | None] = mapped_column(
        ForeignKey("phase_allocations.id", ondelete="CASCADE"),
        nullable=True,
    )
    requester_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    change_type: Mapped[str] = mapped_column(Enum(ChangeType), nullable=False)
    status: Mapped[str] = mapped_column(Enum(ChangeStatus), nullable=False, default=ChangeStatus.PENDING, index=True)
    # ADJUSTMENT
    original_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    requested_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    # SHIFT
    from_consultant_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    to_consultant_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    shift_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    approver_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    phase: Mapped["Phase"] = relationship("Phase")
    phase_allocation: Mapped["PhaseAllocation | None"] = relationship("PhaseAllocation")
