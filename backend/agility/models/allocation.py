"""Phase and weekly allocation models."""
from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Integer, Numeric, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agility.database import Base


class ApprovalStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    FORFEITED = "FORFEITED"


class PlanningStatus(str, PyEnum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    MODIFIED = "MODIFIED"
    REJECTED = "REJECTED"


# Approval states whose hours no longer count toward planning or work progress
INACTIVE_APPROVAL_STATUSES = (ApprovalStatus.FORFEITED, ApprovalStatus.EXPIRED)

# Weekly rows that represent accepted planning
PLANNED_STATUSES = (PlanningStatus.APPROVED, PlanningStatus.MODIFIED)


class PhaseAllocation(Base):
    """One consultant's budgeted hours within one phase."""

    __tablename__ = "phase_allocations"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    phase_id: Mapped[int] = mapped_column(ForeignKey("phases.id", ondelete="CASCADE"), nullable=False, index=True)
    consultant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    total_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    approval_status: Mapped[str] = mapped_column(
        Enum(ApprovalStatus),
        nullable=False,
        default=ApprovalStatus.PENDING,
        index=True,
    )
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Reallocation lineage
    is_reallocation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    parent_allocation_id: Mapped[int | None] = mapped_column(
        ForeignKey("phase_allocations.id", ondelete="SET NULL"),
        nullable=True,
    )
    reallocated_from_phase_id: Mapped[int | None] = mapped_column(
        ForeignKey("phases.id", ondelete="SET NULL"),
        nullable=True,
    )
    reallocated_from_unplanned_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    phase: Mapped["Phase"] = relationship("Phase", back_populates="allocations", foreign_keys=[phase_id])
    consultant: Mapped["User"] = relationship("User", foreign_keys=[consultant_id])
    weekly_allocations: Mapped[list["WeeklyAllocation"]] = relationship(
        "WeeklyAllocation",
        back_populates="phase_allocation",
        order_by="WeeklyAllocation.week_start_date",
        passive_deletes=True,
    )
    unplanned_expired_hours: Mapped["UnplannedExpiredHours | None"] = relationship(
        "UnplannedExpiredHours",
        back_populates="phase_allocation",
        uselist=False,
        passive_deletes=True,
    )


class WeeklyAllocation(Base):
    """Consultant's proposed/approved hours for one ISO week of a phase allocation."""

    __tablename__ = "weekly_allocations"
    __table_args__ = (
        UniqueConstraint("phase_allocation_id", "week_number", "year", name="uq_weekly_allocation_week"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    phase_allocation_id: Mapped[int] = mapped_column(
        ForeignKey("phase_allocations.id", ondelete="CASCADE"),
        nullable=False,
    )
    consultant_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_end_date: Mapped[date] = mapped_column(Date, nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    proposed_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    approved_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    planning_status: Mapped[str] = mapped_column(
        Enum(PlanningStatus),
        nullable=False,
        default=PlanningStatus.PENDING,
        index=True,
    )
    planned_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    approved_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    phase_allocation: Mapped["PhaseAllocation"] = relationship("PhaseAllocation", back_populates="weekly_allocations")

    @property
    def planned_hours(self) -> Decimal:
        """Hours this week contributes to planning: approved figure when set, else proposed."""
        if self.planning_status == PlanningStatus.REJECTED:
            return Decimal(0)
        if self.approved_hours is not None:
            return Decimal(self.approved_hours)
        return Decimal(self.proposed_hours or 0)


class UnplannedHoursStatus(str, PyEnum):
    EXPIRED = "EXPIRED"
    FORFEITED = "FORFEITED"
    REALLOCATED = "REALLOCATED"


class UnplannedExpiredHours(Base):
    """Hours left undistributed when a phase ended. At most one per phase allocation."""

    __tablename__ = "unplanned_expired_hours"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    phase_allocation_id: Mapped[int] = mapped_column(
        ForeignKey("phase_allocations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    unplanned_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(UnplannedHoursStatus),
        nullable=False,
        default=UnplannedHoursStatus.EXPIRED,
        index=True,
    )
    detected_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    handled_at: Mapped[DateTime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    handled_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    reallocated_to_phase_id: Mapped[int | None] = mapped_column(
        ForeignKey("phases.id", ondelete="SET NULL"),
        nullable=True,
    )
    reallocated_to_allocation_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    phase_allocation: Mapped["PhaseAllocation"] = relationship(
        "PhaseAllocation",
        back_populates="unplanned_expired_hours",
    )
