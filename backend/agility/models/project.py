"""Project, sprint and phase models."""
from datetime import date
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import Date, DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from agility.database import Base


class ProjectRole(str, PyEnum):
    PRODUCT_MANAGER = "product_manager"
    CONSULTANT = "consultant"


class Project(Base):
    """Client engagement owned by one Product Manager."""

    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    budgeted_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=0)
    product_manager_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    created_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    members: Mapped[list["ProjectMember"]] = relationship(
        "ProjectMember",
        back_populates="project",
        passive_deletes=True,
    )
    sprints: Mapped[list["Sprint"]] = relationship(
        "Sprint",
        back_populates="project",
        order_by="Sprint.sprint_number",
        passive_deletes=True,
    )
    phases: Mapped[list["Phase"]] = relationship(
        "Phase",
        back_populates="project",
        order_by="Phase.start_date",
        passive_deletes=True,
    )


class ProjectMember(Base):
    """Consultant (or PM) assigned to a project."""

    __tablename__ = "project_members"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_member"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role: Mapped[str] = mapped_column(Enum(ProjectRole), nullable=False, default=ProjectRole.CONSULTANT)

    project: Mapped["Project"] = relationship("Project", back_populates="members")


class Sprint(Base):
    """One- or two-week window of a project. Sprint 0 is the kickoff."""

    __tablename__ = "sprints"
    __table_args__ = (UniqueConstraint("project_id", "sprint_number", name="uq_project_sprint_number"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    phase_id: Mapped[int | None] = mapped_column(ForeignKey("phases.id", ondelete="SET NULL"), nullable=True)
    sprint_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    project: Mapped["Project"] = relationship("Project", back_populates="sprints")
    phase: Mapped["Phase | None"] = relationship("Phase", back_populates="sprints")


class Phase(Base):
    """Dated sub-window of a project built from contiguous sprints."""

    __tablename__ = "phases"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[DateTime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    project: Mapped["Project"] = relationship("Project", back_populates="phases")
    sprints: Mapped[list["Sprint"]] = relationship(
        "Sprint",
        back_populates="phase",
        order_by="Sprint.sprint_number",
    )
    allocations: Mapped[list["PhaseAllocation"]] = relationship(
        "PhaseAllocation",
        back_populates="phase",
        foreign_keys="PhaseAllocation.phase_id",
        passive_deletes=True,
    )
