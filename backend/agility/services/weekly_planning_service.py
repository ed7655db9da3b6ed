"""Consultant weekly planning and its review.

Every write for a (phase allocation, ISO week, ISO year) goes through one atomic
INSERT ... ON CONFLICT DO UPDATE, so concurrent submissions for the same week can
never produce two rows. Any edit voids a prior approval.
"""
import logging
from datetime import date, datetime
from decimal import Decimal

from fastapi import HTTPException
from sqlalchemy import func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.rbac import can_manage_project
from agility.engine.weeks import is_phase_locked, to_utc, utc_now, week_end, week_key, week_start
from agility.models.allocation import ApprovalStatus, PhaseAllocation, PlanningStatus, WeeklyAllocation
from agility.models.audit import AuditLog
from agility.models.notification import NotificationType
from agility.models.user import User
from agility.schemas.allocation import (
    BatchWeekRequest,
    SingleWeekRequest,
    WeekEntry,
    WeeklyAllocationResponse,
    WeeklyPlanResponse,
    WeeklyReview,
    WeekResult,
)
from agility.services.allocation_service import get_allocation
from agility.services.notification_service import create_notifications_for_users

logger = logging.getLogger(__name__)


def _insert_for(db: AsyncSession):
    dialect = db.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"Weekly upsert is not supported on {dialect}")


async def check_can_plan(allocation: PhaseAllocation, user: User, now: datetime) -> None:
    """Caller owns the allocation, it is APPROVED, and its phase is still open."""
    if allocation.consultant_id != user.id:
        raise HTTPException(status_code=403, detail="Not authorized to plan this allocation")
    if allocation.approval_status != ApprovalStatus.APPROVED:
        raise HTTPException(
            status_code=409,
            detail="Phase allocation must be APPROVED before weekly hours can be planned "
            f"(current status: {allocation.approval_status.value})",
        )
    if is_phase_locked(allocation.phase.end_date, now):
        raise HTTPException(status_code=400, detail="Phase has ended and is locked for planning")


def _check_week_in_phase(allocation: PhaseAllocation, monday: date) -> None:
    phase = allocation.phase
    if week_end(monday) < phase.start_date or monday > phase.end_date:
        raise HTTPException(
            status_code=400,
            detail=f"Week of {monday.isoformat()} is outside the phase ({phase.start_date} - {phase.end_date})",
        )


async def upsert_week(
    db: AsyncSession,
    allocation: PhaseAllocation,
    entry: WeekEntry,
    user: User,
) -> WeekResult:
    """Write one week. Zero hours with no existing row is a no-op."""
    monday = week_start(entry.week_start_date)
    number, year = week_key(monday)
    key = (
        WeeklyAllocation.phase_allocation_id == allocation.id,
        WeeklyAllocation.week_number == number,
        WeeklyAllocation.year == year,
    )
    reset = {
        "proposed_hours": entry.planned_hours,
        "planning_status": PlanningStatus.PENDING,
        "planned_by": user.id,
        "approved_hours": None,
        "approved_by": None,
        "approved_at": None,
        "rejection_reason": None,
        "updated_at": func.now(),
    }

    if entry.planned_hours == 0:
        # Only zero out a week that already exists; never create an empty row
        result = await db.execute(update(WeeklyAllocation).where(*key).values(**reset).returning(WeeklyAllocation.id))
        row_id = result.scalar_one_or_none()
        created = False
    else:
        existing = await db.execute(select(WeeklyAllocation.id).where(*key))
        created = existing.scalar_one_or_none() is None
        insert = _insert_for(db)
        stmt = insert(WeeklyAllocation).values(
            phase_allocation_id=allocation.id,
            consultant_id=allocation.consultant_id,
            week_start_date=monday,
            week_end_date=week_end(monday),
            week_number=number,
            year=year,
            proposed_hours=entry.planned_hours,
            planning_status=PlanningStatus.PENDING,
            planned_by=user.id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["phase_allocation_id", "week_number", "year"],
            set_=reset,
        ).returning(WeeklyAllocation.id)
        row_id = (await db.execute(stmt)).scalar_one()

    if row_id is None:
        return WeekResult(week_number=number, year=year, week_start_date=monday, created=False)

    row = (await db.execute(
        select(WeeklyAllocation)
        .where(WeeklyAllocation.id == row_id)
        .execution_options(populate_existing=True)
    )).scalar_one()
    return WeekResult(
        week_number=number,
        year=year,
        week_start_date=monday,
        created=created,
        allocation=WeeklyAllocationResponse.model_validate(row),
    )


async def _weekly_total(db: AsyncSession, allocation_id: int) -> Decimal:
    result = await db.execute(
        select(WeeklyAllocation)
        .where(WeeklyAllocation.phase_allocation_id == allocation_id)
        .execution_options(populate_existing=True)
    )
    return sum((w.planned_hours for w in result.scalars().all()), Decimal(0))


async def submit_weekly_plan(
    db: AsyncSession,
    data: SingleWeekRequest | BatchWeekRequest,
    user: User,
    now: datetime | None = None,
) -> WeeklyPlanResponse:
    """Apply a single-week or batch submission and tell the PM once."""
    now = to_utc(now) if now is not None else utc_now()
    allocation = await get_allocation(db, data.phase_allocation_id)
    await check_can_plan(allocation, user, now)

    entries = data.weeks if isinstance(data, BatchWeekRequest) else [data]
    keys = [week_key(week_start(e.week_start_date)) for e in entries]
    if len(set(keys)) != len(keys):
        raise HTTPException(status_code=400, detail="Each week may appear only once per submission")
    for entry in entries:
        _check_week_in_phase(allocation, week_start(entry.week_start_date))

    results = [await upsert_week(db, allocation, entry, user) for entry in entries]
    written = [r for r in results if r.allocation is not None]
    total_weekly = await _weekly_total(db, allocation.id)
    total_hours = Decimal(allocation.total_hours)

    if written:
        phase = allocation.phase
        submitted = sum((Decimal(r.allocation.proposed_hours) for r in written), Decimal(0))
        first = min(r.week_start_date for r in written)
        last = week_end(max(r.week_start_date for r in written))
        count = len(written)
        db.add(AuditLog(
            project_id=phase.project_id,
            user_id=user.id,
            action="plan",
            entity_type="phase_allocation",
            entity_id=allocation.id,
            new_value=f"{count} week(s), {submitted}h, {first.isoformat()} - {last.isoformat()}",
        ))
        await create_notifications_for_users(
            db,
            [phase.project.product_manager_id],
            NotificationType.WEEKLY_ALLOCATION_PENDING,
            "Weekly Plan Submitted",
            f"{user.display_name} planned {float(submitted):.1f}h across {count} week{'s' if count != 1 else ''} "
            f'({first.strftime("%b %d")} - {last.strftime("%b %d, %Y")}) in "{phase.name}".',
            f"/dashboard/projects/{phase.project_id}",
            {
                "phase_allocation_id": allocation.id,
                "phase_id": phase.id,
                "total_hours": float(submitted),
                "week_count": count,
                "start_date": first.isoformat(),
                "end_date": last.isoformat(),
            },
        )
        await db.flush()

    over = total_weekly > total_hours
    if over:
        logger.warning("Allocation %s over-allocated: %sh planned of %sh", allocation.id, total_weekly, total_hours)
    return WeeklyPlanResponse(
        phase_allocation_id=allocation.id,
        results=results,
        total_weekly_hours=total_weekly,
        allocation_total_hours=total_hours,
        over_allocated=over,
    )


async def get_weekly_allocation(db: AsyncSession, weekly_id: int) -> WeeklyAllocation:
    row = await db.get(WeeklyAllocation, weekly_id)
    if row is None:
        raise HTTPException(status_code=404, detail="Weekly allocation not found")
    return row


async def review_weekly_allocation(
    db: AsyncSession,
    weekly: WeeklyAllocation,
    data: WeeklyReview,
    user: User,
    roles: list[str],
) -> WeeklyAllocation | None:
    """Approve, modify or reject a PENDING week. Approving zero hours deletes the row (returns None)."""
    allocation = await get_allocation(db, weekly.phase_allocation_id)
    phase = allocation.phase
    if not can_manage_project(phase.project, user.id, roles):
        raise HTTPException(status_code=403, detail="Only the Growth Team or the project's Product Manager can review plans")
    if weekly.planning_status != PlanningStatus.PENDING:
        raise HTTPException(status_code=409, detail="Only PENDING weekly allocations can be reviewed")

    proposed = Decimal(weekly.proposed_hours)
    label = weekly.week_start_date.strftime("%b %d, %Y")
    audit = AuditLog(
        project_id=phase.project_id,
        user_id=user.id,
        action=data.action,
        entity_type="weekly_allocation",
        entity_id=weekly.id,
        old_value=f"{proposed}h proposed",
        reason=data.rejection_reason,
    )

    if data.action == "reject":
        weekly.planning_status = PlanningStatus.REJECTED
        weekly.rejection_reason = data.rejection_reason.strip()
        notification = (
            NotificationType.WEEKLY_ALLOCATION_REJECTED,
            "Weekly Plan Rejected",
            f'Your plan for the week of {label} in "{phase.name}" was rejected. Reason: {weekly.rejection_reason}',
        )
    else:
        hours = data.approved_hours if data.approved_hours is not None else proposed
        if hours == 0:
            audit.new_value = "deleted (0h approved)"
            db.add(audit)
            await db.delete(weekly)
            await db.flush()
            return None
        weekly.approved_hours = hours
        weekly.planning_status = PlanningStatus.APPROVED if hours == proposed else PlanningStatus.MODIFIED
        weekly.rejection_reason = None
        if weekly.planning_status == PlanningStatus.MODIFIED:
            notification = (
                NotificationType.WEEKLY_ALLOCATION_MODIFIED,
                "Weekly Plan Modified",
                f'Your plan for the week of {label} in "{phase.name}" was approved with changes: '
                f"{float(proposed):.1f}h -> {float(hours):.1f}h.",
            )
        else:
            notification = (
                NotificationType.WEEKLY_ALLOCATION_APPROVED,
                "Weekly Plan Approved",
                f'Your plan of {float(hours):.1f}h for the week of {label} in "{phase.name}" was approved.',
            )
    weekly.approved_by = user.id
    weekly.approved_at = utc_now()
    audit.new_value = f"{weekly.planning_status.value} {weekly.approved_hours}h"
    db.add(audit)
    await db.flush()

    await create_notifications_for_users(
        db,
        [weekly.consultant_id],
        *notification,
        f"/dashboard/projects/{phase.project_id}",
        {"weekly_allocation_id": weekly.id, "phase_allocation_id": allocation.id},
    )
    return weekly
