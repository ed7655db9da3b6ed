"""Expired allocation sweep.

An APPROVED allocation whose phase ended before today with undistributed hours
gets exactly one UnplannedExpiredHours record. The allocation itself keeps its
APPROVED status; the PM later forfeits or reallocates the side record.
"""
import logging
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agility.config import get_settings
from agility.engine.weeks import to_utc, utc_now
from agility.models.allocation import (
    PLANNED_STATUSES,
    ApprovalStatus,
    PhaseAllocation,
    UnplannedExpiredHours,
    UnplannedHoursStatus,
)
from agility.models.notification import NotificationType
from agility.models.project import Phase
from agility.models.user import User
from agility.schemas.expired import SweepResponse
from agility.services.email_service import ExpiredAllocationLine, render_expired_summary, send_email
from agility.services.notification_service import create_notifications_for_users, get_growth_team_member_ids

logger = logging.getLogger(__name__)


def planned_total(allocation: PhaseAllocation) -> Decimal:
    """Hours distributed into APPROVED or MODIFIED weeks (approved figure, else proposed)."""
    return sum(
        (w.planned_hours for w in allocation.weekly_allocations if w.planning_status in PLANNED_STATUSES),
        Decimal(0),
    )


def _one_decimal(value: Decimal) -> float:
    return round(float(value), 1)


async def _notify_expired(
    db: AsyncSession,
    allocation: PhaseAllocation,
    unplanned: Decimal,
    planned: Decimal,
    growth_team_ids: list[int],
) -> None:
    phase = allocation.phase
    project = phase.project
    consultant_name = allocation.consultant.display_name if allocation.consultant else "Consultant"
    action_url = f"/dashboard/projects/{project.id}"
    metadata = {
        "phase_allocation_id": allocation.id,
        "phase_id": phase.id,
        "project_id": project.id,
        "consultant_id": allocation.consultant_id,
        "unplanned_hours": _one_decimal(unplanned),
        "planned_hours": _one_decimal(planned),
    }
    hours = f"{float(unplanned):.1f}h"

    await create_notifications_for_users(
        db,
        [project.product_manager_id],
        NotificationType.PHASE_ALLOCATION_EXPIRED,
        "Phase Allocation Expired",
        f'{consultant_name} has {hours} unplanned in "{phase.name}" ({project.title}). '
        "Please forfeit or reallocate these hours.",
        action_url,
        metadata,
    )
    await create_notifications_for_users(
        db,
        growth_team_ids,
        NotificationType.PHASE_ALLOCATION_EXPIRED,
        "Expired Allocation Alert",
        f'Phase allocation expired: {consultant_name} has {hours} unplanned in "{phase.name}" ({project.title}).',
        action_url,
        metadata,
    )
    await create_notifications_for_users(
        db,
        [allocation.consultant_id],
        NotificationType.PHASE_ALLOCATION_EXPIRED,
        "Phase Ended with Unplanned Hours",
        f'Your allocation for "{phase.name}" has expired with {hours} unplanned. '
        "Contact your Product Manager if these hours need to be reallocated.",
        action_url,
        metadata,
    )


async def detect_expired_allocations(
    db: AsyncSession,
    now: datetime | None = None,
) -> tuple[SweepResponse, list[ExpiredAllocationLine]]:
    """Create missing expiration records. Safe to re-run: existing records are skipped."""
    settings = get_settings()
    now = to_utc(now) if now is not None else utc_now()
    today = now.date()
    tolerance = Decimal(str(settings.expiry_tolerance_hours))
    logger.info("Running expired allocation detection at %s", now.isoformat())

    result = await db.execute(
        select(PhaseAllocation)
        .join(Phase, Phase.id == PhaseAllocation.phase_id)
        .where(
            PhaseAllocation.approval_status == ApprovalStatus.APPROVED,
            Phase.end_date < today,
        )
        .order_by(PhaseAllocation.id)
        .options(
            selectinload(PhaseAllocation.weekly_allocations),
            selectinload(PhaseAllocation.phase).selectinload(Phase.project),
            selectinload(PhaseAllocation.consultant),
            selectinload(PhaseAllocation.unplanned_expired_hours),
        )
        .execution_options(populate_existing=True)
    )
    candidates = result.scalars().all()
    logger.info("Found %d potentially expired allocations", len(candidates))

    growth_team_ids = await get_growth_team_member_ids(db)
    expired: list[ExpiredAllocationLine] = []
    skipped = 0

    for allocation in candidates:
        planned = planned_total(allocation)
        unplanned = Decimal(allocation.total_hours) - planned
        if unplanned <= tolerance:
            continue
        if allocation.unplanned_expired_hours is not None:
            skipped += 1
            continue

        try:
            async with db.begin_nested():
                db.add(UnplannedExpiredHours(
                    phase_allocation_id=allocation.id,
                    unplanned_hours=unplanned,
                    status=UnplannedHoursStatus.EXPIRED,
                    detected_at=now,
                ))
                await db.flush()
        except IntegrityError:
            # A concurrent sweep recorded it first
            logger.info("Allocation %s already recorded as expired, skipping", allocation.id)
            skipped += 1
            continue

        await _notify_expired(db, allocation, unplanned, planned, growth_team_ids)
        expired.append(ExpiredAllocationLine(
            allocation_id=allocation.id,
            project_id=allocation.phase.project.id,
            project_title=allocation.phase.project.title,
            phase_name=allocation.phase.name,
            consultant_id=allocation.consultant_id,
            consultant_name=allocation.consultant.display_name if allocation.consultant else "Consultant",
            product_manager_id=allocation.phase.project.product_manager_id,
            unplanned_hours=unplanned,
            total_hours=Decimal(allocation.total_hours),
        ))
        logger.info(
            "Recorded allocation %s as expired (%.1fh unplanned out of %sh)",
            allocation.id, unplanned, allocation.total_hours,
        )

    logger.info("Expired %d allocations out of %d checked (%d skipped)", len(expired), len(candidates), skipped)
    response = SweepResponse(
        success=True,
        checked=len(candidates),
        expired=len(expired),
        skipped=skipped,
        emails_sent=0,
        timestamp=now,
    )
    return response, expired


async def send_expiry_summaries(
    db: AsyncSession,
    lines: list[ExpiredAllocationLine],
) -> int:
    """One digest per PM, per consultant and per Growth Team member. Returns the number sent."""
    if not lines:
        return 0

    by_pm: dict[int, list[ExpiredAllocationLine]] = defaultdict(list)
    by_consultant: dict[int, list[ExpiredAllocationLine]] = defaultdict(list)
    for line in lines:
        if line.product_manager_id is not None:
            by_pm[line.product_manager_id].append(line)
        by_consultant[line.consultant_id].append(line)

    growth_team_ids = await get_growth_team_member_ids(db)
    user_ids = set(by_pm) | set(by_consultant) | set(growth_team_ids)
    result = await db.execute(select(User).where(User.id.in_(user_ids)))
    users = {u.id: u for u in result.scalars().all()}

    batches = (
        [(uid, "product_manager", items) for uid, items in by_pm.items()]
        + [(uid, "consultant", items) for uid, items in by_consultant.items()]
        + [(uid, "growth_team", lines) for uid in growth_team_ids]
    )
    sent = 0
    for user_id, audience, items in batches:
        user = users.get(user_id)
        if user is None or not user.email:
            continue
        subject, html_body, text_body = render_expired_summary(user.display_name, audience, items)
        if await send_email([user.email], subject, html_body, text_body):
            sent += 1
    logger.info("Sent %d expired allocation summary emails", sent)
    return sent
