"""Forfeit or reallocate hours left unplanned when a phase ended.

Both actions run inside the request transaction: the side record, the source
allocation and (for reallocation) the target allocation change together or not at all.
"""
import logging
from datetime import datetime
from decimal import Decimal

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.rbac import can_handle_expired_hours
from agility.config import get_settings
from agility.engine.weeks import is_phase_locked, to_utc, utc_now
from agility.models.allocation import (
    ApprovalStatus,
    PhaseAllocation,
    UnplannedExpiredHours,
    UnplannedHoursStatus,
)
from agility.models.audit import AuditLog
from agility.models.notification import NotificationType
from agility.models.project import Phase
from agility.models.user import User
from agility.schemas.expired import ReallocateRequest
from agility.services.allocation_service import get_allocation
from agility.services.expiration_service import planned_total
from agility.services.notification_service import create_notifications_for_users, get_growth_team_member_ids

logger = logging.getLogger(__name__)


async def load_expired_allocation(
    db: AsyncSession,
    phase_id: int,
    allocation_id: int,
    user: User,
) -> tuple[PhaseAllocation, UnplannedExpiredHours]:
    """Source allocation and its still-open EXPIRED record, with access checked."""
    allocation = await get_allocation(db, allocation_id)
    if allocation.phase_id != phase_id:
        raise HTTPException(status_code=400, detail="Phase mismatch")
    if not can_handle_expired_hours(allocation.phase.project, user.id):
        raise HTTPException(status_code=403, detail="Only the Product Manager can perform this action")
    record = allocation.unplanned_expired_hours
    if record is None:
        raise HTTPException(status_code=404, detail="No unplanned expired hours found for this allocation")
    if record.status != UnplannedHoursStatus.EXPIRED:
        raise HTTPException(status_code=409, detail="These hours have already been handled")
    return allocation, record


def _current_unplanned(allocation: PhaseAllocation, record: UnplannedExpiredHours) -> Decimal:
    """Unplanned hours as of now. Weeks approved since the sweep shrink the recorded figure."""
    unplanned = Decimal(allocation.total_hours) - planned_total(allocation)
    if unplanned <= Decimal(str(get_settings().expiry_tolerance_hours)):
        raise HTTPException(status_code=409, detail="No unplanned hours remain on this allocation")
    record.unplanned_hours = unplanned
    return unplanned


def _shrink_to_planned(allocation: PhaseAllocation) -> Decimal:
    """Source allocation keeps only its planned hours and stays APPROVED."""
    planned = planned_total(allocation)
    allocation.total_hours = planned
    allocation.approval_status = ApprovalStatus.APPROVED
    return planned


async def forfeit_unplanned_hours(
    db: AsyncSession,
    allocation: PhaseAllocation,
    record: UnplannedExpiredHours,
    user: User,
) -> Decimal:
    """Discard the unplanned hours for good. Returns the hours left on the allocation."""
    unplanned = _current_unplanned(allocation, record)
    old_total = allocation.total_hours
    record.status = UnplannedHoursStatus.FORFEITED
    record.handled_at = utc_now()
    record.handled_by = user.id
    planned = _shrink_to_planned(allocation)

    phase = allocation.phase
    db.add(AuditLog(
        project_id=phase.project_id,
        user_id=user.id,
        action="forfeit",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        old_value=f"{old_total}h",
        new_value=f"{planned}h",
        reason=f"Forfeited {unplanned}h unplanned",
    ))
    await db.flush()

    consultant_name = allocation.consultant.display_name if allocation.consultant else "Consultant"
    metadata = {
        "phase_allocation_id": allocation.id,
        "phase_id": phase.id,
        "project_id": phase.project_id,
        "consultant_id": allocation.consultant_id,
        "forfeited_hours": round(float(unplanned), 1),
        "planned_hours": round(float(planned), 1),
    }
    await create_notifications_for_users(
        db,
        await get_growth_team_member_ids(db),
        NotificationType.PHASE_ALLOCATION_REJECTED,
        "Unplanned Hours Forfeited",
        f"{user.display_name} has forfeited {float(unplanned):.1f}h for {consultant_name} in "
        f'"{phase.name}" ({phase.project.title}). {float(planned):.1f}h remain allocated.',
        f"/dashboard/projects/{phase.project_id}",
        metadata,
    )
    await create_notifications_for_users(
        db,
        [allocation.consultant_id],
        NotificationType.PHASE_ALLOCATION_REJECTED,
        "Unplanned Hours Forfeited",
        f'Your unplanned hours ({float(unplanned):.1f}h) for "{phase.name}" have been forfeited. '
        f"Your {float(planned):.1f}h of planned work remains valid.",
        f"/dashboard/projects/{phase.project_id}",
        metadata,
    )
    logger.info("Allocation %s: %sh forfeited by user %s", allocation.id, unplanned, user.id)
    return planned


async def reallocation_targets(
    db: AsyncSession,
    allocation: PhaseAllocation,
    now: datetime | None = None,
) -> list[tuple[Phase, PhaseAllocation | None]]:
    """Other unlocked phases of the same project, each with the allocation a reallocation would merge into."""
    now = to_utc(now) if now is not None else utc_now()
    result = await db.execute(
        select(Phase)
        .where(Phase.project_id == allocation.phase.project_id, Phase.id != allocation.phase_id)
        .order_by(Phase.start_date, Phase.id)
    )
    targets = []
    for phase in result.scalars().all():
        if is_phase_locked(phase.end_date, now):
            continue
        targets.append((phase, await find_merge_target(db, phase.id, allocation.consultant_id)))
    return targets


async def find_merge_target(db: AsyncSession, phase_id: int, consultant_id: int) -> PhaseAllocation | None:
    """Consultant's original allocation in a phase. Reallocations never chain into reallocations."""
    result = await db.execute(
        select(PhaseAllocation)
        .where(
            PhaseAllocation.phase_id == phase_id,
            PhaseAllocation.consultant_id == consultant_id,
            PhaseAllocation.is_reallocation.is_(False),
            PhaseAllocation.parent_allocation_id.is_(None),
        )
        .order_by(PhaseAllocation.id)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def reallocate_unplanned_hours(
    db: AsyncSession,
    allocation: PhaseAllocation,
    record: UnplannedExpiredHours,
    data: ReallocateRequest,
    user: User,
    now: datetime | None = None,
) -> tuple[PhaseAllocation, bool, Decimal]:
    """Move the unplanned hours into another open phase of the project.

    Returns (target allocation, merged, hours left on the source allocation). The
    target re-enters PENDING whatever its prior state, so Growth Team signs off again.
    """
    now = to_utc(now) if now is not None else utc_now()
    source_phase = allocation.phase
    target_phase = await db.get(Phase, data.target_phase_id)
    if target_phase is None:
        raise HTTPException(status_code=404, detail="Target phase not found")
    if target_phase.project_id != source_phase.project_id:
        raise HTTPException(status_code=400, detail="Target phase must belong to the same project")
    if target_phase.id == source_phase.id:
        raise HTTPException(status_code=400, detail="Target phase must differ from the expired phase")
    if is_phase_locked(target_phase.end_date, now):
        raise HTTPException(status_code=400, detail="Target phase has ended and is locked")

    unplanned = _current_unplanned(allocation, record)
    target = await find_merge_target(db, target_phase.id, allocation.consultant_id)
    merged = target is not None
    if merged:
        target.total_hours = Decimal(target.total_hours) + unplanned
        target.approval_status = ApprovalStatus.PENDING
        target.approved_by = None
        target.approved_at = None
        target.rejection_reason = None
    else:
        target = PhaseAllocation(
            phase_id=target_phase.id,
            consultant_id=allocation.consultant_id,
            total_hours=unplanned,
            approval_status=ApprovalStatus.PENDING,
            is_reallocation=True,
            parent_allocation_id=allocation.id,
            reallocated_from_phase_id=source_phase.id,
            reallocated_from_unplanned_id=record.id,
        )
        db.add(target)
    await db.flush()

    old_total = allocation.total_hours
    record.status = UnplannedHoursStatus.REALLOCATED
    record.handled_at = now
    record.handled_by = user.id
    record.reallocated_to_phase_id = target_phase.id
    record.reallocated_to_allocation_id = target.id
    record.notes = data.notes
    planned = _shrink_to_planned(allocation)

    db.add(AuditLog(
        project_id=source_phase.project_id,
        user_id=user.id,
        action="reallocate",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        old_value=f"{old_total}h",
        new_value=f"{planned}h; {unplanned}h to phase {target_phase.id} (allocation {target.id})",
        reason=data.notes,
    ))
    await db.flush()

    consultant_name = allocation.consultant.display_name if allocation.consultant else "Consultant"
    metadata = {
        "phase_allocation_id": target.id,
        "original_phase_id": source_phase.id,
        "target_phase_id": target_phase.id,
        "consultant_id": allocation.consultant_id,
        "reallocated_hours": round(float(unplanned), 1),
        "planned_hours": round(float(planned), 1),
        "merged": merged,
    }
    await create_notifications_for_users(
        db,
        await get_growth_team_member_ids(db),
        NotificationType.PHASE_ALLOCATION_PENDING,
        "Reallocation Request Pending Approval",
        f"{user.display_name} requests to reallocate {float(unplanned):.1f}h for {consultant_name} from "
        f'"{source_phase.name}" to "{target_phase.name}". {float(planned):.1f}h remain in original phase.',
        "/dashboard/hour-approvals",
        metadata,
    )
    await create_notifications_for_users(
        db,
        [allocation.consultant_id],
        NotificationType.PHASE_ALLOCATION_PENDING,
        "Hours Reallocation Pending",
        f'Your {float(unplanned):.1f}h of unplanned hours from "{source_phase.name}" are being reallocated to '
        f'"{target_phase.name}". Pending Growth Team approval. Your {float(planned):.1f}h of planned work remains valid.',
        f"/dashboard/projects/{source_phase.project_id}",
        metadata,
    )
    logger.info(
        "Allocation %s: %sh reallocated to allocation %s in phase %s (merged=%s)",
        allocation.id, unplanned, target.id, target_phase.id, merged,
    )
    return target, merged, planned
