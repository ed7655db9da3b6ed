"""Phase allocation lifecycle: creation by the PM and Growth Team review."""
import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agility.auth.rbac import can_approve_allocations, can_manage_project, is_growth_team
from agility.engine.weeks import is_phase_locked, utc_now
from agility.models.allocation import INACTIVE_APPROVAL_STATUSES, ApprovalStatus, PhaseAllocation
from agility.models.audit import AuditLog
from agility.models.notification import NotificationType
from agility.models.project import Phase, ProjectMember, ProjectRole
from agility.models.user import User
from agility.schemas.allocation import AllocationReview, PhaseAllocationCreate
from agility.services.notification_service import create_notifications_for_users, get_growth_team_member_ids

logger = logging.getLogger(__name__)


async def get_phase(db: AsyncSession, phase_id: int, with_allocations: bool = False) -> Phase:
    options = [selectinload(Phase.project), selectinload(Phase.sprints)]
    if with_allocations:
        options.append(selectinload(Phase.allocations).selectinload(PhaseAllocation.weekly_allocations))
    result = await db.execute(
        select(Phase).where(Phase.id == phase_id).options(*options).execution_options(populate_existing=True)
    )
    phase = result.scalar_one_or_none()
    if not phase:
        raise HTTPException(status_code=404, detail="Phase not found")
    return phase


async def get_allocation(db: AsyncSession, allocation_id: int) -> PhaseAllocation:
    result = await db.execute(
        select(PhaseAllocation)
        .where(PhaseAllocation.id == allocation_id)
        .options(
            selectinload(PhaseAllocation.phase).selectinload(Phase.project),
            selectinload(PhaseAllocation.weekly_allocations),
            selectinload(PhaseAllocation.consultant),
            selectinload(PhaseAllocation.unplanned_expired_hours),
        )
        .execution_options(populate_existing=True)
    )
    allocation = result.scalar_one_or_none()
    if not allocation:
        raise HTTPException(status_code=404, detail="Allocation not found")
    return allocation


async def create_phase_allocation(
    db: AsyncSession,
    phase: Phase,
    data: PhaseAllocationCreate,
    user: User,
    roles: list[str],
    now: datetime | None = None,
) -> PhaseAllocation:
    """New PENDING allocation awaiting Growth Team sign-off."""
    if not can_manage_project(phase.project, user.id, roles):
        raise HTTPException(status_code=403, detail="Only the Product Manager can allocate hours in this phase")
    if is_phase_locked(phase.end_date, now or utc_now()) and not is_growth_team(roles):
        raise HTTPException(status_code=400, detail="Phase has ended and is locked for editing")
    consultant = await db.get(User, data.consultant_id)
    if not consultant or not consultant.is_active:
        raise HTTPException(status_code=404, detail="Consultant not found")

    result = await db.execute(
        select(PhaseAllocation).where(
            PhaseAllocation.phase_id == phase.id,
            PhaseAllocation.consultant_id == data.consultant_id,
            PhaseAllocation.is_reallocation.is_(False),
            PhaseAllocation.parent_allocation_id.is_(None),
            PhaseAllocation.approval_status.not_in(INACTIVE_APPROVAL_STATUSES),
        )
    )
    if result.scalars().first():
        raise HTTPException(status_code=409, detail="Consultant already has an allocation in this phase")

    allocation = PhaseAllocation(
        phase_id=phase.id,
        consultant_id=data.consultant_id,
        total_hours=data.total_hours,
        approval_status=ApprovalStatus.PENDING,
    )
    db.add(allocation)

    member = await db.execute(
        select(ProjectMember).where(
            ProjectMember.project_id == phase.project_id,
            ProjectMember.user_id == data.consultant_id,
        )
    )
    if member.scalar_one_or_none() is None:
        db.add(ProjectMember(project_id=phase.project_id, user_id=data.consultant_id, role=ProjectRole.CONSULTANT))
    await db.flush()

    db.add(AuditLog(
        project_id=phase.project_id,
        user_id=user.id,
        action="create",
        entity_type="phase_allocation",
        entity_id=allocation.id,
        new_value=f"{consultant.display_name}: {allocation.total_hours}h in {phase.name}",
    ))
    await create_notifications_for_users(
        db,
        await get_growth_team_member_ids(db),
        NotificationType.PHASE_ALLOCATION_PENDING,
        "Phase Allocation Pending Approval",
        f'{user.display_name} allocated {float(data.total_hours):.1f}h to {consultant.display_name} '
        f'in "{phase.name}" ({phase.project.title}).',
        "/dashboard/hour-approvals",
        {"phase_allocation_id": allocation.id, "phase_id": phase.id, "project_id": phase.project_id},
    )
    return allocation


async def review_phase_allocation(
    db: AsyncSession,
    allocation: PhaseAllocation,
    data: AllocationReview,
    user: User,
    roles: list[str],
) -> PhaseAllocation:
    """PENDING -> APPROVED (as requested or with modified hours) or REJECTED."""
    if not can_approve_allocations(roles):
        raise HTTPException(status_code=403, detail="Only the Growth Team can review allocations")
    if allocation.approval_status != ApprovalStatus.PENDING:
        raise HTTPException(
            status_code=409,
            detail=f"Allocation is {allocation.approval_status.value}; only PENDING allocations can be reviewed",
        )

    old_value = f"{allocation.approval_status.value} {allocation.total_hours}h"
    phase = allocation.phase
    if data.action == "reject":
        allocation.approval_status = ApprovalStatus.REJECTED
        allocation.rejection_reason = data.rejection_reason.strip()
        notification_type = NotificationType.PHASE_ALLOCATION_REJECTED
        title = "Phase Allocation Rejected"
        message = f'Your allocation for "{phase.name}" was rejected. Reason: {allocation.rejection_reason}'
    else:
        if data.action == "modify":
            allocation.total_hours = data.total_hours
        allocation.approval_status = ApprovalStatus.APPROVED
        allocation.rejection_reason = None
        notification_type = NotificationType.PHASE_ALLOCATION_APPROVED
        title = "Phase Allocation Approved"
        message = (
            f'Your allocation of {float(allocation.total_hours):.1f}h for "{phase.name}" '
            f"({phase.project.title}) was approved. You can now plan your weekly hours."
        )
    allocation.approved_by = user.id
    allocation.approved_at = utc_now()

    db.add(AuditLog(
        project_id=phase.project_id,
        user_id=user.id,
        action=data.action,
        entity_type="phase_allocation",
        entity_id=allocation.id,
        old_value=old_value,
        new_value=f"{allocation.approval_status.value} {allocation.total_hours}h",
        reason=data.rejection_reason,
    ))
    await db.flush()
    await create_notifications_for_users(
        db,
        [allocation.consultant_id],
        notification_type,
        title,
        message,
        f"/dashboard/projects/{phase.project_id}",
        {"phase_allocation_id": allocation.id, "phase_id": phase.id},
    )
    logger.info("Allocation %s %s by user %s", allocation.id, data.action, user.id)
    return allocation
