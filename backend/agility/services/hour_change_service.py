"""Hour change requests: resize one allocation or move hours between two consultants."""
import logging
from decimal import Decimal

from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.rbac import can_approve_hour_change, can_manage_project
from agility.engine.weeks import utc_now
from agility.models.allocation import INACTIVE_APPROVAL_STATUSES, ApprovalStatus, PhaseAllocation
from agility.models.audit import AuditLog
from agility.models.hour_change import ChangeStatus, ChangeType, HourChangeRequest
from agility.models.notification import NotificationType
from agility.models.project import Phase
from agility.models.user import User
from agility.schemas.hour_change import HourChangeCreate, HourChangeReview
from agility.services.allocation_service import get_phase
from agility.services.expiration_service import planned_total
from agility.services.notification_service import create_notifications_for_users, get_growth_team_member_ids

logger = logging.getLogger(__name__)


async def _consultant_allocation(db: AsyncSession, phase_id: int, consultant_id: int) -> PhaseAllocation | None:
    """The consultant's live, original allocation in a phase."""
    result = await db.execute(
        select(PhaseAllocation)
        .where(
            PhaseAllocation.phase_id == phase_id,
            PhaseAllocation.consultant_id == consultant_id,
            PhaseAllocation.parent_allocation_id.is_(None),
            PhaseAllocation.approval_status.not_in(INACTIVE_APPROVAL_STATUSES),
        )
        .order_by(PhaseAllocation.is_reallocation, PhaseAllocation.id)
    )
    return result.scalars().first()


async def create_request(db: AsyncSession, data: HourChangeCreate, user: User, roles: list[str]) -> HourChangeRequest:
    phase = await get_phase(db, data.phase_id)
    request = HourChangeRequest(
        phase_id=phase.id,
        requester_id=user.id,
        change_type=ChangeType(data.change_type),
        status=ChangeStatus.PENDING,
        reason=data.reason.strip(),
    )

    if data.change_type == ChangeType.ADJUSTMENT.value:
        allocation = await db.get(PhaseAllocation, data.phase_allocation_id)
        if allocation is None or allocation.phase_id != phase.id:
            raise HTTPException(status_code=404, detail="Allocation not found in this phase")
        if allocation.consultant_id != user.id and not can_manage_project(phase.project, user.id, roles):
            raise HTTPException(status_code=403, detail="Not authorized to request changes to this allocation")
        request.phase_allocation_id = allocation.id
        request.original_hours = allocation.total_hours
        request.requested_hours = data.requested_hours
        summary = f"{float(allocation.total_hours):.1f}h -> {float(data.requested_hours):.1f}h"
    else:
        if user.id != data.from_consultant_id and not can_manage_project(phase.project, user.id, roles):
            raise HTTPException(status_code=403, detail="Not authorized to shift these hours")
        source = await _consultant_allocation(db, phase.id, data.from_consultant_id)
        if source is None:
            raise HTTPException(status_code=404, detail="Source consultant has no allocation in this phase")
        if await db.get(User, data.to_consultant_id) is None:
            raise HTTPException(status_code=404, detail="Target consultant not found")
        request.phase_allocation_id = source.id
        request.from_consultant_id = data.from_consultant_id
        request.to_consultant_id = data.to_consultant_id
        request.shift_hours = data.shift_hours
        request.original_hours = source.total_hours
        summary = f"shift {float(data.shift_hours):.1f}h"

    db.add(request)
    await db.flush()
    db.add(AuditLog(
        project_id=phase.project_id,
        user_id=user.id,
        action="request",
        entity_type="hour_change_request",
        entity_id=request.id,
        new_value=f"{data.change_type}: {summary}",
        reason=request.reason,
    ))
    recipients = [phase.project.product_manager_id, *await get_growth_team_member_ids(db)]
    await create_notifications_for_users(
        db,
        [uid for uid in recipients if uid != user.id],
        NotificationType.HOUR_CHANGE_REQUEST,
        "New Hour Change Request",
        f'{user.display_name} has requested an hour change ({summary}) on "{phase.name}" ({phase.project.title}).',
        "/dashboard/hour-approvals",
        {"hour_change_request_id": request.id, "phase_id": phase.id, "project_id": phase.project_id},
    )
    return request


async def get_request(db: AsyncSession, request_id: int) -> HourChangeRequest:
    request = await db.get(HourChangeRequest, request_id)
    if request is None:
        raise HTTPException(status_code=404, detail="Hour change request not found")
    return request


async def _apply_shift(db: AsyncSession, request: HourChangeRequest, phase: Phase) -> str:
    """Move shift_hours from one consultant to another within the phase.

    The source cannot drop below the hours it has already planned. The target's
    existing allocation grows, or an APPROVED one is created for it.
    """
    hours = Decimal(request.shift_hours)
    source = await _consultant_allocation(db, phase.id, request.from_consultant_id)
    if source is None:
        raise HTTPException(status_code=400, detail="Source consultant no longer has an allocation in this phase")
    await db.refresh(source, attribute_names=["weekly_allocations"])
    remaining = Decimal(source.total_hours) - hours
    if remaining < planned_total(source):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot shift {hours}h: source allocation has {source.total_hours}h "
            f"with {planned_total(source)}h already planned",
        )
    source.total_hours = remaining

    target = await _consultant_allocation(db, phase.id, request.to_consultant_id)
    if target is None:
        target = PhaseAllocation(
            phase_id=phase.id,
            consultant_id=request.to_consultant_id,
            total_hours=hours,
            approval_status=ApprovalStatus.APPROVED,
            approved_by=request.approver_id,
            approved_at=request.approved_at,
        )
        db.add(target)
    else:
        target.total_hours = Decimal(target.total_hours) + hours
    await db.flush()
    return f"{hours}h from allocation {source.id} to allocation {target.id}"


async def review_request(
    db: AsyncSession,
    request: HourChangeRequest,
    data: HourChangeReview,
    user: User,
    roles: list[str],
) -> HourChangeRequest:
    """Approve (applying the change) or reject. Request and allocations change together."""
    phase = await get_phase(db, request.phase_id)
    if not can_approve_hour_change(phase.project, user.id, roles):
        raise HTTPException(status_code=403, detail="Only the Growth Team or the project's Product Manager can review")
    if request.status != ChangeStatus.PENDING:
        raise HTTPException(status_code=409, detail="Hour change request is not pending")

    now = utc_now()
    request.approver_id = user.id
    if data.action == "reject":
        request.status = ChangeStatus.REJECTED
        request.rejected_at = now
        request.rejection_reason = data.rejection_reason.strip()
        applied = None
    else:
        request.status = ChangeStatus.APPROVED
        request.approved_at = now
        if request.change_type == ChangeType.ADJUSTMENT:
            allocation = await db.get(PhaseAllocation, request.phase_allocation_id)
            if allocation is None:
                raise HTTPException(status_code=400, detail="Allocation no longer exists")
            allocation.total_hours = request.requested_hours
            applied = f"allocation {allocation.id} set to {request.requested_hours}h"
        else:
            applied = await _apply_shift(db, request, phase)

    db.add(AuditLog(
        project_id=phase.project_id,
        user_id=user.id,
        action=data.action,
        entity_type="hour_change_request",
        entity_id=request.id,
        new_value=applied,
        reason=request.rejection_reason,
    ))
    await db.flush()

    if request.status == ChangeStatus.APPROVED:
        notification = (
            NotificationType.HOUR_CHANGE_APPROVED,
            "Hour Change Request Approved",
            f'Your hour change request for "{phase.name}" ({phase.project.title}) has been approved.',
        )
    else:
        notification = (
            NotificationType.HOUR_CHANGE_REJECTED,
            "Hour Change Request Rejected",
            f'Your hour change request for "{phase.name}" ({phase.project.title}) has been rejected. '
            f"Reason: {request.rejection_reason}",
        )
    await create_notifications_for_users(
        db,
        [request.requester_id],
        *notification,
        f"/dashboard/projects/{phase.project_id}",
        {"hour_change_request_id": request.id, "phase_id": phase.id},
    )
    logger.info("Hour change request %s %s by user %s", request.id, request.status.value, user.id)
    return request
