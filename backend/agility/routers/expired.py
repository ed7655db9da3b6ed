"""Expired hours: listing, forfeit and reallocation."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.deps import get_current_user, get_user_roles
from agility.auth.rbac import can_handle_expired_hours, can_manage_project
from agility.database import get_db
from agility.models.allocation import PhaseAllocation, UnplannedExpiredHours
from agility.models.project import Phase, Project
from agility.models.user import User
from agility.schemas.expired import (
    ExpiredActionResponse,
    ReallocateRequest,
    ReallocationTarget,
    UnplannedExpiredHoursResponse,
)
from agility.services import allocation_service, reallocation_service

router = APIRouter(tags=["expired hours"])


@router.get("/projects/{project_id}/expired-hours", response_model=list[UnplannedExpiredHoursResponse])
async def list_expired_hours(
    project_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if not can_manage_project(project, user.id, roles):
        raise HTTPException(status_code=403, detail="Not authorized to view this project's expired hours")
    result = await db.execute(
        select(UnplannedExpiredHours)
        .join(PhaseAllocation, PhaseAllocation.id == UnplannedExpiredHours.phase_allocation_id)
        .join(Phase, Phase.id == PhaseAllocation.phase_id)
        .where(Phase.project_id == project_id)
        .order_by(UnplannedExpiredHours.detected_at.desc(), UnplannedExpiredHours.id)
    )
    return [UnplannedExpiredHoursResponse.model_validate(r) for r in result.scalars().all()]


@router.get(
    "/phases/{phase_id}/allocations/{allocation_id}/reallocation-targets",
    response_model=list[ReallocationTarget],
)
async def list_reallocation_targets(
    phase_id: int,
    allocation_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    allocation = await allocation_service.get_allocation(db, allocation_id)
    if allocation.phase_id != phase_id:
        raise HTTPException(status_code=400, detail="Phase mismatch")
    if not can_handle_expired_hours(allocation.phase.project, user.id):
        raise HTTPException(status_code=403, detail="Only the Product Manager can perform this action")
    targets = await reallocation_service.reallocation_targets(db, allocation)
    return [
        ReallocationTarget(
            id=phase.id,
            name=phase.name,
            start_date=phase.start_date,
            end_date=phase.end_date,
            existing_allocation_id=existing.id if existing else None,
            existing_hours=existing.total_hours if existing else None,
        )
        for phase, existing in targets
    ]


@router.post("/phases/{phase_id}/allocations/{allocation_id}/forfeit", response_model=ExpiredActionResponse)
async def forfeit(
    phase_id: int,
    allocation_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    allocation, record = await reallocation_service.load_expired_allocation(db, phase_id, allocation_id, user)
    planned = await reallocation_service.forfeit_unplanned_hours(db, allocation, record, user)
    return ExpiredActionResponse(
        message=f"Successfully forfeited {float(record.unplanned_hours):.1f} hours. "
        f"{float(planned):.1f} hours of planned work remain valid.",
        record=UnplannedExpiredHoursResponse.model_validate(record),
        source_allocation_total_hours=planned,
    )


@router.post("/phases/{phase_id}/allocations/{allocation_id}/reallocate", response_model=ExpiredActionResponse)
async def reallocate(
    phase_id: int,
    allocation_id: int,
    data: ReallocateRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    allocation, record = await reallocation_service.load_expired_allocation(db, phase_id, allocation_id, user)
    target, merged, planned = await reallocation_service.reallocate_unplanned_hours(db, allocation, record, data, user)
    return ExpiredActionResponse(
        message=f"Successfully created reallocation request for {float(record.unplanned_hours):.1f} hours. "
        "Pending Growth Team approval.",
        record=UnplannedExpiredHoursResponse.model_validate(record),
        source_allocation_total_hours=planned,
        target_allocation_id=target.id,
        merged=merged,
    )
