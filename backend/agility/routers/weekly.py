"""Consultant weekly planning routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.deps import get_current_user, get_user_roles
from agility.auth.rbac import can_manage_project
from agility.database import get_db
from agility.models.allocation import WeeklyAllocation
from agility.models.user import User
from agility.schemas.allocation import WeeklyAllocationResponse, WeeklyPlanRequest, WeeklyPlanResponse
from agility.services import allocation_service, weekly_planning_service

router = APIRouter(prefix="/allocations", tags=["weekly planning"])


@router.post("/weekly", response_model=WeeklyPlanResponse)
async def submit_weekly_plan(
    data: WeeklyPlanRequest,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return await weekly_planning_service.submit_weekly_plan(db, data.root, user)


@router.get("/{allocation_id}/weekly", response_model=list[WeeklyAllocationResponse])
async def list_weekly_plan(
    allocation_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    allocation = await allocation_service.get_allocation(db, allocation_id)
    if allocation.consultant_id != user.id and not can_manage_project(allocation.phase.project, user.id, roles):
        raise HTTPException(status_code=403, detail="Not authorized to view this allocation")
    result = await db.execute(
        select(WeeklyAllocation)
        .where(WeeklyAllocation.phase_allocation_id == allocation_id)
        .order_by(WeeklyAllocation.week_start_date)
    )
    return [WeeklyAllocationResponse.model_validate(w) for w in result.scalars().all()]
