"""Growth Team / PM review of phase allocations and weekly plans."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.deps import get_current_user, get_user_roles
from agility.auth.rbac import can_approve_allocations, is_growth_team
from agility.database import get_db
from agility.models.allocation import ApprovalStatus, PhaseAllocation, PlanningStatus, WeeklyAllocation
from agility.models.project import Phase, Project
from agility.models.user import User
from agility.schemas.allocation import (
    AllocationReview,
    PhaseAllocationResponse,
    WeeklyAllocationResponse,
    WeeklyReview,
    WeeklyReviewResponse,
)
from agility.services import allocation_service, weekly_planning_service

router = APIRouter(prefix="/approvals", tags=["approvals"])


@router.get("/phase-allocations", response_model=list[PhaseAllocationResponse])
async def pending_phase_allocations(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    if not can_approve_allocations(roles):
        raise HTTPException(status_code=403, detail="Only the Growth Team can review allocations")
    result = await db.execute(
        select(PhaseAllocation)
        .where(PhaseAllocation.approval_status == ApprovalStatus.PENDING)
        .order_by(PhaseAllocation.created_at, PhaseAllocation.id)
    )
    return [PhaseAllocationResponse.model_validate(a) for a in result.scalars().all()]


@router.post("/phase-allocations/{allocation_id}", response_model=PhaseAllocationResponse)
async def review_phase_allocation(
    allocation_id: int,
    data: AllocationReview,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    allocation = await allocation_service.get_allocation(db, allocation_id)
    allocation = await allocation_service.review_phase_allocation(db, allocation, data, user, roles)
    return PhaseAllocationResponse.model_validate(allocation)


@router.get("/weekly-allocations", response_model=list[WeeklyAllocationResponse])
async def pending_weekly_allocations(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    """Growth Team sees every pending week; a PM sees those on projects they manage."""
    query = (
        select(WeeklyAllocation)
        .where(WeeklyAllocation.planning_status == PlanningStatus.PENDING)
        .order_by(WeeklyAllocation.week_start_date, WeeklyAllocation.id)
    )
    if not is_growth_team(roles):
        managed = (
            select(PhaseAllocation.id)
            .join(Phase, Phase.id == PhaseAllocation.phase_id)
            .join(Project, Project.id == Phase.project_id)
            .where(Project.product_manager_id == user.id)
        )
        query = query.where(WeeklyAllocation.phase_allocation_id.in_(managed))
    result = await db.execute(query)
    return [WeeklyAllocationResponse.model_validate(w) for w in result.scalars().all()]


@router.post("/weekly-allocations/{weekly_id}", response_model=WeeklyReviewResponse)
async def review_weekly_allocation(
    weekly_id: int,
    data: WeeklyReview,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    weekly = await weekly_planning_service.get_weekly_allocation(db, weekly_id)
    reviewed = await weekly_planning_service.review_weekly_allocation(db, weekly, data, user, roles)
    if reviewed is None:
        return WeeklyReviewResponse(deleted=True)
    return WeeklyReviewResponse(allocation=WeeklyAllocationResponse.model_validate(reviewed))
