"""Hour change request routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.deps import get_current_user, get_user_roles
from agility.auth.rbac import is_growth_team
from agility.database import get_db
from agility.models.hour_change import ChangeStatus, HourChangeRequest
from agility.models.project import Phase, Project
from agility.models.user import User
from agility.schemas.hour_change import HourChangeCreate, HourChangeResponse, HourChangeReview
from agility.services import hour_change_service

router = APIRouter(prefix="/hour-changes", tags=["hour changes"])


@router.post("", response_model=HourChangeResponse, status_code=status.HTTP_201_CREATED)
async def create_hour_change(
    data: HourChangeCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    request = await hour_change_service.create_request(db, data, user, roles)
    return HourChangeResponse.model_validate(request)


@router.get("", response_model=list[HourChangeResponse])
async def list_hour_changes(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
    pending_only: bool = False,
):
    """Growth Team sees all requests; others see their own and those on projects they manage."""
    query = select(HourChangeRequest).order_by(HourChangeRequest.id.desc())
    if pending_only:
        query = query.where(HourChangeRequest.status == ChangeStatus.PENDING)
    if not is_growth_team(roles):
        managed = (
            select(Phase.id)
            .join(Project, Project.id == Phase.project_id)
            .where(Project.product_manager_id == user.id)
        )
        query = query.where(or_(HourChangeRequest.requester_id == user.id, HourChangeRequest.phase_id.in_(managed)))
    result = await db.execute(query)
    return [HourChangeResponse.model_validate(r) for r in result.scalars().all()]


@router.post("/{request_id}/review", response_model=HourChangeResponse)
async def review_hour_change(
    request_id: int,
    data: HourChangeReview,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    request = await hour_change_service.get_request(db, request_id)
    request = await hour_change_service.review_request(db, request, data, user, roles)
    return HourChangeResponse.model_validate(request)
