"""Phase API routes: details, derived status and allocations."""
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from agility.auth.deps import get_current_user, get_user_roles
from agility.database import get_db
from agility.engine.phase_status import PhaseStatusEngine
from agility.models.user import User
from agility.routers.projects import phase_response
from agility.schemas.allocation import PhaseAllocationCreate, PhaseAllocationResponse
from agility.schemas.phase_status import PhaseStatusResponse
from agility.schemas.project import PhaseResponse
from agility.services import allocation_service

router = APIRouter(prefix="/phases", tags=["phases"])


@router.get("/{phase_id}", response_model=PhaseResponse)
async def get_phase(
    phase_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return phase_response(await allocation_service.get_phase(db, phase_id))


@router.get("/{phase_id}/status", response_model=PhaseStatusResponse)
async def get_phase_status(
    phase_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    at: Annotated[datetime | None, Query(description="Evaluate as of this instant (defaults to now)")] = None,
):
    phase = await allocation_service.get_phase(db, phase_id, with_allocations=True)
    return PhaseStatusEngine().phase_status(phase, at)


@router.get("/{phase_id}/allocations", response_model=list[PhaseAllocationResponse])
async def list_allocations(
    phase_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    phase = await allocation_service.get_phase(db, phase_id, with_allocations=True)
    return [PhaseAllocationResponse.model_validate(a) for a in phase.allocations]


@router.post("/{phase_id}/allocations", response_model=PhaseAllocationResponse, status_code=status.HTTP_201_CREATED)
async def create_allocation(
    phase_id: int,
    data: PhaseAllocationCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    phase = await allocation_service.get_phase(db, phase_id)
    allocation = await allocation_service.create_phase_allocation(db, phase, data, user, roles)
    return PhaseAllocationResponse.model_validate(allocation)
