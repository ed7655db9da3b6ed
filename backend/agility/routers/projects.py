"""Project API routes."""
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from agility.auth.deps import get_current_user, get_user_roles
from agility.auth.rbac import can_create_project, can_delete_project, can_manage_project, is_growth_team
from agility.database import get_db
from agility.engine.weeks import is_phase_locked
from agility.models.project import Phase, Project, ProjectMember
from agility.models.user import User
from agility.schemas.project import (
    PhaseCreate,
    PhaseResponse,
    ProjectCreate,
    ProjectDeleteResponse,
    ProjectDetail,
    ProjectResponse,
    SprintResponse,
)
from agility.services import project_service

router = APIRouter(prefix="/projects", tags=["projects"])


async def _get_project(db: AsyncSession, project_id: int) -> Project:
    result = await db.execute(
        select(Project)
        .where(Project.id == project_id)
        .options(selectinload(Project.sprints), selectinload(Project.members), selectinload(Project.phases))
        .execution_options(populate_existing=True)
    )
    project = result.scalar_one_or_none()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


def _detail(project: Project) -> ProjectDetail:
    return ProjectDetail(
        **ProjectResponse.model_validate(project).model_dump(),
        sprints=[SprintResponse.model_validate(s) for s in project.sprints],
        consultant_ids=[m.user_id for m in project.members],
    )


def phase_response(phase: Phase) -> PhaseResponse:
    response = PhaseResponse.model_validate(phase)
    response.is_locked = is_phase_locked(phase.end_date)
    return response


@router.post("", response_model=ProjectDetail, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    if not can_create_project(roles):
        raise HTTPException(status_code=403, detail="Only the Growth Team can create projects")
    project = await project_service.create_project(db, data, user)
    return _detail(await _get_project(db, project.id))


@router.get("", response_model=list[ProjectResponse])
async def list_projects(
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    query = select(Project).order_by(Project.start_date.desc(), Project.id.desc())
    if not is_growth_team(roles):
        member_of = select(ProjectMember.project_id).where(ProjectMember.user_id == user.id)
        query = query.where(or_(Project.product_manager_id == user.id, Project.id.in_(member_of)))
    result = await db.execute(query)
    return [ProjectResponse.model_validate(p) for p in result.scalars().all()]


@router.get("/{project_id}", response_model=ProjectDetail)
async def get_project(
    project_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    return _detail(await _get_project(db, project_id))


@router.delete("/{project_id}", response_model=ProjectDeleteResponse)
async def delete_project(
    project_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    if not can_delete_project(roles):
        raise HTTPException(status_code=403, detail="Cannot delete project")
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return await project_service.delete_project(db, project, user)


@router.post("/{project_id}/phases", response_model=PhaseResponse, status_code=status.HTTP_201_CREATED)
async def create_phase(
    project_id: int,
    data: PhaseCreate,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    roles: Annotated[list[str], Depends(get_user_roles)],
):
    project = await db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    if not can_manage_project(project, user.id, roles):
        raise HTTPException(status_code=403, detail="Only the Product Manager can create phases")
    phase = await project_service.create_phase(db, project, data, user)
    return phase_response(phase)


@router.get("/{project_id}/phases", response_model=list[PhaseResponse])
async def list_phases(
    project_id: int,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
):
    project = await _get_project(db, project_id)
    return [phase_response(p) for p in project.phases]
