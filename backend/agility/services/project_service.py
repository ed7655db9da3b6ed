"""Project setup: sprint generation, phase definition and cascading delete."""
import logging
from datetime import date, timedelta

from fastapi import HTTPException
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from agility.config import get_settings
from agility.models.allocation import PhaseAllocation, UnplannedExpiredHours, WeeklyAllocation
from agility.models.audit import AuditLog
from agility.models.hour_change import HourChangeRequest
from agility.models.project import Phase, Project, ProjectMember, ProjectRole, Sprint
from agility.models.user import User
from agility.schemas.project import PhaseCreate, ProjectCreate

logger = logging.getLogger(__name__)


def generate_sprints(start_date: date, duration_weeks: int, sprint_length_days: int = 14) -> list[tuple[int, date, date]]:
    """(sprint_number, start, end) tuples covering start_date .. start_date + duration_weeks weeks.

    A project that does not start on a Monday gets a kickoff sprint 0 running to the
    following Sunday; regular sprints then start on Mondays.
    """
    project_end = start_date + timedelta(days=duration_weeks * 7)
    sprints: list[tuple[int, date, date]] = []
    cursor = start_date

    if start_date.weekday() != 0:
        kickoff_end = start_date + timedelta(days=6 - start_date.weekday())
        sprints.append((0, start_date, kickoff_end))
        cursor = kickoff_end + timedelta(days=1)

    number = 1
    while cursor < project_end:
        sprints.append((number, cursor, cursor + timedelta(days=sprint_length_days - 1)))
        cursor += timedelta(days=sprint_length_days)
        number += 1
    return sprints


async def _ensure_users_exist(db: AsyncSession, user_ids: set[int]) -> None:
    if not user_ids:
        return
    result = await db.execute(select(User.id).where(User.id.in_(user_ids)))
    missing = user_ids - set(result.scalars().all())
    if missing:
        raise HTTPException(status_code=404, detail=f"Users not found: {sorted(missing)}")


async def create_project(db: AsyncSession, data: ProjectCreate, user: User) -> Project:
    settings = get_settings()
    member_ids = set(data.consultant_ids)
    if data.product_manager_id is not None:
        member_ids.add(data.product_manager_id)
    await _ensure_users_exist(db, member_ids)

    project = Project(
        title=data.title.strip(),
        description=data.description,
        start_date=data.start_date,
        end_date=data.start_date + timedelta(days=data.duration_weeks * 7),
        budgeted_hours=data.budgeted_hours,
        product_manager_id=data.product_manager_id,
        created_by=user.id,
    )
    db.add(project)
    await db.flush()

    for number, start, end in generate_sprints(data.start_date, data.duration_weeks, settings.sprint_length_days):
        db.add(Sprint(project_id=project.id, sprint_number=number, start_date=start, end_date=end))
    if data.product_manager_id is not None:
        db.add(ProjectMember(project_id=project.id, user_id=data.product_manager_id, role=ProjectRole.PRODUCT_MANAGER))
    for consultant_id in dict.fromkeys(data.consultant_ids):
        if consultant_id != data.product_manager_id:
            db.add(ProjectMember(project_id=project.id, user_id=consultant_id, role=ProjectRole.CONSULTANT))
    db.add(AuditLog(
        project_id=project.id,
        user_id=user.id,
        action="create",
        entity_type="project",
        entity_id=project.id,
        new_value=project.title,
    ))
    await db.flush()
    logger.info("Project %s created by user %s", project.id, user.id)
    return project


def check_contiguous(sprints: list[Sprint]) -> None:
    """Each sprint must start the day after the previous one ends."""
    ordered = sorted(sprints, key=lambda s: s.start_date)
    for previous, current in zip(ordered, ordered[1:]):
        if current.start_date != previous.end_date + timedelta(days=1):
            raise HTTPException(
                status_code=400,
                detail=f"Sprints must be contiguous: sprint {previous.sprint_number} ends "
                f"{previous.end_date.isoformat()} but sprint {current.sprint_number} starts "
                f"{current.start_date.isoformat()}",
            )


async def create_phase(db: AsyncSession, project: Project, data: PhaseCreate, user: User) -> Phase:
    """Phase dated by its sprints (first start to last end) or by explicit dates."""
    sprints: list[Sprint] = []
    if data.sprint_ids:
        result = await db.execute(
            select(Sprint).where(Sprint.id.in_(data.sprint_ids), Sprint.project_id == project.id)
        )
        sprints = list(result.scalars().all())
        if len(sprints) != len(set(data.sprint_ids)):
            raise HTTPException(status_code=400, detail="All sprints must belong to this project")
        check_contiguous(sprints)
        start_date = min(s.start_date for s in sprints)
        end_date = max(s.end_date for s in sprints)
    else:
        start_date, end_date = data.start_date, data.end_date

    if start_date > end_date:
        raise HTTPException(status_code=400, detail="The phase start date must not be after the end date")

    phase = Phase(
        project_id=project.id,
        name=data.name.strip(),
        description=data.description,
        start_date=start_date,
        end_date=end_date,
    )
    db.add(phase)
    await db.flush()
    for sprint in sprints:
        sprint.phase_id = phase.id
    db.add(AuditLog(
        project_id=project.id,
        user_id=user.id,
        action="create",
        entity_type="phase",
        entity_id=phase.id,
        new_value=f"{phase.name} ({start_date.isoformat()} - {end_date.isoformat()})",
    ))
    await db.flush()
    return phase


async def delete_project(db: AsyncSession, project: Project, user: User) -> dict:
    """Delete a project and everything under it within the request transaction.

    Rows are removed children-first so the same statements work whether or not the
    database enforces ON DELETE CASCADE.
    """
    phase_ids = select(Phase.id).where(Phase.project_id == project.id).scalar_subquery()
    allocation_ids = select(PhaseAllocation.id).where(PhaseAllocation.phase_id.in_(phase_ids)).scalar_subquery()

    phase_count = (await db.execute(
        select(func.count()).select_from(Phase).where(Phase.project_id == project.id)
    )).scalar_one()
    allocation_count = (await db.execute(
        select(func.count()).select_from(PhaseAllocation).where(PhaseAllocation.phase_id.in_(phase_ids))
    )).scalar_one()

    await db.execute(delete(HourChangeRequest).where(HourChangeRequest.phase_id.in_(phase_ids)))
    await db.execute(delete(UnplannedExpiredHours).where(UnplannedExpiredHours.phase_allocation_id.in_(allocation_ids)))
    await db.execute(delete(WeeklyAllocation).where(WeeklyAllocation.phase_allocation_id.in_(allocation_ids)))
    # Reallocations may point at allocations in this project from elsewhere
    await db.execute(
        update(PhaseAllocation)
        .where(PhaseAllocation.parent_allocation_id.in_(allocation_ids))
        .values(parent_allocation_id=None)
    )
    await db.execute(
        update(PhaseAllocation)
        .where(PhaseAllocation.reallocated_from_phase_id.in_(phase_ids))
        .values(reallocated_from_phase_id=None)
    )
    await db.execute(delete(PhaseAllocation).where(PhaseAllocation.phase_id.in_(phase_ids)))
    await db.execute(delete(Sprint).where(Sprint.project_id == project.id))
    await db.execute(delete(Phase).where(Phase.project_id == project.id))
    await db.execute(delete(ProjectMember).where(ProjectMember.project_id == project.id))
    await db.execute(update(AuditLog).where(AuditLog.project_id == project.id).values(project_id=None))
    db.add(AuditLog(
        project_id=None,
        user_id=user.id,
        action="delete",
        entity_type="project",
        entity_id=project.id,
        old_value=project.title,
    ))
    project_id = project.id
    await db.delete(project)
    await db.flush()
    logger.info("Project %s deleted by user %s (%d phases, %d allocations)", project_id, user.id, phase_count, allocation_count)
    return {"deleted": True, "project_id": project_id, "phases": phase_count, "allocations": allocation_count}
