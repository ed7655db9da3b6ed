"""Role-based access control.

Organisation roles come from `user_roles`; Product Manager is a per-project
relation (`Project.product_manager_id`), not a role.
"""
from enum import Enum

from agility.models.project import Project


class Role(str, Enum):
    GROWTH_TEAM = "growth_team"
    CONSULTANT = "consultant"


ROLE_NAMES = [r.value for r in Role]


def is_growth_team(roles: list[str]) -> bool:
    return any(r.lower() == Role.GROWTH_TEAM.value for r in roles)


def is_project_pm(project: Project, user_id: int) -> bool:
    return project.product_manager_id is not None and project.product_manager_id == user_id


def can_create_project(roles: list[str]) -> bool:
    return is_growth_team(roles)


def can_delete_project(roles: list[str]) -> bool:
    return is_growth_team(roles)


def can_manage_project(project: Project, user_id: int, roles: list[str]) -> bool:
    """Phases and allocations are managed by the project's PM or the Growth Team."""
    return is_growth_team(roles) or is_project_pm(project, user_id)


def can_approve_allocations(roles: list[str]) -> bool:
    return is_growth_team(roles)


def can_approve_hour_change(project: Project, user_id: int, roles: list[str]) -> bool:
    return is_growth_team(roles) or is_project_pm(project, user_id)


def can_handle_expired_hours(project: Project, user_id: int) -> bool:
    """Forfeit and reallocate are the PM's decision alone."""
    return is_project_pm(project, user_id)
