"""SQLAlchemy models."""
from agility.models.allocation import (
    ApprovalStatus,
    PhaseAllocation,
    PlanningStatus,
    UnplannedExpiredHours,
    UnplannedHoursStatus,
    WeeklyAllocation,
)
from agility.models.audit import AuditLog
from agility.models.hour_change import ChangeStatus, ChangeType, HourChangeRequest
from agility.models.notification import Notification, NotificationType
from agility.models.project import Phase, Project, ProjectMember, ProjectRole, Sprint
from agility.models.user import Role, User, UserRole

__all__ = [
    "ApprovalStatus",
    "AuditLog",
    "ChangeStatus",
    "ChangeType",
    "HourChangeRequest",
    "Notification",
    "NotificationType",
    "Phase",
    "PhaseAllocation",
    "PlanningStatus",
    "Project",
    "ProjectMember",
    "ProjectRole",
    "Role",
    "Sprint",
    "UnplannedExpiredHours",
    "UnplannedHoursStatus",
    "User",
    "UserRole",
    "WeeklyAllocation",
]
