"""Pydantic schemas."""
from agility.schemas.allocation import (
    AllocationReview,
    PhaseAllocationCreate,
    PhaseAllocationResponse,
    WeeklyAllocationResponse,
    WeeklyPlanRequest,
    WeeklyPlanResponse,
    WeeklyReview,
)
from agility.schemas.auth import Token, UserCreate, UserLogin, UserResponse
from agility.schemas.expired import ReallocateRequest, SweepResponse, UnplannedExpiredHoursResponse
from agility.schemas.hour_change import HourChangeCreate, HourChangeResponse, HourChangeReview
from agility.schemas.notification import NotificationList, NotificationResponse
from agility.schemas.phase_status import PhaseStatusResponse
from agility.schemas.project import PhaseCreate, PhaseResponse, ProjectCreate, ProjectDetail, ProjectResponse

__all__ = [
    "Token",
    "UserCreate",
    "UserLogin",
    "UserResponse",
    "ProjectCreate",
    "ProjectResponse",
    "ProjectDetail",
    "PhaseCreate",
    "PhaseResponse",
    "PhaseStatusResponse",
    "PhaseAllocationCreate",
    "PhaseAllocationResponse",
    "AllocationReview",
    "WeeklyAllocationResponse",
    "WeeklyPlanRequest",
    "WeeklyPlanResponse",
    "WeeklyReview",
    "ReallocateRequest",
    "SweepResponse",
    "UnplannedExpiredHoursResponse",
    "HourChangeCreate",
    "HourChangeResponse",
    "HourChangeReview",
    "NotificationList",
    "NotificationResponse",
]
