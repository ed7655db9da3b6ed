"""Phase status result schemas."""
from datetime import date
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel


class PlanningSummary(BaseModel):
    status: Literal["pending", "complete"]
    total_allocated_hours: Decimal
    total_distributed_hours: Decimal
    remaining_to_distribute: Decimal
    completion_percentage: int


class TimeWindow(BaseModel):
    status: Literal["future", "active", "past"]
    days_until_start: int
    days_until_end: int
    total_duration: int
    elapsed_duration: int
    time_elapsed_percentage: int


class WeekBreakdown(BaseModel):
    week_number: int
    year: int
    sprint_number: int | None = None
    sprint_week: int | None = None
    week_start_date: date
    week_end_date: date
    planned_hours: Decimal
    status: Literal["future", "current", "complete"]
    hours_expected_complete: Decimal


class CurrentWeekProgress(BaseModel):
    week_number: int
    year: int
    sprint_number: int | None = None
    sprint_week: int | None = None
    planned_hours: Decimal
    expected_hours_complete: Decimal
    week_progress: Decimal


class WorkProgress(BaseModel):
    status: Literal["not_started", "in_progress", "complete", "behind_schedule"]
    expected_completion_by_now: Decimal
    total_planned_hours: Decimal
    work_completion_percentage: int
    current_week_progress: CurrentWeekProgress | None = None
    weekly_breakdown: list[WeekBreakdown] = []


class OverallProgress(BaseModel):
    completion_percentage: int
    is_on_track: bool
    risk_level: Literal["low", "medium", "high"]


class PrimaryStatus(BaseModel):
    status: Literal["not_started", "planning", "ready", "in_progress", "complete", "overdue"]
    label: str
    color: Literal["gray", "yellow", "purple", "blue", "green", "red"]


class PhaseStatusDetails(BaseModel):
    planning: PlanningSummary
    time: TimeWindow
    work: WorkProgress
    overall: OverallProgress


class PhaseStatusResponse(PrimaryStatus):
    phase_id: int | None = None
    details: PhaseStatusDetails
