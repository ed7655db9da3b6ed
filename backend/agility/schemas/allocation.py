"""Phase allocation and weekly planning schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Discriminator, Field, RootModel, Tag, field_validator, model_validator


def validate_half_hours(value: Decimal) -> Decimal:
    """Hours are non-negative and come in half-hour steps."""
    if value < 0:
        raise ValueError("Hours must be zero or greater")
    if (value * 2) % 1 != 0:
        raise ValueError("Hours must be a multiple of 0.5")
    return value


class PhaseAllocationCreate(BaseModel):
    consultant_id: int
    total_hours: Decimal = Field(..., gt=0)

    @field_validator("total_hours")
    @classmethod
    def half_hours(cls, v: Decimal) -> Decimal:
        return validate_half_hours(v)


class PhaseAllocationResponse(BaseModel):
    id: int
    phase_id: int
    consultant_id: int
    total_hours: Decimal
    approval_status: str
    approved_by: int | None
    approved_at: datetime | None
    rejection_reason: str | None
    is_reallocation: bool
    parent_allocation_id: int | None
    reallocated_from_phase_id: int | None
    reallocated_from_unplanned_id: int | None

    class Config:
        from_attributes = True


class AllocationReview(BaseModel):
    """Growth Team decision on a PENDING phase allocation."""

    action: Literal["approve", "modify", "reject"]
    total_hours: Decimal | None = None
    rejection_reason: str | None = None

    @model_validator(mode="after")
    def check_action(self):
        if self.action == "modify":
            if self.total_hours is None or self.total_hours <= 0:
                raise ValueError("Modified hours must be greater than zero")
            validate_half_hours(self.total_hours)
        if self.action == "reject" and not (self.rejection_reason or "").strip():
            raise ValueError("A rejection reason is required")
        return self


class WeeklyAllocationResponse(BaseModel):
    id: int
    phase_allocation_id: int
    consultant_id: int
    week_start_date: date
    week_end_date: date
    week_number: int
    year: int
    proposed_hours: Decimal
    approved_hours: Decimal | None
    planning_status: str
    planned_by: int | None
    approved_by: int | None
    approved_at: datetime | None
    rejection_reason: str | None

    class Config:
        from_attributes = True


class WeekEntry(BaseModel):
    week_start_date: date = Field(..., description="Any date inside the target week")
    planned_hours: Decimal

    @field_validator("planned_hours")
    @classmethod
    def half_hours(cls, v: Decimal) -> Decimal:
        return validate_half_hours(v)


class SingleWeekRequest(WeekEntry):
    phase_allocation_id: int


class BatchWeekRequest(BaseModel):
    phase_allocation_id: int
    weeks: list[WeekEntry] = Field(..., min_length=1)


def _plan_kind(value) -> str:
    if isinstance(value, dict):
        return "batch" if "weeks" in value else "single"
    return "batch" if hasattr(value, "weeks") else "single"


class WeeklyPlanRequest(RootModel):
    """Single-week or batch submission, told apart by the presence of `weeks`."""

    root: Annotated[
        Union[
            Annotated[SingleWeekRequest, Tag("single")],
            Annotated[BatchWeekRequest, Tag("batch")],
        ],
        Discriminator(_plan_kind),
    ]


class WeekResult(BaseModel):
    week_number: int
    year: int
    week_start_date: date
    created: bool
    allocation: WeeklyAllocationResponse | None = None


class WeeklyPlanResponse(BaseModel):
    phase_allocation_id: int
    results: list[WeekResult]
    total_weekly_hours: Decimal
    allocation_total_hours: Decimal
    over_allocated: bool


class WeeklyReview(BaseModel):
    """Approve (optionally with different hours), modify or reject a PENDING week."""

    action: Literal["approve", "modify", "reject"]
    approved_hours: Decimal | None = None
    rejection_reason: str | None = None

    @model_validator(mode="after")
    def check_action(self):
        if self.approved_hours is not None:
            validate_half_hours(self.approved_hours)
        if self.action == "modify" and self.approved_hours is None:
            raise ValueError("Modified hours are required")
        if self.action == "reject" and not (self.rejection_reason or "").strip():
            raise ValueError("A rejection reason is required")
        return self


class WeeklyReviewResponse(BaseModel):
    deleted: bool = False
    allocation: WeeklyAllocationResponse | None = None
