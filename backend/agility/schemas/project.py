"""Project, sprint and phase schemas."""
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, model_validator


class ProjectCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    start_date: date
    duration_weeks: int = Field(..., gt=0, le=260)
    budgeted_hours: Decimal = Field(default=Decimal(0), ge=0)
    product_manager_id: int | None = None
    consultant_ids: list[int] = []


class ProjectResponse(BaseModel):
    id: int
    title: str
    description: str | None
    start_date: date
    end_date: date
    budgeted_hours: Decimal
    product_manager_id: int | None
    created_by: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class SprintResponse(BaseModel):
    id: int
    sprint_number: int
    start_date: date
    end_date: date
    phase_id: int | None

    class Config:
        from_attributes = True


class ProjectDetail(ProjectResponse):
    sprints: list[SprintResponse] = []
    consultant_ids: list[int] = []


class PhaseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    sprint_ids: list[int] = []
    start_date: date | None = None
    end_date: date | None = None

    @model_validator(mode="after")
    def dates_or_sprints(self):
        if not self.sprint_ids and (self.start_date is None or self.end_date is None):
            raise ValueError("Provide sprint_ids or both start_date and end_date")
        return self


class PhaseResponse(BaseModel):
    id: int
    project_id: int
    name: str
    description: str | None
    start_date: date
    end_date: date
    is_locked: bool = False

    class Config:
        from_attributes = True


class ProjectDeleteResponse(BaseModel):
    deleted: bool
    project_id: int
    phases: int
    allocations: int
