"""Expired hours, sweep and reallocation schemas."""
from datetime import date, datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, model_validator

OTHER_REASON = "Other"

ReallocationReason = Literal[
    "Hours were planned but not needed before phase ended",
    "Work was delayed and needs to continue in next phase",
    "Scope changed and work moved to different phase",
    "Phase ended earlier than expected with hours remaining",
    "Consultant was unavailable during the phase timeline",
    "Other",
]


class SweepResponse(BaseModel):
    success: bool
    checked: int
    expired: int
    skipped: int
    emails_sent: int = Field(0, alias="emailsSent")
    timestamp: datetime

    class Config:
        populate_by_name = True


class UnplannedExpiredHoursResponse(BaseModel):
    id: int
    phase_allocation_id: int
    unplanned_hours: Decimal
    status: str
    detected_at: datetime | None
    handled_at: datetime | None
    handled_by: int | None
    reallocated_to_phase_id: int | None
    reallocated_to_allocation_id: int | None
    notes: str | None

    class Config:
        from_attributes = True


class ReallocateRequest(BaseModel):
    target_phase_id: int
    reason: ReallocationReason
    custom_reason: str | None = Field(None, max_length=1000)

    @model_validator(mode="after")
    def custom_text_for_other(self):
        if self.reason == OTHER_REASON and not (self.custom_reason or "").strip():
            raise ValueError("A custom reason is required when 'Other' is selected")
        return self

    @property
    def notes(self) -> str:
        if self.reason == OTHER_REASON:
            return self.custom_reason.strip()
        return self.reason


class ReallocationTarget(BaseModel):
    id: int
    name: str
    start_date: date
    end_date: date
    existing_allocation_id: int | None = None
    existing_hours: Decimal | None = None


class ExpiredActionResponse(BaseModel):
    success: bool = True
    message: str
    record: UnplannedExpiredHoursResponse
    source_allocation_total_hours: Decimal
    target_allocation_id: int | None = None
    merged: bool = False
