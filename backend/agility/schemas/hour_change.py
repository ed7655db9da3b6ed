"""Hour change request schemas."""
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from agility.schemas.allocation import validate_half_hours


class HourChangeCreate(BaseModel):
    phase_id: int
    change_type: Literal["ADJUSTMENT", "SHIFT"]
    reason: str = Field(..., min_length=1, max_length=2000)
    # ADJUSTMENT
    phase_allocation_id: int | None = None
    requested_hours: Decimal | None = None
    # SHIFT
    from_consultant_id: int | None = None
    to_consultant_id: int | None = None
    shift_hours: Decimal | None = None

    @field_validator("requested_hours", "shift_hours")
    @classmethod
    def half_hours(cls, v: Decimal | None) -> Decimal | None:
        return validate_half_hours(v) if v is not None else v

    @model_validator(mode="after")
    def fields_for_type(self):
        if self.change_type == "ADJUSTMENT":
            if self.phase_allocation_id is None or self.requested_hours is None:
                raise ValueError("Adjustments need phase_allocation_id and requested_hours")
        else:
            if self.from_consultant_id is None or self.to_consultant_id is None or self.shift_hours is None:
                raise ValueError("Shifts need from_consultant_id, to_consultant_id and shift_hours")
            if self.from_consultant_id == self.to_consultant_id:
                raise ValueError("Cannot shift hours to the same consultant")
            if self.shift_hours <= 0:
                raise ValueError("Shift hours must be greater than zero")
        return self


class HourChangeReview(BaseModel):
    action: Literal["approve", "reject"]
    rejection_reason: str | None = None

    @model_validator(mode="after")
    def reason_on_reject(self):
        if self.action == "reject" and not (self.rejection_reason or "").strip():
            raise ValueError("A rejection reason is required")
        return self


class HourChangeResponse(BaseModel):
    id: int
    phase_id: int
    phase_allocation_id: int | None
    requester_id: int
    change_type: str
    status: str
    original_hours: Decimal | None
    requested_hours: Decimal | None
    from_consultant_id: int | None
    to_consultant_id: int | None
    shift_hours: Decimal | None
    reason: str
    approver_id: int | None
    approved_at: datetime | None
    rejected_at: datetime | None
    rejection_reason: str | None

    class Config:
        from_attributes = True
