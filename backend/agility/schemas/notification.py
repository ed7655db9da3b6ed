"""Notification schemas."""
from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, Field


class NotificationResponse(BaseModel):
    id: int
    type: str
    title: str
    message: str
    action_url: str | None
    metadata: dict[str, Any] | None = Field(None, validation_alias=AliasChoices("extra", "metadata"))
    is_read: bool
    created_at: datetime | None

    class Config:
        from_attributes = True


class NotificationList(BaseModel):
    unread_count: int
    notifications: list[NotificationResponse]
