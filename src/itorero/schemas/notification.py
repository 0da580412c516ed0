# src/itorero/schemas/notification.py
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from src.itorero.models.ops.notification import (
    NOTIFICATION_CATEGORIES,
    NOTIFICATION_TARGETS,
    NOTIFICATION_TYPES,
    PRIORITIES,
)


class NotificationCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=1000)
    type: str = "info"
    category: str
    recipient_ids: List[str] = Field(min_length=1)
    target: str = "user"
    target_id: Optional[str] = None
    priority: str = "medium"
    action_url: Optional[str] = Field(default=None, max_length=500)
    action_text: Optional[str] = Field(default=None, max_length=50)
    expires_at: Optional[datetime] = None
    metadata: Dict[str, Any] = {}

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        if v not in NOTIFICATION_TYPES:
            raise ValueError(f"type must be one of {', '.join(NOTIFICATION_TYPES)}")
        return v

    @field_validator("category")
    @classmethod
    def _category(cls, v):
        if v not in NOTIFICATION_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(NOTIFICATION_CATEGORIES)}")
        return v

    @field_validator("target")
    @classmethod
    def _target(cls, v):
        if v not in NOTIFICATION_TARGETS:
            raise ValueError(f"target must be one of {', '.join(NOTIFICATION_TARGETS)}")
        return v

    @field_validator("priority")
    @classmethod
    def _priority(cls, v):
        if v not in PRIORITIES:
            raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")
        return v


class NotificationRead(BaseModel):
    id: str
    title: str
    message: str
    type: str
    category: str
    recipient_id: str
    sender_id: Optional[str] = None
    target: str
    target_id: Optional[str] = None
    priority: str
    read: bool
    read_at: Optional[datetime] = None
    action_url: Optional[str] = None
    action_text: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}
