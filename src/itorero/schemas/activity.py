# src/itorero/schemas/activity.py
from __future__ import annotations
from datetime import date as _date, datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from src.itorero.models.ops.activity import ACTIVITY_STATUSES, ACTIVITY_TYPES, ATTENDEE_STATUSES


class ActivityCreate(BaseModel):
    """Loose shape; content rules live in ``validate_activity`` so every error is reported at once."""

    title: str = ""
    description: str = ""
    type: Optional[str] = None
    date: Optional[_date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    organizer_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None
    max_attendees: int = Field(default=0, ge=0)
    status: str = "draft"

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        if v is not None and v not in ACTIVITY_TYPES:
            raise ValueError(f"type must be one of {', '.join(ACTIVITY_TYPES)}")
        return v

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        if v not in ACTIVITY_STATUSES:
            raise ValueError(f"status must be one of {', '.join(ACTIVITY_STATUSES)}")
        return v


class ActivityUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[str] = None
    date: Optional[_date] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    location_name: Optional[str] = None
    location_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    max_attendees: Optional[int] = Field(default=None, ge=0)
    status: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        if v is not None and v not in ACTIVITY_STATUSES:
            raise ValueError(f"status must be one of {', '.join(ACTIVITY_STATUSES)}")
        return v


class AttendeeUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        if v not in ATTENDEE_STATUSES:
            raise ValueError(f"status must be one of {', '.join(ATTENDEE_STATUSES)}")
        return v


class ActivityRead(BaseModel):
    id: str
    title: str
    description: str
    type: str
    date: _date
    start_time: str
    end_time: str
    location_name: str
    location_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    organizer_id: str
    max_attendees: int
    status: str
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None
    duration_hours: float
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}


class AttendeeRead(BaseModel):
    activity_id: str
    user_id: str
    status: str
    confirmed_at: Optional[datetime] = None
    model_config = {"from_attributes": True}
