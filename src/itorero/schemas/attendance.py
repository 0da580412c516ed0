# src/itorero/schemas/attendance.py
from __future__ import annotations
from datetime import date as _date, datetime
from typing import Optional
from pydantic import BaseModel, Field


class AttendanceMark(BaseModel):
    user_id: Optional[str] = None
    activity_id: Optional[str] = None
    date: Optional[_date] = None
    status: Optional[str] = "present"
    reason: str = Field(default="", max_length=500)
    notes: str = ""


class CheckInRequest(BaseModel):
    activity_id: str
    notes: str = ""


class AttendanceUpdate(BaseModel):
    status: Optional[str] = None
    reason: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = None


class AttendanceRead(BaseModel):
    id: str
    user_id: str
    activity_id: str
    date: _date
    check_in_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    status: str
    reason: str = ""
    notes: str = ""
    verified_by: Optional[str] = None
    verified_at: Optional[datetime] = None
    duration_hours: float = 0.0
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None
    model_config = {"from_attributes": True}
