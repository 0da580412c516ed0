# src/itorero/schemas/report.py
from __future__ import annotations
from datetime import date, datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from src.itorero.models.ops.report import (
    REPORT_CATEGORIES,
    REPORT_STATUSES,
    REPORT_TYPES,
    REPORT_VISIBILITY,
)


class ReportCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    type: str
    category: str
    start_date: date
    end_date: date
    data: Dict[str, Any] = {}
    visibility: str = "admins_only"
    activity_id: Optional[str] = None
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        if v not in REPORT_TYPES:
            raise ValueError(f"type must be one of {', '.join(REPORT_TYPES)}")
        return v

    @field_validator("category")
    @classmethod
    def _category(cls, v):
        if v not in REPORT_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(REPORT_CATEGORIES)}")
        return v

    @field_validator("visibility")
    @classmethod
    def _visibility(cls, v):
        if v not in REPORT_VISIBILITY:
            raise ValueError(f"visibility must be one of {', '.join(REPORT_VISIBILITY)}")
        return v

    @model_validator(mode="after")
    def _range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class ReportStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def _status(cls, v):
        if v not in REPORT_STATUSES:
            raise ValueError(f"status must be one of {', '.join(REPORT_STATUSES)}")
        return v


class ReportRead(BaseModel):
    id: str
    title: str
    description: str
    type: str
    category: str
    generated_by: str
    activity_id: Optional[str] = None
    start_date: date
    end_date: date
    data: Dict[str, Any] = {}
    status: str
    visibility: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}
