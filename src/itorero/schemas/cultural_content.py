# src/itorero/schemas/cultural_content.py
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ValidationInfo, field_validator

from src.itorero.models.ops.cultural_content import (
    AGE_GROUPS,
    CONTENT_CATEGORIES,
    CONTENT_TYPES,
    CONTENT_VISIBILITY,
    DIFFICULTIES,
    LANGUAGES,
)


_ALLOWED = {
    "type": CONTENT_TYPES,
    "category": CONTENT_CATEGORIES,
    "language": LANGUAGES,
    "age_group": AGE_GROUPS,
    "difficulty": DIFFICULTIES,
    "visibility": CONTENT_VISIBILITY,
}


def _one_of(v, info: ValidationInfo):
    allowed = _ALLOWED[info.field_name]
    if v is not None and v not in allowed:
        raise ValueError(f"{info.field_name} must be one of {', '.join(allowed)}")
    return v


class ContentCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str = Field(min_length=1)
    type: str
    category: str
    text: Optional[str] = None
    audio_url: Optional[str] = Field(default=None, max_length=500)
    video_url: Optional[str] = Field(default=None, max_length=500)
    tags: List[str] = []
    language: str = "kinyarwanda"
    age_group: str = "all"
    difficulty: str = "beginner"
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    visibility: str = "public"
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None

    @field_validator("type", "category", "language", "age_group", "difficulty", "visibility")
    @classmethod
    def _choices(cls, v, info: ValidationInfo):
        return _one_of(v, info)


class ContentUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    text: Optional[str] = None
    audio_url: Optional[str] = Field(default=None, max_length=500)
    video_url: Optional[str] = Field(default=None, max_length=500)
    tags: Optional[List[str]] = None
    language: Optional[str] = None
    age_group: Optional[str] = None
    difficulty: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=0)
    visibility: Optional[str] = None

    @field_validator("language", "age_group", "difficulty", "visibility")
    @classmethod
    def _choices(cls, v, info: ValidationInfo):
        return _one_of(v, info)


class ContentReview(BaseModel):
    approved: bool


class ContentRead(BaseModel):
    id: str
    title: str
    description: str
    type: str
    category: str
    text: Optional[str] = None
    audio_url: Optional[str] = None
    video_url: Optional[str] = None
    tags: List[str] = []
    language: str
    age_group: str
    difficulty: str
    duration_minutes: Optional[int] = None
    created_by: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    status: str
    visibility: str
    views: int = 0
    shares: int = 0
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}
