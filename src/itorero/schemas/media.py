# src/itorero/schemas/media.py
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class MediaCreate(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    original_name: str = Field(min_length=1, max_length=255)
    type: Optional[str] = None
    mime_type: str = Field(min_length=1, max_length=100)
    size: int = Field(ge=0)
    url: str = Field(min_length=1, max_length=500)
    thumbnail_url: Optional[str] = Field(default=None, max_length=500)
    description: str = ""
    tags: List[str] = []
    uploaded_for: Optional[str] = None
    target_id: Optional[str] = None
    visibility: Optional[str] = "members_only"


class MediaUpdate(BaseModel):
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    visibility: Optional[str] = None


class MediaApproval(BaseModel):
    approved: bool
    reason: Optional[str] = Field(default=None, max_length=500)


class MediaRead(BaseModel):
    id: str
    filename: str
    original_name: str
    type: str
    mime_type: str
    size: int
    url: str
    thumbnail_url: Optional[str] = None
    description: str = ""
    tags: List[str] = []
    uploaded_by: str
    uploaded_for: str
    target_id: Optional[str] = None
    visibility: str
    status: str
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    approval_reason: Optional[str] = None
    views: int = 0
    downloads: int = 0
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}
