# src/itorero/schemas/hierarchy.py
from __future__ import annotations
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from src.itorero.models.org.district import NODE_STATUSES
from src.itorero.models.org.intore_group import GROUP_TYPES


def _code(v):
    return v.strip().upper() if isinstance(v, str) else v


def _status(v):
    if v is None:
        return v
    vv = v.strip().lower()
    if vv not in NODE_STATUSES:
        raise ValueError(f"status must be one of {', '.join(NODE_STATUSES)}")
    return vv


class NodeFields(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: str = Field(min_length=1, max_length=10)
    description: str = ""
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=200)
    population: int = Field(default=0, ge=0)
    status: Optional[str] = "active"
    admin_id: Optional[str] = None

    @field_validator("name", mode="before")
    @classmethod
    def _trim(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("code", mode="before")
    @classmethod
    def _upper(cls, v):
        return _code(v)

    @field_validator("status")
    @classmethod
    def _norm_status(cls, v):
        return _status(v)


class NodeUpdateFields(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, min_length=1, max_length=10)
    description: Optional[str] = None
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    address: Optional[str] = Field(default=None, max_length=200)
    population: Optional[int] = Field(default=None, ge=0)
    status: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _upper(cls, v):
        return _code(v)

    @field_validator("status")
    @classmethod
    def _norm_status(cls, v):
        return _status(v)


# ---------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------
class DistrictCreate(NodeFields):
    pass


class DistrictUpdate(NodeUpdateFields):
    pass


class SectorCreate(NodeFields):
    district_id: str


class SectorUpdate(NodeUpdateFields):
    district_id: Optional[str] = None


class CellCreate(NodeFields):
    sector_id: str
    # derived from the sector when omitted
    district_id: Optional[str] = None


class CellUpdate(NodeUpdateFields):
    sector_id: Optional[str] = None
    district_id: Optional[str] = None


class IntoreGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    code: str = Field(min_length=1, max_length=10)
    description: str = ""
    type: str
    cell_id: str
    sector_id: Optional[str] = None
    district_id: Optional[str] = None
    leader_id: Optional[str] = None
    status: Optional[str] = "active"

    @field_validator("code", mode="before")
    @classmethod
    def _upper(cls, v):
        return _code(v)

    @field_validator("type")
    @classmethod
    def _type(cls, v: str) -> str:
        if v not in GROUP_TYPES:
            raise ValueError(f"type must be one of {', '.join(GROUP_TYPES)}")
        return v

    @field_validator("status")
    @classmethod
    def _norm_status(cls, v):
        return _status(v)


class IntoreGroupUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    code: Optional[str] = Field(default=None, min_length=1, max_length=10)
    description: Optional[str] = None
    type: Optional[str] = None
    cell_id: Optional[str] = None
    sector_id: Optional[str] = None
    district_id: Optional[str] = None
    status: Optional[str] = None

    @field_validator("code", mode="before")
    @classmethod
    def _upper(cls, v):
        return _code(v)

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        if v is not None and v not in GROUP_TYPES:
            raise ValueError(f"type must be one of {', '.join(GROUP_TYPES)}")
        return v

    @field_validator("status")
    @classmethod
    def _norm_status(cls, v):
        return _status(v)


class AdminAssign(BaseModel):
    # null clears the assignment
    user_id: Optional[str] = None


# ---------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------
class NodeRead(BaseModel):
    id: str
    name: str
    code: str
    description: str = ""
    status: Optional[str] = None
    created_dt: Optional[datetime] = None
    updated_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}


class DistrictRead(NodeRead):
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    address: Optional[str] = None
    population: int = 0
    admin_id: Optional[str] = None


class SectorRead(DistrictRead):
    district_id: str


class CellRead(SectorRead):
    sector_id: str


class IntoreGroupRead(NodeRead):
    type: str
    cell_id: str
    sector_id: str
    district_id: str
    leader_id: Optional[str] = None
