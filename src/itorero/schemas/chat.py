# src/itorero/schemas/chat.py
from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator

from src.itorero.models.ops.chat import GROUP_KINDS, MESSAGE_TYPES


class ChatGroupCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: str = Field(default="", max_length=500)
    type: str = "private"
    is_public: bool = False
    join_approval_required: bool = False
    max_members: int = Field(default=100, ge=2, le=1000)
    member_ids: List[str] = []
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None

    @field_validator("type")
    @classmethod
    def _type(cls, v):
        if v not in GROUP_KINDS:
            raise ValueError(f"type must be one of {', '.join(GROUP_KINDS)}")
        return v


class MemberAdd(BaseModel):
    user_id: str
    role: str = "member"

    @field_validator("role")
    @classmethod
    def _role(cls, v):
        if v not in ("admin", "member"):
            raise ValueError("role must be admin or member")
        return v


class MessageCreate(BaseModel):
    content: str = Field(min_length=1, max_length=2000)
    message_type: str = "text"
    recipient_id: Optional[str] = None
    group_id: Optional[str] = None
    media_id: Optional[str] = None
    reply_to_id: Optional[str] = None

    @field_validator("message_type")
    @classmethod
    def _mtype(cls, v):
        if v not in MESSAGE_TYPES:
            raise ValueError(f"message_type must be one of {', '.join(MESSAGE_TYPES)}")
        return v

    @model_validator(mode="after")
    def _one_target(self):
        if bool(self.recipient_id) == bool(self.group_id):
            raise ValueError("exactly one of recipient_id or group_id is required")
        return self


class MessageEdit(BaseModel):
    content: str = Field(min_length=1, max_length=2000)


class ChatGroupRead(BaseModel):
    id: str
    name: str
    description: str = ""
    type: str
    created_by: str
    is_public: bool
    join_approval_required: bool
    max_members: int
    last_activity: Optional[datetime] = None
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}


class MessageRead(BaseModel):
    id: str
    sender_id: str
    recipient_id: Optional[str] = None
    group_id: Optional[str] = None
    content: str
    message_type: str
    media_id: Optional[str] = None
    reply_to_id: Optional[str] = None
    is_edited: bool = False
    edited_at: Optional[datetime] = None
    is_deleted: bool = False
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}


class MemberRead(BaseModel):
    group_id: str
    user_id: str
    role: str
    joined_at: Optional[datetime] = None
    model_config = {"from_attributes": True}


class ReceiptRead(BaseModel):
    message_id: str
    user_id: str
    read_at: datetime
    model_config = {"from_attributes": True}
