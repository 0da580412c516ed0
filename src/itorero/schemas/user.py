# src/itorero/schemas/user.py
from __future__ import annotations
from datetime import date, datetime
from typing import Optional
from pydantic import BaseModel, EmailStr, Field, SecretStr, field_validator

from src.itorero.models.user import ROLES, USER_STATUSES


def _strip(v):
    return v.strip() if isinstance(v, str) else v


# -------------------------------------------------------------------
# Shared profile fields
# -------------------------------------------------------------------
class ProfileFields(BaseModel):
    first_name: str = Field(min_length=1, max_length=50)
    last_name: str = Field(min_length=1, max_length=50)
    phone_number: str = Field(min_length=1, max_length=20)
    date_of_birth: Optional[date] = None

    @field_validator("first_name", "last_name", "phone_number", mode="before")
    @classmethod
    def _trim(cls, v):
        return _strip(v)


class HierarchyFields(BaseModel):
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None


# -------------------------------------------------------------------
# Requests
# -------------------------------------------------------------------
class RegisterRequest(ProfileFields, HierarchyFields):
    username: str = Field(min_length=1, max_length=50)
    email: EmailStr
    password: SecretStr
    # self-registration can only pick a non-admin role
    role: str = "member"

    @field_validator("username", mode="before")
    @classmethod
    def _trim_username(cls, v):
        return _strip(v)

    @field_validator("email", mode="before")
    @classmethod
    def _lower_email(cls, v):
        return _strip(v).lower() if isinstance(v, str) else v

    @field_validator("role")
    @classmethod
    def _self_service_role(cls, v: str) -> str:
        if v not in ("member", "public"):
            raise ValueError("role must be member or public")
        return v


class UserCreate(RegisterRequest):
    status: str = "active"
    intore_group_id: Optional[str] = None

    @field_validator("role")
    @classmethod
    def _self_service_role(cls, v: str) -> str:
        if v not in ROLES:
            raise ValueError(f"role must be one of {', '.join(ROLES)}")
        return v

    @field_validator("status")
    @classmethod
    def _status(cls, v: str) -> str:
        if v not in USER_STATUSES:
            raise ValueError(f"status must be one of {', '.join(USER_STATUSES)}")
        return v


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    phone_number: Optional[str] = Field(default=None, min_length=1, max_length=20)
    date_of_birth: Optional[date] = None
    profile_picture: Optional[str] = Field(default=None, max_length=255)
    email: Optional[EmailStr] = None
    # admin-only fields
    role: Optional[str] = None
    status: Optional[str] = None
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None

    @field_validator("role")
    @classmethod
    def _role(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in ROLES:
            raise ValueError(f"role must be one of {', '.join(ROLES)}")
        return v

    @field_validator("status")
    @classmethod
    def _status(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in USER_STATUSES:
            raise ValueError(f"status must be one of {', '.join(USER_STATUSES)}")
        return v


class LoginRequest(BaseModel):
    identifier: str = Field(min_length=1, description="username or email")
    password: str = Field(min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ChangePasswordRequest(BaseModel):
    current_password: SecretStr
    new_password: SecretStr


# -------------------------------------------------------------------
# Responses
# -------------------------------------------------------------------
class UserRead(BaseModel):
    id: str
    username: str
    email: str
    first_name: str
    last_name: str
    phone_number: str
    date_of_birth: Optional[date] = None
    profile_picture: Optional[str] = None
    role: str
    status: str
    district_id: Optional[str] = None
    sector_id: Optional[str] = None
    cell_id: Optional[str] = None
    intore_group_id: Optional[str] = None
    email_verified: bool = False
    last_login: Optional[datetime] = None
    created_dt: Optional[datetime] = None
    model_config = {"from_attributes": True}


__all__ = [
    "RegisterRequest",
    "UserCreate",
    "UserUpdate",
    "LoginRequest",
    "RefreshRequest",
    "ChangePasswordRequest",
    "UserRead",
]
