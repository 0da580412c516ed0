# src/itorero/utils/validators.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.user import User
from src.itorero.models.org import Cell, District, IntoreGroup, Sector
from src.itorero.models.ops.attendance import ATTENDANCE_STATUSES
from src.itorero.models.ops.media import MEDIA_TARGETS, MEDIA_TYPES, MEDIA_VISIBILITY
from src.itorero.utils.timezone import today_local

_USERNAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_PHONE_RE = re.compile(r"^\+?\d{10,15}$")
_PHONE_STRIP_RE = re.compile(r"[\s\-()]")
_TIME_RE = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")
_SPECIAL_RE = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")

PASSWORD_MIN_LENGTH = 6


@dataclass
class ValidationResult:
    """Outcome of a validator; failures are data, never raised."""

    is_valid: bool = True
    errors: List[str] = field(default_factory=list)

    def add(self, message: str) -> None:
        self.errors.append(message)
        self.is_valid = False

    def extend(self, other: "ValidationResult") -> None:
        for e in other.errors:
            self.add(e)


# ---------------------------------------------------------------------
# User fields
# ---------------------------------------------------------------------
def validate_password(password: str) -> ValidationResult:
    result = ValidationResult()
    password = password or ""
    if len(password) < PASSWORD_MIN_LENGTH:
        result.add(f"Password must be at least {PASSWORD_MIN_LENGTH} characters long.")
    if not re.search(r"[A-Z]", password):
        result.add("Password must contain at least one uppercase letter.")
    if not re.search(r"[a-z]", password):
        result.add("Password must contain at least one lowercase letter.")
    if not re.search(r"\d", password):
        result.add("Password must contain at least one number.")
    if not _SPECIAL_RE.search(password):
        result.add("Password must contain at least one special character.")
    return result


def validate_phone_number(phone: str) -> bool:
    return bool(_PHONE_RE.match(_PHONE_STRIP_RE.sub("", phone or "")))


async def validate_username(db: AsyncSession, username: str) -> ValidationResult:
    result = ValidationResult()
    username = username or ""
    if len(username) < 3:
        result.add("Username must be at least 3 characters long.")
    if len(username) > 50:
        result.add("Username cannot exceed 50 characters.")
    if not _USERNAME_RE.match(username):
        result.add("Username can only contain letters, numbers, underscores, and hyphens.")

    taken = await db.scalar(select(User.id).where(func.lower(User.username) == username.lower()))
    if taken:
        result.add("Username is already taken.")
    return result


async def validate_unique_email(
    db: AsyncSession, email: str, exclude_user_id: Optional[str] = None
) -> ValidationResult:
    result = ValidationResult()
    existing = await db.scalar(select(User.id).where(User.email == (email or "").strip().lower()))
    if existing and existing != exclude_user_id:
        result.add("Email is already registered.")
    return result


# ---------------------------------------------------------------------
# Hierarchy
# ---------------------------------------------------------------------
async def validate_hierarchy(
    db: AsyncSession,
    role: str,
    district_id: Optional[str],
    sector_id: Optional[str],
    cell_id: Optional[str],
) -> ValidationResult:
    """Check that the hierarchy chain a role requires exists and is coherent.

    super_admin and public need nothing; district_admin needs a district;
    sector_admin a district plus a sector in it; cell_admin and member the
    full district/sector/cell chain. All applicable errors are collected.
    """
    result = ValidationResult()

    if role in ("super_admin", "public"):
        return result

    if role == "district_admin":
        if not district_id:
            result.add("District admin must be assigned to a district.")
        elif await db.get(District, district_id) is None:
            result.add("Invalid district ID.")

    elif role == "sector_admin":
        if not district_id or not sector_id:
            result.add("Sector admin must be assigned to a district and sector.")
        else:
            sector = await db.get(Sector, sector_id)
            if sector is None or sector.district_id != district_id:
                result.add("Invalid sector or sector does not belong to the specified district.")

    elif role in ("cell_admin", "member"):
        if not district_id or not sector_id or not cell_id:
            label = "Cell admin" if role == "cell_admin" else "Member"
            result.add(f"{label} must be assigned to a district, sector, and cell.")
        else:
            cell = await db.get(Cell, cell_id)
            if cell is None or cell.sector_id != sector_id or cell.district_id != district_id:
                result.add("Invalid cell or cell does not belong to the specified sector and district.")

    else:
        result.add(f"Unknown role '{role}'.")

    return result


async def validate_parent_chain(
    db: AsyncSession,
    district_id: Optional[str] = None,
    sector_id: Optional[str] = None,
    cell_id: Optional[str] = None,
    intore_group_id: Optional[str] = None,
) -> ValidationResult:
    """Check the explicit parent refs given for a node or scoped record agree.

    Only the refs that are present are checked; each one must exist and
    agree with the chain of the lowest ref above it.
    """
    result = ValidationResult()

    if intore_group_id:
        group = await db.get(IntoreGroup, intore_group_id)
        if group is None:
            result.add("Invalid intore group ID.")
        else:
            if cell_id and group.cell_id != cell_id:
                result.add("Intore group does not belong to the specified cell.")
            if sector_id and group.sector_id != sector_id:
                result.add("Intore group does not belong to the specified sector.")
            if district_id and group.district_id != district_id:
                result.add("Intore group does not belong to the specified district.")

    if cell_id:
        cell = await db.get(Cell, cell_id)
        if cell is None:
            result.add("Invalid cell ID.")
        else:
            if sector_id and cell.sector_id != sector_id:
                result.add("Cell does not belong to the specified sector.")
            if district_id and cell.district_id != district_id:
                result.add("Cell does not belong to the specified district.")

    if sector_id:
        sector = await db.get(Sector, sector_id)
        if sector is None:
            result.add("Invalid sector ID.")
        elif district_id and sector.district_id != district_id:
            result.add("Sector does not belong to the specified district.")

    if district_id and await db.get(District, district_id) is None:
        result.add("Invalid district ID.")

    return result


# ---------------------------------------------------------------------
# Operational records
# ---------------------------------------------------------------------
def validate_activity(data: Dict[str, Any]) -> ValidationResult:
    result = ValidationResult()

    if len((data.get("title") or "").strip()) < 5:
        result.add("Activity title must be at least 5 characters long.")
    if len((data.get("description") or "").strip()) < 10:
        result.add("Activity description must be at least 10 characters long.")
    if not data.get("type"):
        result.add("Activity type is required.")

    day = data.get("date")
    if not day:
        result.add("Activity date is required.")
    elif isinstance(day, date) and day < today_local():
        result.add("Activity date cannot be in the past.")

    start, end = data.get("start_time"), data.get("end_time")
    if not start or not end:
        result.add("Start time and end time are required.")
    elif not _TIME_RE.match(start) or not _TIME_RE.match(end):
        result.add("Invalid time format. Use HH:MM format.")

    if not data.get("location_name"):
        result.add("Activity location name is required.")
    if not data.get("organizer_id"):
        result.add("Activity organizer is required.")
    if not data.get("cell_id"):
        result.add("Activity cell is required.")
    return result


def validate_media(data: Dict[str, Any]) -> ValidationResult:
    result = ValidationResult()
    if data.get("type") not in MEDIA_TYPES:
        result.add("Invalid media type. Must be image, video, or document.")
    if data.get("uploaded_for") not in MEDIA_TARGETS:
        result.add("Invalid upload target.")
    if data.get("uploaded_for") != "general" and not data.get("target_id"):
        result.add("Target ID is required.")
    if data.get("visibility") not in MEDIA_VISIBILITY:
        result.add("Invalid visibility setting.")
    return result


def validate_attendance(data: Dict[str, Any]) -> ValidationResult:
    result = ValidationResult()
    if not data.get("user_id"):
        result.add("User is required for attendance.")
    if not data.get("activity_id"):
        result.add("Activity is required for attendance.")
    if data.get("status") not in ATTENDANCE_STATUSES:
        result.add("Invalid attendance status.")
    return result
