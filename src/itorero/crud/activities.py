# src/itorero/crud/activities.py
from __future__ import annotations

from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.ops.activity import Activity, ActivityAttendee
from src.itorero.schemas.activity import ActivityCreate, ActivityUpdate
from src.itorero.utils.exceptions import ConflictError, NotFoundError, ValidationFailedError
from src.itorero.utils.hierarchy import derive_scope, load_user
from src.itorero.utils.timezone import now_local
from src.itorero.utils.validators import ValidationResult, validate_activity


def _minutes(hhmm: str) -> int:
    h, m = hhmm.split(":")
    return int(h) * 60 + int(m)


def _end_after_start(start: str, end: str) -> bool:
    return _minutes(end) > _minutes(start)


# ---------- list/search ----------

async def list_activities(
    db: AsyncSession,
    q: Optional[str] = None,
    type_: Optional[str] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    scope: Optional[dict] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Activity], int]:
    stmt = select(Activity)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(Activity.title.ilike(like), Activity.location_name.ilike(like)))
    if type_:
        stmt = stmt.where(Activity.type == type_)
    if status:
        stmt = stmt.where(Activity.status == status)
    if date_from:
        stmt = stmt.where(Activity.date >= date_from)
    if date_to:
        stmt = stmt.where(Activity.date <= date_to)
    for col, value in (scope or {}).items():
        stmt = stmt.where(getattr(Activity, col) == value)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Activity.date.desc(), Activity.start_time).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def get_activity(db: AsyncSession, activity_id: str) -> Optional[Activity]:
    return await db.get(Activity, activity_id)


async def load_activity(db: AsyncSession, activity_id: Optional[str]) -> Activity:
    row = await db.get(Activity, activity_id) if activity_id else None
    if row is None:
        raise NotFoundError("Activity not found")
    return row


# ---------- create/update ----------

async def create_activity(db: AsyncSession, data: ActivityCreate, created_by: str) -> Activity:
    """Validate content, derive the scope from cell/intore group, insert."""
    values = data.model_dump()
    values["organizer_id"] = values.get("organizer_id") or created_by

    result = validate_activity(values)
    if result.is_valid and not _end_after_start(values["start_time"], values["end_time"]):
        result.add("End time must be after start time.")
    if not result.is_valid:
        raise ValidationFailedError(errors=result.errors)

    await load_user(db, values["organizer_id"])
    scope = await derive_scope(db, cell_id=data.cell_id, intore_group_id=data.intore_group_id)

    row = Activity(
        title=data.title.strip(),
        description=data.description.strip(),
        type=data.type,
        date=data.date,
        start_time=data.start_time,
        end_time=data.end_time,
        location_name=data.location_name,
        location_address=data.location_address,
        latitude=data.latitude,
        longitude=data.longitude,
        organizer_id=values["organizer_id"],
        max_attendees=data.max_attendees,
        status=data.status,
        created_by=created_by,
        updated_by=created_by,
        **scope,
    )
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_activity(db: AsyncSession, row: Activity, data: ActivityUpdate, updated_by: str) -> Activity:
    values = data.model_dump(exclude_unset=True)

    merged = {
        "title": row.title, "description": row.description, "type": row.type,
        "date": row.date, "start_time": row.start_time, "end_time": row.end_time,
        "location_name": row.location_name, "organizer_id": row.organizer_id,
        "cell_id": row.cell_id,
    }
    merged.update({k: v for k, v in values.items() if k in merged})
    checked = validate_activity(merged)
    # an untouched past date is not re-checked
    result = ValidationResult()
    for error in checked.errors:
        if "date" in values or "past" not in error:
            result.add(error)
    if result.is_valid and not _end_after_start(merged["start_time"], merged["end_time"]):
        result.add("End time must be after start time.")
    if not result.is_valid:
        raise ValidationFailedError(errors=result.errors)

    for key, value in values.items():
        setattr(row, key, value)
    row.updated_by = updated_by
    row.updated_dt = now_local()
    await db.commit()
    await db.refresh(row)
    return row


async def cancel_activity(db: AsyncSession, row: Activity, updated_by: str) -> Activity:
    row.status = "cancelled"
    row.updated_by = updated_by
    row.updated_dt = now_local()
    await db.commit()
    await db.refresh(row)
    return row


# ---------- attendees ----------

async def list_attendees(db: AsyncSession, activity_id: str) -> List[ActivityAttendee]:
    res = await db.execute(
        select(ActivityAttendee)
        .where(ActivityAttendee.activity_id == activity_id)
        .order_by(ActivityAttendee.id)
    )
    return list(res.scalars().all())


async def _get_attendee(db: AsyncSession, activity_id: str, user_id: str) -> Optional[ActivityAttendee]:
    return await db.scalar(
        select(ActivityAttendee).where(
            ActivityAttendee.activity_id == activity_id,
            ActivityAttendee.user_id == user_id,
        )
    )


async def register_attendee(db: AsyncSession, activity: Activity, user_id: str) -> ActivityAttendee:
    """Register ``user_id``; over capacity the registration is wait-listed."""
    if activity.status in ("cancelled", "completed"):
        raise ConflictError(f"Activity is {activity.status}")
    if await _get_attendee(db, activity.id, user_id):
        raise ConflictError("User is already registered for this activity")

    status = "pending"
    if activity.max_attendees:
        taken = await db.scalar(
            select(func.count()).select_from(ActivityAttendee).where(
                ActivityAttendee.activity_id == activity.id,
                ActivityAttendee.status.in_(("confirmed", "pending")),
            )
        )
        if int(taken or 0) >= activity.max_attendees:
            status = "waitlist"

    row = ActivityAttendee(activity_id=activity.id, user_id=user_id, status=status)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def set_attendee_status(db: AsyncSession, activity: Activity, user_id: str, status: str) -> ActivityAttendee:
    row = await _get_attendee(db, activity.id, user_id)
    if row is None:
        raise NotFoundError("Attendee not found")
    row.status = status
    row.confirmed_at = now_local() if status == "confirmed" else None
    await db.commit()
    await db.refresh(row)
    return row


async def remove_attendee(db: AsyncSession, activity: Activity, user_id: str) -> None:
    row = await _get_attendee(db, activity.id, user_id)
    if row is None:
        raise NotFoundError("Attendee not found")
    await db.delete(row)
    await db.commit()
