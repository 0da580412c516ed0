# src/itorero/crud/attendance.py
from __future__ import annotations

from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud.activities import load_activity
from src.itorero.models.ops.activity import Activity
from src.itorero.models.ops.attendance import ATTENDANCE_STATUSES, Attendance
from src.itorero.schemas.attendance import AttendanceMark, AttendanceUpdate
from src.itorero.utils.exceptions import ConflictError, NotFoundError, ValidationFailedError
from src.itorero.utils.hierarchy import load_user
from src.itorero.utils.timezone import now_local, today_local
from src.itorero.utils.validators import validate_attendance

# statuses that need a reason
_REASONED = ("absent", "excused")


def _scope_of(activity: Activity) -> dict:
    return {
        "district_id": activity.district_id,
        "sector_id": activity.sector_id,
        "cell_id": activity.cell_id,
        "intore_group_id": activity.intore_group_id,
    }


async def list_attendance(
    db: AsyncSession,
    user_id: Optional[str] = None,
    activity_id: Optional[str] = None,
    status: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    scope: Optional[dict] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Attendance], int]:
    stmt = select(Attendance)
    if user_id:
        stmt = stmt.where(Attendance.user_id == user_id)
    if activity_id:
        stmt = stmt.where(Attendance.activity_id == activity_id)
    if status:
        stmt = stmt.where(Attendance.status == status)
    if date_from:
        stmt = stmt.where(Attendance.date >= date_from)
    if date_to:
        stmt = stmt.where(Attendance.date <= date_to)
    for col, value in (scope or {}).items():
        stmt = stmt.where(getattr(Attendance, col) == value)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Attendance.date.desc(), Attendance.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def get_attendance(db: AsyncSession, attendance_id: str) -> Optional[Attendance]:
    return await db.get(Attendance, attendance_id)


async def _find(db: AsyncSession, user_id: str, activity_id: str, day: date) -> Optional[Attendance]:
    return await db.scalar(
        select(Attendance).where(
            Attendance.user_id == user_id,
            Attendance.activity_id == activity_id,
            Attendance.date == day,
        )
    )


async def _insert(db: AsyncSession, row: Attendance) -> Attendance:
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


# ---------- self service ----------

async def check_in(db: AsyncSession, user_id: str, activity_id: str, notes: str = "") -> Attendance:
    """Record today's check-in; a second check-in on the same day is a conflict."""
    activity = await load_activity(db, activity_id)
    if activity.status == "cancelled":
        raise ConflictError("Activity is cancelled")

    day = today_local()
    if await _find(db, user_id, activity.id, day):
        raise ConflictError("Already checked in for this activity today")

    now = now_local()
    status = "present"
    if activity.date == day and now.strftime("%H:%M") > activity.start_time.zfill(5):
        status = "late"

    row = Attendance(
        user_id=user_id,
        activity_id=activity.id,
        date=day,
        check_in_time=now,
        status=status,
        notes=notes,
        **_scope_of(activity),
    )
    return await _insert(db, row)


async def check_out(db: AsyncSession, user_id: str, activity_id: str) -> Attendance:
    row = await _find(db, user_id, activity_id, today_local())
    if row is None or row.check_in_time is None:
        raise NotFoundError("No check-in found for today")
    if row.check_out_time is not None:
        raise ConflictError("Already checked out")
    row.check_out_time = now_local()
    await db.commit()
    await db.refresh(row)
    return row


# ---------- admin ----------

async def mark_attendance(db: AsyncSession, data: AttendanceMark) -> Attendance:
    """Mark present/absent/late/excused for a user; absent and excused need a reason."""
    values = data.model_dump()
    result = validate_attendance(values)
    if values.get("status") in _REASONED and not (values.get("reason") or "").strip():
        result.add("Reason is required for absent or excused attendance.")
    if not result.is_valid:
        raise ValidationFailedError(errors=result.errors)

    await load_user(db, data.user_id)
    activity = await load_activity(db, data.activity_id)
    day = data.date or activity.date

    if await _find(db, data.user_id, activity.id, day):
        raise ConflictError("Attendance already recorded for this user, activity and date")

    row = Attendance(
        user_id=data.user_id,
        activity_id=activity.id,
        date=day,
        status=data.status,
        reason=data.reason.strip(),
        notes=data.notes,
        **_scope_of(activity),
    )
    return await _insert(db, row)


async def update_attendance(db: AsyncSession, row: Attendance, data: AttendanceUpdate) -> Attendance:
    values = data.model_dump(exclude_unset=True)
    status = values.get("status", row.status)
    reason = values.get("reason", row.reason) or ""
    errors = []
    if status not in ATTENDANCE_STATUSES:
        errors.append("Invalid attendance status.")
    if status in _REASONED and not reason.strip():
        errors.append("Reason is required for absent or excused attendance.")
    if errors:
        raise ValidationFailedError(errors=errors)

    for key, value in values.items():
        setattr(row, key, value)
    # any edit invalidates an earlier verification
    row.verified_by = None
    row.verified_at = None
    await db.commit()
    await db.refresh(row)
    return row


async def verify_attendance(db: AsyncSession, row: Attendance, verified_by: str) -> Attendance:
    row.verified_by = verified_by
    row.verified_at = now_local()
    await db.commit()
    await db.refresh(row)
    return row


async def attendance_stats(
    db: AsyncSession,
    scope: Optional[dict] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    activity_id: Optional[str] = None,
) -> Dict[str, object]:
    """Counts per status inside ``scope`` and the date range, plus the attendance rate."""
    stmt = select(Attendance.status, func.count()).group_by(Attendance.status)
    for col, value in (scope or {}).items():
        if value:
            stmt = stmt.where(getattr(Attendance, col) == value)
    if date_from:
        stmt = stmt.where(Attendance.date >= date_from)
    if date_to:
        stmt = stmt.where(Attendance.date <= date_to)
    if activity_id:
        stmt = stmt.where(Attendance.activity_id == activity_id)

    counts = {s: 0 for s in ATTENDANCE_STATUSES}
    for status, n in (await db.execute(stmt)).all():
        counts[status] = int(n)
    total = sum(counts.values())
    attended = counts["present"] + counts["late"]
    return {
        "total": total,
        "by_status": counts,
        "attendance_rate": round(attended * 100 / total, 2) if total else 0.0,
    }
