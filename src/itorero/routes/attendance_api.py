# src/itorero/routes/attendance_api.py
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import attendance as crud
from src.itorero.crud.activities import load_activity
from src.itorero.models.ops.attendance import Attendance
from src.itorero.models.user import ADMIN_ROLES, User
from src.itorero.schemas.attendance import AttendanceMark, AttendanceRead, AttendanceUpdate, CheckInRequest
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import DuplicateKeyError, NotFoundError
from src.itorero.utils.permissions import ensure_in_scope, require_admin, scope_filters
from src.itorero.utils.responses import dump, ok, page

router = APIRouter(prefix="/api/attendance", tags=["Attendance"])


async def _load_scoped(db: AsyncSession, attendance_id: str, user: User) -> Attendance:
    row = await crud.get_attendance(db, attendance_id)
    if row is None:
        raise NotFoundError("Attendance record not found")
    ensure_in_scope(user, row.district_id, row.sector_id, row.cell_id)
    return row


@router.get("")
async def api_list_attendance(
    user_id: Optional[str] = Query(None),
    activity_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if current_user.role in ADMIN_ROLES:
        scope = scope_filters(current_user)
    else:
        scope, user_id = {}, current_user.id
    rows, total = await crud.list_attendance(
        db, user_id=user_id, activity_id=activity_id, status=status,
        date_from=date_from, date_to=date_to, scope=scope, limit=limit, offset=offset,
    )
    return page(AttendanceRead, rows, total, limit, offset)


@router.get("/stats")
async def api_attendance_stats(
    district_id: Optional[str] = Query(None),
    sector_id: Optional[str] = Query(None),
    cell_id: Optional[str] = Query(None),
    activity_id: Optional[str] = Query(None),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    scope = {"district_id": district_id, "sector_id": sector_id, "cell_id": cell_id}
    # an admin's own node always narrows the request
    scope.update(scope_filters(current_user))
    stats = await crud.attendance_stats(
        db, scope=scope, date_from=date_from, date_to=date_to, activity_id=activity_id
    )
    return ok(stats)


@router.post("/check-in", status_code=201)
async def api_check_in(
    payload: CheckInRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    try:
        row = await crud.check_in(db, current_user.id, payload.activity_id, payload.notes)
    except IntegrityError:
        raise DuplicateKeyError("Already checked in for this activity today")
    await audit.record_action(
        db, request, current_user.id, "CHECK_IN", "attendance", row.id, after=audit.snapshot(row),
    )
    return ok(dump(AttendanceRead, row), "Checked in successfully")


@router.post("/check-out")
async def api_check_out(
    payload: CheckInRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.check_out(db, current_user.id, payload.activity_id)
    await audit.record_action(
        db, request, current_user.id, "CHECK_OUT", "attendance", row.id, after=audit.snapshot(row),
    )
    return ok(dump(AttendanceRead, row), "Checked out successfully")


@router.post("/mark", status_code=201)
async def api_mark_attendance(
    payload: AttendanceMark,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if payload.activity_id:
        activity = await load_activity(db, payload.activity_id)
        ensure_in_scope(current_user, activity.district_id, activity.sector_id, activity.cell_id)
    try:
        row = await crud.mark_attendance(db, payload)
    except IntegrityError:
        raise DuplicateKeyError("Attendance already recorded for this user, activity and date")
    await audit.record_action(
        db, request, current_user.id, "CREATE", "attendance", row.id, after=audit.snapshot(row),
    )
    return ok(dump(AttendanceRead, row), "Attendance marked")


@router.put("/{attendance_id}")
async def api_update_attendance(
    attendance_id: str,
    payload: AttendanceUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_scoped(db, attendance_id, current_user)
    before = audit.snapshot(row)
    row = await crud.update_attendance(db, row, payload)
    await audit.record_action(
        db, request, current_user.id, "UPDATE", "attendance", row.id,
        before=before, after=audit.snapshot(row),
    )
    return ok(dump(AttendanceRead, row), "Attendance updated")


@router.post("/{attendance_id}/verify")
async def api_verify_attendance(
    attendance_id: str,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_scoped(db, attendance_id, current_user)
    before = audit.snapshot(row)
    row = await crud.verify_attendance(db, row, current_user.id)
    await audit.record_action(
        db, request, current_user.id, "VERIFY", "attendance", row.id,
        before=before, after=audit.snapshot(row),
    )
    return ok(dump(AttendanceRead, row), "Attendance verified")
