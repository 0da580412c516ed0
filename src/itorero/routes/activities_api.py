# src/itorero/routes/activities_api.py
from __future__ import annotations
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import activities as crud
from src.itorero.models.ops.activity import Activity
from src.itorero.models.user import ADMIN_ROLES, User
from src.itorero.schemas.activity import ActivityCreate, ActivityRead, ActivityUpdate, AttendeeRead, AttendeeUpdate
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import PermissionDeniedError
from src.itorero.utils.hierarchy import derive_scope
from src.itorero.utils.permissions import ensure_in_scope, in_scope, require_admin, scope_filters
from src.itorero.utils.responses import dump, dump_many, ok, page

router = APIRouter(prefix="/api/activities", tags=["Activities"])


def _ensure_can_manage(user: User, row: Activity) -> None:
    if row.organizer_id == user.id:
        return
    if user.role not in ADMIN_ROLES or not in_scope(user, row.district_id, row.sector_id, row.cell_id):
        raise PermissionDeniedError("Only the organizer or an admin of this activity's hierarchy can do this.")


@router.get("")
async def api_list_activities(
    q: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
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
        # members see published activities of their own cell
        scope = {"cell_id": current_user.cell_id} if current_user.cell_id else {}
        status = "published"
    rows, total = await crud.list_activities(
        db, q=q, type_=type, status=status, date_from=date_from, date_to=date_to,
        scope=scope, limit=limit, offset=offset,
    )
    return page(ActivityRead, rows, total, limit, offset)


@router.get("/{activity_id}")
async def api_get_activity(
    activity_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.load_activity(db, activity_id)
    data = dump(ActivityRead, row)
    data["attendees"] = dump_many(AttendeeRead, await crud.list_attendees(db, row.id))
    return ok(data)


@router.post("", status_code=201)
async def api_create_activity(
    payload: ActivityCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if payload.cell_id and current_user.role != "super_admin":
        scope = await derive_scope(db, cell_id=payload.cell_id, intore_group_id=payload.intore_group_id)
        ensure_in_scope(current_user, scope["district_id"], scope["sector_id"], scope["cell_id"])

    row = await crud.create_activity(db, payload, created_by=current_user.id)
    await audit.record_action(
        db, request, current_user.id, "CREATE", "activity", row.id,
        after=audit.snapshot(row), description=f"Created activity {row.title}",
    )
    return ok(dump(ActivityRead, row), "Activity created successfully")


@router.put("/{activity_id}")
async def api_update_activity(
    activity_id: str,
    payload: ActivityUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.load_activity(db, activity_id)
    _ensure_can_manage(current_user, row)
    before = audit.snapshot(row)
    row = await crud.update_activity(db, row, payload, updated_by=current_user.id)

    await audit.record_action(
        db, request, current_user.id, "UPDATE", "activity", row.id,
        before=before, after=audit.snapshot(row),
    )
    return ok(dump(ActivityRead, row), "Activity updated successfully")


@router.delete("/{activity_id}")
async def api_cancel_activity(
    activity_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.load_activity(db, activity_id)
    _ensure_can_manage(current_user, row)
    before = audit.snapshot(row)
    row = await crud.cancel_activity(db, row, updated_by=current_user.id)

    await audit.record_action(
        db, request, current_user.id, "DELETE", "activity", row.id,
        before=before, after=audit.snapshot(row), severity="warning",
        description=f"Cancelled activity {row.title}",
    )
    return ok(dump(ActivityRead, row), "Activity cancelled")


# ---------- attendees ----------

@router.post("/{activity_id}/register", status_code=201)
async def api_register(
    activity_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    activity = await crud.load_activity(db, activity_id)
    row = await crud.register_attendee(db, activity, current_user.id)
    await audit.record_action(
        db, request, current_user.id, "REGISTER", "activity", activity.id,
        metadata={"user_id": current_user.id, "status": row.status},
    )
    message = "Added to the waitlist" if row.status == "waitlist" else "Registered for activity"
    return ok(dump(AttendeeRead, row), message)


@router.delete("/{activity_id}/register")
async def api_unregister(
    activity_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    activity = await crud.load_activity(db, activity_id)
    await crud.remove_attendee(db, activity, current_user.id)
    await audit.record_action(
        db, request, current_user.id, "UNREGISTER", "activity", activity.id,
        metadata={"user_id": current_user.id},
    )
    return ok(message="Registration removed")


@router.get("/{activity_id}/attendees")
async def api_list_attendees(
    activity_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    activity = await crud.load_activity(db, activity_id)
    return ok(dump_many(AttendeeRead, await crud.list_attendees(db, activity.id)))


@router.put("/{activity_id}/attendees/{user_id}")
async def api_set_attendee_status(
    activity_id: str,
    user_id: str,
    payload: AttendeeUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    activity = await crud.load_activity(db, activity_id)
    _ensure_can_manage(current_user, activity)
    row = await crud.set_attendee_status(db, activity, user_id, payload.status)
    await audit.record_action(
        db, request, current_user.id, "UPDATE", "activity", activity.id,
        metadata={"attendee": user_id, "status": row.status},
    )
    return ok(dump(AttendeeRead, row), "Attendee updated")
