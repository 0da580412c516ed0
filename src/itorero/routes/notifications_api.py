# src/itorero/routes/notifications_api.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import notifications as crud
from src.itorero.models.ops.notification import Notification
from src.itorero.models.user import User
from src.itorero.schemas.notification import NotificationCreate, NotificationRead
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import NotFoundError
from src.itorero.utils.permissions import require_admin
from src.itorero.utils.responses import dump, dump_many, ok, page

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


async def _load_own(db: AsyncSession, notification_id: str, user: User) -> Notification:
    row = await crud.get_notification(db, notification_id)
    # someone else's notification is reported as missing
    if row is None or row.recipient_id != user.id:
        raise NotFoundError("Notification not found")
    return row


@router.get("")
async def api_list_notifications(
    unread_only: bool = Query(False),
    category: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await crud.list_for_user(
        db, current_user.id, unread_only=unread_only, category=category, limit=limit, offset=offset
    )
    unread = await crud.unread_count(db, current_user.id)
    return page(NotificationRead, rows, total, limit, offset, extra={"unread_count": unread})


@router.get("/unread-count")
async def api_unread_count(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return ok({"unread_count": await crud.unread_count(db, current_user.id)})


@router.post("", status_code=201)
async def api_create_notifications(
    payload: NotificationCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await crud.create_notifications(db, payload, sender_id=current_user.id)
    await audit.record_action(
        db, request, current_user.id, "CREATE", "notification", rows[0].id,
        metadata={"recipients": [r.recipient_id for r in rows], "category": payload.category},
        description=f"Sent '{payload.title}' to {len(rows)} recipient(s)",
    )
    return ok(dump_many(NotificationRead, rows), "Notifications created")


@router.put("/read-all")
async def api_mark_all_read(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    updated = await crud.mark_all_read(db, current_user.id)
    return ok({"updated": updated}, "All notifications marked as read")


@router.put("/{notification_id}/read")
async def api_mark_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_own(db, notification_id, current_user)
    row = await crud.mark_read(db, row)
    return ok(dump(NotificationRead, row), "Notification marked as read")


@router.delete("/{notification_id}")
async def api_delete_notification(
    notification_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_own(db, notification_id, current_user)
    before = audit.snapshot(row)
    await crud.delete_notification(db, row)
    await audit.record_action(
        db, request, current_user.id, "DELETE", "notification", notification_id, before=before,
    )
    return ok(message="Notification deleted")
