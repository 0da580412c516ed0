# src/itorero/crud/notifications.py
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.ops.notification import Notification
from src.itorero.models.user import User
from src.itorero.schemas.notification import NotificationCreate
from src.itorero.utils.exceptions import DanglingReferenceError
from src.itorero.utils.timezone import now_local


def _not_expired():
    return or_(Notification.expires_at.is_(None), Notification.expires_at > now_local())


async def list_for_user(
    db: AsyncSession,
    user_id: str,
    unread_only: bool = False,
    category: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Notification], int]:
    stmt = select(Notification).where(Notification.recipient_id == user_id, _not_expired())
    if unread_only:
        stmt = stmt.where(Notification.read.is_(False))
    if category:
        stmt = stmt.where(Notification.category == category)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Notification.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def unread_count(db: AsyncSession, user_id: str) -> int:
    n = await db.scalar(
        select(func.count()).select_from(Notification).where(
            Notification.recipient_id == user_id,
            Notification.read.is_(False),
            _not_expired(),
        )
    )
    return int(n or 0)


async def create_notifications(
    db: AsyncSession, data: NotificationCreate, sender_id: Optional[str] = None
) -> List[Notification]:
    """One record per recipient, written together."""
    recipient_ids = list(dict.fromkeys(data.recipient_ids))
    found = set((await db.scalars(select(User.id).where(User.id.in_(recipient_ids)))).all())
    missing = [r for r in recipient_ids if r not in found]
    if missing:
        raise DanglingReferenceError("Recipient not found", errors=missing)

    rows = [
        Notification(
            title=data.title,
            message=data.message,
            type=data.type,
            category=data.category,
            recipient_id=rid,
            sender_id=sender_id,
            target=data.target,
            target_id=data.target_id,
            priority=data.priority,
            action_url=data.action_url,
            action_text=data.action_text,
            expires_at=data.expires_at,
            metadata_json=data.metadata,
        )
        for rid in recipient_ids
    ]
    db.add_all(rows)
    await db.commit()
    for row in rows:
        await db.refresh(row)
    return rows


async def get_notification(db: AsyncSession, notification_id: str) -> Optional[Notification]:
    return await db.get(Notification, notification_id)


async def mark_read(db: AsyncSession, row: Notification) -> Notification:
    if not row.read:
        row.read = True
        row.read_at = now_local()
        await db.commit()
        await db.refresh(row)
    return row


async def mark_all_read(db: AsyncSession, user_id: str) -> int:
    res = await db.execute(
        update(Notification)
        .where(Notification.recipient_id == user_id, Notification.read.is_(False))
        .values(read=True, read_at=now_local())
    )
    await db.commit()
    return int(res.rowcount or 0)


async def delete_notification(db: AsyncSession, row: Notification) -> None:
    await db.delete(row)
    await db.commit()
