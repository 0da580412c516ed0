# src/itorero/crud/media.py
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud.activities import load_activity
from src.itorero.models.ops.media import Media
from src.itorero.schemas.media import MediaApproval, MediaCreate, MediaUpdate
from src.itorero.utils.exceptions import ConflictError, ValidationFailedError
from src.itorero.utils.hierarchy import derive_scope
from src.itorero.utils.timezone import now_local
from src.itorero.utils.validators import validate_media

_EMPTY_SCOPE = {"district_id": None, "sector_id": None, "cell_id": None, "intore_group_id": None}


def _kind_from_mime(mime_type: str) -> Optional[str]:
    head = (mime_type or "").split("/", 1)[0]
    if head in ("image", "video"):
        return head
    return "document" if mime_type else None


async def scope_for_target(db: AsyncSession, uploaded_for: str, target_id: Optional[str]) -> dict:
    """Hierarchy scope of the thing a media record is attached to."""
    if uploaded_for == "general":
        return dict(_EMPTY_SCOPE)
    if uploaded_for == "activity":
        activity = await load_activity(db, target_id)
        return {
            "district_id": activity.district_id,
            "sector_id": activity.sector_id,
            "cell_id": activity.cell_id,
            "intore_group_id": activity.intore_group_id,
        }
    return await derive_scope(db, **{f"{uploaded_for}_id": target_id})


async def list_media(
    db: AsyncSession,
    q: Optional[str] = None,
    type_: Optional[str] = None,
    status: Optional[str] = None,
    uploaded_for: Optional[str] = None,
    target_id: Optional[str] = None,
    uploaded_by: Optional[str] = None,
    scope: Optional[dict] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Media], int]:
    stmt = select(Media).where(Media.status != "deleted")
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(Media.original_name.ilike(like), Media.description.ilike(like)))
    if type_:
        stmt = stmt.where(Media.type == type_)
    if status:
        stmt = stmt.where(Media.status == status)
    if uploaded_for:
        stmt = stmt.where(Media.uploaded_for == uploaded_for)
    if target_id:
        stmt = stmt.where(Media.target_id == target_id)
    if uploaded_by:
        stmt = stmt.where(Media.uploaded_by == uploaded_by)
    for col, value in (scope or {}).items():
        stmt = stmt.where(getattr(Media, col) == value)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Media.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def get_media(db: AsyncSession, media_id: str) -> Optional[Media]:
    return await db.get(Media, media_id)


async def create_media(db: AsyncSession, data: MediaCreate, uploaded_by: str, auto_approve: bool = False) -> Media:
    values = data.model_dump()
    values["type"] = values.get("type") or _kind_from_mime(data.mime_type)
    values["uploaded_for"] = values.get("uploaded_for") or "general"

    result = validate_media(values)
    if not result.is_valid:
        raise ValidationFailedError(errors=result.errors)

    scope = await scope_for_target(db, values["uploaded_for"], data.target_id)
    row = Media(
        filename=data.filename,
        original_name=data.original_name,
        type=values["type"],
        mime_type=data.mime_type,
        size=data.size,
        url=data.url,
        thumbnail_url=data.thumbnail_url,
        description=data.description,
        tags=[t.strip() for t in data.tags if t.strip()],
        uploaded_by=uploaded_by,
        uploaded_for=values["uploaded_for"],
        target_id=data.target_id if values["uploaded_for"] != "general" else None,
        visibility=data.visibility,
        status="active" if auto_approve else "pending_approval",
        approved_by=uploaded_by if auto_approve else None,
        approved_at=now_local() if auto_approve else None,
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


async def update_media(db: AsyncSession, row: Media, data: MediaUpdate) -> Media:
    values = data.model_dump(exclude_unset=True)
    if "visibility" in values:
        check = validate_media({
            "type": row.type, "uploaded_for": row.uploaded_for,
            "target_id": row.target_id, "visibility": values["visibility"],
        })
        if not check.is_valid:
            raise ValidationFailedError(errors=check.errors)
    for key, value in values.items():
        setattr(row, key, value)
    await db.commit()
    await db.refresh(row)
    return row


async def review_media(db: AsyncSession, row: Media, data: MediaApproval, reviewer_id: str) -> Media:
    if row.status != "pending_approval":
        raise ConflictError(f"Media is {row.status}, not pending approval")
    row.status = "active" if data.approved else "rejected"
    row.approved_by = reviewer_id
    row.approved_at = now_local()
    row.approval_reason = data.reason
    await db.commit()
    await db.refresh(row)
    return row


async def delete_media(db: AsyncSession, row: Media) -> Media:
    row.status = "deleted"
    await db.commit()
    await db.refresh(row)
    return row


async def bump_counter(db: AsyncSession, row: Media, field: str) -> Media:
    setattr(row, field, (getattr(row, field) or 0) + 1)
    await db.commit()
    await db.refresh(row)
    return row
