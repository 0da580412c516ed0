# src/itorero/crud/cultural_content.py
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.ops.cultural_content import CulturalContent
from src.itorero.schemas.cultural_content import ContentCreate, ContentUpdate
from src.itorero.utils.exceptions import ConflictError
from src.itorero.utils.hierarchy import derive_scope
from src.itorero.utils.timezone import now_local

# status -> statuses reachable by the author or a reviewer
_FLOW = {
    "draft": ("pending_approval", "archived"),
    "pending_approval": ("approved", "rejected"),
    "rejected": ("draft", "pending_approval", "archived"),
    "approved": ("archived",),
    "archived": (),
}


async def list_content(
    db: AsyncSession,
    q: Optional[str] = None,
    type_: Optional[str] = None,
    category: Optional[str] = None,
    language: Optional[str] = None,
    status: Optional[str] = None,
    created_by: Optional[str] = None,
    scope: Optional[dict] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[CulturalContent], int]:
    stmt = select(CulturalContent)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(CulturalContent.title.ilike(like), CulturalContent.description.ilike(like)))
    if type_:
        stmt = stmt.where(CulturalContent.type == type_)
    if category:
        stmt = stmt.where(CulturalContent.category == category)
    if language:
        stmt = stmt.where(CulturalContent.language == language)
    if status:
        stmt = stmt.where(CulturalContent.status == status)
    if created_by:
        stmt = stmt.where(CulturalContent.created_by == created_by)
    for col, value in (scope or {}).items():
        stmt = stmt.where(getattr(CulturalContent, col) == value)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(CulturalContent.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def get_content(db: AsyncSession, content_id: str) -> Optional[CulturalContent]:
    return await db.get(CulturalContent, content_id)


async def create_content(db: AsyncSession, data: ContentCreate, created_by: str) -> CulturalContent:
    scope = await derive_scope(
        db,
        district_id=data.district_id,
        sector_id=data.sector_id,
        cell_id=data.cell_id,
        intore_group_id=data.intore_group_id,
    )
    values = data.model_dump(exclude={"district_id", "sector_id", "cell_id", "intore_group_id"})
    row = CulturalContent(**values, created_by=created_by, status="draft", **scope)
    db.add(row)
    try:
        await db.commit()
        await db.refresh(row)
    except IntegrityError:
        await db.rollback()
        raise
    return row


async def update_content(db: AsyncSession, row: CulturalContent, data: ContentUpdate) -> CulturalContent:
    if row.status in ("approved", "archived"):
        raise ConflictError(f"Content is {row.status} and can no longer be edited")
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(row, key, value)
    # edits to rejected content send it back to draft
    if row.status == "rejected":
        row.status = "draft"
    await db.commit()
    await db.refresh(row)
    return row


def _move(row: CulturalContent, status: str) -> CulturalContent:
    if status not in _FLOW.get(row.status, ()):
        raise ConflictError(f"Cannot move content from {row.status} to {status}")
    row.status = status
    return row


async def submit_content(db: AsyncSession, row: CulturalContent) -> CulturalContent:
    _move(row, "pending_approval")
    await db.commit()
    await db.refresh(row)
    return row


async def review_content(db: AsyncSession, row: CulturalContent, approved: bool, reviewer_id: str) -> CulturalContent:
    _move(row, "approved" if approved else "rejected")
    row.approved_by = reviewer_id if approved else None
    row.approved_at = now_local() if approved else None
    await db.commit()
    await db.refresh(row)
    return row


async def archive_content(db: AsyncSession, row: CulturalContent) -> CulturalContent:
    _move(row, "archived")
    await db.commit()
    await db.refresh(row)
    return row


async def record_view(db: AsyncSession, row: CulturalContent) -> CulturalContent:
    await db.execute(
        update(CulturalContent)
        .where(CulturalContent.id == row.id)
        .values(views=CulturalContent.views + 1)
    )
    await db.commit()
    await db.refresh(row)
    return row
