# src/itorero/crud/reports.py
from __future__ import annotations

from typing import List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud.activities import load_activity
from src.itorero.models.ops.report import REPORT_TRANSITIONS, Report
from src.itorero.schemas.report import ReportCreate
from src.itorero.utils.exceptions import ConflictError
from src.itorero.utils.hierarchy import derive_scope
from src.itorero.utils.timezone import now_local


async def list_reports(
    db: AsyncSession,
    q: Optional[str] = None,
    type_: Optional[str] = None,
    status: Optional[str] = None,
    scope: Optional[dict] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Report], int]:
    stmt = select(Report)
    if q:
        like = f"%{q.strip()}%"
        stmt = stmt.where(or_(Report.title.ilike(like), Report.description.ilike(like)))
    if type_:
        stmt = stmt.where(Report.type == type_)
    if status:
        stmt = stmt.where(Report.status == status)
    for col, value in (scope or {}).items():
        stmt = stmt.where(getattr(Report, col) == value)

    total = await db.scalar(select(func.count()).select_from(stmt.subquery()))
    res = await db.execute(stmt.order_by(Report.created_dt.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def get_report(db: AsyncSession, report_id: str) -> Optional[Report]:
    return await db.get(Report, report_id)


async def create_report(db: AsyncSession, data: ReportCreate, generated_by: str) -> Report:
    """Store a report record; its scope comes from the activity when one is given."""
    if data.activity_id:
        activity = await load_activity(db, data.activity_id)
        scope = await derive_scope(
            db,
            district_id=data.district_id or activity.district_id,
            sector_id=data.sector_id or activity.sector_id,
            cell_id=data.cell_id or activity.cell_id,
            intore_group_id=data.intore_group_id or activity.intore_group_id,
        )
    else:
        scope = await derive_scope(
            db,
            district_id=data.district_id,
            sector_id=data.sector_id,
            cell_id=data.cell_id,
            intore_group_id=data.intore_group_id,
        )

    row = Report(
        title=data.title,
        description=data.description,
        type=data.type,
        category=data.category,
        generated_by=generated_by,
        activity_id=data.activity_id,
        start_date=data.start_date,
        end_date=data.end_date,
        data=data.data,
        visibility=data.visibility,
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


def can_transition(current: str, target: str) -> bool:
    return target in REPORT_TRANSITIONS.get(current, ())


async def set_report_status(db: AsyncSession, row: Report, status: str, actor_id: str) -> Report:
    if not can_transition(row.status, status):
        raise ConflictError(f"Cannot move report from {row.status} to {status}")
    row.status = status
    if status == "published":
        row.approved_by = actor_id
        row.approved_at = now_local()
    await db.commit()
    await db.refresh(row)
    return row
