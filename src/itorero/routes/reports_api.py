# src/itorero/routes/reports_api.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import reports as crud
from src.itorero.models.ops.report import Report
from src.itorero.models.user import User
from src.itorero.schemas.report import ReportCreate, ReportRead, ReportStatusUpdate
from src.itorero.utils import audit
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import NotFoundError
from src.itorero.utils.hierarchy import derive_scope
from src.itorero.utils.permissions import ensure_in_scope, require_admin, scope_filters
from src.itorero.utils.responses import dump, ok, page

router = APIRouter(prefix="/api/reports", tags=["Reports"])


async def _load_scoped(db: AsyncSession, report_id: str, user: User) -> Report:
    row = await crud.get_report(db, report_id)
    if row is None:
        raise NotFoundError("Report not found")
    ensure_in_scope(user, row.district_id, row.sector_id, row.cell_id)
    return row


@router.get("")
async def api_list_reports(
    q: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await crud.list_reports(
        db, q=q, type_=type, status=status, scope=scope_filters(current_user), limit=limit, offset=offset
    )
    return page(ReportRead, rows, total, limit, offset)


@router.get("/{report_id}")
async def api_get_report(
    report_id: str,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return ok(dump(ReportRead, await _load_scoped(db, report_id, current_user)))


@router.post("", status_code=201)
async def api_create_report(
    payload: ReportCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if current_user.role != "super_admin":
        scope = await derive_scope(
            db, district_id=payload.district_id, sector_id=payload.sector_id,
            cell_id=payload.cell_id, intore_group_id=payload.intore_group_id,
        )
        # an unscoped report defaults to the admin's own node
        if not any(scope.values()):
            payload.district_id = current_user.district_id
            payload.sector_id = current_user.sector_id
            payload.cell_id = current_user.cell_id
            scope = await derive_scope(
                db, district_id=payload.district_id, sector_id=payload.sector_id, cell_id=payload.cell_id,
            )
        ensure_in_scope(current_user, scope["district_id"], scope["sector_id"], scope["cell_id"])

    row = await crud.create_report(db, payload, generated_by=current_user.id)
    await audit.record_action(
        db, request, current_user.id, "CREATE", "report", row.id,
        after=audit.snapshot(row, exclude=("data",)), description=f"Created report {row.title}",
    )
    return ok(dump(ReportRead, row), "Report created successfully")


@router.put("/{report_id}/status")
async def api_set_report_status(
    report_id: str,
    payload: ReportStatusUpdate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_scoped(db, report_id, current_user)
    before = audit.snapshot(row, exclude=("data",))
    row = await crud.set_report_status(db, row, payload.status, current_user.id)
    await audit.record_action(
        db, request, current_user.id, "STATUS_CHANGE", "report", row.id,
        before=before, after=audit.snapshot(row, exclude=("data",)),
    )
    return ok(dump(ReportRead, row), f"Report {row.status}")
