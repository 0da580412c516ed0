# src/itorero/routes/audit_api.py
from __future__ import annotations
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.config import settings
from src.itorero.models.user import User
from src.itorero.schemas.audit import AuditLogRead
from src.itorero.utils import audit
from src.itorero.utils.database import get_db
from src.itorero.utils.permissions import require_admin
from src.itorero.utils.responses import ok, page

router = APIRouter(prefix="/api/audit", tags=["Audit"])


def _actor_filter(current_user: User, performed_by: Optional[str]) -> Optional[str]:
    # only a super admin reads other people's trail
    if current_user.role == "super_admin":
        return performed_by
    return current_user.id


def _limit(limit: Optional[int]) -> int:
    return min(limit or settings.AUDIT_DEFAULT_LIMIT, settings.AUDIT_MAX_LIMIT)


@router.get("")
async def api_list_audit_logs(
    performed_by: Optional[str] = Query(None),
    resource_type: Optional[str] = Query(None),
    resource_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    severity: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    limit = _limit(limit)
    rows, total = await audit.list_audit_logs(
        db,
        performed_by=_actor_filter(current_user, performed_by),
        resource_type=resource_type,
        resource_id=resource_id,
        action=action,
        severity=severity,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
    return page(AuditLogRead, rows, total, limit, offset)


@router.get("/critical")
async def api_critical_actions(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    limit = _limit(limit)
    rows, total = await audit.list_audit_logs(
        db,
        performed_by=_actor_filter(current_user, None),
        severities=audit.CRITICAL_SEVERITIES,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
    return page(AuditLogRead, rows, total, limit, offset)


@router.get("/summary")
async def api_action_summary(
    performed_by: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    summary = await audit.action_summary(
        db, performed_by=_actor_filter(current_user, performed_by), start=start, end=end
    )
    return ok(summary)


@router.get("/resource/{resource_type}/{resource_id}")
async def api_resource_history(
    resource_type: str,
    resource_id: str,
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    limit = _limit(limit)
    rows, total = await audit.list_audit_logs(
        db,
        performed_by=_actor_filter(current_user, None),
        resource_type=resource_type,
        resource_id=resource_id,
        limit=limit,
        offset=offset,
    )
    return page(AuditLogRead, rows, total, limit, offset)
