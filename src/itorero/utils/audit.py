# src/itorero/utils/audit.py
from __future__ import annotations

import logging
import traceback
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from fastapi import Request
from sqlalchemy import func, inspect as sa_inspect, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.itorero.models.audit_log import AuditLog, SEVERITIES
from src.itorero.utils.client import get_client_ip, get_user_agent

logger = logging.getLogger(__name__)

# never copied into before/after snapshots
_REDACTED_FIELDS = frozenset({"password", "token_hash"})

CRITICAL_SEVERITIES = ("error", "critical")


# ---------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------
def json_safe(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, dict):
        return {k: json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [json_safe(v) for v in value]
    return value


def snapshot(row: Any, exclude: Iterable[str] = ()) -> Optional[Dict[str, Any]]:
    """JSON-safe dict of a mapped row's column attributes."""
    if row is None:
        return None
    skip = _REDACTED_FIELDS.union(exclude)
    mapper = sa_inspect(row).mapper
    return {
        attr.key: json_safe(getattr(row, attr.key))
        for attr in mapper.column_attrs
        if attr.key not in skip
    }


def compute_changes(
    before: Optional[Dict[str, Any]], after: Optional[Dict[str, Any]]
) -> Dict[str, Dict[str, Any]]:
    """``{field: {"from": old, "to": new}}`` for every field that differs."""
    before = before or {}
    after = after or {}
    changes: Dict[str, Dict[str, Any]] = {}
    for key in sorted(set(before) | set(after)):
        if key in ("updated_dt", "updated_by"):
            continue
        old, new = before.get(key), after.get(key)
        if old != new:
            changes[key] = {"from": old, "to": new}
    return changes


# ---------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------
async def log_action(
    db: AsyncSession,
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    performed_by: Optional[str],
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    changes: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    severity: str = "info",
    description: str = "",
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """Append one audit record and commit it. Raises on failure."""
    if severity not in SEVERITIES:
        raise ValueError(f"unknown audit severity {severity!r}")
    if changes is None and (before is not None or after is not None):
        changes = compute_changes(before, after)

    entry = AuditLog(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        performed_by=performed_by,
        before=json_safe(before),
        after=json_safe(after),
        changes=json_safe(changes),
        metadata_json=json_safe(metadata or {}),
        severity=severity,
        description=(description or "")[:500],
        ip_address=ip_address,
        user_agent=(user_agent or None) and user_agent[:512],
    )
    db.add(entry)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return entry


def request_origin(request: Optional[Request]) -> Tuple[Optional[str], Optional[str]]:
    if request is None:
        return None, None
    return get_client_ip(request), get_user_agent(request)


async def record_action(
    db: AsyncSession,
    request: Optional[Request],
    performed_by: Optional[str],
    action: str,
    resource_type: str,
    resource_id: Optional[str],
    *,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
    metadata: Optional[Dict[str, Any]] = None,
    severity: str = "info",
    description: str = "",
    critical: bool = False,
) -> Optional[AuditLog]:
    """
    Best-effort audit write for a mutation that already committed.
    - critical=True: re-raise on failure.
    - otherwise: log a warning and continue.
    """
    ip, ua = request_origin(request)
    try:
        return await log_action(
            db,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            performed_by=performed_by,
            before=before,
            after=after,
            metadata=metadata,
            severity=severity,
            description=description,
            ip_address=ip,
            user_agent=ua,
        )
    except Exception:
        logger.warning(
            "Failed to write audit record %s %s:%s", action, resource_type, resource_id, exc_info=True
        )
        if critical:
            raise
        return None


async def record_error_best_effort(
    session_factory: async_sessionmaker,
    request: Request,
    exc: BaseException,
) -> bool:
    """One ERROR record for an unhandled failure, on a fresh session.

    Returns False when the write itself failed; never raises.
    """
    user = getattr(request.state, "user", None)
    ip, ua = request_origin(request)
    metadata = {
        "method": request.method,
        "url": str(request.url),
        "error": str(exc),
        "stack": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))[-4000:],
    }
    try:
        async with session_factory() as session:
            await log_action(
                session,
                action="ERROR",
                resource_type="system",
                resource_id=None,
                performed_by=getattr(user, "id", None),
                metadata=metadata,
                severity="error",
                description=f"Unhandled error: {exc.__class__.__name__}",
                ip_address=ip,
                user_agent=ua,
            )
        return True
    except Exception:
        logger.exception("Audit write for unhandled error failed")
        return False


# ---------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------
async def list_audit_logs(
    db: AsyncSession,
    *,
    performed_by: Optional[str] = None,
    resource_type: Optional[str] = None,
    resource_id: Optional[str] = None,
    action: Optional[str] = None,
    severity: Optional[str] = None,
    severities: Optional[Iterable[str]] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 100,
    offset: int = 0,
) -> Tuple[List[AuditLog], int]:
    base = select(AuditLog)
    if performed_by:
        base = base.where(AuditLog.performed_by == performed_by)
    if resource_type:
        base = base.where(AuditLog.resource_type == resource_type)
    if resource_id:
        base = base.where(AuditLog.resource_id == resource_id)
    if action:
        base = base.where(AuditLog.action == action)
    if severity:
        base = base.where(AuditLog.severity == severity)
    if severities:
        base = base.where(AuditLog.severity.in_(tuple(severities)))
    if start:
        base = base.where(AuditLog.performed_at >= start)
    if end:
        base = base.where(AuditLog.performed_at <= end)

    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    res = await db.execute(base.order_by(AuditLog.performed_at.desc()).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def action_summary(
    db: AsyncSession,
    *,
    performed_by: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """Per-action count and most recent time, busiest first."""
    stmt = select(
        AuditLog.action,
        func.count(AuditLog.id).label("count"),
        func.max(AuditLog.performed_at).label("last_performed"),
    )
    if performed_by:
        stmt = stmt.where(AuditLog.performed_by == performed_by)
    if start:
        stmt = stmt.where(AuditLog.performed_at >= start)
    if end:
        stmt = stmt.where(AuditLog.performed_at <= end)
    stmt = stmt.group_by(AuditLog.action).order_by(func.count(AuditLog.id).desc())

    res = await db.execute(stmt)
    return [
        {"action": action, "count": int(count), "last_performed": json_safe(last)}
        for action, count, last in res.all()
    ]
