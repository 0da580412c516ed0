# src/itorero/routes/media_api.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import media as crud
from src.itorero.models.ops.media import Media
from src.itorero.models.user import ADMIN_ROLES, User
from src.itorero.schemas.media import MediaApproval, MediaCreate, MediaRead, MediaUpdate
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import NotFoundError, PermissionDeniedError
from src.itorero.utils.permissions import ensure_in_scope, in_scope, require_admin, scope_filters
from src.itorero.utils.responses import dump, ok, page

router = APIRouter(prefix="/api/media", tags=["Media"])


async def _load(db: AsyncSession, media_id: str) -> Media:
    row = await crud.get_media(db, media_id)
    if row is None or row.status == "deleted":
        raise NotFoundError("Media not found")
    return row


def _ensure_owner_or_admin(user: User, row: Media) -> None:
    if row.uploaded_by == user.id:
        return
    if user.role in ADMIN_ROLES and in_scope(user, row.district_id, row.sector_id, row.cell_id):
        return
    raise PermissionDeniedError("Only the uploader or an admin of this hierarchy can change this media.")


@router.get("")
async def api_list_media(
    q: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    uploaded_for: Optional[str] = Query(None),
    target_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    scope = scope_filters(current_user) if current_user.role in ADMIN_ROLES else {}
    if current_user.role not in ADMIN_ROLES:
        status = "active"
    rows, total = await crud.list_media(
        db, q=q, type_=type, status=status, uploaded_for=uploaded_for, target_id=target_id,
        scope=scope, limit=limit, offset=offset,
    )
    return page(MediaRead, rows, total, limit, offset)


@router.get("/{media_id}")
async def api_get_media(
    media_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, media_id)
    row = await crud.bump_counter(db, row, "views")
    return ok(dump(MediaRead, row))


@router.post("", status_code=201)
async def api_create_media(
    payload: MediaCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    # admins' uploads skip the approval queue
    row = await crud.create_media(db, payload, current_user.id, auto_approve=current_user.role in ADMIN_ROLES)
    await audit.record_action(
        db, request, current_user.id, "UPLOAD", "media", row.id,
        after=audit.snapshot(row), description=f"Uploaded {row.original_name}",
    )
    return ok(dump(MediaRead, row), "Media uploaded successfully")


@router.put("/{media_id}")
async def api_update_media(
    media_id: str,
    payload: MediaUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, media_id)
    _ensure_owner_or_admin(current_user, row)
    before = audit.snapshot(row)
    row = await crud.update_media(db, row, payload)
    await audit.record_action(
        db, request, current_user.id, "UPDATE", "media", row.id,
        before=before, after=audit.snapshot(row),
    )
    return ok(dump(MediaRead, row), "Media updated successfully")


@router.post("/{media_id}/review")
async def api_review_media(
    media_id: str,
    payload: MediaApproval,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, media_id)
    ensure_in_scope(current_user, row.district_id, row.sector_id, row.cell_id)
    before = audit.snapshot(row)
    row = await crud.review_media(db, row, payload, current_user.id)
    await audit.record_action(
        db, request, current_user.id, "APPROVE" if payload.approved else "REJECT", "media", row.id,
        before=before, after=audit.snapshot(row), description=payload.reason or "",
    )
    return ok(dump(MediaRead, row), "Media approved" if payload.approved else "Media rejected")


@router.post("/{media_id}/download")
async def api_download_media(
    media_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, media_id)
    row = await crud.bump_counter(db, row, "downloads")
    return ok({"url": row.url, "downloads": row.downloads})


@router.delete("/{media_id}")
async def api_delete_media(
    media_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, media_id)
    _ensure_owner_or_admin(current_user, row)
    before = audit.snapshot(row)
    row = await crud.delete_media(db, row)
    await audit.record_action(
        db, request, current_user.id, "DELETE", "media", row.id,
        before=before, after=audit.snapshot(row), severity="warning",
    )
    return ok(message="Media deleted")
