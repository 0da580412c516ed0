# src/itorero/routes/cultural_content_api.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import cultural_content as crud
from src.itorero.models.ops.cultural_content import CulturalContent
from src.itorero.models.user import ADMIN_ROLES, User
from src.itorero.schemas.cultural_content import ContentCreate, ContentRead, ContentReview, ContentUpdate
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import NotFoundError, PermissionDeniedError
from src.itorero.utils.permissions import ensure_in_scope, require_admin
from src.itorero.utils.responses import dump, ok, page

router = APIRouter(prefix="/api/cultural-content", tags=["Cultural content"])


async def _load(db: AsyncSession, content_id: str) -> CulturalContent:
    row = await crud.get_content(db, content_id)
    if row is None:
        raise NotFoundError("Cultural content not found")
    return row


def _ensure_author(user: User, row: CulturalContent) -> None:
    if row.created_by != user.id and user.role != "super_admin":
        raise PermissionDeniedError("Only the author can change this content.")


@router.get("")
async def api_list_content(
    q: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    language: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    mine: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    created_by = current_user.id if mine else None
    # outside their own drafts, non-admins only see approved content
    if not mine and current_user.role not in ADMIN_ROLES:
        status = "approved"
    rows, total = await crud.list_content(
        db, q=q, type_=type, category=category, language=language, status=status,
        created_by=created_by, limit=limit, offset=offset,
    )
    return page(ContentRead, rows, total, limit, offset)


@router.get("/{content_id}")
async def api_get_content(
    content_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, content_id)
    if row.status != "approved" and row.created_by != current_user.id and current_user.role not in ADMIN_ROLES:
        raise NotFoundError("Cultural content not found")
    if row.status == "approved":
        row = await crud.record_view(db, row)
    return ok(dump(ContentRead, row))


@router.post("", status_code=201)
async def api_create_content(
    payload: ContentCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await crud.create_content(db, payload, created_by=current_user.id)
    await audit.record_action(
        db, request, current_user.id, "CREATE", "cultural_content", row.id,
        after=audit.snapshot(row, exclude=("text",)), description=f"Created {row.type} {row.title}",
    )
    return ok(dump(ContentRead, row), "Content created successfully")


@router.put("/{content_id}")
async def api_update_content(
    content_id: str,
    payload: ContentUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, content_id)
    _ensure_author(current_user, row)
    before = audit.snapshot(row, exclude=("text",))
    row = await crud.update_content(db, row, payload)
    await audit.record_action(
        db, request, current_user.id, "UPDATE", "cultural_content", row.id,
        before=before, after=audit.snapshot(row, exclude=("text",)),
    )
    return ok(dump(ContentRead, row), "Content updated successfully")


@router.post("/{content_id}/submit")
async def api_submit_content(
    content_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, content_id)
    _ensure_author(current_user, row)
    row = await crud.submit_content(db, row)
    await audit.record_action(
        db, request, current_user.id, "SUBMIT", "cultural_content", row.id,
        metadata={"status": row.status},
    )
    return ok(dump(ContentRead, row), "Content submitted for approval")


@router.post("/{content_id}/review")
async def api_review_content(
    content_id: str,
    payload: ContentReview,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, content_id)
    if row.district_id:
        ensure_in_scope(current_user, row.district_id, row.sector_id, row.cell_id)
    before = audit.snapshot(row, exclude=("text",))
    row = await crud.review_content(db, row, payload.approved, current_user.id)
    await audit.record_action(
        db, request, current_user.id, "APPROVE" if payload.approved else "REJECT", "cultural_content", row.id,
        before=before, after=audit.snapshot(row, exclude=("text",)),
    )
    return ok(dump(ContentRead, row), "Content approved" if payload.approved else "Content rejected")


@router.delete("/{content_id}")
async def api_archive_content(
    content_id: str,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load(db, content_id)
    if current_user.role not in ADMIN_ROLES:
        _ensure_author(current_user, row)
    before = audit.snapshot(row, exclude=("text",))
    row = await crud.archive_content(db, row)
    await audit.record_action(
        db, request, current_user.id, "DELETE", "cultural_content", row.id,
        before=before, after=audit.snapshot(row, exclude=("text",)), severity="warning",
    )
    return ok(dump(ContentRead, row), "Content archived")
