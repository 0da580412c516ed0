# src/itorero/routes/users_api.py
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud.users import create_user, get_user, list_users, set_status, update_user
from src.itorero.models.user import ADMIN_ROLES, USER_STATUSES, User
from src.itorero.schemas.user import UserCreate, UserRead, UserUpdate
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user, revoke_all_refresh
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import (
    DuplicateKeyError,
    NotFoundError,
    PermissionDeniedError,
    ValidationFailedError,
)
from src.itorero.utils.permissions import can_access_resource, ensure_in_scope, require_admin, scope_filters
from src.itorero.utils.responses import dump, ok, page

router = APIRouter(prefix="/api/users", tags=["Users"])

# fields a user may change on their own profile
_SELF_FIELDS = {"first_name", "last_name", "phone_number", "date_of_birth", "profile_picture", "email"}


async def _load_visible(db: AsyncSession, user_id: str, current_user: User) -> User:
    row = await get_user(db, user_id)
    if row is None:
        raise NotFoundError("User not found")
    if not can_access_resource(current_user, "user", user_id):
        raise PermissionDeniedError()
    if current_user.role in ADMIN_ROLES and current_user.id != row.id:
        ensure_in_scope(current_user, row.district_id, row.sector_id, row.cell_id)
    return row


def _guard_admin_roles(current_user: User, role: Optional[str]) -> None:
    if role in ADMIN_ROLES and current_user.role != "super_admin":
        raise PermissionDeniedError("Only a super admin can grant admin roles.")


@router.get("")
async def api_list_users(
    q: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows, total = await list_users(
        db, q=q, role=role, status=status, scope=scope_filters(current_user), limit=limit, offset=offset
    )
    return page(UserRead, rows, total, limit, offset)


@router.get("/{user_id}")
async def api_get_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_visible(db, user_id, current_user)
    return ok(dump(UserRead, row))


@router.post("", status_code=201)
async def api_create_user(
    payload: UserCreate,
    request: Request,
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    _guard_admin_roles(current_user, payload.role)
    if current_user.role != "super_admin":
        ensure_in_scope(current_user, payload.district_id, payload.sector_id, payload.cell_id)

    try:
        row = await create_user(db, payload, created_by=current_user.id)
    except IntegrityError:
        raise DuplicateKeyError("Username or email already exists.")

    await audit.record_action(
        db, request, current_user.id, "CREATE", "user", row.id,
        after=audit.snapshot(row), description=f"Created user {row.username}",
    )
    return ok(dump(UserRead, row), "User created successfully")


@router.put("/{user_id}")
async def api_update_user(
    user_id: str,
    payload: UserUpdate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    row = await _load_visible(db, user_id, current_user)
    fields = payload.model_fields_set
    if current_user.role not in ADMIN_ROLES and fields - _SELF_FIELDS:
        raise PermissionDeniedError("You can only update your own profile fields.")
    _guard_admin_roles(current_user, payload.role)
    if current_user.role not in ("super_admin",) and {"district_id", "sector_id", "cell_id"} & fields:
        ensure_in_scope(current_user, payload.district_id, payload.sector_id, payload.cell_id)

    before = audit.snapshot(row)
    try:
        row = await update_user(db, row, payload)
    except IntegrityError:
        raise DuplicateKeyError("Email already exists.")

    await audit.record_action(
        db, request, current_user.id, "UPDATE", "user", row.id,
        before=before, after=audit.snapshot(row),
    )
    return ok(dump(UserRead, row), "User updated successfully")


@router.patch("/{user_id}/status")
async def api_set_status(
    user_id: str,
    request: Request,
    status: str = Body(..., embed=True),
    current_user: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if status not in USER_STATUSES:
        raise ValidationFailedError(errors=[f"status must be one of {', '.join(USER_STATUSES)}"])
    row = await _load_visible(db, user_id, current_user)
    if row.id == current_user.id:
        raise PermissionDeniedError("You cannot change your own status.")

    before = audit.snapshot(row)
    row = await set_status(db, row, status)
    if status in ("suspended", "inactive"):
        await revoke_all_refresh(db, row)

    await audit.record_action(
        db, request, current_user.id, "STATUS_CHANGE", "user", row.id,
        before=before, after=audit.snapshot(row),
        severity="warning" if status == "suspended" else "info",
    )
    return ok(dump(UserRead, row), f"User status set to {status}")
