# src/itorero/utils/permissions.py
from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import Depends

from src.itorero.models.user import ADMIN_ROLES, User
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.exceptions import AuthError, PermissionDeniedError

logger = logging.getLogger(__name__)


def require_roles(*roles: str):
    """Dependency: the current user must hold one of ``roles``."""

    async def _guard(current_user: User = Depends(get_current_user)) -> User:
        if current_user is None:
            raise AuthError("Authentication required.")
        if current_user.role not in roles:
            logger.warning("Role %s denied; needs one of %s", current_user.role, roles)
            raise PermissionDeniedError()
        return current_user

    return _guard


require_admin = require_roles(*ADMIN_ROLES)


def can_access_resource(user: User, resource_type: str, resource_id: Any) -> bool:
    """Whether ``user`` may touch the node/user ``resource_id`` of ``resource_type``."""
    if user.role == "super_admin":
        return True

    rid = str(resource_id) if resource_id is not None else None
    if resource_type == "district":
        return bool(user.district_id) and user.district_id == rid
    if resource_type == "sector":
        return bool(user.sector_id) and user.sector_id == rid
    if resource_type == "cell":
        return bool(user.cell_id) and user.cell_id == rid
    if resource_type == "user":
        # members only see their own profile; admins see users in their hierarchy
        if user.role in ("member", "public"):
            return user.id == rid
        return True
    return False


def in_scope(
    user: User,
    district_id: Optional[str] = None,
    sector_id: Optional[str] = None,
    cell_id: Optional[str] = None,
) -> bool:
    """Whether a record scoped to (district, sector, cell) falls under ``user``'s node."""
    if user.role == "super_admin":
        return True
    if user.role == "district_admin":
        return bool(user.district_id) and user.district_id == district_id
    if user.role == "sector_admin":
        return bool(user.sector_id) and user.sector_id == sector_id
    if user.role == "cell_admin":
        return bool(user.cell_id) and user.cell_id == cell_id
    return False


def ensure_in_scope(
    user: User,
    district_id: Optional[str] = None,
    sector_id: Optional[str] = None,
    cell_id: Optional[str] = None,
    message: str = "Access denied. Resource is outside your hierarchy.",
) -> None:
    if not in_scope(user, district_id, sector_id, cell_id):
        raise PermissionDeniedError(message)


def scope_filters(user: User) -> dict:
    """Column filters restricting list queries to ``user``'s node."""
    if user.role == "super_admin":
        return {}
    if user.role == "district_admin":
        return {"district_id": user.district_id}
    if user.role == "sector_admin":
        return {"sector_id": user.sector_id}
    return {"cell_id": user.cell_id}
