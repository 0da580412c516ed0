# src/itorero/routes/hierarchy_api.py
"""
CRUD routers for the four hierarchy levels.

Every level gets the same surface (list, lookup by code, detail with child
counts, create, update, admin/leader assignment, soft delete); the per-level
differences are the schemas, the parent filter and which assignment applies.
Writes that change admin/leader or parent go through the cascade plan and
the applied cascade is recorded in the audit metadata.
"""
from typing import Optional, Tuple, Type

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.crud import hierarchy as crud
from src.itorero.models.org import Cell, District, IntoreGroup, Sector
from src.itorero.models.user import ADMIN_ROLES, User
from src.itorero.schemas.hierarchy import (
    AdminAssign,
    CellCreate,
    CellRead,
    CellUpdate,
    DistrictCreate,
    DistrictRead,
    DistrictUpdate,
    IntoreGroupCreate,
    IntoreGroupRead,
    IntoreGroupUpdate,
    SectorCreate,
    SectorRead,
    SectorUpdate,
)
from src.itorero.utils import audit
from src.itorero.utils.auth import get_current_user
from src.itorero.utils.database import get_db
from src.itorero.utils.exceptions import DuplicateKeyError, NotFoundError, PermissionDeniedError
from src.itorero.utils.hierarchy import derive_cell_chain, derive_group_chain, load_user
from src.itorero.utils.permissions import ensure_in_scope, require_admin
from src.itorero.utils.responses import dump, ok, page

Chain = Tuple[Optional[str], Optional[str], Optional[str]]


def own_chain(node) -> Chain:
    if isinstance(node, District):
        return node.id, None, None
    if isinstance(node, Sector):
        return node.district_id, node.id, None
    if isinstance(node, Cell):
        return node.district_id, node.sector_id, node.id
    return node.district_id, node.sector_id, node.cell_id


def parent_chain(node) -> Optional[Chain]:
    """Chain of the level that manages ``node``; None for districts (super admin only)."""
    if isinstance(node, District):
        return None
    if isinstance(node, Sector):
        return node.district_id, None, None
    if isinstance(node, Cell):
        return node.district_id, node.sector_id, None
    return node.district_id, node.sector_id, node.cell_id


def ensure_manages(user: User, chain: Optional[Chain]) -> None:
    if user.role == "super_admin":
        return
    if chain is None:
        raise PermissionDeniedError("Only a super admin can manage districts.")
    ensure_in_scope(user, *chain)


async def ensure_may_assign(
    db: AsyncSession,
    user: User,
    target_id: Optional[str],
    grants_role: bool,
    holder_id: Optional[str] = None,
) -> None:
    """Below super admin, the assigned user must sit inside the caller's node.

    An admin assignment also needs a non-admin target, unless that target
    already holds the node.
    """
    if user.role == "super_admin" or not target_id or target_id == holder_id:
        return
    target = await load_user(db, target_id)
    if grants_role and target.role in ADMIN_ROLES:
        raise PermissionDeniedError("Only a super admin can reassign an administrator.")
    ensure_in_scope(
        user, target.district_id, target.sector_id, target.cell_id,
        message="The user to assign is outside your hierarchy.",
    )


async def _create_chain(db: AsyncSession, kind: str, payload) -> Optional[Chain]:
    if kind == "district":
        return None
    if kind == "sector":
        return payload.district_id, None, None
    if kind == "cell":
        chain = await derive_cell_chain(db, payload.sector_id, payload.district_id)
        return chain["district_id"], chain["sector_id"], None
    chain = await derive_group_chain(db, payload.cell_id, payload.sector_id, payload.district_id)
    return chain["district_id"], chain["sector_id"], chain["cell_id"]


def build_node_router(
    kind: str,
    model: Type,
    create_schema: Type,
    update_schema: Type,
    read_schema: Type,
    create_fn,
    parent_filters: Tuple[str, ...],
    label: str,
) -> APIRouter:
    router = APIRouter(prefix=f"/api/{kind.replace('_', '-')}s", tags=[f"{label}s"])
    assign_path = "leader" if model is IntoreGroup else "admin"
    assign_action = "ASSIGN_LEADER" if model is IntoreGroup else "ASSIGN_ADMIN"

    async def _load(db: AsyncSession, node_id: str):
        row = await crud.get_node(db, model, node_id)
        if row is None:
            raise NotFoundError(f"{label} not found")
        return row

    @router.get("")
    async def api_list(
        request: Request,
        q: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=200),
        offset: int = Query(0, ge=0),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        filters = {col: request.query_params.get(col) for col in parent_filters}
        rows, total = await crud.list_nodes(
            db, model, q=q, filters=filters, status=status, limit=limit, offset=offset
        )
        return page(read_schema, rows, total, limit, offset)

    @router.get("/code/{code}")
    async def api_get_by_code(
        code: str,
        parent_id: Optional[str] = Query(None),
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        row = await crud.get_node_by_code(db, model, code, parent_id)
        if row is None:
            raise NotFoundError(f"{label} not found")
        return ok(dump(read_schema, row))

    @router.get("/{node_id}")
    async def api_get(
        node_id: str,
        current_user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        row = await _load(db, node_id)
        data = dump(read_schema, row)
        data["counts"] = await crud.children_counts(db, row)
        return ok(data)

    @router.post("", status_code=201)
    async def api_create(
        payload: create_schema,
        request: Request,
        current_user: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        ensure_manages(current_user, await _create_chain(db, kind, payload))
        await ensure_may_assign(
            db, current_user, getattr(payload, f"{assign_path}_id", None), grants_role=model is not IntoreGroup,
        )
        try:
            row, applied = await create_fn(db, payload, created_by=current_user.id)
        except IntegrityError:
            raise DuplicateKeyError(f"{label} code already exists")

        await audit.record_action(
            db, request, current_user.id, "CREATE", kind, row.id,
            after=audit.snapshot(row), metadata={"cascade": applied},
            description=f"Created {label.lower()} {row.code}",
        )
        return ok(dump(read_schema, row), f"{label} created successfully")

    @router.put("/{node_id}")
    async def api_update(
        node_id: str,
        payload: update_schema,
        request: Request,
        current_user: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        row = await _load(db, node_id)
        ensure_manages(current_user, own_chain(row))
        if current_user.role != "super_admin" and {"district_id", "sector_id", "cell_id"} & payload.model_fields_set:
            raise PermissionDeniedError("Only a super admin can move a node to another parent.")
        before = audit.snapshot(row)
        try:
            row, applied = await crud.update_node(db, row, payload, updated_by=current_user.id)
        except IntegrityError:
            raise DuplicateKeyError(f"{label} code already exists")

        await audit.record_action(
            db, request, current_user.id, "UPDATE", kind, row.id,
            before=before, after=audit.snapshot(row), metadata={"cascade": applied},
        )
        return ok(dump(read_schema, row), f"{label} updated successfully")

    @router.put(f"/{{node_id}}/{assign_path}")
    async def api_assign(
        node_id: str,
        payload: AdminAssign,
        request: Request,
        current_user: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        row = await _load(db, node_id)
        ensure_manages(current_user, parent_chain(row))
        await ensure_may_assign(
            db, current_user, payload.user_id, grants_role=model is not IntoreGroup,
            holder_id=getattr(row, f"{assign_path}_id"),
        )
        before = audit.snapshot(row)
        if model is IntoreGroup:
            applied = await crud.assign_leader(db, row, payload.user_id, updated_by=current_user.id)
        else:
            applied = await crud.assign_admin(db, row, payload.user_id, updated_by=current_user.id)

        await audit.record_action(
            db, request, current_user.id, assign_action, kind, row.id,
            before=before, after=audit.snapshot(row), metadata={"cascade": applied},
            severity="warning",
            description=f"{assign_path.capitalize()} of {label.lower()} {row.code} set to {payload.user_id}",
        )
        return ok(dump(read_schema, row), f"{label} {assign_path} updated", cascade=audit.json_safe(applied))

    @router.delete("/{node_id}")
    async def api_deactivate(
        node_id: str,
        request: Request,
        current_user: User = Depends(require_admin),
        db: AsyncSession = Depends(get_db),
    ):
        row = await _load(db, node_id)
        ensure_manages(current_user, parent_chain(row))
        before = audit.snapshot(row)
        row = await crud.deactivate_node(db, row, updated_by=current_user.id)

        await audit.record_action(
            db, request, current_user.id, "DELETE", kind, row.id,
            before=before, after=audit.snapshot(row), severity="warning",
            description=f"Deactivated {label.lower()} {row.code}",
        )
        return ok(dump(read_schema, row), f"{label} deactivated")

    return router


districts_router = build_node_router(
    "district", District, DistrictCreate, DistrictUpdate, DistrictRead,
    crud.create_district, (), "District",
)
sectors_router = build_node_router(
    "sector", Sector, SectorCreate, SectorUpdate, SectorRead,
    crud.create_sector, ("district_id",), "Sector",
)
cells_router = build_node_router(
    "cell", Cell, CellCreate, CellUpdate, CellRead,
    crud.create_cell, ("district_id", "sector_id"), "Cell",
)
intore_groups_router = build_node_router(
    "intore_group", IntoreGroup, IntoreGroupCreate, IntoreGroupUpdate, IntoreGroupRead,
    crud.create_intore_group, ("district_id", "sector_id", "cell_id"), "Intore group",
)
