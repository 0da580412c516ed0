# src/itorero/crud/hierarchy.py
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.user import User, new_id
from src.itorero.models.org import Cell, District, IntoreGroup, Sector
from src.itorero.schemas.hierarchy import (
    CellCreate,
    DistrictCreate,
    IntoreGroupCreate,
    SectorCreate,
)
from src.itorero.utils.exceptions import ConflictError, DuplicateKeyError, HierarchyError
from src.itorero.utils.hierarchy import (
    CascadePlan,
    derive_cell_chain,
    derive_group_chain,
    load_district,
    plan_admin_assignment,
    plan_leader_assignment,
)
from src.itorero.utils.timezone import now_local

Node = Union[District, Sector, Cell, IntoreGroup]

_NODE_FIELDS = ("name", "code", "description", "latitude", "longitude", "address", "population", "status")

# node model -> (child model, child's parent column)
_CHILDREN = {
    District: (Sector, "district_id"),
    Sector: (Cell, "sector_id"),
    Cell: (IntoreGroup, "cell_id"),
}


def _normalize_status(v: Optional[str]) -> str:
    return (v or "active").strip().lower()


# ---------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------
async def list_nodes(
    db: AsyncSession,
    model: Type[Node],
    q: Optional[str] = None,
    filters: Optional[Dict[str, Any]] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Tuple[List[Node], int]:
    base = select(model)
    if q:
        like = f"%{q.strip()}%"
        base = base.where(or_(model.name.ilike(like), model.code.ilike(like), model.description.ilike(like)))
    for col, value in (filters or {}).items():
        if value:
            base = base.where(getattr(model, col) == value)
    if status:
        base = base.where(model.status == status)

    total = await db.scalar(select(func.count()).select_from(base.subquery()))
    res = await db.execute(base.order_by(model.name).limit(limit).offset(offset))
    return list(res.scalars().all()), int(total or 0)


async def get_node(db: AsyncSession, model: Type[Node], node_id: str) -> Optional[Node]:
    return await db.get(model, node_id)


async def get_node_by_code(
    db: AsyncSession, model: Type[Node], code: str, parent_id: Optional[str] = None
) -> Optional[Node]:
    stmt = select(model).where(model.code == (code or "").strip().upper())
    if parent_id and model in (Sector, Cell):
        parent_col = "district_id" if model is Sector else "sector_id"
        stmt = stmt.where(getattr(model, parent_col) == parent_id)
    res = await db.execute(stmt)
    return res.scalars().first()


async def _count(db: AsyncSession, model, **where) -> int:
    stmt = select(func.count()).select_from(model)
    for col, value in where.items():
        stmt = stmt.where(getattr(model, col) == value)
    return int(await db.scalar(stmt) or 0)


async def children_counts(db: AsyncSession, node: Node) -> Dict[str, int]:
    if isinstance(node, District):
        return {
            "sectors": await _count(db, Sector, district_id=node.id),
            "cells": await _count(db, Cell, district_id=node.id),
            "intore_groups": await _count(db, IntoreGroup, district_id=node.id),
            "users": await _count(db, User, district_id=node.id),
        }
    if isinstance(node, Sector):
        return {
            "cells": await _count(db, Cell, sector_id=node.id),
            "intore_groups": await _count(db, IntoreGroup, sector_id=node.id),
            "users": await _count(db, User, sector_id=node.id),
        }
    if isinstance(node, Cell):
        return {
            "intore_groups": await _count(db, IntoreGroup, cell_id=node.id),
            "users": await _count(db, User, cell_id=node.id),
        }
    return {"members": await _count(db, User, intore_group_id=node.id)}


async def _has_children(db: AsyncSession, node: Node, active_only: bool = False) -> bool:
    if type(node) not in _CHILDREN:
        return False
    child, col = _CHILDREN[type(node)]
    stmt = select(func.count()).select_from(child).where(getattr(child, col) == node.id)
    if active_only:
        stmt = stmt.where(child.status != "inactive")
    return bool(await db.scalar(stmt))


# ---------------------------------------------------------------------
# Uniqueness
# ---------------------------------------------------------------------
async def _ensure_unique(db: AsyncSession, model: Type[Node], row_id: Optional[str], **where) -> None:
    stmt = select(model.id)
    for col, value in where.items():
        stmt = stmt.where(getattr(model, col) == value)
    existing = await db.scalar(stmt)
    if existing and existing != row_id:
        fields = ", ".join(f"{k}={v}" for k, v in where.items())
        raise DuplicateKeyError(f"{model.__name__} with {fields} already exists")


async def _ensure_code_unique(db: AsyncSession, row: Node) -> None:
    if isinstance(row, District):
        await _ensure_unique(db, District, row.id, code=row.code)
        await _ensure_unique(db, District, row.id, name=row.name)
    elif isinstance(row, Sector):
        await _ensure_unique(db, Sector, row.id, code=row.code, district_id=row.district_id)
    elif isinstance(row, Cell):
        await _ensure_unique(db, Cell, row.id, code=row.code, sector_id=row.sector_id)
    else:
        await _ensure_unique(db, IntoreGroup, row.id, code=row.code)


# ---------------------------------------------------------------------
# Creates
# ---------------------------------------------------------------------
def _base_fields(data, created_by: Optional[str]) -> Dict[str, Any]:
    return dict(
        id=new_id(),
        name=data.name.strip(),
        code=data.code,
        description=(data.description or "").strip(),
        status=_normalize_status(data.status),
        created_by=created_by,
        updated_by=created_by,
        created_dt=now_local(),
        updated_dt=now_local(),
    )


def _geo_fields(data) -> Dict[str, Any]:
    return dict(
        latitude=data.latitude,
        longitude=data.longitude,
        address=data.address,
        population=data.population,
    )


async def create_district(
    db: AsyncSession, data: DistrictCreate, created_by: Optional[str] = None
) -> Tuple[District, List[Dict[str, Any]]]:
    row = District(**_base_fields(data, created_by), **_geo_fields(data))
    await _ensure_code_unique(db, row)

    plan = CascadePlan()
    plan.add(row)
    if data.admin_id:
        await plan_admin_assignment(db, row, data.admin_id, plan)
    return row, await plan.commit(db)


async def create_sector(
    db: AsyncSession, data: SectorCreate, created_by: Optional[str] = None
) -> Tuple[Sector, List[Dict[str, Any]]]:
    district = await load_district(db, data.district_id)
    row = Sector(**_base_fields(data, created_by), **_geo_fields(data), district_id=district.id)
    await _ensure_code_unique(db, row)

    plan = CascadePlan()
    plan.add(row)
    if data.admin_id:
        await plan_admin_assignment(db, row, data.admin_id, plan)
    return row, await plan.commit(db)


async def create_cell(
    db: AsyncSession, data: CellCreate, created_by: Optional[str] = None
) -> Tuple[Cell, List[Dict[str, Any]]]:
    """Create a cell; its district is taken from the sector."""
    chain = await derive_cell_chain(db, data.sector_id, data.district_id)
    row = Cell(**_base_fields(data, created_by), **_geo_fields(data), **chain)
    await _ensure_code_unique(db, row)

    plan = CascadePlan()
    plan.add(row)
    if data.admin_id:
        await plan_admin_assignment(db, row, data.admin_id, plan)
    return row, await plan.commit(db)


async def create_intore_group(
    db: AsyncSession, data: IntoreGroupCreate, created_by: Optional[str] = None
) -> Tuple[IntoreGroup, List[Dict[str, Any]]]:
    chain = await derive_group_chain(db, data.cell_id, data.sector_id, data.district_id)
    row = IntoreGroup(
        id=new_id(),
        name=data.name.strip(),
        code=data.code,
        description=(data.description or "").strip(),
        type=data.type,
        status=_normalize_status(data.status),
        created_by=created_by,
        updated_by=created_by,
        **chain,
    )
    await _ensure_code_unique(db, row)

    plan = CascadePlan()
    plan.add(row)
    if data.leader_id:
        await plan_leader_assignment(db, row, data.leader_id, plan)
    return row, await plan.commit(db)


# ---------------------------------------------------------------------
# Updates
# ---------------------------------------------------------------------
async def _resolve_reparent(db: AsyncSession, row: Node, values: Dict[str, Any]) -> Dict[str, Any]:
    """New parent chain for ``row`` if the update moves it, else {}."""
    if isinstance(row, Sector) and values.get("district_id") not in (None, row.district_id):
        return {"district_id": (await load_district(db, values["district_id"])).id}

    if isinstance(row, Cell):
        sector_id = values.get("sector_id") or row.sector_id
        district_id = values.get("district_id")
        if sector_id != row.sector_id or district_id not in (None, row.district_id):
            return await derive_cell_chain(db, sector_id, district_id)

    if isinstance(row, IntoreGroup):
        cell_id = values.get("cell_id") or row.cell_id
        if cell_id != row.cell_id or any(
            values.get(k) not in (None, getattr(row, k)) for k in ("sector_id", "district_id")
        ):
            return await derive_group_chain(db, cell_id, values.get("sector_id"), values.get("district_id"))
    return {}


async def update_node(
    db: AsyncSession, row: Node, data, updated_by: Optional[str] = None
) -> Tuple[Node, List[Dict[str, Any]]]:
    """Update a node's own fields; a parent move re-derives the chain and re-cascades the admin.

    A node with dependents cannot be moved to a different parent.
    """
    values = data.model_dump(exclude_unset=True)
    chain = await _resolve_reparent(db, row, values)
    if chain and await _has_children(db, row):
        raise HierarchyError(
            f"Cannot move {row.__tablename__[:-1].replace('_', ' ')} with dependents",
            errors=["Move or remove its children first."],
        )

    for key in _NODE_FIELDS + ("type",):
        if key in values and values[key] is not None and hasattr(row, key):
            setattr(row, key, values[key])
    for key, value in chain.items():
        setattr(row, key, value)
    if "code" in values or "name" in values or chain:
        await _ensure_code_unique(db, row)
    row.updated_by = updated_by
    row.updated_dt = now_local()

    plan = CascadePlan()
    plan.set(row, "update", updated_by=updated_by)
    if chain:
        if isinstance(row, IntoreGroup):
            if row.leader_id:
                await plan_leader_assignment(db, row, row.leader_id, plan)
        elif row.admin_id:
            await plan_admin_assignment(db, row, row.admin_id, plan)
    return row, await plan.commit(db)


async def assign_admin(
    db: AsyncSession, row: Union[District, Sector, Cell], user_id: Optional[str], updated_by: Optional[str] = None
) -> List[Dict[str, Any]]:
    plan = CascadePlan()
    await plan_admin_assignment(db, row, user_id, plan)
    plan.set(row, "audit", updated_by=updated_by, updated_dt=now_local())
    return await plan.commit(db)


async def assign_leader(
    db: AsyncSession, group: IntoreGroup, user_id: Optional[str], updated_by: Optional[str] = None
) -> List[Dict[str, Any]]:
    plan = CascadePlan()
    await plan_leader_assignment(db, group, user_id, plan)
    plan.set(group, "audit", updated_by=updated_by, updated_dt=now_local())
    return await plan.commit(db)


async def deactivate_node(db: AsyncSession, row: Node, updated_by: Optional[str] = None) -> Node:
    """Soft delete: flag the node inactive; refused while it has active children."""
    if await _has_children(db, row, active_only=True):
        raise ConflictError(
            f"Cannot deactivate {row.name}: it still has active children",
        )
    row.status = "inactive"
    row.updated_by = updated_by
    row.updated_dt = now_local()
    await db.commit()
    await db.refresh(row)
    return row
