# src/itorero/utils/hierarchy.py
"""
Hierarchy chain derivation and the admin/leader role cascade.

A write that touches the hierarchy builds a ``CascadePlan``: an ordered list
of intended attribute changes on ORM rows. Planning only reads; nothing is
mutated until ``CascadePlan.commit`` validates the whole plan, applies it
and commits once. Any failure rolls the session back.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from src.itorero.models.user import User
from src.itorero.models.org import Cell, District, IntoreGroup, Sector
from src.itorero.utils.exceptions import DanglingReferenceError, HierarchyError

logger = logging.getLogger(__name__)

AdminNode = Union[District, Sector, Cell]

ROLE_FOR_NODE: Dict[Type[Any], str] = {
    District: "district_admin",
    Sector: "sector_admin",
    Cell: "cell_admin",
}


# ---------------------------------------------------------------------
# Chain derivation
# ---------------------------------------------------------------------
def _agree(label: str, explicit: Optional[str], derived: Optional[str]) -> None:
    if explicit and derived and explicit != derived:
        raise HierarchyError(
            f"{label} does not match the parent chain",
            errors=[f"{label} '{explicit}' does not match '{derived}' derived from the parent."],
        )


async def load_district(db: AsyncSession, district_id: Optional[str]) -> District:
    district = await db.get(District, district_id) if district_id else None
    if district is None:
        raise DanglingReferenceError("District not found")
    return district


async def load_sector(db: AsyncSession, sector_id: Optional[str]) -> Sector:
    sector = await db.get(Sector, sector_id) if sector_id else None
    if sector is None:
        raise DanglingReferenceError("Sector not found")
    return sector


async def load_cell(db: AsyncSession, cell_id: Optional[str]) -> Cell:
    cell = await db.get(Cell, cell_id) if cell_id else None
    if cell is None:
        raise DanglingReferenceError("Cell not found")
    return cell


async def load_group(db: AsyncSession, group_id: Optional[str]) -> IntoreGroup:
    group = await db.get(IntoreGroup, group_id) if group_id else None
    if group is None:
        raise DanglingReferenceError("Intore group not found")
    return group


async def load_user(db: AsyncSession, user_id: Optional[str]) -> User:
    user = await db.get(User, user_id) if user_id else None
    if user is None:
        raise DanglingReferenceError("User not found")
    return user


async def derive_cell_chain(
    db: AsyncSession, sector_id: Optional[str], district_id: Optional[str] = None
) -> Dict[str, str]:
    """District for a cell comes from its sector; an explicit one must agree."""
    sector = await load_sector(db, sector_id)
    _agree("District", district_id, sector.district_id)
    return {"district_id": sector.district_id, "sector_id": sector.id}


async def derive_group_chain(
    db: AsyncSession,
    cell_id: Optional[str],
    sector_id: Optional[str] = None,
    district_id: Optional[str] = None,
) -> Dict[str, str]:
    cell = await load_cell(db, cell_id)
    _agree("Sector", sector_id, cell.sector_id)
    _agree("District", district_id, cell.district_id)
    return {"district_id": cell.district_id, "sector_id": cell.sector_id, "cell_id": cell.id}


async def derive_scope(
    db: AsyncSession,
    *,
    district_id: Optional[str] = None,
    sector_id: Optional[str] = None,
    cell_id: Optional[str] = None,
    intore_group_id: Optional[str] = None,
) -> Dict[str, Optional[str]]:
    """Full scope for an operational record from its lowest given ref.

    Refs above the lowest one are derived; when also given they must agree.
    """
    scope: Dict[str, Optional[str]] = {
        "district_id": None, "sector_id": None, "cell_id": None, "intore_group_id": None,
    }

    if intore_group_id:
        group = await load_group(db, intore_group_id)
        _agree("Cell", cell_id, group.cell_id)
        _agree("Sector", sector_id, group.sector_id)
        _agree("District", district_id, group.district_id)
        scope.update(
            district_id=group.district_id, sector_id=group.sector_id,
            cell_id=group.cell_id, intore_group_id=group.id,
        )
    elif cell_id:
        scope.update(await derive_group_chain(db, cell_id, sector_id, district_id))
    elif sector_id:
        scope.update(await derive_cell_chain(db, sector_id, district_id))
    elif district_id:
        scope["district_id"] = (await load_district(db, district_id)).id

    return scope


def node_chain(node: AdminNode) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """The (district, sector, cell) hierarchy an admin of ``node`` carries."""
    if isinstance(node, District):
        return node.id, None, None
    if isinstance(node, Sector):
        return node.district_id, node.id, None
    return node.district_id, node.sector_id, node.id


# ---------------------------------------------------------------------
# Unit of work
# ---------------------------------------------------------------------
@dataclass
class Mutation:
    target: Any
    values: Dict[str, Any]
    reason: str


@dataclass
class CascadePlan:
    new_rows: List[Any] = field(default_factory=list)
    mutations: List[Mutation] = field(default_factory=list)

    def add(self, row: Any) -> Any:
        self.new_rows.append(row)
        return row

    def set(self, target: Any, reason: str, **values: Any) -> None:
        self.mutations.append(Mutation(target=target, values=values, reason=reason))

    def final_value(self, target: Any, attr: str) -> Any:
        """Value ``attr`` will have on ``target`` once the plan is applied."""
        value = getattr(target, attr)
        for m in self.mutations:
            if m.target is target and attr in m.values:
                value = m.values[attr]
        return value

    def validate(self) -> None:
        """Every user touched by the plan must end with a chain its role needs."""
        errors: List[str] = []
        seen = set()
        for m in self.mutations:
            user = m.target
            if not isinstance(user, User) or id(user) in seen:
                continue
            seen.add(id(user))
            role = self.final_value(user, "role")
            d = self.final_value(user, "district_id")
            s = self.final_value(user, "sector_id")
            c = self.final_value(user, "cell_id")
            if role == "district_admin" and not d:
                errors.append(f"User {user.id}: district admin without a district.")
            elif role == "sector_admin" and not (d and s):
                errors.append(f"User {user.id}: sector admin without a district and sector.")
            elif role in ("cell_admin", "member") and not (d and s and c):
                errors.append(f"User {user.id}: {role} without a full district/sector/cell chain.")
        if errors:
            raise HierarchyError("Role cascade would leave an incoherent hierarchy", errors=errors)

    def apply(self) -> List[Dict[str, Any]]:
        applied: List[Dict[str, Any]] = []
        for m in self.mutations:
            changed = {}
            for attr, value in m.values.items():
                old = getattr(m.target, attr)
                if old != value:
                    setattr(m.target, attr, value)
                    changed[attr] = {"from": old, "to": value}
            if changed:
                applied.append({
                    "type": m.target.__tablename__,
                    "id": m.target.id,
                    "reason": m.reason,
                    "changes": changed,
                })
        return applied

    async def commit(self, db: AsyncSession) -> List[Dict[str, Any]]:
        """Validate, apply and commit as one transaction; returns applied changes."""
        try:
            self.validate()
            for row in self.new_rows:
                db.add(row)
            applied = self.apply()
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        for row in self.new_rows:
            await db.refresh(row)
        if applied:
            logger.info("Cascade applied %d change(s): %s", len(applied), [a["reason"] for a in applied])
        return applied


# ---------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------
def _still_points_at(user: User, node: AdminNode) -> bool:
    return (
        user.role == ROLE_FOR_NODE[type(node)]
        and (user.district_id, user.sector_id, user.cell_id)[: _depth(node)] == node_chain(node)[: _depth(node)]
    )


def _depth(node: AdminNode) -> int:
    return {District: 1, Sector: 2, Cell: 3}[type(node)]


def _demoted_role(user: User) -> str:
    return "member" if (user.district_id and user.sector_id and user.cell_id) else "public"


async def plan_admin_assignment(
    db: AsyncSession,
    node: AdminNode,
    user_id: Optional[str],
    plan: CascadePlan,
) -> Optional[User]:
    """Plan ``node.admin = user_id`` and everything it implies.

    The assigned user gets the node's admin role and chain; a replaced admin
    whose role and chain still point at the node is demoted; any other node
    naming the user as admin is cleared.
    """
    previous_id = node.admin_id
    user = await load_user(db, user_id) if user_id else None

    if previous_id and previous_id != user_id:
        previous = await db.get(User, previous_id)
        if previous is not None and _still_points_at(previous, node):
            plan.set(
                previous, f"revoke {type(node).__tablename__} admin",
                role=_demoted_role(previous),
            )

    plan.set(node, "assign admin", admin_id=user_id)
    if user is None:
        return None

    for model in (District, Sector, Cell):
        others = await db.scalars(select(model).where(model.admin_id == user.id))
        for other in others:
            if other is not node:
                plan.set(other, "clear superseded admin", admin_id=None)

    district_id, sector_id, cell_id = node_chain(node)
    plan.set(
        user, f"{type(node).__tablename__} admin cascade",
        role=ROLE_FOR_NODE[type(node)],
        district_id=district_id,
        sector_id=sector_id,
        cell_id=cell_id,
    )
    return user


async def plan_leader_assignment(
    db: AsyncSession,
    group: IntoreGroup,
    user_id: Optional[str],
    plan: CascadePlan,
) -> Optional[User]:
    """Plan ``group.leader = user_id``; the leader's role is left unchanged.

    A leader already placed in a cell must belong to the group's cell. A
    replaced leader still pointing at the group is detached from it.
    """
    user = await load_user(db, user_id) if user_id else None
    if user is not None and user.cell_id and user.cell_id != group.cell_id:
        raise HierarchyError(
            "Leader must belong to the intore group's cell",
            errors=["Intore group does not belong to the specified cell."],
        )

    previous_id = group.leader_id
    if previous_id and previous_id != user_id:
        previous = await db.get(User, previous_id)
        if previous is not None and previous.intore_group_id == group.id:
            plan.set(previous, "revoke intore group leader", intore_group_id=None)

    plan.set(group, "assign leader", leader_id=user_id)
    if user is not None:
        plan.set(user, "intore group leader cascade", intore_group_id=group.id)
    return user


async def reconcile_admin_roles(db: AsyncSession) -> Dict[str, int]:
    """Recompute user role/chain fields from every node's admin/leader ref.

    Nodes are visited district, sector, cell, so a user still named admin of
    several nodes ends with the most specific one.
    """
    plan = CascadePlan()
    counts = {"districts": 0, "sectors": 0, "cells": 0, "intore_groups": 0}

    for model, key in ((District, "districts"), (Sector, "sectors"), (Cell, "cells")):
        rows = await db.scalars(select(model).where(model.admin_id.is_not(None)).order_by(model.created_dt))
        for node in rows:
            user = await db.get(User, node.admin_id)
            if user is None:
                logger.warning("Reconcile: %s %s names missing admin %s", key, node.id, node.admin_id)
                plan.set(node, "clear dangling admin", admin_id=None)
                continue
            district_id, sector_id, cell_id = node_chain(node)
            plan.set(
                user, f"reconcile {key}",
                role=ROLE_FOR_NODE[model],
                district_id=district_id,
                sector_id=sector_id,
                cell_id=cell_id,
            )
            counts[key] += 1

    groups = await db.scalars(select(IntoreGroup).where(IntoreGroup.leader_id.is_not(None)))
    for group in groups:
        user = await db.get(User, group.leader_id)
        if user is None:
            plan.set(group, "clear dangling leader", leader_id=None)
            continue
        plan.set(user, "reconcile intore_groups", intore_group_id=group.id)
        counts["intore_groups"] += 1

    applied = await plan.commit(db)
    counts["users_changed"] = len({a["id"] for a in applied if a["type"] == "users"})
    logger.info("Reconcile finished: %s", counts)
    return counts
