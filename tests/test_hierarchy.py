import pytest

from factories import make_tree, make_user
from src.itorero.crud import hierarchy as crud
from src.itorero.models.org import Cell, District
from src.itorero.models.user import User
from src.itorero.schemas.hierarchy import CellCreate, CellUpdate, DistrictCreate, SectorCreate
from src.itorero.utils.exceptions import (
    ConflictError,
    DanglingReferenceError,
    DuplicateKeyError,
    HierarchyError,
)
from src.itorero.utils.hierarchy import CascadePlan, derive_scope, reconcile_admin_roles


async def _fresh(db, *rows):
    for row in rows:
        await db.refresh(row)


async def test_cell_district_is_taken_from_its_sector(db):
    district, _ = await crud.create_district(db, DistrictCreate(name="Kigali", code="kgl"))
    sector, _ = await crud.create_sector(db, SectorCreate(name="Nyarugenge", code="NYA", district_id=district.id))

    cell, applied = await crud.create_cell(db, CellCreate(name="Cell One", code="C1", sector_id=sector.id))

    assert district.code == "KGL"
    assert cell.district_id == district.id
    assert cell.sector_id == sector.id
    assert applied == []


async def test_cell_with_a_contradicting_district_is_rejected(db):
    district, sector, _, _ = await make_tree(db)
    other, _ = await crud.create_district(db, DistrictCreate(name="Huye", code="HUY"))

    with pytest.raises(HierarchyError):
        await crud.create_cell(
            db, CellCreate(name="Cell Two", code="C2", sector_id=sector.id, district_id=other.id)
        )
    assert await crud.get_node_by_code(db, Cell, "C2", sector.id) is None


async def test_cell_under_missing_sector(db):
    with pytest.raises(DanglingReferenceError):
        await crud.create_cell(db, CellCreate(name="Lost", code="L1", sector_id="missing"))


async def test_duplicate_code_under_the_same_parent(db):
    _, sector, _, _ = await make_tree(db)
    with pytest.raises(DuplicateKeyError):
        await crud.create_cell(db, CellCreate(name="Another", code="c1", sector_id=sector.id))


async def test_cell_admin_receives_role_and_full_chain(db):
    district, sector, cell, _ = await make_tree(db)
    user = await make_user(db, "kamana")

    applied = await crud.assign_admin(db, cell, user.id)

    await _fresh(db, user)
    assert user.role == "cell_admin"
    assert (user.district_id, user.sector_id, user.cell_id) == (district.id, sector.id, cell.id)
    assert any(a["type"] == "users" and a["id"] == user.id for a in applied)


async def test_creating_a_node_with_an_admin_cascades(db):
    user = await make_user(db, "mutesi")
    district, applied = await crud.create_district(
        db, DistrictCreate(name="Musanze", code="MUS", admin_id=user.id)
    )
    await _fresh(db, user)
    assert district.admin_id == user.id
    assert user.role == "district_admin"
    assert user.district_id == district.id
    assert user.sector_id is None


async def test_reassigning_the_same_admin_changes_nothing(db):
    _, _, cell, _ = await make_tree(db)
    user = await make_user(db, "gatete")

    await crud.assign_admin(db, cell, user.id)
    again = await crud.assign_admin(db, cell, user.id)

    assert [a for a in again if a["type"] == "users"] == []


async def test_replaced_admin_is_demoted(db):
    _, _, cell, _ = await make_tree(db)
    first = await make_user(db, "first")
    second = await make_user(db, "second")

    await crud.assign_admin(db, cell, first.id)
    await crud.assign_admin(db, cell, second.id)

    await _fresh(db, first, second, cell)
    assert cell.admin_id == second.id
    assert second.role == "cell_admin"
    # keeps the full chain, so falls back to member
    assert first.role == "member"


async def test_admin_moving_to_a_new_node_leaves_the_old_one(db):
    district, _, cell, _ = await make_tree(db)
    user = await make_user(db, "mover")

    await crud.assign_admin(db, cell, user.id)
    await crud.assign_admin(db, district, user.id)

    await _fresh(db, cell, user)
    assert cell.admin_id is None
    assert user.role == "district_admin"
    assert (user.district_id, user.sector_id, user.cell_id) == (district.id, None, None)


async def test_leader_assignment_keeps_role(db):
    district, sector, cell, group = await make_tree(db)
    user = await make_user(
        db, "leader", role="member", district_id=district.id, sector_id=sector.id, cell_id=cell.id
    )

    await crud.assign_leader(db, group, user.id)

    await _fresh(db, user)
    assert user.intore_group_id == group.id
    assert user.role == "member"


async def test_leader_from_another_cell_is_rejected(db):
    district, sector, _, group = await make_tree(db)
    other, _ = await crud.create_cell(db, CellCreate(name="Cell Two", code="C2", sector_id=sector.id))
    user = await make_user(
        db, "stranger", role="member", district_id=district.id, sector_id=sector.id, cell_id=other.id
    )

    with pytest.raises(HierarchyError):
        await crud.assign_leader(db, group, user.id)

    await _fresh(db, group, user)
    assert group.leader_id is None
    assert user.intore_group_id is None


async def test_replaced_leader_leaves_the_group(db):
    district, sector, cell, group = await make_tree(db)
    chain = dict(district_id=district.id, sector_id=sector.id, cell_id=cell.id)
    first = await make_user(db, "first", role="member", **chain)
    second = await make_user(db, "second", role="member", **chain)

    await crud.assign_leader(db, group, first.id)
    applied = await crud.assign_leader(db, group, second.id)

    await _fresh(db, group, first, second)
    assert group.leader_id == second.id
    assert first.intore_group_id is None
    assert second.intore_group_id == group.id
    assert any(a["id"] == first.id and a["reason"] == "revoke intore group leader" for a in applied)


async def test_incoherent_plan_is_rolled_back(db):
    district, _, _, _ = await make_tree(db)
    user = await make_user(db, "orphan")

    plan = CascadePlan()
    plan.set(district, "rename", name="Renamed")
    plan.set(user, "broken", role="sector_admin", district_id=district.id, sector_id=None)
    with pytest.raises(HierarchyError):
        await plan.commit(db)

    await _fresh(db, district, user)
    assert district.name == "Kigali"
    assert user.role == "public"


async def test_moving_a_cell_with_dependents_is_refused(db):
    district, sector, cell, _ = await make_tree(db)
    other, _ = await crud.create_sector(db, SectorCreate(name="Gasabo", code="GAS", district_id=district.id))

    with pytest.raises(HierarchyError):
        await crud.update_node(db, cell, CellUpdate(sector_id=other.id))


async def test_moving_an_empty_cell_re_cascades_its_admin(db):
    district, sector, _, _ = await make_tree(db)
    cell, _ = await crud.create_cell(db, CellCreate(name="Empty", code="E1", sector_id=sector.id))
    other, _ = await crud.create_sector(db, SectorCreate(name="Gasabo", code="GAS", district_id=district.id))
    admin = await make_user(db, "admin")
    await crud.assign_admin(db, cell, admin.id)

    cell, applied = await crud.update_node(db, cell, CellUpdate(sector_id=other.id))

    await _fresh(db, admin)
    assert cell.sector_id == other.id
    assert admin.sector_id == other.id
    assert any(a["type"] == "users" for a in applied)


async def test_deactivate_refused_while_children_are_active(db):
    district, _, _, _ = await make_tree(db)
    with pytest.raises(ConflictError):
        await crud.deactivate_node(db, district)


async def test_deactivate_leaf(db):
    _, _, _, group = await make_tree(db)
    group = await crud.deactivate_node(db, group)
    assert group.status == "inactive"


async def test_scope_is_derived_from_the_lowest_ref(db):
    district, sector, cell, group = await make_tree(db)

    scope = await derive_scope(db, intore_group_id=group.id)
    assert scope == {
        "district_id": district.id, "sector_id": sector.id, "cell_id": cell.id, "intore_group_id": group.id,
    }
    with pytest.raises(HierarchyError):
        await derive_scope(db, cell_id=cell.id, district_id="elsewhere")


async def test_reconcile_repairs_drifted_users(db):
    district, sector, cell, _ = await make_tree(db)
    user = await make_user(db, "drifted")
    await crud.assign_admin(db, cell, user.id)

    await _fresh(db, user)
    user.role = "public"
    user.cell_id = None
    await db.commit()

    counts = await reconcile_admin_roles(db)

    await _fresh(db, user)
    assert counts["cells"] == 1
    assert counts["users_changed"] == 1
    assert user.role == "cell_admin"
    assert user.cell_id == cell.id
