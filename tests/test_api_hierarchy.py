import asyncio

import pytest

from factories import auth_header, make_tree, make_user
from src.itorero.models.org import Cell, Sector
from src.itorero.models.user import User


def _seed(session_factory, fn):
    async def _run():
        async with session_factory() as s:
            return await fn(s)

    return asyncio.run(_run())


@pytest.fixture
def root(client, session_factory):
    _seed(session_factory, lambda s: make_user(s, "root", role="super_admin"))
    return auth_header(client, "root")


def _create(client, headers, path, **body):
    resp = client.post(path, json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


def test_build_a_tree_top_down(client, root):
    district = _create(client, root, "/api/districts", name="Kigali", code="kgl")
    sector = _create(client, root, "/api/sectors", name="Nyarugenge", code="NYA", district_id=district["id"])
    cell = _create(client, root, "/api/cells", name="Cell One", code="C1", sector_id=sector["id"])
    group = _create(client, root, "/api/intore-groups", name="Abatarutwa", code="G1", type="dance", cell_id=cell["id"])

    assert district["code"] == "KGL"
    assert cell["district_id"] == district["id"]
    assert group["sector_id"] == sector["id"]
    assert group["district_id"] == district["id"]

    detail = client.get(f"/api/districts/{district['id']}", headers=root).json()["data"]
    assert detail["counts"]["sectors"] == 1
    assert detail["counts"]["cells"] == 1

    by_code = client.get("/api/cells/code/c1", params={"parent_id": sector["id"]}, headers=root)
    assert by_code.status_code == 200
    assert by_code.json()["data"]["id"] == cell["id"]

    listed = client.get("/api/cells", params={"sector_id": sector["id"]}, headers=root).json()
    assert listed["pagination"]["total"] == 1


def test_cell_with_mismatched_district_is_rejected(client, root, session_factory):
    _, sector, _, _ = _seed(session_factory, make_tree)
    other = _create(client, root, "/api/districts", name="Huye", code="HUY")

    resp = client.post(
        "/api/cells",
        json={"name": "Wrong", "code": "W1", "sector_id": sector.id, "district_id": other["id"]},
        headers=root,
    )
    assert resp.status_code == 400
    assert resp.json()["error_type"] == "HierarchyError"


def test_missing_parent_is_404(client, root):
    resp = client.post("/api/sectors", json={"name": "Ghost", "code": "GH", "district_id": "nope"}, headers=root)
    assert resp.status_code == 404
    assert resp.json()["message"] == "District not found"


def test_assigning_a_cell_admin_cascades_to_the_user(client, root, session_factory):
    district, sector, cell, _ = _seed(session_factory, make_tree)
    user = _seed(session_factory, lambda s: make_user(s, "mugisha"))

    resp = client.put(f"/api/cells/{cell.id}/admin", json={"user_id": user.id}, headers=root)

    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["data"]["admin_id"] == user.id
    assert any(c["type"] == "users" and c["id"] == user.id for c in body["cascade"])

    reloaded = _seed(session_factory, lambda s: s.get(User, user.id))
    assert reloaded.role == "cell_admin"
    assert (reloaded.district_id, reloaded.sector_id, reloaded.cell_id) == (district.id, sector.id, cell.id)

    trail = client.get(f"/api/audit/resource/cell/{cell.id}", headers=root).json()
    assert trail["data"][0]["action"] == "ASSIGN_ADMIN"
    assert trail["data"][0]["metadata"]["cascade"]


def test_members_cannot_manage_the_hierarchy(client, session_factory):
    district, sector, cell, _ = _seed(session_factory, make_tree)
    _seed(
        session_factory,
        lambda s: make_user(s, "plain", role="member", district_id=district.id, sector_id=sector.id, cell_id=cell.id),
    )
    headers = auth_header(client, "plain")

    resp = client.post("/api/districts", json={"name": "Rubavu", "code": "RBV"}, headers=headers)
    assert resp.status_code == 403


def test_district_admin_is_confined_to_its_district(client, root, session_factory):
    district, sector, _, _ = _seed(session_factory, make_tree)
    other = _create(client, root, "/api/districts", name="Huye", code="HUY")
    _seed(session_factory, lambda s: make_user(s, "dadmin", role="district_admin", district_id=district.id))
    headers = auth_header(client, "dadmin")

    own = client.post("/api/sectors", json={"name": "Gasabo", "code": "GAS", "district_id": district.id}, headers=headers)
    assert own.status_code == 201

    foreign = client.post("/api/sectors", json={"name": "Ngoma", "code": "NGO", "district_id": other["id"]}, headers=headers)
    assert foreign.status_code == 403

    districts = client.post("/api/districts", json={"name": "Rusizi", "code": "RSZ"}, headers=headers)
    assert districts.status_code == 403

    moved = client.put(f"/api/sectors/{sector.id}", json={"district_id": other["id"]}, headers=headers)
    assert moved.status_code == 403


def test_deactivating_a_parent_with_active_children_conflicts(client, root, session_factory):
    district, _, _, group = _seed(session_factory, make_tree)

    assert client.delete(f"/api/districts/{district.id}", headers=root).status_code == 409

    resp = client.delete(f"/api/intore-groups/{group.id}", headers=root)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "inactive"


def test_duplicate_district_code(client, root):
    _create(client, root, "/api/districts", name="Kigali", code="KGL")
    resp = client.post("/api/districts", json={"name": "Kigali Two", "code": "kgl"}, headers=root)
    assert resp.status_code == 409


async def _member_of_another_sector(s, district):
    sector = Sector(name="Gasabo", code="GAS", district_id=district.id, status="active")
    s.add(sector)
    await s.flush()
    cell = Cell(name="Cell Two", code="C2", sector_id=sector.id, district_id=district.id, status="active")
    s.add(cell)
    await s.commit()
    return await make_user(s, "outsider", role="member", district_id=district.id, sector_id=sector.id, cell_id=cell.id)


def test_sector_admin_only_assigns_users_of_its_sector(client, session_factory):
    district, sector, cell, _ = _seed(session_factory, make_tree)
    chain = dict(district_id=district.id, sector_id=sector.id)
    boss = _seed(session_factory, lambda s: make_user(s, "boss", role="super_admin"))
    outsider = _seed(session_factory, lambda s: _member_of_another_sector(s, district))
    local = _seed(session_factory, lambda s: make_user(s, "local", role="member", cell_id=cell.id, **chain))
    _seed(session_factory, lambda s: make_user(s, "sadmin", role="sector_admin", **chain))
    headers = auth_header(client, "sadmin")

    for target in (boss, outsider):
        resp = client.put(f"/api/cells/{cell.id}/admin", json={"user_id": target.id}, headers=headers)
        assert resp.status_code == 403, resp.text

    reloaded = _seed(session_factory, lambda s: s.get(User, boss.id))
    assert reloaded.role == "super_admin"
    created = client.post(
        "/api/cells", json={"name": "Cell Three", "code": "C3", "sector_id": sector.id, "admin_id": boss.id},
        headers=headers,
    )
    assert created.status_code == 403

    resp = client.put(f"/api/cells/{cell.id}/admin", json={"user_id": local.id}, headers=headers)
    assert resp.status_code == 200, resp.text
    assert _seed(session_factory, lambda s: s.get(User, local.id)).role == "cell_admin"


def test_leader_from_another_cell_is_rejected_over_the_api(client, root, session_factory):
    district, _, _, group = _seed(session_factory, make_tree)
    outsider = _seed(session_factory, lambda s: _member_of_another_sector(s, district))

    resp = client.put(f"/api/intore-groups/{group.id}/leader", json={"user_id": outsider.id}, headers=root)

    assert resp.status_code == 400
    assert resp.json()["error_type"] == "HierarchyError"
