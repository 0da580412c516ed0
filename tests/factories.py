"""Row builders shared by the test modules."""

from src.itorero.models.org import Cell, District, IntoreGroup, Sector
from src.itorero.models.user import User
from src.itorero.utils.security import hash_password

PASSWORD = "Secret#123"


async def make_user(db, username, role="public", status="active", **chain):
    user = User(
        username=username,
        email=f"{username}@example.rw",
        password=hash_password(PASSWORD),
        first_name=username.title(),
        last_name="Test",
        phone_number="+250788000000",
        role=role,
        status=status,
        **chain,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


async def make_tree(db):
    """District KGL > sector NYA > cell C1 > intore group G1."""
    district = District(name="Kigali", code="KGL", status="active")
    db.add(district)
    await db.flush()
    sector = Sector(name="Nyarugenge", code="NYA", district_id=district.id, status="active")
    db.add(sector)
    await db.flush()
    cell = Cell(name="Cell One", code="C1", sector_id=sector.id, district_id=district.id, status="active")
    db.add(cell)
    await db.flush()
    group = IntoreGroup(
        name="Group One", code="G1", type="dance", cell_id=cell.id,
        sector_id=sector.id, district_id=district.id, status="active",
    )
    db.add(group)
    await db.commit()
    return district, sector, cell, group


def auth_header(client, identifier, password=PASSWORD):
    resp = client.post("/api/auth/login", json={"identifier": identifier, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['data']['access_token']}"}
