import asyncio

from factories import PASSWORD, auth_header, make_tree, make_user


def _seed(session_factory, fn):
    async def _run():
        async with session_factory() as s:
            return await fn(s)

    return asyncio.run(_run())


def _new_user(username, **extra):
    body = {
        "username": username,
        "email": f"{username}@example.rw",
        "password": PASSWORD,
        "first_name": username.title(),
        "last_name": "Test",
        "phone_number": "0788123456",
    }
    body.update(extra)
    return body


def test_only_a_super_admin_grants_admin_roles(client, session_factory):
    district, sector, cell, _ = _seed(session_factory, make_tree)
    _seed(session_factory, lambda s: make_user(s, "root", role="super_admin"))
    _seed(session_factory, lambda s: make_user(s, "dadmin", role="district_admin", district_id=district.id))
    root = auth_header(client, "root")
    dadmin = auth_header(client, "dadmin")

    denied = client.post(
        "/api/users",
        json=_new_user("csec", role="sector_admin", district_id=district.id, sector_id=sector.id),
        headers=dadmin,
    )
    assert denied.status_code == 403

    member = client.post(
        "/api/users",
        json=_new_user("umwe", role="member", district_id=district.id, sector_id=sector.id, cell_id=cell.id),
        headers=dadmin,
    )
    assert member.status_code == 201, member.text
    assert member.json()["data"]["status"] == "active"
    assert "password" not in member.json()["data"]

    granted = client.post(
        "/api/users",
        json=_new_user("csec", role="sector_admin", district_id=district.id, sector_id=sector.id),
        headers=root,
    )
    assert granted.status_code == 201, granted.text


def test_validation_errors_are_listed(client, session_factory):
    _seed(session_factory, lambda s: make_user(s, "root", role="super_admin"))
    root = auth_header(client, "root")

    resp = client.post(
        "/api/users",
        json=_new_user("x!", password="weak", phone_number="123", role="cell_admin"),
        headers=root,
    )

    body = resp.json()
    assert resp.status_code == 400
    assert body["error_type"] == "ValidationFailedError"
    assert "Invalid phone number." in body["errors"]
    assert "Cell admin must be assigned to a district, sector, and cell." in body["errors"]
    assert len(body["errors"]) >= 4


def test_members_only_see_themselves(client, session_factory):
    district, sector, cell, _ = _seed(session_factory, make_tree)
    chain = dict(district_id=district.id, sector_id=sector.id, cell_id=cell.id)
    me = _seed(session_factory, lambda s: make_user(s, "me", role="member", **chain))
    other = _seed(session_factory, lambda s: make_user(s, "other", role="member", **chain))
    headers = auth_header(client, "me")

    assert client.get(f"/api/users/{me.id}", headers=headers).status_code == 200
    assert client.get(f"/api/users/{other.id}", headers=headers).status_code == 403
    assert client.get("/api/users", headers=headers).status_code == 403

    own = client.put(f"/api/users/{me.id}", json={"first_name": "Renamed"}, headers=headers)
    assert own.status_code == 200
    assert own.json()["data"]["first_name"] == "Renamed"

    escalate = client.put(f"/api/users/{me.id}", json={"role": "super_admin"}, headers=headers)
    assert escalate.status_code == 403


def test_suspending_a_user_blocks_their_token(client, session_factory):
    _seed(session_factory, lambda s: make_user(s, "root", role="super_admin"))
    target = _seed(session_factory, lambda s: make_user(s, "target"))
    root = auth_header(client, "root")
    target_headers = auth_header(client, "target")

    resp = client.patch(f"/api/users/{target.id}/status", json={"status": "suspended"}, headers=root)
    assert resp.status_code == 200

    assert client.get("/api/auth/me", headers=target_headers).status_code == 403
