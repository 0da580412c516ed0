import asyncio

from sqlalchemy import select

from factories import PASSWORD, auth_header, make_tree, make_user
from src.itorero.models.audit_log import AuditLog
from src.itorero.models.user import User


def _seed(session_factory, fn):
    async def _run():
        async with session_factory() as s:
            return await fn(s)

    return asyncio.run(_run())


def _register_payload(**overrides):
    payload = {
        "username": "uwase",
        "email": "Uwase@Example.rw",
        "password": PASSWORD,
        "first_name": "Uwase",
        "last_name": "Aline",
        "phone_number": "+250788111222",
        "role": "public",
    }
    payload.update(overrides)
    return payload


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["database"] == "up"
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_unknown_route_uses_the_error_envelope(client):
    resp = client.get("/api/nothing-here")
    assert resp.status_code == 404
    assert resp.json() == {
        "success": False,
        "message": "Route not found",
        "error_type": "HTTPException",
        "status_code": 404,
    }


def test_register_then_me(client):
    resp = client.post("/api/auth/register", json=_register_payload())
    assert resp.status_code == 201, resp.text
    data = resp.json()["data"]
    assert data["user"]["email"] == "uwase@example.rw"
    assert data["user"]["role"] == "public"

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
    assert me.status_code == 200
    assert me.json()["data"]["username"] == "uwase"


def test_member_registration_needs_a_coherent_chain(client, session_factory):
    district, sector, cell, _ = _seed(session_factory, make_tree)

    resp = client.post("/api/auth/register", json=_register_payload(role="member", district_id=district.id))
    assert resp.status_code == 400
    assert "Member must be assigned to a district, sector, and cell." in resp.json()["errors"]

    resp = client.post(
        "/api/auth/register",
        json=_register_payload(role="member", district_id=district.id, sector_id=sector.id, cell_id=cell.id),
    )
    assert resp.status_code == 201, resp.text


def test_duplicate_registration_is_refused(client):
    assert client.post("/api/auth/register", json=_register_payload()).status_code == 201
    resp = client.post("/api/auth/register", json=_register_payload(username="other"))
    assert resp.status_code in (400, 409)
    assert resp.json()["success"] is False


def test_self_registration_cannot_pick_an_admin_role(client):
    resp = client.post("/api/auth/register", json=_register_payload(role="super_admin"))
    assert resp.status_code == 422


def test_login_by_username_or_email_is_audited(client, session_factory):
    user = _seed(session_factory, lambda s: make_user(s, "keza"))

    assert client.post("/api/auth/login", json={"identifier": "KEZA", "password": PASSWORD}).status_code == 200
    assert client.post(
        "/api/auth/login", json={"identifier": "keza@example.rw", "password": PASSWORD}
    ).status_code == 200

    async def _logins(s):
        return list(await s.scalars(
            select(AuditLog).where(AuditLog.performed_by == user.id, AuditLog.action == "LOGIN")
        ))

    assert len(_seed(session_factory, _logins)) == 2


def test_lockout_after_repeated_failures(client, session_factory):
    user = _seed(session_factory, lambda s: make_user(s, "locked"))
    bad = {"identifier": "locked", "password": "Wrong#123"}

    codes = [client.post("/api/auth/login", json=bad).status_code for _ in range(5)]
    assert codes == [401] * 5

    resp = client.post("/api/auth/login", json={"identifier": "locked", "password": PASSWORD})
    assert resp.status_code == 423
    assert resp.json()["error_type"] == "AccountLockedError"

    reloaded = _seed(session_factory, lambda s: s.get(User, user.id))
    assert reloaded.login_attempts == 5
    assert reloaded.lock_until is not None


def test_suspended_user_is_refused(client, session_factory):
    _seed(session_factory, lambda s: make_user(s, "benched", status="suspended"))
    resp = client.post("/api/auth/login", json={"identifier": "benched", "password": PASSWORD})
    assert resp.status_code == 403


def test_refresh_rotates_and_logout_revokes(client, session_factory):
    _seed(session_factory, lambda s: make_user(s, "rotor"))
    login = client.post("/api/auth/login", json={"identifier": "rotor", "password": PASSWORD}).json()["data"]

    first = client.post("/api/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert first.status_code == 200
    # the old token was consumed by the rotation
    replay = client.post("/api/auth/refresh", json={"refresh_token": login["refresh_token"]})
    assert replay.status_code == 401

    new_refresh = first.json()["data"]["refresh_token"]
    headers = {"Authorization": f"Bearer {first.json()['data']['access_token']}"}
    assert client.post("/api/auth/logout", json={"refresh_token": new_refresh}, headers=headers).status_code == 200
    assert client.post("/api/auth/refresh", json={"refresh_token": new_refresh}).status_code == 401


def test_protected_route_without_token(client):
    resp = client.get("/api/auth/me")
    assert resp.status_code == 401
    assert resp.json()["message"] == "Access denied. No token provided."


def test_change_password(client, session_factory):
    _seed(session_factory, lambda s: make_user(s, "changer"))
    headers = auth_header(client, "changer")

    resp = client.put(
        "/api/auth/change-password",
        json={"current_password": PASSWORD, "new_password": "Newer#456"},
        headers=headers,
    )
    assert resp.status_code == 200, resp.text
    assert client.post(
        "/api/auth/login", json={"identifier": "changer", "password": "Newer#456"}
    ).status_code == 200
