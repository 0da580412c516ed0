import asyncio

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import select

from src.itorero.models.audit_log import AuditLog, AuditLogImmutableError
from src.itorero.utils import audit
from src.itorero.utils.error_handler import register_exception_handlers


async def test_changes_are_computed_from_snapshots(db):
    entry = await audit.log_action(
        db, "UPDATE", "district", "d1", "u1",
        before={"name": "Kigali", "population": 10, "updated_dt": "x"},
        after={"name": "Kigali City", "population": 10, "updated_dt": "y"},
    )
    assert entry.changes == {"name": {"from": "Kigali", "to": "Kigali City"}}
    assert entry.severity == "info"


async def test_unknown_severity_is_refused(db):
    with pytest.raises(ValueError):
        await audit.log_action(db, "UPDATE", "district", "d1", "u1", severity="loud")


async def test_records_are_append_only(db):
    entry = await audit.log_action(db, "CREATE", "cell", "c1", "u1")
    entry.description = "rewritten"
    with pytest.raises(AuditLogImmutableError):
        await db.commit()
    await db.rollback()

    await db.delete(entry)
    with pytest.raises(AuditLogImmutableError):
        await db.commit()


async def test_record_action_swallows_write_failures(db, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(audit, "log_action", broken)
    assert await audit.record_action(db, None, "u1", "UPDATE", "cell", "c1") is None


async def test_critical_record_action_raises(db, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(audit, "log_action", broken)
    with pytest.raises(RuntimeError):
        await audit.record_action(db, None, "u1", "DELETE", "cell", "c1", critical=True)


async def test_summary_counts_per_action(db):
    for action in ("LOGIN", "LOGIN", "UPDATE"):
        await audit.log_action(db, action, "user", "u1", "u1")

    summary = await audit.action_summary(db, performed_by="u1")

    assert [(s["action"], s["count"]) for s in summary] == [("LOGIN", 2), ("UPDATE", 1)]


def _failing_app(session_factory):
    app = FastAPI()
    app.state.session_factory = session_factory
    register_exception_handlers(app)

    @app.get("/explode")
    async def explode():
        raise RuntimeError("kaboom")

    return app


def test_unhandled_error_is_recorded(session_factory):
    client = TestClient(_failing_app(session_factory), raise_server_exceptions=False)

    resp = client.get("/explode")

    assert resp.status_code == 500
    assert resp.json()["success"] is False
    assert resp.json()["error_type"] == "RuntimeError"

    async def _errors():
        async with session_factory() as s:
            return list(await s.scalars(select(AuditLog).where(AuditLog.action == "ERROR")))

    rows = asyncio.run(_errors())
    assert len(rows) == 1
    assert rows[0].metadata_json["error"] == "kaboom"


def test_audit_failure_does_not_mask_the_original_error(session_factory, monkeypatch):
    async def broken(*args, **kwargs):
        raise RuntimeError("audit store down")

    monkeypatch.setattr(audit, "log_action", broken)
    client = TestClient(_failing_app(session_factory), raise_server_exceptions=False)

    resp = client.get("/explode")

    assert resp.status_code == 500
    assert resp.json()["message"] == "Internal Server Error. Please try again later."
    assert resp.json()["error_type"] == "RuntimeError"
