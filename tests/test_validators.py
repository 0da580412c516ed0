import pytest

from factories import make_tree
from src.itorero.utils.validators import (
    validate_activity,
    validate_attendance,
    validate_hierarchy,
    validate_parent_chain,
    validate_password,
    validate_phone_number,
)


async def test_roles_without_a_chain_always_pass(db):
    for role in ("super_admin", "public"):
        result = await validate_hierarchy(db, role, None, None, None)
        assert result.is_valid
        assert result.errors == []


@pytest.mark.parametrize(
    "role, fields, message",
    [
        ("district_admin", (), "District admin must be assigned to a district."),
        ("sector_admin", ("district",), "Sector admin must be assigned to a district and sector."),
        ("cell_admin", ("district", "sector"), "Cell admin must be assigned to a district, sector, and cell."),
        ("member", ("district", "sector"), "Member must be assigned to a district, sector, and cell."),
    ],
)
async def test_missing_refs_for_role(db, role, fields, message):
    district, sector, cell, _ = await make_tree(db)
    ids = {"district": district.id, "sector": sector.id, "cell": cell.id}
    chain = [ids[f] if f in fields else None for f in ("district", "sector", "cell")]

    result = await validate_hierarchy(db, role, *chain)

    assert not result.is_valid
    assert result.errors == [message]


@pytest.mark.parametrize("role", ["district_admin", "sector_admin", "cell_admin", "member"])
async def test_coherent_chain_is_valid(db, role):
    district, sector, cell, _ = await make_tree(db)
    result = await validate_hierarchy(db, role, district.id, sector.id, cell.id)
    assert result.is_valid


async def test_unknown_district_is_rejected(db):
    result = await validate_hierarchy(db, "district_admin", "no-such-district", None, None)
    assert result.errors == ["Invalid district ID."]


async def test_sector_from_another_district_is_rejected(db):
    _, sector, cell, _ = await make_tree(db)
    result = await validate_hierarchy(db, "sector_admin", "other-district", sector.id, None)
    assert result.errors == ["Invalid sector or sector does not belong to the specified district."]

    result = await validate_hierarchy(db, "member", "other-district", sector.id, cell.id)
    assert result.errors == ["Invalid cell or cell does not belong to the specified sector and district."]


async def test_unknown_role(db):
    result = await validate_hierarchy(db, "chief", None, None, None)
    assert not result.is_valid


async def test_parent_chain_collects_every_mismatch(db):
    district, sector, cell, group = await make_tree(db)

    assert (await validate_parent_chain(db, district.id, sector.id, cell.id, group.id)).is_valid

    result = await validate_parent_chain(db, district_id="nowhere", sector_id=sector.id, cell_id=cell.id)
    assert "Cell does not belong to the specified district." in result.errors
    assert "Sector does not belong to the specified district." in result.errors
    assert "Invalid district ID." in result.errors


def test_password_rules():
    assert validate_password("Secret#123").is_valid
    errors = validate_password("abc").errors
    assert "Password must be at least 6 characters long." in errors
    assert "Password must contain at least one uppercase letter." in errors
    assert "Password must contain at least one number." in errors
    assert "Password must contain at least one special character." in errors


def test_phone_numbers():
    assert validate_phone_number("+250 788 123 456")
    assert validate_phone_number("0788123456")
    assert not validate_phone_number("12345")
    assert not validate_phone_number("")


def test_activity_reports_all_errors_at_once():
    result = validate_activity({"title": "abc", "start_time": "25:00", "end_time": "10:00"})
    assert not result.is_valid
    assert len(result.errors) >= 6
    assert "Invalid time format. Use HH:MM format." in result.errors


def test_attendance_status_must_be_known():
    result = validate_attendance({"user_id": "u", "activity_id": "a", "status": "asleep"})
    assert result.errors == ["Invalid attendance status."]
