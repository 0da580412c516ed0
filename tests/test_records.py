from datetime import date, timedelta

import pytest

from factories import make_tree, make_user
from src.itorero.crud import activities, attendance, chat, cultural_content, media, notifications, reports
from src.itorero.models.org import Cell
from src.itorero.schemas.activity import ActivityCreate, ActivityUpdate
from src.itorero.schemas.attendance import AttendanceMark, AttendanceUpdate
from src.itorero.schemas.chat import ChatGroupCreate
from src.itorero.schemas.cultural_content import ContentCreate, ContentUpdate
from src.itorero.schemas.media import MediaApproval, MediaCreate
from src.itorero.schemas.notification import NotificationCreate
from src.itorero.schemas.report import ReportCreate
from src.itorero.utils.exceptions import (
    ConflictError,
    DanglingReferenceError,
    HierarchyError,
    ValidationFailedError,
)
from src.itorero.utils.timezone import today_local


def _activity(cell_id, **overrides):
    values = dict(
        title="Umuganda cleanup",
        description="Monthly community work in the cell.",
        type="community_service",
        date=today_local() + timedelta(days=3),
        start_time="08:00",
        end_time="11:00",
        location_name="Cell office",
        cell_id=cell_id,
        max_attendees=1,
        status="published",
    )
    values.update(overrides)
    return ActivityCreate(**values)


async def test_activity_scope_comes_from_its_cell(db):
    district, sector, cell, _ = await make_tree(db)
    organizer = await make_user(db, "organizer", role="cell_admin")

    row = await activities.create_activity(db, _activity(cell.id), created_by=organizer.id)

    assert (row.district_id, row.sector_id, row.cell_id) == (district.id, sector.id, cell.id)
    assert row.organizer_id == organizer.id


async def test_activity_errors_are_reported_together(db):
    _, _, cell, _ = await make_tree(db)
    organizer = await make_user(db, "organizer")

    with pytest.raises(ValidationFailedError) as info:
        await activities.create_activity(
            db, _activity(cell.id, title="Hi", date=date(2000, 1, 1)), created_by=organizer.id
        )
    assert "Activity title must be at least 5 characters long." in info.value.errors
    assert "Activity date cannot be in the past." in info.value.errors

    with pytest.raises(ValidationFailedError) as info:
        await activities.create_activity(
            db, _activity(cell.id, start_time="9:00", end_time="8:30"), created_by=organizer.id
        )
    assert info.value.errors == ["End time must be after start time."]


async def test_activity_group_must_sit_in_the_given_cell(db):
    district, sector, _, group = await make_tree(db)
    organizer = await make_user(db, "organizer")
    other = Cell(name="Cell Two", code="C2", sector_id=sector.id, district_id=district.id, status="active")
    db.add(other)
    await db.commit()

    with pytest.raises(HierarchyError):
        await activities.create_activity(
            db, _activity(other.id, intore_group_id=group.id), created_by=organizer.id
        )


async def test_registration_over_capacity_is_waitlisted(db):
    _, _, cell, _ = await make_tree(db)
    organizer = await make_user(db, "organizer")
    a = await make_user(db, "alpha")
    b = await make_user(db, "bravo")
    row = await activities.create_activity(db, _activity(cell.id), created_by=organizer.id)

    first = await activities.register_attendee(db, row, a.id)
    second = await activities.register_attendee(db, row, b.id)

    assert first.status == "pending"
    assert second.status == "waitlist"
    with pytest.raises(ConflictError):
        await activities.register_attendee(db, row, a.id)


async def test_update_keeps_an_untouched_past_date(db):
    _, _, cell, _ = await make_tree(db)
    organizer = await make_user(db, "organizer")
    row = await activities.create_activity(db, _activity(cell.id), created_by=organizer.id)
    row.date = date(2000, 1, 1)
    await db.commit()

    row = await activities.update_activity(db, row, ActivityUpdate(location_name="Stadium"), organizer.id)
    assert row.location_name == "Stadium"

    with pytest.raises(ValidationFailedError):
        await activities.update_activity(db, row, ActivityUpdate(date=date(2001, 1, 1)), organizer.id)


async def test_attendance_marking_and_stats(db):
    district, _, cell, _ = await make_tree(db)
    organizer = await make_user(db, "organizer")
    users = [await make_user(db, f"member{i}") for i in range(4)]
    row = await activities.create_activity(db, _activity(cell.id), created_by=organizer.id)

    with pytest.raises(ValidationFailedError):
        await attendance.mark_attendance(
            db, AttendanceMark(user_id=users[0].id, activity_id=row.id, status="absent")
        )

    for user, status in zip(users, ("present", "late", "absent", "present")):
        await attendance.mark_attendance(
            db, AttendanceMark(user_id=user.id, activity_id=row.id, status=status, reason="sick")
        )
    with pytest.raises(ConflictError):
        await attendance.mark_attendance(db, AttendanceMark(user_id=users[0].id, activity_id=row.id))

    stats = await attendance.attendance_stats(db, scope={"district_id": district.id})
    assert stats["total"] == 4
    assert stats["by_status"] == {"present": 2, "absent": 1, "late": 1, "excused": 0}
    assert stats["attendance_rate"] == 75.0


async def test_attendance_edit_clears_verification(db):
    _, _, cell, _ = await make_tree(db)
    organizer = await make_user(db, "organizer")
    user = await make_user(db, "member")
    activity = await activities.create_activity(db, _activity(cell.id), created_by=organizer.id)
    row = await attendance.mark_attendance(db, AttendanceMark(user_id=user.id, activity_id=activity.id))

    row = await attendance.verify_attendance(db, row, organizer.id)
    assert row.verified_by == organizer.id

    row = await attendance.update_attendance(db, row, AttendanceUpdate(status="excused", reason="travel"))
    assert row.verified_by is None
    assert row.date == activity.date


async def test_check_in_twice_conflicts(db):
    _, _, cell, _ = await make_tree(db)
    organizer = await make_user(db, "organizer")
    activity = await activities.create_activity(db, _activity(cell.id), created_by=organizer.id)

    await attendance.check_in(db, organizer.id, activity.id)
    with pytest.raises(ConflictError):
        await attendance.check_in(db, organizer.id, activity.id)
    row = await attendance.check_out(db, organizer.id, activity.id)
    assert row.check_out_time is not None


async def test_report_status_transitions(db):
    district, _, _, _ = await make_tree(db)
    admin = await make_user(db, "reporter", role="district_admin", district_id=district.id)
    row = await reports.create_report(
        db,
        ReportCreate(
            title="Monthly attendance", description="Attendance roll-up", type="attendance",
            category="monthly", start_date=date(2024, 1, 1), end_date=date(2024, 1, 31),
            district_id=district.id,
        ),
        generated_by=admin.id,
    )
    assert row.status == "draft"
    assert reports.can_transition("draft", "generated")
    assert not reports.can_transition("draft", "published")

    with pytest.raises(ConflictError):
        await reports.set_report_status(db, row, "published", admin.id)

    row = await reports.set_report_status(db, row, "generated", admin.id)
    row = await reports.set_report_status(db, row, "published", admin.id)
    assert row.approved_by == admin.id
    assert row.approved_at is not None

    with pytest.raises(ConflictError):
        await reports.set_report_status(db, row, "draft", admin.id)


async def test_cultural_content_review_flow(db):
    author = await make_user(db, "author")
    reviewer = await make_user(db, "reviewer", role="super_admin")
    row = await cultural_content.create_content(
        db,
        ContentCreate(title="Inanga songs", description="Traditional zither songs", type="song", category="preservation"),
        created_by=author.id,
    )
    assert row.status == "draft"

    row = await cultural_content.submit_content(db, row)
    row = await cultural_content.review_content(db, row, approved=False, reviewer_id=reviewer.id)
    assert row.status == "rejected"

    row = await cultural_content.update_content(db, row, ContentUpdate(description="Zither songs with lyrics"))
    assert row.status == "draft"

    row = await cultural_content.submit_content(db, row)
    row = await cultural_content.review_content(db, row, approved=True, reviewer_id=reviewer.id)
    assert row.approved_by == reviewer.id
    with pytest.raises(ConflictError):
        await cultural_content.update_content(db, row, ContentUpdate(title="Changed"))

    row = await cultural_content.record_view(db, row)
    assert row.views == 1


async def test_notifications_need_existing_recipients(db):
    user = await make_user(db, "reader")

    with pytest.raises(DanglingReferenceError):
        await notifications.create_notifications(
            db, NotificationCreate(title="Hi", message="Hello", category="system", recipient_ids=[user.id, "ghost"])
        )

    rows = await notifications.create_notifications(
        db, NotificationCreate(title="Hi", message="Hello", category="system", recipient_ids=[user.id, user.id])
    )
    assert len(rows) == 1
    assert await notifications.unread_count(db, user.id) == 1
    assert await notifications.mark_all_read(db, user.id) == 1
    assert await notifications.unread_count(db, user.id) == 0


async def test_chat_group_keeps_an_admin(db):
    district, sector, cell, _ = await make_tree(db)
    creator = await make_user(db, "creator", role="cell_admin", district_id=district.id, sector_id=sector.id, cell_id=cell.id)
    friend = await make_user(db, "friend")

    group = await chat.create_group(db, ChatGroupCreate(name="Cell chat", type="cell", member_ids=[friend.id]), creator)

    assert group.cell_id == cell.id
    assert await chat.member_count(db, group.id) == 2
    with pytest.raises(ConflictError):
        await chat.remove_member(db, group, creator.id)
    await chat.remove_member(db, group, friend.id)
    assert await chat.member_count(db, group.id) == 1


def _upload(**overrides):
    values = dict(
        filename="abc123.jpg",
        original_name="umuganda.jpg",
        mime_type="image/jpeg",
        size=2048,
        url="/uploads/abc123.jpg",
    )
    values.update(overrides)
    return MediaCreate(**values)


async def test_media_takes_the_scope_of_its_target(db):
    district, sector, cell, group = await make_tree(db)
    uploader = await make_user(db, "uploader")

    row = await media.create_media(db, _upload(uploaded_for="intore_group", target_id=group.id), uploaded_by=uploader.id)

    assert row.type == "image"
    assert row.status == "pending_approval"
    assert (row.district_id, row.sector_id, row.cell_id, row.intore_group_id) == (
        district.id, sector.id, cell.id, group.id,
    )


async def test_media_needs_a_target_unless_general(db):
    uploader = await make_user(db, "uploader")

    with pytest.raises(ValidationFailedError) as info:
        await media.create_media(db, _upload(uploaded_for="cell", visibility="everyone"), uploaded_by=uploader.id)
    assert "Target ID is required." in info.value.errors
    assert "Invalid visibility setting." in info.value.errors


async def test_media_review_only_once(db):
    uploader = await make_user(db, "uploader")
    reviewer = await make_user(db, "reviewer", role="super_admin")
    row = await media.create_media(db, _upload(), uploaded_by=uploader.id)

    row = await media.review_media(db, row, MediaApproval(approved=False, reason="Blurry"), reviewer.id)
    assert row.status == "rejected"
    assert row.approval_reason == "Blurry"
    with pytest.raises(ConflictError):
        await media.review_media(db, row, MediaApproval(approved=True), reviewer.id)


async def test_admin_upload_is_approved_immediately(db):
    admin = await make_user(db, "root", role="super_admin")

    row = await media.create_media(db, _upload(mime_type="application/pdf"), uploaded_by=admin.id, auto_approve=True)

    assert row.type == "document"
    assert row.status == "active"
    assert row.approved_by == admin.id
