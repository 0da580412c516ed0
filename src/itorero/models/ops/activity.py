# src/itorero/models/ops/activity.py
from __future__ import annotations

from datetime import date as _date, datetime

from sqlalchemy import Column, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.models.ops.scope import HierarchyScope
from src.itorero.models.user import new_id
from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local

ACTIVITY_TYPES = ("meeting", "training", "cultural_event", "community_service", "workshop", "celebration")
ACTIVITY_STATUSES = ("draft", "published", "cancelled", "completed")
ATTENDEE_STATUSES = ("confirmed", "pending", "declined", "waitlist")


class Activity(HierarchyScope, Base):
    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(30), nullable=False)
    date: Mapped[_date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)  # HH:MM
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)

    location_name: Mapped[str] = mapped_column(String(200), nullable=False)
    location_address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    organizer_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    max_attendees: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 0 = unlimited
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)

    created_by = Column(String(36), nullable=True)
    created_dt = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_by = Column(String(36), nullable=True)
    updated_dt = Column(DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False)

    @property
    def duration_hours(self) -> float:
        sh, sm = (int(x) for x in self.start_time.split(":"))
        eh, em = (int(x) for x in self.end_time.split(":"))
        return ((eh * 60 + em) - (sh * 60 + sm)) / 60

    def __repr__(self) -> str:
        return f"<Activity {self.title!r} {self.date}>"


class ActivityAttendee(Base):
    __tablename__ = "activity_attendees"
    __table_args__ = (UniqueConstraint("activity_id", "user_id", name="uq_activity_attendee"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    activity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
