# src/itorero/models/ops/attendance.py
from __future__ import annotations

from datetime import date as _date, datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.models.ops.scope import HierarchyScope
from src.itorero.models.user import new_id
from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local, today_local

ATTENDANCE_STATUSES = ("present", "absent", "late", "excused")


class Attendance(HierarchyScope, Base):
    __tablename__ = "attendance"
    __table_args__ = (UniqueConstraint("user_id", "activity_id", "date", name="uq_attendance_user_activity_date"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    activity_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("activities.id", ondelete="CASCADE"), nullable=False, index=True
    )
    date: Mapped[_date] = mapped_column(Date, nullable=False, default=today_local, index=True)
    check_in_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    check_out_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="present", index=True)
    reason: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")

    verified_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_dt = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_dt = Column(DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False)

    @property
    def duration_hours(self) -> float:
        if self.check_in_time and self.check_out_time:
            return (self.check_out_time - self.check_in_time).total_seconds() / 3600
        return 0.0

    @property
    def is_late(self) -> bool:
        return self.status == "late"
