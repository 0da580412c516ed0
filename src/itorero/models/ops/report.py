# src/itorero/models/ops/report.py
from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.models.ops.scope import HierarchyScope
from src.itorero.models.user import new_id
from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local

REPORT_TYPES = ("activity", "attendance", "financial", "performance", "audit", "custom")
REPORT_CATEGORIES = ("daily", "weekly", "monthly", "quarterly", "annual", "custom")
REPORT_STATUSES = ("draft", "generated", "published", "archived")
REPORT_VISIBILITY = ("public", "private", "members_only", "admins_only")

# allowed status moves; archived is terminal
REPORT_TRANSITIONS = {
    "draft": ("generated", "archived"),
    "generated": ("published", "draft", "archived"),
    "published": ("archived",),
    "archived": (),
}


class Report(HierarchyScope, Base):
    __tablename__ = "reports"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False)

    generated_by: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    activity_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("activities.id", ondelete="SET NULL"), nullable=True
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    visibility: Mapped[str] = mapped_column(String(20), nullable=False, default="admins_only")
    approved_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_dt = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_dt = Column(DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False)
