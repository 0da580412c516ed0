# src/itorero/models/ops/cultural_content.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.models.ops.scope import HierarchyScope
from src.itorero.models.user import new_id
from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local

CONTENT_TYPES = ("story", "song", "dance", "craft", "tradition", "history", "language", "recipe")
CONTENT_CATEGORIES = ("educational", "entertainment", "preservation", "community")
LANGUAGES = ("kinyarwanda", "english", "french", "swahili")
AGE_GROUPS = ("children", "youth", "adults", "seniors", "all")
DIFFICULTIES = ("beginner", "intermediate", "advanced")
CONTENT_STATUSES = ("draft", "pending_approval", "approved", "rejected", "archived")
CONTENT_VISIBILITY = ("public", "members_only", "admins_only")


class CulturalContent(HierarchyScope, Base):
    __tablename__ = "cultural_content"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False)

    text: Mapped[str | None] = mapped_column(Text, nullable=True)
    audio_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    language: Mapped[str] = mapped_column(String(20), nullable=False, default="kinyarwanda")
    age_group: Mapped[str] = mapped_column(String(20), nullable=False, default="all")
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False, default="beginner")
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_by: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    approved_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft", index=True)
    visibility: Mapped[str] = mapped_column(String(20), nullable=False, default="public")

    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    shares: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_dt = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_dt = Column(DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False)
