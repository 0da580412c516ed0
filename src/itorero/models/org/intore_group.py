# src/itorero/models/org/intore_group.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.models.user import new_id
from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local

GROUP_TYPES = ("dance", "music", "storytelling", "craft", "agriculture", "traditional_knowledge")


class IntoreGroup(Base):
    __tablename__ = "intore_groups"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False, unique=True, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)

    cell_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("cells.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    # sector/district are derived from the cell on write
    sector_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sectors.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    district_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("districts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    leader_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL", use_alter=True), nullable=True, index=True
    )

    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_by = Column(String(36), nullable=True)
    created_dt = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_by = Column(String(36), nullable=True)
    updated_dt = Column(DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False)

    def __repr__(self) -> str:
        return f"<IntoreGroup {self.code} {self.name}>"
