# src/itorero/models/org/cell.py
from __future__ import annotations

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.models.user import new_id
from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local


class Cell(Base):
    __tablename__ = "cells"
    __table_args__ = (UniqueConstraint("code", "sector_id", name="uq_cell_code_sector"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    sector_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sectors.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    # always derived from the sector on write
    district_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("districts.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    code: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    address: Mapped[str | None] = mapped_column(String(200), nullable=True)
    population: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    admin_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="SET NULL", use_alter=True), nullable=True, index=True
    )

    status: Mapped[str] = mapped_column(String(20), default="pending")
    created_by = Column(String(36), nullable=True)
    created_dt = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_by = Column(String(36), nullable=True)
    updated_dt = Column(DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False)

    def __repr__(self) -> str:
        return f"<Cell {self.code} {self.name}>"
