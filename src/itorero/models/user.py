# src/itorero/models/user.py
from __future__ import annotations

from datetime import date, datetime
from uuid import uuid4

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local

ROLES = ("super_admin", "district_admin", "sector_admin", "cell_admin", "member", "public")
ADMIN_ROLES = ("super_admin", "district_admin", "sector_admin", "cell_admin")
USER_STATUSES = ("active", "inactive", "pending", "suspended")


def new_id() -> str:
    return str(uuid4())


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    username: Mapped[str] = mapped_column(String(50), nullable=False, unique=True, index=True)
    email: Mapped[str] = mapped_column(String(120), nullable=False, unique=True, index=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)
    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(20), nullable=False)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    profile_picture: Mapped[str | None] = mapped_column(String(255), nullable=True)

    role: Mapped[str] = mapped_column(String(20), nullable=False, default="member")
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    # hierarchy chain (denormalized; maintained by the role cascade)
    district_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("districts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    sector_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("sectors.id", ondelete="SET NULL"), nullable=True, index=True
    )
    cell_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("cells.id", ondelete="SET NULL"), nullable=True, index=True
    )
    intore_group_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("intore_groups.id", ondelete="SET NULL"), nullable=True
    )

    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lock_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_dt = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_dt = Column(DateTime(timezone=True), default=now_local, onupdate=now_local, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def hierarchy(self) -> dict:
        return {"district": self.district_id, "sector": self.sector_id, "cell": self.cell_id}

    def __repr__(self) -> str:
        return f"<User {self.username} role={self.role}>"
