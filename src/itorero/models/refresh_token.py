# src/itorero/models/refresh_token.py
from __future__ import annotations

from datetime import datetime
from sqlalchemy import BigInteger, String, DateTime, Boolean, Integer, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local


class RefreshToken(Base):
    __tablename__ = "refresh_tokens"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="CASCADE", onupdate="CASCADE"),
        nullable=False,
        index=True,
    )

    token_hash:  Mapped[str]  = mapped_column(String(255), nullable=False, index=True)
    device_info: Mapped[str | None] = mapped_column(String(255), nullable=True)
    ip_address:  Mapped[str | None] = mapped_column(String(45),  nullable=True)  # ipv4/ipv6
    expires_at:  Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    session_start: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    is_revoked:  Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    create_dt:  Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=now_local)
