# src/itorero/models/audit_log.py
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, JSON, String, event
from sqlalchemy.orm import Mapped, mapped_column

from src.itorero.models.user import new_id
from src.itorero.utils.database import Base
from src.itorero.utils.timezone import now_local

RESOURCE_TYPES = (
    "user", "district", "sector", "cell", "intore_group", "activity", "media",
    "attendance", "chat", "notification", "report", "cultural_content", "system",
)
SEVERITIES = ("info", "warning", "error", "critical")


class AuditLog(Base):
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index("ix_audit_logs_resource", "resource_type", "resource_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)

    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    resource_type: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    # system events (unhandled errors) have no resource row
    resource_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    # null only for system events raised on anonymous requests
    performed_by: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("users.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    performed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=now_local, index=True
    )

    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True, index=True)
    user_agent: Mapped[str | None] = mapped_column(String(512), nullable=True)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    changes: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    metadata_json: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)

    severity: Mapped[str] = mapped_column(String(10), nullable=False, default="info", index=True)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.resource_type}:{self.resource_id}>"


class AuditLogImmutableError(RuntimeError):
    pass


@event.listens_for(AuditLog, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditLogImmutableError("audit records are append-only")


@event.listens_for(AuditLog, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditLogImmutableError("audit records are append-only")
