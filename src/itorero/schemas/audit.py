# src/itorero/schemas/audit.py
from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class AuditLogRead(BaseModel):
    id: str
    action: str
    resource_type: str
    resource_id: Optional[str] = None
    performed_by: Optional[str] = None
    performed_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None
    changes: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, validation_alias="metadata_json")
    severity: str
    description: str = ""
    model_config = {"from_attributes": True, "populate_by_name": True}
