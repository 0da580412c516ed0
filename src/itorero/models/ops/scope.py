# src/itorero/models/ops/scope.py
from __future__ import annotations

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column


class HierarchyScope:
    """Denormalized district/sector/cell/intore-group refs carried by scoped records.

    These are derived on write from the record's owning node (see
    ``utils.hierarchy.derive_scope``) and never trusted as independent input.
    """

    district_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("districts.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    sector_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("sectors.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    cell_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("cells.id", ondelete="RESTRICT"), nullable=True, index=True
    )
    intore_group_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("intore_groups.id", ondelete="SET NULL"), nullable=True, index=True
    )

    def scope_dict(self) -> dict:
        return {
            "district": self.district_id,
            "sector": self.sector_id,
            "cell": self.cell_id,
            "intore_group": self.intore_group_id,
        }
