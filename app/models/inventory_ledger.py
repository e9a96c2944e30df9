"""Inventory ledger model.

One row per (SKU, facility) tracks how much stock has been raised on POs,
approved, and received with a QC pass. Rows are created on first use and
never deleted.
"""
import uuid
from datetime import datetime, timezone
from typing import Dict

from sqlalchemy import String, DateTime, ForeignKey, Integer, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import JSONType, UUIDType


class InventoryLedgerEntry(Base):
    __tablename__ = "inventory_ledger"
    __table_args__ = (
        UniqueConstraint("sku", "facility_id", name="uq_inventory_ledger_sku_facility"),
        CheckConstraint("po_raise_quantity >= 0", name="chk_ledger_raise_non_negative"),
        CheckConstraint("po_approve_quantity >= 0", name="chk_ledger_approve_non_negative"),
        CheckConstraint("grn_done_quantity >= 0", name="chk_ledger_grn_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    sku: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Catalogue code"
    )
    facility_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("facilities.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    po_raise_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    po_approve_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    grn_done_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_available_quantity: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="QC-passed stock on hand"
    )
    grn_done_by_unit: Mapped[Dict[str, int]] = mapped_column(
        JSONType,
        default=dict,
        nullable=False,
        comment="QC-passed quantity per unit code"
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<InventoryLedgerEntry(sku='{self.sku}', available={self.total_available_quantity})>"
