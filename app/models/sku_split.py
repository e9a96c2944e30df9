"""SKU split model.

A split allocates part of a PO line's ordered quantity to a warehouse unit
code. Unit codes are globally unique and start with the catalogue code of
the item they were split from.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import JSONType, UUIDType


class SplittingStatus(str, Enum):
    """Aggregate splitting status of a (PO, catalog line) pair."""
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"


class SkuSplit(Base):
    """Quantity of one PO catalog line assigned to one unit code."""
    __tablename__ = "sku_splits"
    __table_args__ = (
        Index("ix_sku_split_po_catalogue", "purchase_order_id", "catalogue_code"),
        CheckConstraint("split_quantity > 0", name="chk_split_qty_positive"),
        CheckConstraint("received_quantity <= split_quantity", name="chk_split_received_le_split"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    catalog_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("catalog_items.id", ondelete="RESTRICT"),
        nullable=False
    )
    catalogue_code: Mapped[str] = mapped_column(String(20), nullable=False)

    unit_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Warehouse-unique code: catalogue code + random digits"
    )
    split_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    ordered_quantity: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        comment="Summed ordered quantity of the PO line at split time"
    )
    splitting_status: Mapped[str] = mapped_column(
        String(20),
        default=SplittingStatus.PENDING.value,
        nullable=False,
        comment="pending, partial, completed"
    )

    # Receipt progress
    received_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    ready_for_receipt: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    receipt_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    created_by: Mapped[str] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[List[str]] = mapped_column(
        JSONType,
        default=list,
        nullable=False,
        comment="Actors that topped up this split"
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
        return f"<SkuSplit(unit_code='{self.unit_code}', qty={self.split_quantity})>"
