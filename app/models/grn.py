"""Goods Receipt Note models.

One GRN exists per purchase order and accumulates postings. Each line
reconciles received quantities for one SKU (a split unit code or a
catalogue code) against its ordered quantity.
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Date
from sqlalchemy import UniqueConstraint, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import inspect as sa_inspect

from app.database import Base
from app.db_types import UUIDType


# ==================== Enums ====================

class GRNStatus(str, Enum):
    PARTIAL = "partial"
    COMPLETED = "completed"


class LineStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    COMPLETED = "completed"
    REJECTED = "rejected"


CLOSED_LINE_STATUSES = (LineStatus.COMPLETED.value, LineStatus.REJECTED.value)


# ==================== Goods Receipt Note ====================

class GoodsReceiptNote(Base):
    """Receipt header, created on the first posting for a PO."""
    __tablename__ = "goods_receipt_notes"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    grn_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="GRN/DC/25-26/00001"
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="RESTRICT"),
        unique=True,
        nullable=False
    )
    facility_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("facilities.id", ondelete="RESTRICT"),
        nullable=False
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default=GRNStatus.PARTIAL.value,
        nullable=False,
        comment="partial, completed"
    )

    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
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

    lines: Mapped[List["GRNLine"]] = relationship(
        "GRNLine",
        back_populates="grn",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    def __repr__(self) -> str:
        try:
            if sa_inspect(self).detached:
                return f"<GoodsReceiptNote(id={self.id})>"
            return f"<GoodsReceiptNote(number='{self.grn_number}', status='{self.status}')>"
        except Exception:
            return f"<GoodsReceiptNote(id={getattr(self, 'id', 'unknown')})>"


class GRNLine(Base):
    """
    Reconciliation line for one SKU on a GRN.

    Quantities accumulate across postings; pending and qc_fail are derived
    on every update.
    """
    __tablename__ = "grn_lines"
    __table_args__ = (
        UniqueConstraint("grn_id", "sku_id", name="uq_grn_line_sku"),
        CheckConstraint("received_quantity <= ordered_quantity", name="chk_grn_received_le_ordered"),
        CheckConstraint("qc_pass_quantity <= received_quantity", name="chk_grn_qc_pass_le_received"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    grn_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("goods_receipt_notes.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sku_id: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Split unit code or catalogue code"
    )
    catalog_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("catalog_items.id", ondelete="RESTRICT"),
        nullable=False
    )
    catalogue_code: Mapped[str] = mapped_column(String(20), nullable=False)

    # Quantities
    ordered_quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    received_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    pending_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rejected_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    qc_pass_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    qc_fail_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    held_quantity: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    rtv_quantity: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Return to vendor"
    )

    line_status: Mapped[str] = mapped_column(
        String(20),
        default=LineStatus.PENDING.value,
        nullable=False,
        comment="pending, partial, completed, rejected"
    )
    putaway_status: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    remarks: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

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

    grn: Mapped["GoodsReceiptNote"] = relationship("GoodsReceiptNote", back_populates="lines")
    batches: Mapped[List["GRNBatch"]] = relationship(
        "GRNBatch",
        back_populates="line",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    photos: Mapped[List["GRNPhoto"]] = relationship(
        "GRNPhoto",
        back_populates="line",
        cascade="all, delete-orphan",
        lazy="selectin"
    )

    @property
    def is_closed(self) -> bool:
        return self.line_status in CLOSED_LINE_STATUSES

    def __repr__(self) -> str:
        return f"<GRNLine(sku='{self.sku_id}', status='{self.line_status}')>"


class GRNBatch(Base):
    """Batch subline recorded with a posting. Never updated."""
    __tablename__ = "grn_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    grn_line_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("grn_lines.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    batch_no: Mapped[str] = mapped_column(String(60), nullable=False)
    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    line: Mapped["GRNLine"] = relationship("GRNLine", back_populates="batches")


class GRNPhoto(Base):
    """Reference to a receiving photo stored outside this service."""
    __tablename__ = "grn_photos"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    grn_line_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("grn_lines.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    url: Mapped[str] = mapped_column(String(500), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    line: Mapped["GRNLine"] = relationship("GRNLine", back_populates="photos")
