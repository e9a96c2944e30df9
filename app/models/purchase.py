"""Purchase order models for the DC procurement cycle.

Supports:
- Purchase Order (PO) with catalog-snapshotted lines
- Three-stage approval chain (category head, admin, creator)
- A single post-submission edit proposal per PO
"""
import uuid
from datetime import datetime, date, timezone
from enum import Enum
from typing import Optional, List
from decimal import Decimal

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Numeric, Date
from sqlalchemy import UniqueConstraint, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import inspect as sa_inspect

from app.database import Base
from app.db_types import UUIDType


# ==================== Enums ====================

class POStatus(str, Enum):
    """Purchase Order status."""
    DRAFT = "DRAFT"
    PENDING_CATEGORY_HEAD = "PENDING_CATEGORY_HEAD"
    PENDING_ADMIN = "PENDING_ADMIN"
    PENDING_CREATOR_REVIEW = "PENDING_CREATOR_REVIEW"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class POPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class ApprovalRole(str, Enum):
    """Roles in the approval chain, in decision order."""
    CATEGORY_HEAD = "category_head"
    ADMIN = "admin"
    CREATOR = "creator"


class ApprovalAction(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


# ==================== Purchase Order ====================

class PurchaseOrder(Base):
    """
    Purchase Order model.
    Order placed with a vendor for delivery into one facility.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        Index("ix_po_vendor_status", "vendor_id", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Identification
    po_number: Mapped[str] = mapped_column(
        String(30),
        unique=True,
        nullable=False,
        index=True,
        comment="PO/DC/25-26/00001"
    )

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=POStatus.DRAFT.value,
        nullable=False,
        index=True,
        comment="DRAFT, PENDING_CATEGORY_HEAD, PENDING_ADMIN, PENDING_CREATOR_REVIEW, APPROVED, REJECTED, CANCELLED"
    )
    priority: Mapped[str] = mapped_column(
        String(20),
        default=POPriority.MEDIUM.value,
        nullable=False,
        comment="LOW, MEDIUM, HIGH, URGENT"
    )
    is_edited: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        comment="Set once the single post-submission edit is used"
    )

    # Parties
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("vendors.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    facility_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("facilities.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )

    # Amounts
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(14, 2),
        default=Decimal("0"),
        nullable=False
    )

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Creator review (vendor proforma invoice)
    expected_delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    pi_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pi_file_url: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Outcome
    approved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Audit
    created_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    updated_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
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

    # Relationships
    items: Mapped[List["PurchaseOrderItem"]] = relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    approvals: Mapped[List["POApproval"]] = relationship(
        "POApproval",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        lazy="selectin"
    )
    edit: Mapped[Optional["PurchaseOrderEdit"]] = relationship(
        "PurchaseOrderEdit",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        uselist=False,
        lazy="selectin"
    )

    def approval_for(self, role: str) -> Optional["POApproval"]:
        for approval in self.approvals:
            if approval.role == role:
                return approval
        return None

    def __repr__(self) -> str:
        try:
            if sa_inspect(self).detached:
                return f"<PurchaseOrder(id={self.id})>"
            return f"<PurchaseOrder(number='{self.po_number}', status='{self.status}')>"
        except Exception:
            return f"<PurchaseOrder(id={getattr(self, 'id', 'unknown')})>"


class PurchaseOrderItem(Base):
    """
    Purchase Order line item.

    Catalog attributes are copied at creation so later catalog edits never
    change what was ordered. Several lines may share one catalog item.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        CheckConstraint("quantity_ordered > 0", name="chk_po_item_qty_positive"),
        Index("ix_po_item_po_catalogue", "purchase_order_id", "catalogue_code"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    catalog_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("catalog_items.id", ondelete="RESTRICT"),
        nullable=False
    )
    line_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Snapshot
    catalogue_code: Mapped[str] = mapped_column(String(20), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    gst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    mrp: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3), nullable=True)
    length: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    width: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    height: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)

    # Quantity and pricing
    quantity_ordered: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder",
        back_populates="items"
    )

    def __repr__(self) -> str:
        try:
            if sa_inspect(self).detached:
                return f"<PurchaseOrderItem(id={self.id})>"
            return f"<PurchaseOrderItem(code='{self.catalogue_code}', qty={self.quantity_ordered})>"
        except Exception:
            return f"<PurchaseOrderItem(id={getattr(self, 'id', 'unknown')})>"


# ==================== Approval Chain ====================

class POApproval(Base):
    """Decision record for one role on one PO."""
    __tablename__ = "po_approvals"
    __table_args__ = (
        UniqueConstraint("purchase_order_id", "role", name="uq_po_approval_role"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    role: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        comment="creator, category_head, admin"
    )
    action: Mapped[str] = mapped_column(
        String(20),
        default=ApprovalAction.PENDING.value,
        nullable=False,
        comment="PENDING, APPROVED, REJECTED"
    )
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    decided_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder",
        back_populates="approvals"
    )

    def __repr__(self) -> str:
        return f"<POApproval(role='{self.role}', action='{self.action}')>"


# ==================== Edit Proposal ====================

class PurchaseOrderEdit(Base):
    """
    The one edit proposal a PO may receive after submission.

    Unique per PO; the PO's is_edited flag is set in the same transaction.
    """
    __tablename__ = "purchase_order_edits"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    purchase_order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    status_at_edit: Mapped[str] = mapped_column(String(50), nullable=False)
    priority: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    expected_delivery_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    edited_by: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    purchase_order: Mapped["PurchaseOrder"] = relationship(
        "PurchaseOrder",
        back_populates="edit"
    )
    items: Mapped[List["PurchaseOrderEditItem"]] = relationship(
        "PurchaseOrderEditItem",
        back_populates="edit",
        cascade="all, delete-orphan",
        lazy="selectin"
    )


class PurchaseOrderEditItem(Base):
    """Proposed line within an edit proposal."""
    __tablename__ = "purchase_order_edit_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    edit_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("purchase_order_edits.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    catalog_item_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("catalog_items.id", ondelete="RESTRICT"),
        nullable=False
    )
    catalogue_code: Mapped[str] = mapped_column(String(20), nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    line_total: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)

    edit: Mapped["PurchaseOrderEdit"] = relationship(
        "PurchaseOrderEdit",
        back_populates="items"
    )
