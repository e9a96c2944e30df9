"""Master data read by the procurement core.

Vendors, receiving facilities (distribution centres) and catalog items are
maintained elsewhere; this core only looks them up and snapshots catalog
attributes onto purchase order lines.
"""
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class Vendor(Base):
    """Supplier a purchase order is raised against."""
    __tablename__ = "vendors"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Vendor(code='{self.code}')>"


class Facility(Base):
    """Receiving location (distribution centre) stock is booked into."""
    __tablename__ = "facilities"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    code: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Facility(code='{self.code}')>"


class CatalogItem(Base):
    """
    Orderable product.

    catalogue_code is the short numeric code that prefixes every
    warehouse unit code split from this item.
    """
    __tablename__ = "catalog_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    catalogue_code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True,
        comment="Numeric catalogue id, e.g. 1000123"
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    hsn_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    gst_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), default=Decimal("0"), nullable=False)
    mrp: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"), nullable=False)
    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 3), nullable=True, comment="kg")
    length: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True, comment="cm")
    width: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True, comment="cm")
    height: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True, comment="cm")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<CatalogItem(code='{self.catalogue_code}')>"
