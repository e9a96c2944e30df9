"""
Document sequences for PO and GRN numbers.

Numbers run continuously within an Indian financial year (April-March) and
are allocated under a row lock so concurrent requests never share one.

Format: {PREFIX}/{COMPANY_CODE}/{FY}/{SEQUENCE}
    PO/DC/25-26/00001
    GRN/DC/25-26/00001
"""

import uuid
from datetime import datetime, timezone
from typing import Optional
from enum import Enum

from sqlalchemy import String, Integer, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import UUIDType


class DocumentType(str, Enum):
    """Document types that use sequence numbering."""
    PURCHASE_ORDER = "PO"
    GOODS_RECEIPT_NOTE = "GRN"


class DocumentSequenceAudit(Base):
    """One row per allocated number."""
    __tablename__ = "document_sequence_audit"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    financial_year: Mapped[str] = mapped_column(String(10), nullable=False)
    old_number: Mapped[int] = mapped_column(Integer, nullable=False)
    new_number: Mapped[int] = mapped_column(Integer, nullable=False)
    document_number: Mapped[str] = mapped_column(String(50), nullable=False)
    requested_by: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        comment="Actor id that triggered the allocation"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )


class DocumentSequence(Base):
    """
    Counter per (document type, financial year).

    Example:
        document_type = "PO"
        financial_year = "25-26"
        current_number = 42
        → Next PO number: PO/DC/25-26/00043
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        UniqueConstraint(
            "document_type", "financial_year",
            name="uq_document_type_fy"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    document_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        index=True,
        comment="PO, GRN"
    )
    company_code: Mapped[str] = mapped_column(String(10), nullable=False)
    financial_year: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        comment="e.g., 25-26 for FY 2025-26"
    )
    current_number: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
        comment="Last used sequence number"
    )
    padding_length: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    separator: Mapped[str] = mapped_column(String(5), default="/", nullable=False)

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

    def get_next_number(self) -> str:
        """
        Increment the counter and format the new number.

        Does not flush; the caller owns the transaction.
        """
        self.current_number += 1
        seq = str(self.current_number).zfill(self.padding_length)
        sep = self.separator
        return f"{self.document_type}{sep}{self.company_code}{sep}{self.financial_year}{sep}{seq}"

    @staticmethod
    def get_financial_year(now: Optional[datetime] = None) -> str:
        """
        Financial year string for a moment in time.

        - Jan 2026 → 25-26
        - Apr 2026 → 26-27
        """
        now = now or datetime.now(timezone.utc)
        if now.month >= 4:
            fy_start = now.year
        else:
            fy_start = now.year - 1
        return f"{fy_start % 100:02d}-{(fy_start + 1) % 100:02d}"

    def __repr__(self) -> str:
        return f"<DocumentSequence({self.document_type}/{self.financial_year}: {self.current_number})>"
