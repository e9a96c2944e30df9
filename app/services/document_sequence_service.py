"""
Document Sequence Service

Allocates PO and GRN numbers atomically. The sequence row is read with
SELECT FOR UPDATE so two transactions can never hand out the same number.

USAGE:
    service = DocumentSequenceService(db, company_code="DC")
    po_number = await service.get_next_number("PO")
    # Returns: PO/DC/25-26/00001
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import InvalidRequest
from app.models.document_sequence import DocumentSequence, DocumentSequenceAudit, DocumentType


DOCUMENT_PADDING = {
    DocumentType.PURCHASE_ORDER.value: 5,
    DocumentType.GOODS_RECEIPT_NOTE.value: 5,
}


class DocumentSequenceService:
    """Atomic document number generation."""

    def __init__(
        self,
        db: AsyncSession,
        company_code: Optional[str] = None,
        requested_by: Optional[str] = None,
    ):
        self.db = db
        self.company_code = company_code or settings.COMPANY_CODE
        self.requested_by = requested_by

    async def get_next_number(
        self,
        document_type: str,
        financial_year: Optional[str] = None
    ) -> str:
        """
        Get next document number with atomic increment.

        Creates the sequence row on first use and records an audit row.

        Raises:
            InvalidRequest: If document_type is not numbered
        """
        doc_type = document_type.upper()
        if doc_type not in DOCUMENT_PADDING:
            valid_types = ", ".join(DOCUMENT_PADDING.keys())
            raise InvalidRequest(f"Invalid document type '{doc_type}'. Valid types: {valid_types}")

        if not financial_year:
            financial_year = DocumentSequence.get_financial_year()

        sequence = await self._get_or_create_sequence(doc_type, financial_year)
        old_number = sequence.current_number
        doc_number = sequence.get_next_number()

        self.db.add(DocumentSequenceAudit(
            document_type=doc_type,
            financial_year=financial_year,
            old_number=old_number,
            new_number=sequence.current_number,
            document_number=doc_number,
            requested_by=self.requested_by,
        ))
        await self.db.flush()

        return doc_number

    async def _select_locked(self, document_type: str, financial_year: str) -> Optional[DocumentSequence]:
        result = await self.db.execute(
            select(DocumentSequence)
            .where(
                DocumentSequence.document_type == document_type,
                DocumentSequence.financial_year == financial_year,
            )
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def _get_or_create_sequence(
        self,
        document_type: str,
        financial_year: str
    ) -> DocumentSequence:
        """Existing sequence with row lock, or a freshly inserted one."""
        sequence = await self._select_locked(document_type, financial_year)
        if sequence:
            return sequence

        try:
            async with self.db.begin_nested():
                sequence = DocumentSequence(
                    document_type=document_type,
                    company_code=self.company_code,
                    financial_year=financial_year,
                    current_number=0,
                    padding_length=DOCUMENT_PADDING[document_type],
                )
                self.db.add(sequence)
                await self.db.flush()
        except IntegrityError:
            # Another transaction created it first
            sequence = await self._select_locked(document_type, financial_year)

        return sequence
