"""Inventory ledger accumulator.

Keeps one row per (SKU, facility) with the quantity raised on POs, the
quantity approved, and the QC-passed quantity received. Every update runs
on a row locked with SELECT FOR UPDATE inside the caller's transaction.
Quantities only decrease through the explicit compensating operation
reverse_po_raise (rejection, cancellation, draft removal).
"""
import logging
import uuid
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidRequest
from app.models.inventory_ledger import InventoryLedgerEntry
from app.services.events import LedgerDelta, LedgerDeltaKind


logger = logging.getLogger(__name__)


class InventoryLedgerService:
    """Per-(SKU, facility) quantity ledger."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ==================== ROW ACCESS ====================

    async def _select_locked(self, sku: str, facility_id: uuid.UUID) -> Optional[InventoryLedgerEntry]:
        # Pending increments on this row must reach the database before it is re-read
        await self.db.flush()
        result = await self.db.execute(
            select(InventoryLedgerEntry)
            .where(
                InventoryLedgerEntry.sku == sku,
                InventoryLedgerEntry.facility_id == facility_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_locked(self, sku: str, facility_id: uuid.UUID) -> InventoryLedgerEntry:
        """
        Locked ledger row, created on first use.

        The insert runs in a savepoint; losing an insert race to another
        transaction falls back to reading the winner's row under lock.
        """
        entry = await self._select_locked(sku, facility_id)
        if entry:
            return entry

        try:
            async with self.db.begin_nested():
                entry = InventoryLedgerEntry(
                    sku=sku,
                    facility_id=facility_id,
                    po_raise_quantity=0,
                    po_approve_quantity=0,
                    grn_done_quantity=0,
                    total_available_quantity=0,
                    grn_done_by_unit={},
                )
                self.db.add(entry)
                await self.db.flush()
            logger.info(f"Created ledger entry for {sku} at facility {facility_id}")
        except IntegrityError:
            entry = await self._select_locked(sku, facility_id)

        return entry

    @staticmethod
    def _check_quantity(quantity: int) -> None:
        if quantity < 0:
            raise InvalidRequest("Ledger quantity cannot be negative", {"quantity": quantity})

    # ==================== EVENTS ====================

    async def record_po_raise(self, sku: str, facility_id: uuid.UUID, quantity: int) -> InventoryLedgerEntry:
        """Quantity placed on a new or updated PO."""
        self._check_quantity(quantity)
        entry = await self._get_or_create_locked(sku, facility_id)
        entry.po_raise_quantity += quantity
        logger.info(f"Ledger {sku}@{facility_id}: po_raise +{quantity} -> {entry.po_raise_quantity}")
        return entry

    async def reverse_po_raise(self, sku: str, facility_id: uuid.UUID, quantity: int) -> InventoryLedgerEntry:
        """Compensating decrease when a PO is rejected, cancelled or trimmed as a draft."""
        self._check_quantity(quantity)
        entry = await self._get_or_create_locked(sku, facility_id)
        entry.po_raise_quantity = max(0, entry.po_raise_quantity - quantity)
        logger.info(f"Ledger {sku}@{facility_id}: po_raise -{quantity} -> {entry.po_raise_quantity}")
        return entry

    async def record_po_approve(self, sku: str, facility_id: uuid.UUID, quantity: int) -> InventoryLedgerEntry:
        """Quantity on a PO that reached final approval."""
        self._check_quantity(quantity)
        entry = await self._get_or_create_locked(sku, facility_id)
        entry.po_approve_quantity += quantity
        logger.info(f"Ledger {sku}@{facility_id}: po_approve +{quantity} -> {entry.po_approve_quantity}")
        return entry

    async def record_grn_done(
        self,
        sku: str,
        facility_id: uuid.UUID,
        qc_pass_quantity: int,
        unit_code: Optional[str] = None,
    ) -> InventoryLedgerEntry:
        """
        QC-passed quantity received against a PO.

        Only QC-passed stock reaches the ledger; rejected and held quantities
        stay on the GRN line. The per-unit breakdown is keyed by the unit
        code the stock arrived under.
        """
        self._check_quantity(qc_pass_quantity)
        entry = await self._get_or_create_locked(sku, facility_id)
        entry.grn_done_quantity += qc_pass_quantity
        entry.total_available_quantity = entry.grn_done_quantity

        key = unit_code or sku
        breakdown = dict(entry.grn_done_by_unit or {})
        breakdown[key] = breakdown.get(key, 0) + qc_pass_quantity
        entry.grn_done_by_unit = breakdown

        logger.info(
            f"Ledger {sku}@{facility_id}: grn_done +{qc_pass_quantity} ({key}) -> {entry.grn_done_quantity}"
        )
        return entry

    async def apply(self, delta: LedgerDelta) -> InventoryLedgerEntry:
        """Apply a ledger delta emitted by another service."""
        if delta.kind == LedgerDeltaKind.PO_RAISE:
            return await self.record_po_raise(delta.sku, delta.facility_id, delta.quantity)
        if delta.kind == LedgerDeltaKind.PO_RAISE_REVERSAL:
            return await self.reverse_po_raise(delta.sku, delta.facility_id, delta.quantity)
        if delta.kind == LedgerDeltaKind.PO_APPROVE:
            return await self.record_po_approve(delta.sku, delta.facility_id, delta.quantity)
        if delta.kind == LedgerDeltaKind.GRN_DONE:
            return await self.record_grn_done(delta.sku, delta.facility_id, delta.quantity, delta.unit_code)
        raise InvalidRequest(f"Unknown ledger delta kind '{delta.kind}'")

    # ==================== READ ====================

    async def get_entry(self, sku: str, facility_id: uuid.UUID) -> Dict[str, int]:
        """
        Current totals for a (SKU, facility).

        A pair that never received an event reads as all zeros.
        """
        result = await self.db.execute(
            select(InventoryLedgerEntry).where(
                InventoryLedgerEntry.sku == sku,
                InventoryLedgerEntry.facility_id == facility_id,
            )
        )
        entry = result.scalar_one_or_none()
        if not entry:
            return {"po_raise": 0, "po_approve": 0, "grn_done": 0, "available": 0}

        return {
            "po_raise": entry.po_raise_quantity,
            "po_approve": entry.po_approve_quantity,
            "grn_done": entry.grn_done_quantity,
            "available": entry.total_available_quantity,
        }

    async def get_unit_breakdown(self, sku: str, facility_id: uuid.UUID) -> Dict[str, int]:
        result = await self.db.execute(
            select(InventoryLedgerEntry.grn_done_by_unit).where(
                InventoryLedgerEntry.sku == sku,
                InventoryLedgerEntry.facility_id == facility_id,
            )
        )
        return dict(result.scalar_one_or_none() or {})
