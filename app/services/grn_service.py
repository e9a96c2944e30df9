"""GRN Service for receipt reconciliation against approved purchase orders.

Flow for one posting:
1. Lock the PO and load (or lazily create) its single GRN
2. Resolve each SKU to a split unit code or a catalogue code on the PO;
   the stored ordered quantity overrides whatever the caller sent
3. Check the posting against the SKU and against its whole catalogue line
   (unit codes and the catalogue code share one ordered quantity), then
   accumulate it onto the SKU's GRN line and derive the line status
4. Append batches and photo references
5. Credit the inventory ledger with the QC-passed quantity only
6. Advance the split's receipt progress
All lines of one posting commit together or not at all.
"""
import logging
import secrets
import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    InvalidReference,
    InvalidRequest,
    InvalidState,
    LineClosed,
    QuantityExceeded,
)
from app.database import atomic
from app.models.document_sequence import DocumentType
from app.models.grn import GoodsReceiptNote, GRNLine, GRNBatch, GRNPhoto, GRNStatus, LineStatus
from app.models.purchase import POStatus, PurchaseOrder
from app.models.sku_split import SkuSplit
from app.schemas.grn import GRNLineInput
from app.services.document_sequence_service import DocumentSequenceService
from app.services.events import GRNPosted, LedgerDelta, LedgerDeltaKind, ServiceResult
from app.services.inventory_ledger_service import InventoryLedgerService


logger = logging.getLogger(__name__)

DEFAULT_SHELF_LIFE_DAYS = 365


def calculate_line_status(ordered: int, rejected: int, qc_pass: int) -> LineStatus:
    """
    Line status from accumulated quantities.

    Evaluated in order:
        rejected == ordered            → rejected
        qc_pass == ordered             → completed
        rejected + qc_pass == ordered  → partial
        some rejected or some qc_pass  → partial
        otherwise                      → pending
    """
    if ordered <= 0:
        return LineStatus.PENDING
    if rejected == ordered:
        return LineStatus.REJECTED
    if qc_pass == ordered:
        return LineStatus.COMPLETED
    if rejected + qc_pass == ordered:
        return LineStatus.PARTIAL
    if 0 < rejected < ordered or 0 < qc_pass < ordered:
        return LineStatus.PARTIAL
    return LineStatus.PENDING


def generate_batch_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return f"BATCH_{int(now.timestamp() * 1000)}_{secrets.randbelow(10000):04d}"


@dataclass
class ReceiptTarget:
    """What a posted SKU reconciles against."""
    sku_id: str
    catalog_item_id: uuid.UUID
    catalogue_code: str
    ordered: int
    split: Optional[SkuSplit] = None


class GRNService:
    """Service for GRN posting and reads."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.ledger = InventoryLedgerService(db)

    # ==================== LOADING ====================

    async def _lock_po(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one_or_none()
        if not po:
            raise InvalidReference(f"Purchase order {po_id} not found", {"po_id": str(po_id)})
        return po

    async def _find_grn(self, po_id: uuid.UUID) -> Optional[GoodsReceiptNote]:
        result = await self.db.execute(
            select(GoodsReceiptNote)
            .where(GoodsReceiptNote.purchase_order_id == po_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _get_or_create_grn(self, po: PurchaseOrder, actor: Optional[str]) -> GoodsReceiptNote:
        grn = await self._find_grn(po.id)
        if grn:
            return grn

        grn_number = await DocumentSequenceService(self.db, requested_by=actor).get_next_number(
            DocumentType.GOODS_RECEIPT_NOTE.value
        )
        grn = GoodsReceiptNote(
            grn_number=grn_number,
            purchase_order_id=po.id,
            facility_id=po.facility_id,
            status=GRNStatus.PARTIAL.value,
            created_by=actor,
        )
        grn.lines = []
        self.db.add(grn)
        await self.db.flush()
        logger.info(f"Created {grn_number} for PO {po.po_number}")
        return grn

    async def _resolve_sku(self, po: PurchaseOrder, sku_id: str) -> ReceiptTarget:
        """
        Map a posted SKU to its authoritative ordered quantity.

        A unit code split from this PO reconciles against its split
        quantity (row locked); a catalogue code against the summed PO lines.
        """
        await self.db.flush()
        result = await self.db.execute(
            select(SkuSplit)
            .where(
                SkuSplit.purchase_order_id == po.id,
                SkuSplit.unit_code == sku_id,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        split = result.scalar_one_or_none()
        if split:
            return ReceiptTarget(
                sku_id=sku_id,
                catalog_item_id=split.catalog_item_id,
                catalogue_code=split.catalogue_code,
                ordered=split.split_quantity,
                split=split,
            )

        items = [item for item in po.items if item.catalogue_code == sku_id]
        if not items:
            raise InvalidReference(
                f"SKU {sku_id} is not on purchase order {po.po_number}",
                {"sku_id": sku_id, "po_id": str(po.id)},
            )
        return ReceiptTarget(
            sku_id=sku_id,
            catalog_item_id=items[0].catalog_item_id,
            catalogue_code=sku_id,
            ordered=sum(item.quantity_ordered for item in items),
        )

    # ==================== VALIDATION ====================

    @staticmethod
    def _check_catalogue_bound(
        line: GRNLineInput, target: ReceiptTarget, catalogue_received: int, catalogue_ordered: int
    ) -> None:
        """
        Unit-code lines and the catalogue-code line draw on the same ordered
        quantity; together they may not receive more than the PO line.
        """
        if catalogue_received + line.received_qty > catalogue_ordered:
            raise QuantityExceeded(
                f"Total received for {target.catalogue_code} would exceed ordered {catalogue_ordered}",
                {
                    "sku_id": line.sku_id,
                    "catalogue_code": target.catalogue_code,
                    "already_received": catalogue_received,
                    "received": line.received_qty,
                    "ordered": catalogue_ordered,
                },
            )

    @staticmethod
    def _check_posting(line: GRNLineInput, target: ReceiptTarget, already_received: int) -> None:
        figures = {
            "received_qty": line.received_qty,
            "rejected_qty": line.rejected_qty,
            "qc_pass_qty": line.qc_pass_qty,
            "held_qty": line.held_qty,
            "rtv_qty": line.rtv_qty,
        }
        negative = [name for name, value in figures.items() if value < 0]
        if negative:
            raise QuantityExceeded(
                f"Quantities for {line.sku_id} cannot be negative",
                {"sku_id": line.sku_id, "fields": negative},
            )
        if line.received_qty > target.ordered:
            raise QuantityExceeded(
                f"Received {line.received_qty} exceeds ordered {target.ordered} for {line.sku_id}",
                {"sku_id": line.sku_id, "received": line.received_qty, "ordered": target.ordered},
            )
        if already_received + line.received_qty > target.ordered:
            raise QuantityExceeded(
                f"Total received for {line.sku_id} would exceed ordered {target.ordered}",
                {
                    "sku_id": line.sku_id,
                    "already_received": already_received,
                    "received": line.received_qty,
                    "ordered": target.ordered,
                },
            )
        if line.qc_pass_qty + line.rejected_qty + line.held_qty > line.received_qty:
            raise QuantityExceeded(
                f"QC pass, rejected and held exceed received for {line.sku_id}",
                {"sku_id": line.sku_id, **figures},
            )
        if line.rtv_qty > line.rejected_qty:
            raise QuantityExceeded(
                f"Return to vendor exceeds rejected for {line.sku_id}",
                {"sku_id": line.sku_id, "rtv": line.rtv_qty, "rejected": line.rejected_qty},
            )
        for batch in line.batches:
            if batch.quantity < 0:
                raise QuantityExceeded(
                    f"Batch quantity for {line.sku_id} cannot be negative",
                    {"sku_id": line.sku_id},
                )

    # ==================== POSTING ====================

    def _apply_to_line(
        self, grn: GoodsReceiptNote, grn_line: Optional[GRNLine], line: GRNLineInput, target: ReceiptTarget
    ) -> GRNLine:
        if grn_line is None:
            grn_line = GRNLine(
                sku_id=target.sku_id,
                catalog_item_id=target.catalog_item_id,
                catalogue_code=target.catalogue_code,
                ordered_quantity=target.ordered,
                received_quantity=0,
                rejected_quantity=0,
                qc_pass_quantity=0,
                held_quantity=0,
                rtv_quantity=0,
            )
            grn_line.batches = []
            grn_line.photos = []
            grn.lines.append(grn_line)

        grn_line.ordered_quantity = target.ordered
        grn_line.received_quantity += line.received_qty
        grn_line.rejected_quantity += line.rejected_qty
        grn_line.qc_pass_quantity += line.qc_pass_qty
        grn_line.held_quantity += line.held_qty
        grn_line.rtv_quantity += line.rtv_qty
        grn_line.pending_quantity = grn_line.ordered_quantity - grn_line.received_quantity
        grn_line.qc_fail_quantity = grn_line.received_quantity - grn_line.qc_pass_quantity
        grn_line.line_status = calculate_line_status(
            grn_line.ordered_quantity,
            grn_line.rejected_quantity,
            grn_line.qc_pass_quantity,
        ).value
        if line.remarks:
            grn_line.remarks = line.remarks

        now = datetime.now(timezone.utc)
        for batch in line.batches:
            grn_line.batches.append(GRNBatch(
                batch_no=batch.batch_no or generate_batch_number(now),
                expiry_date=batch.expiry_date or (now + timedelta(days=DEFAULT_SHELF_LIFE_DAYS)).date(),
                quantity=batch.quantity,
            ))
        for url in line.photos:
            grn_line.photos.append(GRNPhoto(url=url))

        return grn_line

    @staticmethod
    def _advance_split(split: SkuSplit, received: int) -> None:
        split.received_quantity += received
        if split.received_quantity >= split.split_quantity:
            split.ready_for_receipt = False
            split.receipt_completed = True

    @staticmethod
    def _derive_grn_status(po: PurchaseOrder, grn: GoodsReceiptNote) -> GRNStatus:
        """completed once every line is closed and every ordered unit is received."""
        if not grn.lines or not all(line.is_closed for line in grn.lines):
            return GRNStatus.PARTIAL

        ordered: Dict[str, int] = defaultdict(int)
        for item in po.items:
            ordered[item.catalogue_code] += item.quantity_ordered
        received: Dict[str, int] = defaultdict(int)
        for line in grn.lines:
            received[line.catalogue_code] += line.received_quantity

        if all(received[code] >= qty for code, qty in ordered.items()):
            return GRNStatus.COMPLETED
        return GRNStatus.PARTIAL

    async def post_receipt(
        self,
        po_id: uuid.UUID,
        lines: Sequence[GRNLineInput],
        actor: Optional[str] = None,
    ) -> ServiceResult[Dict[str, Any]]:
        """
        Post receipt lines against an approved PO.

        Returns {"grn_id", "grn_number", "status", "message"}.

        Raises:
            InvalidReference: Unknown PO or SKU not on the PO
            InvalidState: PO is not APPROVED
            LineClosed: SKU's line is already completed or rejected
            QuantityExceeded: Posting breaks a quantity bound
        """
        if not lines:
            raise InvalidRequest("A receipt needs at least one line")

        events: List = []
        async with atomic(self.db):
            po = await self._lock_po(po_id)
            if po.status != POStatus.APPROVED.value:
                raise InvalidState(
                    f"Goods can only be received against an APPROVED PO (PO {po.po_number} is {po.status})",
                    {"status": po.status},
                )

            grn = await self._get_or_create_grn(po, actor)
            lines_by_sku = {line.sku_id: line for line in grn.lines}
            ordered_by_code: Dict[str, int] = defaultdict(int)
            for item in po.items:
                ordered_by_code[item.catalogue_code] += item.quantity_ordered

            for line in lines:
                target = await self._resolve_sku(po, line.sku_id)
                if line.ordered_qty is not None and line.ordered_qty != target.ordered:
                    logger.warning(
                        f"GRN {grn.grn_number}: ordered quantity for {line.sku_id} sent as "
                        f"{line.ordered_qty}, using stored {target.ordered}"
                    )

                grn_line = lines_by_sku.get(line.sku_id)
                if grn_line is not None and grn_line.is_closed:
                    raise LineClosed(
                        f"GRN line for {line.sku_id} is already {grn_line.line_status}",
                        {"sku_id": line.sku_id, "line_status": grn_line.line_status},
                    )

                self._check_posting(line, target, grn_line.received_quantity if grn_line else 0)
                catalogue_received = sum(
                    l.received_quantity for l in lines_by_sku.values() if l.catalogue_code == target.catalogue_code
                )
                self._check_catalogue_bound(
                    line, target, catalogue_received, ordered_by_code[target.catalogue_code]
                )
                grn_line = self._apply_to_line(grn, grn_line, line, target)
                lines_by_sku[line.sku_id] = grn_line

                if line.qc_pass_qty > 0:
                    delta = LedgerDelta(
                        kind=LedgerDeltaKind.GRN_DONE,
                        sku=target.catalogue_code,
                        facility_id=po.facility_id,
                        quantity=line.qc_pass_qty,
                        unit_code=target.sku_id,
                    )
                    await self.ledger.apply(delta)
                    events.append(delta)

                if target.split is not None and line.received_qty > 0:
                    self._advance_split(target.split, line.received_qty)

                logger.info(
                    f"GRN {grn.grn_number} {line.sku_id}: received {grn_line.received_quantity}/"
                    f"{grn_line.ordered_quantity}, qc_pass {grn_line.qc_pass_quantity}, "
                    f"status {grn_line.line_status}"
                )

            grn.status = self._derive_grn_status(po, grn).value
            await self.db.flush()

            value = {
                "grn_id": grn.id,
                "grn_number": grn.grn_number,
                "status": grn.status,
                "message": f"GRN {grn.grn_number} recorded {len(lines)} line(s)",
            }
            events.append(GRNPosted(
                po_id=po.id,
                grn_id=grn.id,
                grn_number=grn.grn_number,
                status=grn.status,
                line_count=len(lines),
            ))

        return ServiceResult(value, events)

    # ==================== READ ====================

    async def get_grn(self, po_id: uuid.UUID) -> GoodsReceiptNote:
        grn = await self._find_grn(po_id)
        if not grn:
            raise InvalidReference(f"No GRN recorded for purchase order {po_id}", {"po_id": str(po_id)})
        return grn
