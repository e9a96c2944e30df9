"""SKU Split Service.

Partitions an approved PO's catalog line into warehouse unit codes.

Unit code format:
    {catalogue_code}{random digits}, UNIT_CODE_LENGTH digits in total
    e.g. catalogue 1000123 → 100012345678

For every (PO, catalog line) the sum of split quantities never exceeds the
ordered quantity. The PO's item rows for the line and the existing split
rows are locked for the whole check-and-write, so concurrent allocations
serialize on the line.
"""
import logging
import secrets
import uuid
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    InvalidReference,
    InvalidState,
    InvalidUnitCode,
    PersistenceFailure,
    QuantityExceeded,
)
from app.database import atomic
from app.models.purchase import POStatus, PurchaseOrder, PurchaseOrderItem
from app.models.sku_split import SkuSplit, SplittingStatus
from app.services.events import ServiceResult


logger = logging.getLogger(__name__)

MAX_GENERATION_ATTEMPTS = 10


@dataclass
class SplitStatus:
    """Aggregate split position of one (PO, catalog line)."""
    po_id: uuid.UUID
    catalogue_code: str
    status: str
    ordered_quantity: int
    total_split: int
    remaining: int
    split_count: int
    unit_code: Optional[str] = None
    unit_split_quantity: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_split(ordered: int, split: int) -> SplittingStatus:
    """
    Aggregate status for a line.

    pending when nothing is split, completed when everything is, partial
    in between. More split than ordered is a broken invariant.
    """
    if split > ordered:
        raise PersistenceFailure(
            "Split quantity exceeds ordered quantity",
            {"ordered": ordered, "split": split},
        )
    if split == 0:
        return SplittingStatus.PENDING
    if split == ordered:
        return SplittingStatus.COMPLETED
    return SplittingStatus.PARTIAL


class SkuSplitService:
    """Allocation of PO line quantities to unit codes."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.unit_code_length = settings.UNIT_CODE_LENGTH

    # ==================== QUERIES ====================

    async def _get_po(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one_or_none()
        if not po:
            raise InvalidReference(f"Purchase order {po_id} not found", {"po_id": str(po_id)})
        return po

    async def _line_items(
        self, po_id: uuid.UUID, catalogue_code: str, lock: bool = False
    ) -> List[PurchaseOrderItem]:
        query = (
            select(PurchaseOrderItem)
            .where(
                PurchaseOrderItem.purchase_order_id == po_id,
                PurchaseOrderItem.catalogue_code == catalogue_code,
            )
            .order_by(PurchaseOrderItem.line_number)
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        items = list(result.scalars().all())
        if not items:
            raise InvalidReference(
                f"Catalog item {catalogue_code} is not on purchase order {po_id}",
                {"po_id": str(po_id), "catalogue_code": catalogue_code},
            )
        return items

    async def _line_splits(
        self, po_id: uuid.UUID, catalogue_code: str, lock: bool = False
    ) -> List[SkuSplit]:
        query = (
            select(SkuSplit)
            .where(
                SkuSplit.purchase_order_id == po_id,
                SkuSplit.catalogue_code == catalogue_code,
            )
            .order_by(SkuSplit.created_at)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def _unit_code_exists(self, unit_code: str) -> bool:
        result = await self.db.execute(
            select(func.count(SkuSplit.id)).where(SkuSplit.unit_code == unit_code)
        )
        return (result.scalar() or 0) > 0

    def validate_unit_code(self, unit_code: str, catalogue_code: str) -> None:
        """
        Check the structural format of a new unit code.

        Raises:
            InvalidUnitCode: Wrong length, non-digit, or not prefixed by the catalogue code
        """
        if (
            len(unit_code) != self.unit_code_length
            or not unit_code.isdigit()
            or not unit_code.startswith(catalogue_code)
            or len(catalogue_code) >= self.unit_code_length
        ):
            raise InvalidUnitCode(
                f"Unit code must be {self.unit_code_length} digits starting with catalogue code {catalogue_code}",
                {"unit_code": unit_code, "catalogue_code": catalogue_code},
            )

    # ==================== ALLOCATION ====================

    async def create_or_update_split(
        self,
        po_id: uuid.UUID,
        catalogue_code: str,
        unit_code: str,
        split_quantity: int,
        actor: Optional[str] = None,
    ) -> ServiceResult[SplitStatus]:
        """
        Allocate split_quantity of a PO line to unit_code.

        A unit code already split from this line is topped up; a new one
        must be well formed and globally unique.

        Raises:
            InvalidReference: Unknown PO or catalog line not on the PO
            InvalidState: PO is not APPROVED, or the unit is already fully received
            InvalidUnitCode: Malformed or already used unit code
            QuantityExceeded: Non-positive quantity or more than remains
        """
        async with atomic(self.db):
            po = await self._get_po(po_id)
            if po.status != POStatus.APPROVED.value:
                raise InvalidState(
                    f"PO {po.po_number} must be APPROVED before splitting (current: {po.status})",
                    {"status": po.status},
                )

            items = await self._line_items(po_id, catalogue_code, lock=True)
            ordered = sum(item.quantity_ordered for item in items)
            splits = await self._line_splits(po_id, catalogue_code, lock=True)
            already_split = sum(s.split_quantity for s in splits)
            remaining = ordered - already_split

            if split_quantity <= 0:
                raise QuantityExceeded(
                    "Split quantity must be positive",
                    {"split_quantity": split_quantity, "remaining": remaining},
                )

            touched = next((s for s in splits if s.unit_code == unit_code), None)
            if touched:
                if touched.receipt_completed:
                    raise InvalidState(
                        f"Unit {unit_code} is fully received and cannot be topped up",
                        {"unit_code": unit_code, "received_quantity": touched.received_quantity},
                    )
                if split_quantity > remaining:
                    raise QuantityExceeded(
                        f"Only {remaining} of {catalogue_code} left to split",
                        {"requested": split_quantity, "remaining": remaining},
                    )
                touched.split_quantity += split_quantity
                if actor:
                    touched.updated_by = [*(touched.updated_by or []), actor]
                logger.info(f"Topped up {unit_code} by {split_quantity} on PO {po.po_number}")
            else:
                self.validate_unit_code(unit_code, catalogue_code)
                if await self._unit_code_exists(unit_code):
                    raise InvalidUnitCode(f"Unit code {unit_code} is already in use", {"unit_code": unit_code})
                if split_quantity > remaining:
                    raise QuantityExceeded(
                        f"Only {remaining} of {catalogue_code} left to split",
                        {"requested": split_quantity, "remaining": remaining},
                    )
                touched = SkuSplit(
                    purchase_order_id=po_id,
                    catalog_item_id=items[0].catalog_item_id,
                    catalogue_code=catalogue_code,
                    unit_code=unit_code,
                    split_quantity=split_quantity,
                    ordered_quantity=ordered,
                    received_quantity=0,
                    ready_for_receipt=True,
                    receipt_completed=False,
                    created_by=actor,
                    updated_by=[],
                )
                try:
                    async with self.db.begin_nested():
                        self.db.add(touched)
                        await self.db.flush()
                except IntegrityError:
                    raise InvalidUnitCode(f"Unit code {unit_code} is already in use", {"unit_code": unit_code})
                splits.append(touched)
                logger.info(f"Split {split_quantity} of {catalogue_code} to new unit {unit_code} on PO {po.po_number}")

            total_split = already_split + split_quantity
            status = classify_split(ordered, total_split)
            for split in splits:
                split.splitting_status = status.value
                split.ordered_quantity = ordered
            await self.db.flush()

            value = SplitStatus(
                po_id=po_id,
                catalogue_code=catalogue_code,
                status=status.value,
                ordered_quantity=ordered,
                total_split=total_split,
                remaining=ordered - total_split,
                split_count=len(splits),
                unit_code=touched.unit_code,
                unit_split_quantity=touched.split_quantity,
            )

        return ServiceResult(value, [])

    async def generate_unit_code(self, catalogue_code: str) -> str:
        """
        Propose an unused unit code for a catalogue code.

        Random suffix digits are drawn until an unused code appears.
        """
        suffix_length = self.unit_code_length - len(catalogue_code)
        if suffix_length <= 0 or not catalogue_code.isdigit():
            raise InvalidUnitCode(
                f"Catalogue code {catalogue_code} cannot prefix a {self.unit_code_length}-digit unit code",
                {"catalogue_code": catalogue_code},
            )

        for _ in range(MAX_GENERATION_ATTEMPTS):
            suffix = str(secrets.randbelow(10 ** suffix_length)).zfill(suffix_length)
            candidate = f"{catalogue_code}{suffix}"
            if not await self._unit_code_exists(candidate):
                return candidate

        raise InvalidUnitCode(
            f"Could not generate a free unit code for {catalogue_code}",
            {"catalogue_code": catalogue_code, "attempts": MAX_GENERATION_ATTEMPTS},
        )

    # ==================== STATUS ====================

    async def get_split_status(self, po_id: uuid.UUID, catalogue_code: str) -> SplitStatus:
        await self._get_po(po_id)
        items = await self._line_items(po_id, catalogue_code)
        splits = await self._line_splits(po_id, catalogue_code)
        ordered = sum(item.quantity_ordered for item in items)
        total_split = sum(s.split_quantity for s in splits)
        return SplitStatus(
            po_id=po_id,
            catalogue_code=catalogue_code,
            status=classify_split(ordered, total_split).value,
            ordered_quantity=ordered,
            total_split=total_split,
            remaining=ordered - total_split,
            split_count=len(splits),
        )

    async def get_po_split_status(self, po_id: uuid.UUID) -> List[SplitStatus]:
        """Split position of every catalog line on the PO."""
        po = await self._get_po(po_id)
        codes = sorted({item.catalogue_code for item in po.items})
        return [await self.get_split_status(po_id, code) for code in codes]

    async def list_splits(self, po_id: uuid.UUID) -> List[SkuSplit]:
        result = await self.db.execute(
            select(SkuSplit)
            .where(SkuSplit.purchase_order_id == po_id)
            .order_by(SkuSplit.catalogue_code, SkuSplit.created_at)
        )
        return list(result.scalars().all())

    async def list_ready_for_receipt(self, limit: int = 50, offset: int = 0) -> Tuple[List[SkuSplit], int]:
        """Splits on approved POs still waiting for goods."""
        conditions = [
            SkuSplit.ready_for_receipt == True,  # noqa: E712
            PurchaseOrder.status == POStatus.APPROVED.value,
        ]
        count_result = await self.db.execute(
            select(func.count(SkuSplit.id))
            .join(PurchaseOrder, PurchaseOrder.id == SkuSplit.purchase_order_id)
            .where(*conditions)
        )
        total = count_result.scalar() or 0

        result = await self.db.execute(
            select(SkuSplit)
            .join(PurchaseOrder, PurchaseOrder.id == SkuSplit.purchase_order_id)
            .where(*conditions)
            .order_by(SkuSplit.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total
