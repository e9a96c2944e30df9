"""
Purchase Order Lifecycle Service

Owns creation, draft maintenance, the three-stage approval chain, the
single post-submission edit and cancellation. Every public method runs as
one unit of work and returns a ServiceResult with the domain events it
produced. Ledger deltas are applied here, inside the same transaction;
notification events are left for the caller to dispatch after commit.

Approval chain:
    DRAFT → PENDING_CATEGORY_HEAD → PENDING_ADMIN → PENDING_CREATOR_REVIEW → APPROVED
"""
import logging
import uuid
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    AlreadyDecided,
    AlreadyEdited,
    InvalidReference,
    InvalidRequest,
    InvalidState,
)
from app.database import atomic
from app.models.document_sequence import DocumentType
from app.models.master_data import CatalogItem
from app.models.purchase import (
    ApprovalAction,
    ApprovalRole,
    POApproval,
    POPriority,
    POStatus,
    PurchaseOrder,
    PurchaseOrderEdit,
    PurchaseOrderEditItem,
    PurchaseOrderItem,
)
from app.schemas.purchase import (
    CreatorReview,
    POLineCreate,
    PurchaseOrderCreate,
    PurchaseOrderDraftUpdate,
    PurchaseOrderEditCreate,
)
from app.services import po_state_machine as sm
from app.services.approval_token_service import ApprovalTokenService, get_approval_token_service
from app.services.document_sequence_service import DocumentSequenceService
from app.services.events import (
    ApprovalRequested,
    LedgerDelta,
    LedgerDeltaKind,
    POApproved,
    POCancelled,
    POEdited,
    PORejected,
    ServiceResult,
)
from app.services.inventory_ledger_service import InventoryLedgerService
from app.services.master_data_service import MasterDataService


logger = logging.getLogger(__name__)

CHAIN_ROLES = (ApprovalRole.CREATOR, ApprovalRole.CATEGORY_HEAD, ApprovalRole.ADMIN)
DECISIONS = (ApprovalAction.APPROVED.value, ApprovalAction.REJECTED.value)


class POService:
    """Purchase order lifecycle and approval chain."""

    def __init__(self, db: AsyncSession, token_service: Optional[ApprovalTokenService] = None):
        self.db = db
        self._tokens = token_service
        self.master_data = MasterDataService(db)
        self.ledger = InventoryLedgerService(db)

    @property
    def tokens(self) -> ApprovalTokenService:
        """Token service, resolved from settings on first use."""
        if self._tokens is None:
            self._tokens = get_approval_token_service()
        return self._tokens

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

    async def get_po(self, po_id: uuid.UUID) -> PurchaseOrder:
        result = await self.db.execute(
            select(PurchaseOrder)
            .where(PurchaseOrder.id == po_id)
            .execution_options(populate_existing=True)
        )
        po = result.scalar_one_or_none()
        if not po:
            raise InvalidReference(f"Purchase order {po_id} not found", {"po_id": str(po_id)})
        return po

    # ==================== LINE HELPERS ====================

    async def _resolve_lines(
        self, lines: Sequence[POLineCreate]
    ) -> Tuple[List[Tuple[POLineCreate, CatalogItem, Decimal]], Decimal]:
        """Validate lines against the catalog and price them."""
        if not lines:
            raise InvalidRequest("A purchase order needs at least one line")
        for line in lines:
            if line.quantity <= 0:
                raise InvalidRequest(
                    f"Quantity for {line.catalogue_code} must be positive",
                    {"catalogue_code": line.catalogue_code, "quantity": line.quantity},
                )
            if Decimal(line.unit_price) < 0:
                raise InvalidRequest(
                    f"Unit price for {line.catalogue_code} cannot be negative",
                    {"catalogue_code": line.catalogue_code},
                )

        catalog = await self.master_data.get_catalog_items(line.catalogue_code for line in lines)

        resolved = []
        total = Decimal("0")
        for line in lines:
            line_total = (Decimal(line.unit_price) * line.quantity).quantize(Decimal("0.01"))
            resolved.append((line, catalog[line.catalogue_code], line_total))
            total += line_total
        return resolved, total

    @staticmethod
    def _build_items(resolved) -> List[PurchaseOrderItem]:
        items = []
        for number, (line, catalog_item, line_total) in enumerate(resolved, start=1):
            items.append(PurchaseOrderItem(
                line_number=number,
                catalog_item_id=catalog_item.id,
                catalogue_code=catalog_item.catalogue_code,
                product_name=catalog_item.name,
                hsn_code=catalog_item.hsn_code,
                gst_rate=catalog_item.gst_rate,
                mrp=catalog_item.mrp,
                weight=catalog_item.weight,
                length=catalog_item.length,
                width=catalog_item.width,
                height=catalog_item.height,
                quantity_ordered=line.quantity,
                unit_price=line.unit_price,
                line_total=line_total,
            ))
        return items

    @staticmethod
    def _quantity_by_sku(items) -> Dict[str, int]:
        totals: Dict[str, int] = defaultdict(int)
        for item in items:
            totals[item.catalogue_code] += item.quantity_ordered
        return dict(totals)

    @staticmethod
    def _deltas(po: PurchaseOrder, quantities: Dict[str, int], kind: LedgerDeltaKind) -> List[LedgerDelta]:
        return [
            LedgerDelta(kind=kind, sku=sku, facility_id=po.facility_id, quantity=qty)
            for sku, qty in sorted(quantities.items())
            if qty > 0
        ]

    async def _apply_ledger(self, deltas: List[LedgerDelta]) -> List[LedgerDelta]:
        for delta in deltas:
            await self.ledger.apply(delta)
        return deltas

    def _approval_requested(self, po: PurchaseOrder, role: ApprovalRole) -> ApprovalRequested:
        token = self.tokens.issue(po.id, role)
        return ApprovalRequested(
            po_id=po.id,
            po_number=po.po_number,
            role=role,
            token=token,
            total_amount=po.total_amount,
        )

    async def _decide_record(
        self,
        approval: POApproval,
        action: str,
        comments: Optional[str],
        decided_at: datetime,
    ) -> None:
        """Conditional write: only a still-pending record can be decided."""
        result = await self.db.execute(
            update(POApproval)
            .where(
                POApproval.id == approval.id,
                POApproval.action == ApprovalAction.PENDING.value,
            )
            .values(action=action, comments=comments, decided_at=decided_at)
        )
        if result.rowcount != 1:
            raise AlreadyDecided(
                f"The {approval.role} decision for this purchase order was already recorded",
                {"role": approval.role},
            )
        approval.action = action
        approval.comments = comments
        approval.decided_at = decided_at

    async def _finalize_approval(self, po: PurchaseOrder) -> List:
        deltas = self._deltas(po, self._quantity_by_sku(po.items), LedgerDeltaKind.PO_APPROVE)
        events: List = await self._apply_ledger(deltas)
        events.append(POApproved(
            po_id=po.id,
            po_number=po.po_number,
            total_amount=po.total_amount,
            line_count=len(po.items),
        ))
        logger.info(f"PO {po.po_number} approved")
        return events

    # ==================== CREATE / DRAFT ====================

    async def create_po(self, data: PurchaseOrderCreate, actor: Optional[str] = None) -> ServiceResult[PurchaseOrder]:
        """
        Create a DRAFT purchase order.

        Snapshots catalog attributes per line, allocates the PO number,
        initializes a pending approval record per chain role and records
        the raised quantity on the ledger.

        Raises:
            InvalidReference: Unknown vendor, facility or catalog item
            InvalidRequest: Empty line list, non-positive quantity or negative price
        """
        async with atomic(self.db):
            await self.master_data.get_vendor(data.vendor_id)
            await self.master_data.get_facility(data.facility_id)
            resolved, total = await self._resolve_lines(data.lines)

            po_number = await DocumentSequenceService(self.db, requested_by=actor).get_next_number(
                DocumentType.PURCHASE_ORDER.value
            )
            po = PurchaseOrder(
                po_number=po_number,
                status=POStatus.DRAFT.value,
                priority=(data.priority or POPriority.MEDIUM).value,
                is_edited=False,
                vendor_id=data.vendor_id,
                facility_id=data.facility_id,
                total_amount=total,
                description=data.description,
                notes=data.notes,
                created_by=actor,
                updated_by=actor,
            )
            po.items = self._build_items(resolved)
            po.approvals = [
                POApproval(role=role.value, action=ApprovalAction.PENDING.value)
                for role in CHAIN_ROLES
            ]
            self.db.add(po)
            await self.db.flush()

            events = await self._apply_ledger(
                self._deltas(po, self._quantity_by_sku(po.items), LedgerDeltaKind.PO_RAISE)
            )
            logger.info(f"Created PO {po.po_number} with {len(po.items)} lines, total {total}")

        return ServiceResult(po, events)

    async def update_draft(
        self,
        po_id: uuid.UUID,
        data: PurchaseOrderDraftUpdate,
        actor: Optional[str] = None,
    ) -> ServiceResult[PurchaseOrder]:
        """
        Update a DRAFT PO in place.

        Replacing lines re-snapshots them and moves the ledger's raised
        quantity by the difference.
        """
        async with atomic(self.db):
            po = await self._lock_po(po_id)
            if not sm.can_edit_draft(po.status):
                raise InvalidState(
                    f"PO {po.po_number} can only be updated in DRAFT (current: {po.status})",
                    {"status": po.status},
                )

            events: List = []
            if data.lines is not None:
                before = self._quantity_by_sku(po.items)
                resolved, total = await self._resolve_lines(data.lines)
                po.items = self._build_items(resolved)
                po.total_amount = total
                after = self._quantity_by_sku(po.items)

                raised = {sku: after.get(sku, 0) - before.get(sku, 0) for sku in set(before) | set(after)}
                deltas = self._deltas(po, {s: q for s, q in raised.items() if q > 0}, LedgerDeltaKind.PO_RAISE)
                deltas += self._deltas(
                    po, {s: -q for s, q in raised.items() if q < 0}, LedgerDeltaKind.PO_RAISE_REVERSAL
                )
                events += await self._apply_ledger(deltas)

            if data.priority is not None:
                po.priority = data.priority.value
            if data.description is not None:
                po.description = data.description
            if data.notes is not None:
                po.notes = data.notes
            po.updated_by = actor
            await self.db.flush()

        return ServiceResult(po, events)

    async def delete_draft(self, po_id: uuid.UUID, actor: Optional[str] = None) -> ServiceResult[Dict[str, str]]:
        """Physically delete a DRAFT PO and reverse its raised quantity."""
        async with atomic(self.db):
            po = await self._lock_po(po_id)
            if not sm.can_delete(po.status):
                raise InvalidState(
                    f"PO {po.po_number} can only be deleted in DRAFT (current: {po.status})",
                    {"status": po.status},
                )
            events = await self._apply_ledger(
                self._deltas(po, self._quantity_by_sku(po.items), LedgerDeltaKind.PO_RAISE_REVERSAL)
            )
            value = {"id": str(po.id), "po_number": po.po_number}
            await self.db.delete(po)
            await self.db.flush()
            logger.info(f"Deleted draft PO {value['po_number']} (by {actor})")

        return ServiceResult(value, events)

    # ==================== APPROVAL CHAIN ====================

    async def submit_for_approval(self, po_id: uuid.UUID, actor: Optional[str] = None) -> ServiceResult[PurchaseOrder]:
        """
        DRAFT → PENDING_CATEGORY_HEAD, issuing the category head's token.

        Raises:
            InvalidState: PO is not in DRAFT
        """
        async with atomic(self.db):
            po = await self._lock_po(po_id)
            if not sm.can_submit(po.status):
                raise InvalidState(
                    f"PO {po.po_number} can only be submitted from DRAFT (current: {po.status})",
                    {"status": po.status},
                )
            sm.transition_po(po, POStatus.PENDING_CATEGORY_HEAD)
            po.updated_by = actor
            await self.db.flush()
            events = [self._approval_requested(po, ApprovalRole.CATEGORY_HEAD)]
            logger.info(f"PO {po.po_number} submitted for approval")

        return ServiceResult(po, events)

    async def decide(
        self,
        token: str,
        action: str,
        comments: Optional[str] = None,
        override_password: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult[PurchaseOrder]:
        """
        Record an approval decision carried by a capability token.

        Rejection ends the chain and reverses the raised quantity. Approval
        advances to the next role and issues its token; the creator's
        approval finalizes the PO and records the approved quantity.

        Raises:
            TokenInvalid / TokenExpired: Token fails validation
            Unauthorized: Override password configured and not matched
            AlreadyDecided: The token's approval record was already decided
            InvalidState: The PO is not waiting on the token's role
        """
        action = (action or "").upper()
        if action not in DECISIONS:
            raise InvalidRequest(f"Decision must be one of {', '.join(DECISIONS)}", {"action": action})

        claim = self.tokens.validate(token, now=now)
        self.tokens.check_override_password(override_password)

        async with atomic(self.db):
            po = await self._lock_po(claim.po_id)
            approval = po.approval_for(claim.role.value)
            if approval is None:
                raise InvalidReference(
                    f"No {claim.role.value} approval record for PO {po.po_number}",
                    {"role": claim.role.value},
                )
            if approval.action != ApprovalAction.PENDING.value:
                raise AlreadyDecided(
                    f"The {claim.role.value} decision for PO {po.po_number} was already recorded",
                    {"role": claim.role.value, "action": approval.action},
                )

            stage = sm.stage_for_role(claim.role)
            if po.status != stage.value:
                raise InvalidState(
                    f"PO {po.po_number} is {po.status}, not awaiting {claim.role.value}",
                    {"status": po.status, "role": claim.role.value},
                )

            decided_at = now or datetime.now(timezone.utc)
            await self._decide_record(approval, action, comments, decided_at)

            if action == ApprovalAction.REJECTED.value:
                sm.transition_po(po, POStatus.REJECTED, reason=comments, now=decided_at)
                events: List = await self._apply_ledger(
                    self._deltas(po, self._quantity_by_sku(po.items), LedgerDeltaKind.PO_RAISE_REVERSAL)
                )
                events.append(PORejected(
                    po_id=po.id, po_number=po.po_number, role=claim.role, reason=comments
                ))
                logger.info(f"PO {po.po_number} rejected by {claim.role.value}")
            else:
                next_status = sm.APPROVAL_NEXT[stage]
                sm.transition_po(po, next_status, now=decided_at)
                logger.info(f"PO {po.po_number} approved by {claim.role.value}, now {next_status.value}")
                if next_status == POStatus.APPROVED:
                    events = await self._finalize_approval(po)
                else:
                    events = [self._approval_requested(po, sm.STAGE_ROLE[next_status])]

            po.updated_by = claim.role.value
            await self.db.flush()

        return ServiceResult(po, events)

    async def complete_creator_review(
        self,
        po_id: uuid.UUID,
        data: CreatorReview,
        actor: Optional[str] = None,
    ) -> ServiceResult[PurchaseOrder]:
        """
        Creator's final step via proforma invoice upload.

        Records the delivery date and PI reference, decides the creator's
        approval record and approves the PO.
        """
        async with atomic(self.db):
            po = await self._lock_po(po_id)
            if po.status != POStatus.PENDING_CREATOR_REVIEW.value:
                raise InvalidState(
                    f"PO {po.po_number} is {po.status}, not awaiting creator review",
                    {"status": po.status},
                )
            approval = po.approval_for(ApprovalRole.CREATOR.value)
            now = datetime.now(timezone.utc)
            await self._decide_record(approval, ApprovalAction.APPROVED.value, data.pi_notes, now)

            po.expected_delivery_date = data.expected_delivery_date
            po.pi_notes = data.pi_notes
            po.pi_file_url = data.pi_file_url
            po.updated_by = actor
            sm.transition_po(po, POStatus.APPROVED, now=now)
            events = await self._finalize_approval(po)
            await self.db.flush()

        return ServiceResult(po, events)

    async def cancel(
        self,
        po_id: uuid.UUID,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> ServiceResult[PurchaseOrder]:
        """Cancel a PO that is still pending approval."""
        async with atomic(self.db):
            po = await self._lock_po(po_id)
            sm.transition_po(po, POStatus.CANCELLED, reason=reason)
            po.updated_by = actor
            events: List = await self._apply_ledger(
                self._deltas(po, self._quantity_by_sku(po.items), LedgerDeltaKind.PO_RAISE_REVERSAL)
            )
            events.append(POCancelled(po_id=po.id, po_number=po.po_number, reason=reason))
            await self.db.flush()
            logger.info(f"PO {po.po_number} cancelled by {actor}")

        return ServiceResult(po, events)

    # ==================== EDIT ONCE ====================

    async def edit_once(
        self,
        po_id: uuid.UUID,
        data: PurchaseOrderEditCreate,
        actor: Optional[str] = None,
    ) -> ServiceResult[PurchaseOrderEdit]:
        """
        Record the single edit proposal a submitted PO may receive.

        The original PO lines stay untouched; the proposal is stored
        alongside and the PO is flagged as edited.

        Raises:
            InvalidState: PO is a draft, rejected or cancelled
            AlreadyEdited: The PO's edit was already used
        """
        async with atomic(self.db):
            po = await self._lock_po(po_id)
            if not sm.can_edit_once(po.status):
                raise InvalidState(
                    f"PO {po.po_number} cannot be edited in {po.status}",
                    {"status": po.status},
                )

            result = await self.db.execute(
                update(PurchaseOrder)
                .where(PurchaseOrder.id == po.id, PurchaseOrder.is_edited == False)  # noqa: E712
                .values(is_edited=True, updated_by=actor, updated_at=datetime.now(timezone.utc))
            )
            if result.rowcount != 1:
                raise AlreadyEdited(f"PO {po.po_number} has already been edited", {"po_id": str(po.id)})
            po.is_edited = True

            resolved, total = await self._resolve_lines(data.lines)
            edit = PurchaseOrderEdit(
                status_at_edit=po.status,
                priority=data.priority.value if data.priority else None,
                description=data.description,
                expected_delivery_date=data.expected_delivery_date,
                total_amount=total,
                edited_by=actor,
                items=[
                    PurchaseOrderEditItem(
                        catalog_item_id=catalog_item.id,
                        catalogue_code=catalog_item.catalogue_code,
                        product_name=catalog_item.name,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                        line_total=line_total,
                    )
                    for line, catalog_item, line_total in resolved
                ],
            )
            po.edit = edit
            await self.db.flush()
            logger.info(f"PO {po.po_number} edit proposal recorded by {actor}")

        return ServiceResult(edit, [POEdited(po_id=po.id, po_number=po.po_number, status=po.status)])
