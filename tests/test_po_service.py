import uuid
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest

from conftest import approve_po, make_po_request, token_from
from app.core.exceptions import (
    AlreadyDecided,
    AlreadyEdited,
    InvalidReference,
    InvalidRequest,
    InvalidState,
    TokenExpired,
    Unauthorized,
)
from app.models.purchase import ApprovalAction, ApprovalRole, POPriority, POStatus
from app.schemas.purchase import CreatorReview, POLineCreate, PurchaseOrderDraftUpdate, PurchaseOrderEditCreate
from app.services.approval_token_service import ApprovalTokenService
from app.services.events import ApprovalRequested, LedgerDeltaKind, POApproved, POCancelled, POEdited, PORejected
from app.services.inventory_ledger_service import InventoryLedgerService
from app.services.po_service import POService


async def ledger_for(db, master_data, sku="1000123"):
    return await InventoryLedgerService(db).get_entry(sku, master_data["facility_id"])


# ==================== CREATE ====================

@pytest.mark.asyncio
async def test_create_po_snapshots_lines_and_raises_ledger(db, po_service, master_data):
    result = await po_service.create_po(
        make_po_request(master_data, [("1000123", 100, "250.00"), ("2000456", 40, "900.50")]),
        actor="creator-1",
    )
    po = result.value

    assert po.status == POStatus.DRAFT.value
    assert po.priority == POPriority.MEDIUM.value
    assert po.is_edited is False
    assert po.po_number.startswith("PO/DC/")
    assert po.po_number.endswith("/00001")
    assert po.total_amount == Decimal("61020.00")
    assert po.created_by == "creator-1"

    first = po.items[0]
    assert first.line_number == 1
    assert first.product_name == "RO Membrane 80 GPD"
    assert first.hsn_code == "84219900"
    assert first.mrp == Decimal("1499.00")
    assert first.line_total == Decimal("25000.00")

    assert sorted(a.role for a in po.approvals) == ["admin", "category_head", "creator"]
    assert all(a.action == ApprovalAction.PENDING.value for a in po.approvals)

    deltas = result.ledger_deltas
    assert [(d.kind, d.sku, d.quantity) for d in deltas] == [
        (LedgerDeltaKind.PO_RAISE, "1000123", 100),
        (LedgerDeltaKind.PO_RAISE, "2000456", 40),
    ]
    assert (await ledger_for(db, master_data))["po_raise"] == 100


@pytest.mark.asyncio
async def test_po_numbers_are_sequential(po_service, master_data):
    first = await po_service.create_po(make_po_request(master_data))
    second = await po_service.create_po(make_po_request(master_data))
    assert first.value.po_number.endswith("/00001")
    assert second.value.po_number.endswith("/00002")


@pytest.mark.asyncio
async def test_repeated_catalog_item_sums_on_ledger(db, po_service, master_data):
    await po_service.create_po(
        make_po_request(master_data, [("1000123", 30, "10.00"), ("1000123", 20, "12.00")])
    )
    assert (await ledger_for(db, master_data))["po_raise"] == 50


@pytest.mark.asyncio
async def test_create_po_unknown_references(db, po_service, master_data):
    with pytest.raises(InvalidReference):
        await po_service.create_po(make_po_request(master_data, vendor_id=uuid.uuid4()))
    with pytest.raises(InvalidReference):
        await po_service.create_po(make_po_request(master_data, facility_id=uuid.uuid4()))
    with pytest.raises(InvalidReference) as exc:
        await po_service.create_po(make_po_request(master_data, [("9999999", 1, "1.00")]))
    assert exc.value.details["catalogue_codes"] == ["9999999"]

    # Inactive catalog items are not orderable
    with pytest.raises(InvalidReference):
        await po_service.create_po(make_po_request(master_data, [("3000789", 1, "1.00")]))

    assert (await ledger_for(db, master_data))["po_raise"] == 0


@pytest.mark.asyncio
async def test_create_po_rejects_bad_lines(po_service, master_data):
    request = make_po_request(master_data)
    request.lines = []
    with pytest.raises(InvalidRequest):
        await po_service.create_po(request)

    request = make_po_request(master_data)
    request.lines = [POLineCreate.model_construct(catalogue_code="1000123", quantity=0, unit_price=Decimal("1"))]
    with pytest.raises(InvalidRequest):
        await po_service.create_po(request)

    request = make_po_request(master_data)
    request.lines = [POLineCreate.model_construct(catalogue_code="1000123", quantity=5, unit_price=Decimal("-1"))]
    with pytest.raises(InvalidRequest):
        await po_service.create_po(request)


# ==================== DRAFT MAINTENANCE ====================

@pytest.mark.asyncio
async def test_update_draft_moves_ledger_by_difference(db, po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data, [("1000123", 100, "250.00")]))).value
    po_id = po.id

    result = await po_service.update_draft(
        po_id,
        PurchaseOrderDraftUpdate(
            priority=POPriority.URGENT,
            lines=[
                POLineCreate(catalogue_code="1000123", quantity=60, unit_price=Decimal("250.00")),
                POLineCreate(catalogue_code="2000456", quantity=10, unit_price=Decimal("900.00")),
            ],
        ),
        actor="creator-1",
    )

    assert result.value.priority == "URGENT"
    assert result.value.total_amount == Decimal("24000.00")
    assert len(result.value.items) == 2
    kinds = {(d.kind, d.sku, d.quantity) for d in result.ledger_deltas}
    assert kinds == {
        (LedgerDeltaKind.PO_RAISE, "2000456", 10),
        (LedgerDeltaKind.PO_RAISE_REVERSAL, "1000123", 40),
    }
    assert (await ledger_for(db, master_data))["po_raise"] == 60
    assert (await ledger_for(db, master_data, "2000456"))["po_raise"] == 10


@pytest.mark.asyncio
async def test_delete_draft_reverses_raise(db, po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id

    result = await po_service.delete_draft(po_id, actor="creator-1")

    assert result.value["po_number"] == po.po_number
    assert (await ledger_for(db, master_data))["po_raise"] == 0
    with pytest.raises(InvalidReference):
        await po_service.get_po(po_id)


@pytest.mark.asyncio
async def test_submitted_po_cannot_be_updated_or_deleted(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await po_service.submit_for_approval(po_id)

    with pytest.raises(InvalidState):
        await po_service.update_draft(po_id, PurchaseOrderDraftUpdate(description="late change"))
    with pytest.raises(InvalidState):
        await po_service.delete_draft(po_id)


# ==================== APPROVAL CHAIN ====================

@pytest.mark.asyncio
async def test_full_approval_chain(db, po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id

    submitted = await po_service.submit_for_approval(po_id, actor="creator-1")
    assert submitted.value.status == POStatus.PENDING_CATEGORY_HEAD.value
    [requested] = submitted.of_type(ApprovalRequested)
    assert requested.role == ApprovalRole.CATEGORY_HEAD
    assert requested.po_number == po.po_number

    result = await po_service.decide(token_from(submitted, ApprovalRole.CATEGORY_HEAD), "APPROVED", comments="ok")
    assert result.value.status == POStatus.PENDING_ADMIN.value
    assert result.value.approval_for("category_head").action == "APPROVED"
    assert result.value.approval_for("category_head").comments == "ok"

    result = await po_service.decide(token_from(result, ApprovalRole.ADMIN), "approved")
    assert result.value.status == POStatus.PENDING_CREATOR_REVIEW.value

    result = await po_service.decide(token_from(result, ApprovalRole.CREATOR), "APPROVED")
    assert result.value.status == POStatus.APPROVED.value
    assert result.value.approved_at is not None
    [approved] = result.of_type(POApproved)
    assert approved.line_count == 1
    assert [(d.kind, d.quantity) for d in result.ledger_deltas] == [(LedgerDeltaKind.PO_APPROVE, 100)]

    entry = await ledger_for(db, master_data)
    assert entry["po_raise"] == 100
    assert entry["po_approve"] == 100


@pytest.mark.asyncio
async def test_rejection_ends_chain_and_reverses_raise(db, po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    submitted = await po_service.submit_for_approval(po_id)
    result = await po_service.decide(token_from(submitted, ApprovalRole.CATEGORY_HEAD), "APPROVED")

    result = await po_service.decide(token_from(result, ApprovalRole.ADMIN), "REJECTED", comments="Over budget")

    assert result.value.status == POStatus.REJECTED.value
    assert result.value.rejection_reason == "Over budget"
    [rejected] = result.of_type(PORejected)
    assert rejected.role == ApprovalRole.ADMIN
    assert (await ledger_for(db, master_data))["po_raise"] == 0
    assert result.value.approval_for("creator").action == ApprovalAction.PENDING.value


@pytest.mark.asyncio
@pytest.mark.parametrize("approvals_before", [0, 1, 2])
async def test_rejection_at_each_stage(db, po_service, master_data, approvals_before):
    chain = [ApprovalRole.CATEGORY_HEAD, ApprovalRole.ADMIN, ApprovalRole.CREATOR]
    po_id = (await po_service.create_po(make_po_request(master_data))).value.id
    result = await po_service.submit_for_approval(po_id)
    for role in chain[:approvals_before]:
        result = await po_service.decide(token_from(result, role), "APPROVED")

    rejecting_role = chain[approvals_before]
    result = await po_service.decide(token_from(result, rejecting_role), "REJECTED", comments="No")

    assert result.value.status == POStatus.REJECTED.value
    assert result.value.rejected_at is not None
    assert result.of_type(PORejected)[0].role == rejecting_role
    entry = await ledger_for(db, master_data)
    assert (entry["po_raise"], entry["po_approve"]) == (0, 0)


@pytest.mark.asyncio
async def test_replayed_token_is_already_decided(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    submitted = await po_service.submit_for_approval(po_id)
    token = token_from(submitted, ApprovalRole.CATEGORY_HEAD)

    await po_service.decide(token, "APPROVED")
    with pytest.raises(AlreadyDecided):
        await po_service.decide(token, "REJECTED")

    refreshed = await po_service.get_po(po_id)
    assert refreshed.status == POStatus.PENDING_ADMIN.value


@pytest.mark.asyncio
async def test_token_for_wrong_stage_is_invalid_state(po_service, tokens, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await po_service.submit_for_approval(po_id)

    early_admin = tokens.issue(po_id, ApprovalRole.ADMIN)
    with pytest.raises(InvalidState):
        await po_service.decide(early_admin, "APPROVED")


@pytest.mark.asyncio
async def test_expired_token_changes_nothing(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    submitted = await po_service.submit_for_approval(po_id)
    token = token_from(submitted, ApprovalRole.CATEGORY_HEAD)

    later = datetime.now(timezone.utc) + timedelta(hours=2)
    with pytest.raises(TokenExpired):
        await po_service.decide(token, "APPROVED", now=later)

    refreshed = await po_service.get_po(po_id)
    assert refreshed.status == POStatus.PENDING_CATEGORY_HEAD.value
    assert refreshed.approval_for("category_head").action == ApprovalAction.PENDING.value


@pytest.mark.asyncio
async def test_unknown_decision_is_rejected(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    submitted = await po_service.submit_for_approval(po_id)
    with pytest.raises(InvalidRequest):
        await po_service.decide(token_from(submitted, ApprovalRole.CATEGORY_HEAD), "MAYBE")


@pytest.mark.asyncio
async def test_override_password_required_when_configured(db, master_data):
    guarded = ApprovalTokenService(
        secret_key="test-approval-secret",
        salt="test-salt",
        ttl_minutes=60,
        override_password="s3cret",
    )
    service = POService(db, guarded)
    po = (await service.create_po(make_po_request(master_data))).value
    po_id = po.id
    submitted = await service.submit_for_approval(po_id)
    token = token_from(submitted, ApprovalRole.CATEGORY_HEAD)

    with pytest.raises(Unauthorized):
        await service.decide(token, "APPROVED", override_password="guess")

    result = await service.decide(token, "APPROVED", override_password="s3cret")
    assert result.value.status == POStatus.PENDING_ADMIN.value


@pytest.mark.asyncio
async def test_submit_twice_is_invalid_state(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await po_service.submit_for_approval(po_id)
    with pytest.raises(InvalidState) as exc:
        await po_service.submit_for_approval(po_id)
    assert exc.value.details == {"status": POStatus.PENDING_CATEGORY_HEAD.value}
    assert "only be submitted from DRAFT" in exc.value.message


@pytest.mark.asyncio
async def test_unknown_po(po_service):
    with pytest.raises(InvalidReference):
        await po_service.submit_for_approval(uuid.uuid4())


@pytest.mark.asyncio
async def test_reads_and_drafts_do_not_need_token_service(db, master_data, monkeypatch):
    def unavailable():
        raise AssertionError("token service should not be resolved")

    monkeypatch.setattr("app.services.po_service.get_approval_token_service", unavailable)
    service = POService(db)

    po_id = (await service.create_po(make_po_request(master_data))).value.id
    po = await service.get_po(po_id)
    assert po.status == POStatus.DRAFT.value
    await service.delete_draft(po_id)

    # Issuing the first approval token resolves it
    other_id = (await service.create_po(make_po_request(master_data))).value.id
    with pytest.raises(AssertionError):
        await service.submit_for_approval(other_id)


# ==================== CREATOR REVIEW ====================

@pytest.mark.asyncio
async def test_creator_review_approves_with_proforma(db, po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    submitted = await po_service.submit_for_approval(po_id)
    result = await po_service.decide(token_from(submitted, ApprovalRole.CATEGORY_HEAD), "APPROVED")
    await po_service.decide(token_from(result, ApprovalRole.ADMIN), "APPROVED")

    review = CreatorReview(
        expected_delivery_date=date(2026, 11, 30),
        pi_notes="PI-7781 received",
        pi_file_url="https://files.test/pi-7781.pdf",
    )
    result = await po_service.complete_creator_review(po_id, review, actor="creator-1")

    assert result.value.status == POStatus.APPROVED.value
    assert result.value.expected_delivery_date == date(2026, 11, 30)
    assert result.value.pi_file_url == "https://files.test/pi-7781.pdf"
    assert result.value.approval_for("creator").action == ApprovalAction.APPROVED.value
    assert (await ledger_for(db, master_data))["po_approve"] == 100


@pytest.mark.asyncio
async def test_creator_review_requires_creator_stage(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await po_service.submit_for_approval(po_id)
    with pytest.raises(InvalidState):
        await po_service.complete_creator_review(po_id, CreatorReview(expected_delivery_date=date(2026, 12, 1)))


# ==================== CANCEL ====================

@pytest.mark.asyncio
async def test_cancel_pending_po(db, po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await po_service.submit_for_approval(po_id)

    result = await po_service.cancel(po_id, reason="Vendor withdrew", actor="creator-1")

    assert result.value.status == POStatus.CANCELLED.value
    assert result.value.cancellation_reason == "Vendor withdrew"
    assert result.of_type(POCancelled)
    assert (await ledger_for(db, master_data))["po_raise"] == 0


@pytest.mark.asyncio
async def test_cannot_cancel_draft_or_approved(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    with pytest.raises(InvalidState):
        await po_service.cancel(po_id)

    await approve_po(po_service, po_id)
    with pytest.raises(InvalidState):
        await po_service.cancel(po_id)


# ==================== EDIT ONCE ====================

def edit_request(quantity=80):
    return PurchaseOrderEditCreate(
        lines=[POLineCreate(catalogue_code="1000123", quantity=quantity, unit_price=Decimal("240.00"))],
        priority=POPriority.HIGH,
        description="Reduced after vendor call",
    )


@pytest.mark.asyncio
async def test_edit_once_records_proposal(db, po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await po_service.submit_for_approval(po_id)

    result = await po_service.edit_once(po_id, edit_request(), actor="admin-1")

    edit = result.value
    assert edit.status_at_edit == POStatus.PENDING_CATEGORY_HEAD.value
    assert edit.priority == "HIGH"
    assert edit.total_amount == Decimal("19200.00")
    assert edit.items[0].quantity == 80
    assert result.of_type(POEdited)

    refreshed = await po_service.get_po(po_id)
    assert refreshed.is_edited is True
    # Original lines stay as ordered
    assert refreshed.items[0].quantity_ordered == 100
    assert refreshed.status == POStatus.PENDING_CATEGORY_HEAD.value


@pytest.mark.asyncio
async def test_second_edit_is_refused(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await po_service.submit_for_approval(po_id)
    await po_service.edit_once(po_id, edit_request())

    with pytest.raises(AlreadyEdited):
        await po_service.edit_once(po_id, edit_request(quantity=70))

    refreshed = await po_service.get_po(po_id)
    assert refreshed.edit.items[0].quantity == 80


@pytest.mark.asyncio
async def test_edit_allowed_after_approval(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    await approve_po(po_service, po_id)

    result = await po_service.edit_once(po_id, edit_request())
    assert result.value.status_at_edit == POStatus.APPROVED.value


@pytest.mark.asyncio
async def test_edit_refused_for_draft_and_rejected(po_service, master_data):
    po = (await po_service.create_po(make_po_request(master_data))).value
    po_id = po.id
    with pytest.raises(InvalidState):
        await po_service.edit_once(po_id, edit_request())

    submitted = await po_service.submit_for_approval(po_id)
    await po_service.decide(token_from(submitted, ApprovalRole.CATEGORY_HEAD), "REJECTED")
    with pytest.raises(InvalidState):
        await po_service.edit_once(po_id, edit_request())
