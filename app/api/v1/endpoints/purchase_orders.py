"""Purchase order lifecycle API endpoints."""
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Query, status

from app.api.deps import DB, Actor, Tokens, Notifier
from app.schemas.purchase import (
    ApprovalDecision,
    CreatorReview,
    POEditResponse,
    PurchaseOrderCancel,
    PurchaseOrderCreate,
    PurchaseOrderDraftUpdate,
    PurchaseOrderEditCreate,
    PurchaseOrderResponse,
)
from app.services.po_service import POService

router = APIRouter()


@router.post("", response_model=PurchaseOrderResponse, status_code=status.HTTP_201_CREATED)
async def create_purchase_order(
    data: PurchaseOrderCreate,
    db: DB,
    actor: Actor,
):
    """Create a DRAFT purchase order."""
    result = await POService(db).create_po(data, actor)
    return PurchaseOrderResponse.model_validate(result.value)


@router.get("/{po_id}", response_model=PurchaseOrderResponse)
async def get_purchase_order(po_id: UUID, db: DB):
    po = await POService(db).get_po(po_id)
    return PurchaseOrderResponse.model_validate(po)


@router.put("/{po_id}", response_model=PurchaseOrderResponse)
async def update_draft_purchase_order(
    po_id: UUID,
    data: PurchaseOrderDraftUpdate,
    db: DB,
    actor: Actor,
):
    """Update a purchase order that is still in DRAFT."""
    result = await POService(db).update_draft(po_id, data, actor)
    return PurchaseOrderResponse.model_validate(result.value)


@router.delete("/{po_id}")
async def delete_draft_purchase_order(po_id: UUID, db: DB, actor: Actor):
    """Delete a purchase order that is still in DRAFT."""
    result = await POService(db).delete_draft(po_id, actor)
    return {"message": f"Purchase order {result.value['po_number']} deleted", **result.value}


@router.post("/{po_id}/submit", response_model=PurchaseOrderResponse)
async def submit_purchase_order(
    po_id: UUID,
    db: DB,
    actor: Actor,
    tokens: Tokens,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
):
    """Submit a DRAFT purchase order to the category head."""
    result = await POService(db, tokens).submit_for_approval(po_id, actor)
    background_tasks.add_task(notifier.dispatch, result.notifications)
    return PurchaseOrderResponse.model_validate(result.value)


@router.get("/approvals/verify")
async def verify_approval_token(tokens: Tokens, token: str = Query(..., min_length=1)):
    """Check an approval link before showing the decision form."""
    claim = tokens.validate(token)
    return {
        "po_id": claim.po_id,
        "role": claim.role.value,
        "expires_at": claim.expires_at,
    }


@router.post("/approvals/decide", response_model=PurchaseOrderResponse)
async def decide_purchase_order(
    data: ApprovalDecision,
    db: DB,
    tokens: Tokens,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
):
    """Approve or reject using the capability token from an approval email."""
    result = await POService(db, tokens).decide(
        data.token,
        data.action,
        comments=data.comments,
        override_password=data.override_password,
    )
    background_tasks.add_task(notifier.dispatch, result.notifications)
    return PurchaseOrderResponse.model_validate(result.value)


@router.post("/{po_id}/creator-review", response_model=PurchaseOrderResponse)
async def complete_creator_review(
    po_id: UUID,
    data: CreatorReview,
    db: DB,
    actor: Actor,
    tokens: Tokens,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
):
    """Final creator step: attach the vendor proforma invoice and approve."""
    result = await POService(db, tokens).complete_creator_review(po_id, data, actor)
    background_tasks.add_task(notifier.dispatch, result.notifications)
    return PurchaseOrderResponse.model_validate(result.value)


@router.post("/{po_id}/cancel", response_model=PurchaseOrderResponse)
async def cancel_purchase_order(
    po_id: UUID,
    data: PurchaseOrderCancel,
    db: DB,
    actor: Actor,
    tokens: Tokens,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
):
    result = await POService(db, tokens).cancel(po_id, data.reason, actor)
    background_tasks.add_task(notifier.dispatch, result.notifications)
    return PurchaseOrderResponse.model_validate(result.value)


@router.post("/{po_id}/edit", response_model=POEditResponse, status_code=status.HTTP_201_CREATED)
async def edit_purchase_order_once(
    po_id: UUID,
    data: PurchaseOrderEditCreate,
    db: DB,
    actor: Actor,
    tokens: Tokens,
    notifier: Notifier,
    background_tasks: BackgroundTasks,
):
    """Record the single edit proposal allowed for a submitted purchase order."""
    result = await POService(db, tokens).edit_once(po_id, data, actor)
    background_tasks.add_task(notifier.dispatch, result.notifications)
    return POEditResponse.model_validate(result.value)
