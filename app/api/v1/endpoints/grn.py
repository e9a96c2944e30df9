"""Goods Receipt Note (GRN) API endpoints."""
from uuid import UUID

from fastapi import APIRouter, status

from app.api.deps import DB, Actor
from app.schemas.grn import GRNPost, GRNPostResponse, GRNResponse
from app.services.grn_service import GRNService

router = APIRouter()


@router.post("", response_model=GRNPostResponse, status_code=status.HTTP_201_CREATED)
async def post_goods_receipt(data: GRNPost, db: DB, actor: Actor):
    """
    Post received quantities against an approved PO.

    All lines are applied together; any failing line rejects the whole posting.
    """
    result = await GRNService(db).post_receipt(data.po_id, data.lines, actor)
    return GRNPostResponse(**result.value)


@router.get("/{po_id}", response_model=GRNResponse)
async def get_goods_receipt(po_id: UUID, db: DB):
    grn = await GRNService(db).get_grn(po_id)
    return GRNResponse.model_validate(grn)
