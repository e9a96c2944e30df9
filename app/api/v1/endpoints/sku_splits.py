"""SKU split API endpoints."""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Query

from app.api.deps import DB, Actor
from app.schemas.sku_split import (
    ReadyForReceiptResponse,
    SkuSplitCreate,
    SkuSplitResponse,
    SplitStatusResponse,
    UnitCodeSuggestion,
)
from app.services.sku_split_service import SkuSplitService

router = APIRouter()


@router.post("", response_model=SplitStatusResponse)
async def create_or_update_split(data: SkuSplitCreate, db: DB, actor: Actor):
    """Allocate part of an approved PO line to a unit code, or top up an existing one."""
    result = await SkuSplitService(db).create_or_update_split(
        data.po_id,
        data.catalogue_code,
        data.unit_code,
        data.split_quantity,
        actor,
    )
    return SplitStatusResponse(**result.value.to_dict())


@router.get("/ready-for-receipt", response_model=ReadyForReceiptResponse)
async def list_ready_for_receipt(
    db: DB,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    splits, total = await SkuSplitService(db).list_ready_for_receipt(limit=limit, offset=offset)
    return ReadyForReceiptResponse(
        items=[SkuSplitResponse.model_validate(s) for s in splits],
        total=total,
        limit=limit,
        offset=offset,
    )


@router.get("/unit-code/{catalogue_code}", response_model=UnitCodeSuggestion)
async def suggest_unit_code(catalogue_code: str, db: DB):
    """Propose an unused unit code for a catalogue code."""
    unit_code = await SkuSplitService(db).generate_unit_code(catalogue_code)
    return UnitCodeSuggestion(catalogue_code=catalogue_code, unit_code=unit_code)


@router.get("/po/{po_id}", response_model=List[SkuSplitResponse])
async def list_po_splits(po_id: UUID, db: DB):
    splits = await SkuSplitService(db).list_splits(po_id)
    return [SkuSplitResponse.model_validate(s) for s in splits]


@router.get("/po/{po_id}/status", response_model=List[SplitStatusResponse])
async def get_po_split_status(po_id: UUID, db: DB):
    statuses = await SkuSplitService(db).get_po_split_status(po_id)
    return [SplitStatusResponse(**s.to_dict()) for s in statuses]


@router.get("/po/{po_id}/status/{catalogue_code}", response_model=SplitStatusResponse)
async def get_split_status(po_id: UUID, catalogue_code: str, db: DB):
    split_status = await SkuSplitService(db).get_split_status(po_id, catalogue_code)
    return SplitStatusResponse(**split_status.to_dict())
