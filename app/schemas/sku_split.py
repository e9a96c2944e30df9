"""Pydantic schemas for SKU splitting."""
from datetime import datetime
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema


class SkuSplitCreate(BaseCreateSchema):
    """Allocate (or top up) a unit code from an approved PO's catalog line."""
    po_id: UUID
    catalogue_code: str = Field(..., min_length=1, max_length=20)
    unit_code: str = Field(..., min_length=1, max_length=20)
    split_quantity: int


class SkuSplitResponse(BaseResponseSchema):
    id: UUID
    purchase_order_id: UUID
    catalogue_code: str
    unit_code: str
    split_quantity: int
    ordered_quantity: int
    splitting_status: str
    received_quantity: int
    ready_for_receipt: bool
    receipt_completed: bool
    created_by: Optional[str] = None
    created_at: datetime


class SplitStatusResponse(BaseModel):
    po_id: UUID
    catalogue_code: str
    status: str
    ordered_quantity: int
    total_split: int
    remaining: int
    split_count: int
    unit_code: Optional[str] = None
    unit_split_quantity: Optional[int] = None


class ReadyForReceiptResponse(BaseModel):
    items: List[SkuSplitResponse]
    total: int
    limit: int
    offset: int


class UnitCodeSuggestion(BaseModel):
    catalogue_code: str
    unit_code: str
