"""Pydantic schemas for goods receipt posting."""
from datetime import datetime, date
from typing import List, Optional
from uuid import UUID
from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== Input Schemas ====================

class GRNBatchInput(BaseModel):
    """Batch subline; batch number and expiry are generated when omitted."""
    batch_no: Optional[str] = Field(None, max_length=60)
    expiry_date: Optional[date] = None
    quantity: int


class GRNLineInput(BaseModel):
    """
    Receipt figures for one SKU in one posting.

    sku_id is a split unit code or a catalogue code on the PO. ordered_qty
    is informational; the stored ordered quantity always wins.
    """
    sku_id: str = Field(..., min_length=1, max_length=20)
    ordered_qty: Optional[int] = None
    received_qty: int
    rejected_qty: int = 0
    qc_pass_qty: int = 0
    held_qty: int = 0
    rtv_qty: int = 0
    remarks: Optional[str] = None
    batches: List[GRNBatchInput] = []
    photos: List[str] = []


class GRNPost(BaseCreateSchema):
    po_id: UUID
    lines: List[GRNLineInput] = Field(..., min_length=1)


# ==================== Response Schemas ====================

class GRNPostResponse(BaseModel):
    grn_id: UUID
    grn_number: str
    status: str
    message: str


class GRNBatchResponse(BaseResponseSchema):
    batch_no: str
    expiry_date: date
    quantity: int


class GRNPhotoResponse(BaseResponseSchema):
    url: str


class GRNLineResponse(BaseResponseSchema):
    id: UUID
    sku_id: str
    catalogue_code: str
    ordered_quantity: int
    received_quantity: int
    pending_quantity: int
    rejected_quantity: int
    qc_pass_quantity: int
    qc_fail_quantity: int
    held_quantity: int
    rtv_quantity: int
    line_status: str
    remarks: Optional[str] = None
    batches: List[GRNBatchResponse] = []
    photos: List[GRNPhotoResponse] = []


class GRNResponse(BaseResponseSchema):
    id: UUID
    grn_number: str
    purchase_order_id: UUID
    facility_id: UUID
    status: str
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    lines: List[GRNLineResponse] = []
