"""Pydantic schemas for the purchase order lifecycle."""
from datetime import datetime, date
from typing import Literal, Optional, List
from decimal import Decimal
from uuid import UUID
from pydantic import BaseModel, Field

from app.schemas.base import BaseResponseSchema, BaseCreateSchema, BaseUpdateSchema
from app.models.purchase import POPriority


# ==================== Input Schemas ====================

class POLineCreate(BaseModel):
    """One ordered line; catalog attributes are snapshotted server-side."""
    catalogue_code: str = Field(..., min_length=1, max_length=20)
    quantity: int = Field(..., gt=0)
    unit_price: Decimal = Field(..., ge=0)


class PurchaseOrderCreate(BaseCreateSchema):
    vendor_id: UUID
    facility_id: UUID
    priority: POPriority = POPriority.MEDIUM
    description: Optional[str] = None
    notes: Optional[str] = None
    lines: List[POLineCreate] = Field(..., min_length=1)


class PurchaseOrderDraftUpdate(BaseUpdateSchema):
    """Direct update of a DRAFT PO. Omitted fields are left unchanged."""
    priority: Optional[POPriority] = None
    description: Optional[str] = None
    notes: Optional[str] = None
    lines: Optional[List[POLineCreate]] = Field(None, min_length=1)


class PurchaseOrderEditCreate(BaseCreateSchema):
    """The single edit proposal allowed after submission."""
    lines: List[POLineCreate] = Field(..., min_length=1)
    priority: Optional[POPriority] = None
    description: Optional[str] = None
    expected_delivery_date: Optional[date] = None


class ApprovalDecision(BaseCreateSchema):
    token: str = Field(..., min_length=1)
    action: Literal["APPROVED", "REJECTED"]
    comments: Optional[str] = None
    override_password: Optional[str] = None


class CreatorReview(BaseCreateSchema):
    """Creator confirms the vendor's proforma invoice and delivery date."""
    expected_delivery_date: date
    pi_notes: Optional[str] = None
    pi_file_url: Optional[str] = Field(None, max_length=500)


class PurchaseOrderCancel(BaseCreateSchema):
    reason: Optional[str] = None


# ==================== Response Schemas ====================

class POItemResponse(BaseResponseSchema):
    id: UUID
    line_number: int
    catalog_item_id: UUID
    catalogue_code: str
    product_name: str
    hsn_code: Optional[str] = None
    gst_rate: Decimal
    mrp: Decimal
    weight: Optional[Decimal] = None
    length: Optional[Decimal] = None
    width: Optional[Decimal] = None
    height: Optional[Decimal] = None
    quantity_ordered: int
    unit_price: Decimal
    line_total: Decimal


class POApprovalResponse(BaseResponseSchema):
    role: str
    action: str
    comments: Optional[str] = None
    decided_at: Optional[datetime] = None


class POEditItemResponse(BaseResponseSchema):
    catalogue_code: str
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


class POEditResponse(BaseResponseSchema):
    id: UUID
    purchase_order_id: UUID
    status_at_edit: str
    priority: Optional[str] = None
    description: Optional[str] = None
    expected_delivery_date: Optional[date] = None
    total_amount: Decimal
    edited_by: Optional[str] = None
    created_at: datetime
    items: List[POEditItemResponse] = []


class PurchaseOrderResponse(BaseResponseSchema):
    id: UUID
    po_number: str
    status: str
    priority: str
    is_edited: bool
    vendor_id: UUID
    facility_id: UUID
    total_amount: Decimal
    description: Optional[str] = None
    notes: Optional[str] = None
    expected_delivery_date: Optional[date] = None
    pi_notes: Optional[str] = None
    pi_file_url: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    items: List[POItemResponse] = []
    approvals: List[POApprovalResponse] = []
