"""Pydantic schemas for inventory ledger reads."""
from typing import Dict
from uuid import UUID
from pydantic import BaseModel


class LedgerEntryResponse(BaseModel):
    sku: str
    facility_id: UUID
    po_raise: int
    po_approve: int
    grn_done: int
    available: int
    grn_done_by_unit: Dict[str, int] = {}
