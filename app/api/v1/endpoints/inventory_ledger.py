"""Inventory ledger API endpoints."""
from uuid import UUID

from fastapi import APIRouter, Query

from app.api.deps import DB
from app.schemas.inventory_ledger import LedgerEntryResponse
from app.services.inventory_ledger_service import InventoryLedgerService

router = APIRouter()


@router.get("/{sku}", response_model=LedgerEntryResponse)
async def get_ledger_entry(sku: str, db: DB, facility_id: UUID = Query(...)):
    """Raised, approved, received and available quantities for a SKU at a facility."""
    service = InventoryLedgerService(db)
    entry = await service.get_entry(sku, facility_id)
    breakdown = await service.get_unit_breakdown(sku, facility_id)
    return LedgerEntryResponse(sku=sku, facility_id=facility_id, grn_done_by_unit=breakdown, **entry)
