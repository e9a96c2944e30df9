"""Lookups against vendor, facility and catalog master data."""
import uuid
from typing import Dict, Iterable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InvalidReference
from app.models.master_data import Vendor, Facility, CatalogItem


class MasterDataService:
    """Read-only access to master data; raises InvalidReference on unknown ids."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_vendor(self, vendor_id: uuid.UUID) -> Vendor:
        vendor = await self.db.get(Vendor, vendor_id)
        if not vendor or not vendor.is_active:
            raise InvalidReference(f"Vendor {vendor_id} not found", {"vendor_id": str(vendor_id)})
        return vendor

    async def get_facility(self, facility_id: uuid.UUID) -> Facility:
        facility = await self.db.get(Facility, facility_id)
        if not facility or not facility.is_active:
            raise InvalidReference(f"Facility {facility_id} not found", {"facility_id": str(facility_id)})
        return facility

    async def get_catalog_items(self, catalogue_codes: Iterable[str]) -> Dict[str, CatalogItem]:
        """
        Active catalog items by catalogue code.

        Raises:
            InvalidReference: If any requested code is unknown or inactive
        """
        codes = set(catalogue_codes)
        result = await self.db.execute(
            select(CatalogItem).where(
                CatalogItem.catalogue_code.in_(codes),
                CatalogItem.is_active == True,  # noqa: E712
            )
        )
        items = {item.catalogue_code: item for item in result.scalars().all()}

        missing = sorted(codes - set(items))
        if missing:
            raise InvalidReference(
                f"Unknown catalog items: {', '.join(missing)}",
                {"catalogue_codes": missing},
            )
        return items
