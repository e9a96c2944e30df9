"""Seed master data for a local procurement environment."""
import asyncio
from decimal import Decimal

from sqlalchemy import select

from app.database import get_db_session, init_db
from app.models import CatalogItem, Facility, Vendor


VENDORS = [
    {"code": "VND-001", "name": "Aqua Components Pvt Ltd", "email": "sales@aquacomponents.example"},
    {"code": "VND-002", "name": "Northern Pumps & Motors", "email": "orders@northernpumps.example"},
]

FACILITIES = [
    {"code": "DC-BLR", "name": "Bengaluru Distribution Centre"},
    {"code": "DC-DEL", "name": "Delhi Distribution Centre"},
]

CATALOG_ITEMS = [
    {
        "catalogue_code": "1000123",
        "name": "RO Membrane 80 GPD",
        "hsn_code": "84219900",
        "gst_rate": Decimal("18.00"),
        "mrp": Decimal("1499.00"),
        "weight": Decimal("0.450"),
    },
    {
        "catalogue_code": "2000456",
        "name": "Booster Pump 24V",
        "hsn_code": "84137010",
        "gst_rate": Decimal("18.00"),
        "mrp": Decimal("2899.00"),
        "weight": Decimal("1.200"),
    },
    {
        "catalogue_code": "3000789",
        "name": "Sediment Filter 10 inch",
        "hsn_code": "84219900",
        "gst_rate": Decimal("18.00"),
        "mrp": Decimal("249.00"),
    },
]


async def _seed_missing(db, model, key: str, rows) -> int:
    existing = set((await db.execute(select(getattr(model, key)))).scalars().all())
    created = 0
    for row in rows:
        if row[key] in existing:
            continue
        db.add(model(**row))
        created += 1
    return created


async def seed():
    """Create tables if needed and insert any missing master data."""
    await init_db()

    async with get_db_session() as db:
        print("Seeding master data...")
        print(f"  Vendors created: {await _seed_missing(db, Vendor, 'code', VENDORS)}")
        print(f"  Facilities created: {await _seed_missing(db, Facility, 'code', FACILITIES)}")
        print(f"  Catalog items created: {await _seed_missing(db, CatalogItem, 'catalogue_code', CATALOG_ITEMS)}")

    print("Seed data created successfully!")


if __name__ == "__main__":
    asyncio.run(seed())
