"""
Shared fixtures: an isolated in-memory SQLite database per test, seeded
master data, and helpers that walk a PO through its lifecycle.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TOKEN_SECRET", "test-approval-secret")

from decimal import Decimal
from typing import Dict, List, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.database import Base, enable_sqlite_transactions
from app.models.master_data import CatalogItem, Facility, Vendor
from app.models.purchase import ApprovalRole
from app.schemas.purchase import POLineCreate, PurchaseOrderCreate
from app.services.approval_token_service import ApprovalTokenService
from app.services.events import ApprovalRequested
from app.services.po_service import POService


# Shared across tests; key derivation runs once per instance
_TOKENS = ApprovalTokenService(
    secret_key="test-approval-secret",
    salt="test-salt",
    ttl_minutes=60,
    override_password="",
)


@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_transactions(test_engine)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def tokens() -> ApprovalTokenService:
    return _TOKENS


async def seed_master_data(session: AsyncSession) -> Dict[str, object]:
    """Commit a vendor, two facilities and three catalog items; returns their ids."""
    vendor = Vendor(code="VND-001", name="Acme Components", email="sales@acme.test")
    facility = Facility(code="DC-BLR", name="Bengaluru DC")
    other_facility = Facility(code="DC-DEL", name="Delhi DC")
    filter_item = CatalogItem(
        catalogue_code="1000123",
        name="RO Membrane 80 GPD",
        hsn_code="84219900",
        gst_rate=Decimal("18.00"),
        mrp=Decimal("1499.00"),
        weight=Decimal("0.450"),
    )
    pump_item = CatalogItem(
        catalogue_code="2000456",
        name="Booster Pump 24V",
        hsn_code="84137010",
        gst_rate=Decimal("18.00"),
        mrp=Decimal("2899.00"),
    )
    retired_item = CatalogItem(catalogue_code="3000789", name="Legacy Cartridge", is_active=False)
    session.add_all([vendor, facility, other_facility, filter_item, pump_item, retired_item])
    await session.commit()
    # Plain ids; a rolled-back test transaction expires the ORM instances
    return {
        "vendor_id": vendor.id,
        "facility_id": facility.id,
        "other_facility_id": other_facility.id,
        "filter_id": filter_item.id,
        "pump_id": pump_item.id,
    }


@pytest_asyncio.fixture
async def master_data(db) -> Dict[str, object]:
    return await seed_master_data(db)


@pytest.fixture
def po_service(db, tokens) -> POService:
    return POService(db, tokens)


def make_po_request(master_data, lines: Optional[List[tuple]] = None, **overrides) -> PurchaseOrderCreate:
    """PurchaseOrderCreate for (catalogue_code, quantity, unit_price) tuples."""
    lines = lines or [("1000123", 100, "250.00")]
    payload = {
        "vendor_id": master_data["vendor_id"],
        "facility_id": master_data["facility_id"],
        "lines": [
            POLineCreate(catalogue_code=code, quantity=qty, unit_price=Decimal(price))
            for code, qty, price in lines
        ],
    }
    payload.update(overrides)
    return PurchaseOrderCreate(**payload)


def token_from(result, role: ApprovalRole) -> str:
    """The approval token a service call issued for a role."""
    for event in result.of_type(ApprovalRequested):
        if event.role == role:
            return event.token
    raise AssertionError(f"No approval requested for {role.value}")


async def approve_po(po_service: POService, po_id) -> object:
    """Drive a DRAFT PO through the whole chain; returns the final result."""
    result = await po_service.submit_for_approval(po_id, actor="creator-1")
    result = await po_service.decide(token_from(result, ApprovalRole.CATEGORY_HEAD), "APPROVED")
    result = await po_service.decide(token_from(result, ApprovalRole.ADMIN), "APPROVED")
    result = await po_service.decide(token_from(result, ApprovalRole.CREATOR), "APPROVED")
    return result


@pytest_asyncio.fixture
async def approved_po_id(po_service, master_data):
    """Id of an APPROVED PO for 100 x 1000123 and 40 x 2000456."""
    created = await po_service.create_po(
        make_po_request(master_data, [("1000123", 100, "250.00"), ("2000456", 40, "900.00")]),
        actor="creator-1",
    )
    po_id = created.value.id
    await approve_po(po_service, po_id)
    return po_id
