"""
Operations racing on separate connections to one file-backed database.

Each attempt runs in its own session, so the aiosqlite worker threads
really interleave. Losers either see the winner's committed state or fail
to take the write lock; both are refusals and no bound is ever broken.
"""
import asyncio

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from conftest import approve_po, make_po_request, seed_master_data, token_from
from app.core.exceptions import AlreadyDecided, PersistenceFailure, QuantityExceeded
from app.database import Base, enable_sqlite_transactions
from app.models.purchase import ApprovalRole, POStatus
from app.schemas.grn import GRNLineInput
from app.services.grn_service import GRNService
from app.services.inventory_ledger_service import InventoryLedgerService
from app.services.po_service import POService
from app.services.sku_split_service import SkuSplitService


@pytest_asyncio.fixture
async def file_sessions(tmp_path):
    file_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'procurement.db'}",
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    enable_sqlite_transactions(file_engine)
    async with file_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    await file_engine.dispose()


@pytest_asyncio.fixture
async def seeded(file_sessions, tokens):
    """Master data ids plus an APPROVED PO for 100 x 1000123 and 40 x 2000456."""
    async with file_sessions() as session:
        master_data = await seed_master_data(session)
        service = POService(session, tokens)
        created = await service.create_po(
            make_po_request(master_data, [("1000123", 100, "250.00"), ("2000456", 40, "900.00")]),
            actor="creator-1",
        )
        po_id = created.value.id
        await approve_po(service, po_id)
    return master_data, po_id


def partition(outcomes):
    accepted = [o for o in outcomes if not isinstance(o, BaseException)]
    refused = [o for o in outcomes if isinstance(o, BaseException)]
    return accepted, refused


@pytest.mark.asyncio
async def test_concurrent_splits_never_exceed_ordered(file_sessions, seeded):
    _, po_id = seeded

    async def split_seven(n):
        async with file_sessions() as session:
            return await SkuSplitService(session).create_or_update_split(
                po_id, "2000456", f"20004560{n:04d}", 7
            )

    outcomes = await asyncio.gather(*(split_seven(n) for n in range(12)), return_exceptions=True)
    accepted, refused = partition(outcomes)

    assert all(isinstance(e, (QuantityExceeded, PersistenceFailure)) for e in refused), refused
    assert 1 <= len(accepted) <= 5

    async with file_sessions() as session:
        service = SkuSplitService(session)
        status = await service.get_split_status(po_id, "2000456")
        rows = await service.list_splits(po_id)
    assert status.total_split == 7 * len(accepted)
    assert status.total_split <= status.ordered_quantity
    assert len(rows) == len(accepted)


@pytest.mark.asyncio
async def test_concurrent_receipts_never_exceed_ordered(file_sessions, seeded):
    master_data, po_id = seeded

    async def receive_thirty():
        async with file_sessions() as session:
            return await GRNService(session).post_receipt(
                po_id, [GRNLineInput(sku_id="1000123", received_qty=30, qc_pass_qty=30)]
            )

    outcomes = await asyncio.gather(*(receive_thirty() for _ in range(5)), return_exceptions=True)
    accepted, refused = partition(outcomes)

    assert all(isinstance(e, (QuantityExceeded, PersistenceFailure)) for e in refused), refused
    assert 1 <= len(accepted) <= 3

    async with file_sessions() as session:
        grn = await GRNService(session).get_grn(po_id)
        entry = await InventoryLedgerService(session).get_entry("1000123", master_data["facility_id"])
    assert sum(l.received_quantity for l in grn.lines) == 30 * len(accepted)
    assert entry["grn_done"] == 30 * len(accepted)


@pytest.mark.asyncio
async def test_concurrent_replays_decide_once(file_sessions, tokens):
    async with file_sessions() as session:
        master_data = await seed_master_data(session)
        service = POService(session, tokens)
        po_id = (await service.create_po(make_po_request(master_data))).value.id
        submitted = await service.submit_for_approval(po_id, actor="creator-1")
    token = token_from(submitted, ApprovalRole.CATEGORY_HEAD)

    async def approve():
        async with file_sessions() as session:
            return await POService(session, tokens).decide(token, "APPROVED")

    outcomes = await asyncio.gather(*(approve() for _ in range(5)), return_exceptions=True)
    accepted, refused = partition(outcomes)

    assert len(accepted) == 1
    assert all(isinstance(e, (AlreadyDecided, PersistenceFailure)) for e in refused), refused

    async with file_sessions() as session:
        po = await POService(session, tokens).get_po(po_id)
    assert po.status == POStatus.PENDING_ADMIN.value
