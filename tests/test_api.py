"""End-to-end flows through the HTTP API."""
import uuid

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from app.api.deps import get_notification_service
from app.database import get_db
from app.main import app
from app.models.purchase import ApprovalRole
from app.services.approval_token_service import get_approval_token_service
from app.services.notification_service import NotificationService


HEADERS = {"X-Actor-Id": "creator-1"}


@pytest.fixture
def outbox():
    return []


@pytest_asyncio.fixture
async def client(session_factory, tokens, outbox):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    def record(recipients, subject, body):
        outbox.append((recipients, subject, body))
        return True

    notifier = NotificationService(
        sender=record,
        recipients={"creator": "creator@dc.test", "category_head": "head@dc.test", "admin": "admin@dc.test"},
    )
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_approval_token_service] = lambda: tokens
    app.dependency_overrides[get_notification_service] = lambda: notifier

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def po_payload(master_data, quantity=100):
    return {
        "vendor_id": str(master_data["vendor_id"]),
        "facility_id": str(master_data["facility_id"]),
        "priority": "HIGH",
        "lines": [{"catalogue_code": "1000123", "quantity": quantity, "unit_price": "250.00"}],
    }


async def create_and_approve(client, tokens, master_data) -> str:
    response = await client.post("/api/v1/purchase-orders", json=po_payload(master_data), headers=HEADERS)
    assert response.status_code == 201
    po_id = response.json()["id"]

    response = await client.post(f"/api/v1/purchase-orders/{po_id}/submit", headers=HEADERS)
    assert response.status_code == 200

    for role in (ApprovalRole.CATEGORY_HEAD, ApprovalRole.ADMIN, ApprovalRole.CREATOR):
        token = tokens.issue(uuid.UUID(po_id), role)
        response = await client.post(
            "/api/v1/purchase-orders/approvals/decide",
            json={"token": token, "action": "APPROVED"},
        )
        assert response.status_code == 200, response.text
    assert response.json()["status"] == "APPROVED"
    return po_id


@pytest.mark.asyncio
async def test_create_and_read_purchase_order(client, master_data):
    response = await client.post("/api/v1/purchase-orders", json=po_payload(master_data), headers=HEADERS)

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "DRAFT"
    assert body["priority"] == "HIGH"
    assert body["created_by"] == "creator-1"
    assert len(body["items"]) == 1
    assert len(body["approvals"]) == 3

    response = await client.get(f"/api/v1/purchase-orders/{body['id']}")
    assert response.status_code == 200
    assert response.json()["po_number"] == body["po_number"]


@pytest.mark.asyncio
async def test_domain_errors_map_to_status_codes(client, master_data):
    response = await client.get(f"/api/v1/purchase-orders/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["error"] == "InvalidReference"

    payload = po_payload(master_data)
    payload["lines"][0]["catalogue_code"] = "9999999"
    response = await client.post("/api/v1/purchase-orders", json=payload)
    assert response.status_code == 404
    assert response.json()["details"]["catalogue_codes"] == ["9999999"]

    response = await client.post("/api/v1/purchase-orders", json=po_payload(master_data))
    po_id = response.json()["id"]
    response = await client.post(f"/api/v1/purchase-orders/{po_id}/cancel", json={"reason": "x"})
    assert response.status_code == 409
    assert response.json()["error"] == "InvalidState"


@pytest.mark.asyncio
async def test_submit_sends_approval_request(client, master_data, outbox):
    response = await client.post("/api/v1/purchase-orders", json=po_payload(master_data), headers=HEADERS)
    po_id = response.json()["id"]

    response = await client.post(f"/api/v1/purchase-orders/{po_id}/submit", headers=HEADERS)

    assert response.json()["status"] == "PENDING_CATEGORY_HEAD"
    assert len(outbox) == 1
    recipients, subject, body = outbox[0]
    assert recipients == ["head@dc.test"]
    assert "purchase-orders/approve?token=" in body


@pytest.mark.asyncio
async def test_verify_and_decide_with_bad_tokens(client, tokens, master_data):
    response = await client.get("/api/v1/purchase-orders/approvals/verify", params={"token": "garbage"})
    assert response.status_code == 401
    assert response.json()["error"] == "TokenInvalid"

    po_id = uuid.uuid4()
    token = tokens.issue(po_id, ApprovalRole.ADMIN)
    response = await client.get("/api/v1/purchase-orders/approvals/verify", params={"token": token})
    assert response.status_code == 200
    assert response.json()["role"] == "admin"
    assert response.json()["po_id"] == str(po_id)

    response = await client.post(
        "/api/v1/purchase-orders/approvals/decide",
        json={"token": token, "action": "APPROVED"},
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_replayed_decision_conflicts(client, tokens, master_data):
    response = await client.post("/api/v1/purchase-orders", json=po_payload(master_data))
    po_id = response.json()["id"]
    await client.post(f"/api/v1/purchase-orders/{po_id}/submit")
    token = tokens.issue(uuid.UUID(po_id), ApprovalRole.CATEGORY_HEAD)

    first = await client.post("/api/v1/purchase-orders/approvals/decide", json={"token": token, "action": "APPROVED"})
    second = await client.post("/api/v1/purchase-orders/approvals/decide", json={"token": token, "action": "REJECTED"})

    assert first.status_code == 200
    assert second.status_code == 409
    assert second.json()["error"] == "AlreadyDecided"


@pytest.mark.asyncio
async def test_edit_once_over_http(client, master_data):
    response = await client.post("/api/v1/purchase-orders", json=po_payload(master_data))
    po_id = response.json()["id"]
    await client.post(f"/api/v1/purchase-orders/{po_id}/submit")

    edit = {"lines": [{"catalogue_code": "1000123", "quantity": 90, "unit_price": "250.00"}]}
    first = await client.post(f"/api/v1/purchase-orders/{po_id}/edit", json=edit, headers=HEADERS)
    second = await client.post(f"/api/v1/purchase-orders/{po_id}/edit", json=edit, headers=HEADERS)

    assert first.status_code == 201
    assert first.json()["edited_by"] == "creator-1"
    assert second.status_code == 409
    assert second.json()["error"] == "AlreadyEdited"


@pytest.mark.asyncio
async def test_split_receive_and_ledger(client, tokens, master_data):
    po_id = await create_and_approve(client, tokens, master_data)

    response = await client.get("/api/v1/sku-splits/unit-code/1000123")
    assert response.status_code == 200
    assert response.json()["unit_code"].startswith("1000123")

    response = await client.post(
        "/api/v1/sku-splits",
        json={"po_id": po_id, "catalogue_code": "1000123", "unit_code": "100012345678", "split_quantity": 100},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "completed"

    response = await client.get("/api/v1/sku-splits/ready-for-receipt")
    assert response.json()["total"] == 1

    response = await client.post(
        "/api/v1/grn",
        json={
            "po_id": po_id,
            "lines": [{"sku_id": "100012345678", "received_qty": 100, "qc_pass_qty": 90, "rejected_qty": 10}],
        },
        headers=HEADERS,
    )
    assert response.status_code == 201, response.text
    assert response.json()["status"] == "partial"

    response = await client.get(f"/api/v1/grn/{po_id}")
    assert response.status_code == 200
    assert response.json()["lines"][0]["line_status"] == "partial"

    response = await client.get(
        "/api/v1/inventory-ledger/1000123",
        params={"facility_id": str(master_data["facility_id"])},
    )
    assert response.status_code == 200
    assert response.json() == {
        "sku": "1000123",
        "facility_id": str(master_data["facility_id"]),
        "po_raise": 100,
        "po_approve": 100,
        "grn_done": 90,
        "available": 90,
        "grn_done_by_unit": {"100012345678": 90},
    }

    response = await client.get("/api/v1/sku-splits/ready-for-receipt")
    assert response.json()["total"] == 0


@pytest.mark.asyncio
async def test_over_receipt_is_unprocessable(client, tokens, master_data):
    po_id = await create_and_approve(client, tokens, master_data)

    response = await client.post(
        "/api/v1/grn",
        json={"po_id": po_id, "lines": [{"sku_id": "1000123", "received_qty": 101}]},
    )

    assert response.status_code == 422
    assert response.json()["error"] == "QuantityExceeded"


@pytest.mark.asyncio
async def test_root_and_health(client):
    response = await client.get("/")
    assert response.status_code == 200

    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "connected"
