import uuid
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from app.models.purchase import ApprovalRole
from app.services.email_service import EmailService
from app.services.events import (
    ApprovalRequested,
    GRNPosted,
    LedgerDelta,
    LedgerDeltaKind,
    POApproved,
    POCancelled,
    POEdited,
    PORejected,
    ServiceResult,
)
from app.services.notification_service import NotificationService


RECIPIENTS = {
    "creator": "creator@dc.test",
    "category_head": "head@dc.test",
    "admin": "admin@dc.test",
}


def approval_requested(role=ApprovalRole.ADMIN, token="tok/en+1=") -> ApprovalRequested:
    return ApprovalRequested(
        po_id=uuid.uuid4(),
        po_number="PO/DC/26-27/00007",
        role=role,
        token=token,
        total_amount=Decimal("25000.00"),
    )


@pytest.fixture
def sender():
    return MagicMock(return_value=True)


@pytest.fixture
def notifier(sender) -> NotificationService:
    return NotificationService(sender=sender, recipients=RECIPIENTS, frontend_url="https://procure.dc.test/")


def test_approval_request_goes_to_the_role_with_link(notifier):
    recipients, subject, body = notifier.render(approval_requested())

    assert recipients == ["admin@dc.test"]
    assert subject == "Approval required: PO PO/DC/26-27/00007"
    assert "https://procure.dc.test/purchase-orders/approve?token=tok%2Fen%2B1%3D" in body


def test_outcomes_go_to_every_stakeholder(notifier):
    po_id = uuid.uuid4()
    for event in [
        PORejected(po_id=po_id, po_number="PO-1", role=ApprovalRole.CATEGORY_HEAD, reason="Wrong vendor"),
        POApproved(po_id=po_id, po_number="PO-1", total_amount=Decimal("10"), line_count=2),
        POCancelled(po_id=po_id, po_number="PO-1", reason=None),
    ]:
        recipients, _, _ = notifier.render(event)
        assert recipients == ["creator@dc.test", "head@dc.test", "admin@dc.test"]

    recipients, subject, _ = notifier.render(POEdited(po_id=po_id, po_number="PO-1", status="PENDING_ADMIN"))
    assert recipients == ["creator@dc.test", "admin@dc.test"]
    assert "edit" in subject


def test_ledger_and_grn_events_are_not_notifications(notifier):
    assert notifier.render(LedgerDelta(LedgerDeltaKind.PO_RAISE, "1000123", uuid.uuid4(), 5)) is None
    assert notifier.render(GRNPosted(uuid.uuid4(), uuid.uuid4(), "GRN-1", "partial", 1)) is None


def test_service_result_filters_notifications():
    delta = LedgerDelta(LedgerDeltaKind.PO_APPROVE, "1000123", uuid.uuid4(), 5)
    approved = POApproved(po_id=uuid.uuid4(), po_number="PO-1", total_amount=Decimal("1"), line_count=1)
    result = ServiceResult(value=None, events=[delta, approved])

    assert result.ledger_deltas == [delta]
    assert result.notifications == [approved]


@pytest.mark.asyncio
async def test_dispatch_counts_outcomes(sender):
    sender.side_effect = [True, False]
    notifier = NotificationService(
        sender=sender,
        recipients={"creator": "creator@dc.test", "category_head": "", "admin": "admin@dc.test"},
    )

    counts = await notifier.dispatch([
        approval_requested(ApprovalRole.ADMIN),
        approval_requested(ApprovalRole.CATEGORY_HEAD),  # no address configured
        POCancelled(po_id=uuid.uuid4(), po_number="PO-2", reason="dup"),
        LedgerDelta(LedgerDeltaKind.PO_RAISE, "1000123", uuid.uuid4(), 1),
    ])

    assert counts == {"sent": 1, "failed": 1, "skipped": 2}
    assert sender.call_count == 2


@pytest.mark.asyncio
async def test_raising_sender_is_contained():
    def explode(recipients, subject, body):
        raise ConnectionError("SMTP down")

    notifier = NotificationService(sender=explode, recipients=RECIPIENTS)
    counts = await notifier.dispatch([approval_requested()])
    assert counts == {"sent": 0, "failed": 1, "skipped": 0}


def test_email_service_without_credentials_does_not_send():
    service = EmailService(smtp_user="", smtp_password="")
    with patch("smtplib.SMTP") as smtp:
        assert service.send_notification(["a@dc.test"], "Subject", "Body") is False
        smtp.assert_not_called()


def test_email_service_sends_through_smtp():
    service = EmailService(
        smtp_host="smtp.dc.test",
        smtp_port=587,
        smtp_user="mailer@dc.test",
        smtp_password="pw",
        from_email="noreply@dc.test",
    )
    with patch("smtplib.SMTP") as smtp:
        assert service.send_notification(["a@dc.test", "b@dc.test"], "Subject", "Body") is True

    # One SMTP session per recipient
    assert smtp.call_count == 2
    smtp.assert_called_with("smtp.dc.test", 587, timeout=10)
    server = smtp.return_value.__enter__.return_value
    server.login.assert_called_with("mailer@dc.test", "pw")
    sent_to = [c.args[1] for c in server.sendmail.call_args_list]
    assert sent_to == ["a@dc.test", "b@dc.test"]
