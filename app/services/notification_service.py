"""
Notification dispatch for procurement events.

Turns domain events returned by the lifecycle services into
(recipients, subject, body) messages and hands them to a sender. Delivery
is fire-and-forget: a failed or raising sender is logged and never
propagates, so it cannot undo the state change that produced the event.
"""
import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from app.config import settings
from app.models.purchase import ApprovalRole
from app.services.events import (
    ApprovalRequested,
    POApproved,
    POCancelled,
    POEdited,
    PORejected,
)


logger = logging.getLogger(__name__)

# (recipients, subject, body) -> delivered?
NotificationSender = Callable[[List[str], str, str], bool]

Message = Tuple[List[str], str, str]


def default_recipients() -> Dict[str, str]:
    return {
        ApprovalRole.CREATOR.value: settings.APPROVAL_EMAIL_CREATOR,
        ApprovalRole.CATEGORY_HEAD.value: settings.APPROVAL_EMAIL_CATEGORY_HEAD,
        ApprovalRole.ADMIN.value: settings.APPROVAL_EMAIL_ADMIN,
    }


class NotificationService:
    """Renders notification events and dispatches them through a sender."""

    def __init__(
        self,
        sender: Optional[NotificationSender] = None,
        recipients: Optional[Dict[str, str]] = None,
        frontend_url: Optional[str] = None,
    ):
        if sender is None:
            from app.services.email_service import get_email_service
            sender = get_email_service().send_notification
        self.sender = sender
        self.recipients = recipients if recipients is not None else default_recipients()
        self.frontend_url = (frontend_url or settings.FRONTEND_URL).rstrip("/")

    def _for_roles(self, *roles: ApprovalRole) -> List[str]:
        addresses = [self.recipients.get(role.value) for role in roles]
        return [address for address in dict.fromkeys(addresses) if address]

    def approval_url(self, token: str) -> str:
        return f"{self.frontend_url}/purchase-orders/approve?token={quote(token, safe='')}"

    def render(self, event) -> Optional[Message]:
        """Message for an event, or None if the event notifies nobody."""
        everyone = (ApprovalRole.CREATOR, ApprovalRole.CATEGORY_HEAD, ApprovalRole.ADMIN)

        if isinstance(event, ApprovalRequested):
            role_name = event.role.value.replace("_", " ")
            return (
                self._for_roles(event.role),
                f"Approval required: PO {event.po_number}",
                f"Purchase order {event.po_number} (total {event.total_amount}) is waiting "
                f"for your decision as {role_name}.\n\n"
                f"Review and decide: {self.approval_url(event.token)}\n\n"
                f"This link expires in {settings.APPROVAL_TOKEN_EXPIRE_MINUTES} minutes.",
            )
        if isinstance(event, PORejected):
            return (
                self._for_roles(*everyone),
                f"PO {event.po_number} rejected",
                f"Purchase order {event.po_number} was rejected by {event.role.value.replace('_', ' ')}.\n"
                f"Reason: {event.reason or 'not given'}",
            )
        if isinstance(event, POApproved):
            return (
                self._for_roles(*everyone),
                f"PO {event.po_number} approved",
                f"Purchase order {event.po_number} is fully approved.\n"
                f"Lines: {event.line_count}\nTotal: {event.total_amount}",
            )
        if isinstance(event, POCancelled):
            return (
                self._for_roles(*everyone),
                f"PO {event.po_number} cancelled",
                f"Purchase order {event.po_number} was cancelled.\nReason: {event.reason or 'not given'}",
            )
        if isinstance(event, POEdited):
            return (
                self._for_roles(ApprovalRole.CREATOR, ApprovalRole.ADMIN),
                f"PO {event.po_number} edit proposed",
                f"An edit was proposed for purchase order {event.po_number} while {event.status}.",
            )
        return None

    async def dispatch(self, events: Iterable) -> Dict[str, int]:
        """
        Send every renderable event.

        Returns counts of sent, failed and skipped events.
        """
        counts = {"sent": 0, "failed": 0, "skipped": 0}
        for event in events:
            message = self.render(event)
            if message is None or not message[0]:
                counts["skipped"] += 1
                continue

            recipients, subject, body = message
            try:
                delivered = await asyncio.to_thread(self.sender, recipients, subject, body)
            except Exception as e:
                logger.error(f"Notification '{subject}' raised {type(e).__name__}: {e}")
                delivered = False

            if delivered:
                counts["sent"] += 1
                logger.info(f"Notification '{subject}' sent to {', '.join(recipients)}")
            else:
                counts["failed"] += 1
                logger.warning(f"Notification '{subject}' was not delivered")
        return counts
