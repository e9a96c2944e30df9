from typing import Annotated, Optional
import logging

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.approval_token_service import ApprovalTokenService, get_approval_token_service
from app.services.notification_service import NotificationService


logger = logging.getLogger(__name__)


async def get_actor_id(x_actor_id: Annotated[Optional[str], Header()] = None) -> Optional[str]:
    """
    Opaque id of the caller, recorded on audit columns.

    Identity is resolved upstream; this service trusts the header as given.
    """
    return x_actor_id


_notification_service: Optional[NotificationService] = None


def get_notification_service() -> NotificationService:
    global _notification_service
    if _notification_service is None:
        _notification_service = NotificationService()
    return _notification_service


# Type aliases for cleaner endpoint signatures
DB = Annotated[AsyncSession, Depends(get_db)]
Actor = Annotated[Optional[str], Depends(get_actor_id)]
Tokens = Annotated[ApprovalTokenService, Depends(get_approval_token_service)]
Notifier = Annotated[NotificationService, Depends(get_notification_service)]
