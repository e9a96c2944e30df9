# Services module
from app.services.approval_token_service import ApprovalTokenService, get_approval_token_service
from app.services.document_sequence_service import DocumentSequenceService
from app.services.master_data_service import MasterDataService
from app.services.inventory_ledger_service import InventoryLedgerService
from app.services.po_service import POService
from app.services.sku_split_service import SkuSplitService
from app.services.grn_service import GRNService

# Notifications
from app.services.email_service import EmailService
from app.services.notification_service import NotificationService

__all__ = [
    "ApprovalTokenService",
    "get_approval_token_service",
    "DocumentSequenceService",
    "MasterDataService",
    "InventoryLedgerService",
    "POService",
    "SkuSplitService",
    "GRNService",
    # Notifications
    "EmailService",
    "NotificationService",
]
