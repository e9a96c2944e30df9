"""SQLAlchemy models. Importing this package registers every table on Base.metadata."""
from app.models.document_sequence import DocumentSequence, DocumentSequenceAudit, DocumentType
from app.models.master_data import Vendor, Facility, CatalogItem
from app.models.purchase import (
    POStatus,
    POPriority,
    ApprovalRole,
    ApprovalAction,
    PurchaseOrder,
    PurchaseOrderItem,
    POApproval,
    PurchaseOrderEdit,
    PurchaseOrderEditItem,
)
from app.models.sku_split import SkuSplit, SplittingStatus
from app.models.grn import GoodsReceiptNote, GRNLine, GRNBatch, GRNPhoto, GRNStatus, LineStatus
from app.models.inventory_ledger import InventoryLedgerEntry

__all__ = [
    "DocumentSequence",
    "DocumentSequenceAudit",
    "DocumentType",
    "Vendor",
    "Facility",
    "CatalogItem",
    "POStatus",
    "POPriority",
    "ApprovalRole",
    "ApprovalAction",
    "PurchaseOrder",
    "PurchaseOrderItem",
    "POApproval",
    "PurchaseOrderEdit",
    "PurchaseOrderEditItem",
    "SkuSplit",
    "SplittingStatus",
    "GoodsReceiptNote",
    "GRNLine",
    "GRNBatch",
    "GRNPhoto",
    "GRNStatus",
    "LineStatus",
    "InventoryLedgerEntry",
]
