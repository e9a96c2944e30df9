"""
Domain events emitted by procurement operations.

Mutating service calls return a ServiceResult carrying their value and the
events the call produced. Ledger deltas are applied inside the same
transaction by the emitting service; notification events are handed to the
NotificationService after the transaction commits.
"""

import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar

from app.models.purchase import ApprovalRole


T = TypeVar("T")


class LedgerDeltaKind(str, Enum):
    PO_RAISE = "PO_RAISE"
    PO_RAISE_REVERSAL = "PO_RAISE_REVERSAL"
    PO_APPROVE = "PO_APPROVE"
    GRN_DONE = "GRN_DONE"


@dataclass(frozen=True)
class LedgerDelta:
    """Quantity change for one (SKU, facility) ledger row."""
    kind: LedgerDeltaKind
    sku: str
    facility_id: uuid.UUID
    quantity: int
    unit_code: Optional[str] = None


@dataclass(frozen=True)
class ApprovalRequested:
    """A role must decide on a PO; carries the token for the email link."""
    po_id: uuid.UUID
    po_number: str
    role: ApprovalRole
    token: str
    total_amount: Decimal


@dataclass(frozen=True)
class PORejected:
    po_id: uuid.UUID
    po_number: str
    role: ApprovalRole
    reason: Optional[str]


@dataclass(frozen=True)
class POApproved:
    """Final approval; triggers the summary to every stakeholder."""
    po_id: uuid.UUID
    po_number: str
    total_amount: Decimal
    line_count: int


@dataclass(frozen=True)
class POCancelled:
    po_id: uuid.UUID
    po_number: str
    reason: Optional[str]


@dataclass(frozen=True)
class POEdited:
    po_id: uuid.UUID
    po_number: str
    status: str


@dataclass(frozen=True)
class GRNPosted:
    po_id: uuid.UUID
    grn_id: uuid.UUID
    grn_number: str
    status: str
    line_count: int


NOTIFICATION_EVENTS = (ApprovalRequested, PORejected, POApproved, POCancelled, POEdited)


@dataclass
class ServiceResult(Generic[T]):
    """Return value of a mutating operation plus the events it emitted."""
    value: T
    events: List[Any] = field(default_factory=list)

    def of_type(self, event_type) -> List[Any]:
        return [e for e in self.events if isinstance(e, event_type)]

    @property
    def ledger_deltas(self) -> List[LedgerDelta]:
        return self.of_type(LedgerDelta)

    @property
    def notifications(self) -> List[Any]:
        return [e for e in self.events if isinstance(e, NOTIFICATION_EVENTS)]
