"""
Purchase Order State Machine

This module is the single source of truth for PO status transitions.
All status changes go through transition_po().

    DRAFT
      └─ submit ──> PENDING_CATEGORY_HEAD
                      ├─ approve ──> PENDING_ADMIN
                      │                ├─ approve ──> PENDING_CREATOR_REVIEW
                      │                │                ├─ approve ──> APPROVED
                      │                │                └─ reject  ──> REJECTED
                      │                └─ reject  ──> REJECTED
                      └─ reject  ──> REJECTED
    Any PENDING_* state can also be cancelled.
"""

from typing import Dict, FrozenSet, List, Optional
from datetime import datetime, timezone

from app.core.exceptions import InvalidState
from app.models.purchase import ApprovalRole, POStatus


# =============================================================================
# TRANSITION RULES
# =============================================================================

PO_TRANSITIONS: Dict[POStatus, FrozenSet[POStatus]] = {
    POStatus.DRAFT: frozenset({
        POStatus.PENDING_CATEGORY_HEAD,
    }),
    POStatus.PENDING_CATEGORY_HEAD: frozenset({
        POStatus.PENDING_ADMIN,
        POStatus.REJECTED,
        POStatus.CANCELLED,
    }),
    POStatus.PENDING_ADMIN: frozenset({
        POStatus.PENDING_CREATOR_REVIEW,
        POStatus.REJECTED,
        POStatus.CANCELLED,
    }),
    POStatus.PENDING_CREATOR_REVIEW: frozenset({
        POStatus.APPROVED,
        POStatus.REJECTED,
        POStatus.CANCELLED,
    }),
    POStatus.APPROVED: frozenset(),
    POStatus.REJECTED: frozenset(),
    POStatus.CANCELLED: frozenset(),
}

PENDING_STATUSES: FrozenSet[POStatus] = frozenset({
    POStatus.PENDING_CATEGORY_HEAD,
    POStatus.PENDING_ADMIN,
    POStatus.PENDING_CREATOR_REVIEW,
})

TERMINAL_STATUSES: FrozenSet[POStatus] = frozenset({
    POStatus.APPROVED,
    POStatus.REJECTED,
    POStatus.CANCELLED,
})

# Which role decides at each pending stage
STAGE_ROLE: Dict[POStatus, ApprovalRole] = {
    POStatus.PENDING_CATEGORY_HEAD: ApprovalRole.CATEGORY_HEAD,
    POStatus.PENDING_ADMIN: ApprovalRole.ADMIN,
    POStatus.PENDING_CREATOR_REVIEW: ApprovalRole.CREATOR,
}

ROLE_STAGE: Dict[ApprovalRole, POStatus] = {role: stage for stage, role in STAGE_ROLE.items()}

# Where an approval at each stage moves the PO
APPROVAL_NEXT: Dict[POStatus, POStatus] = {
    POStatus.PENDING_CATEGORY_HEAD: POStatus.PENDING_ADMIN,
    POStatus.PENDING_ADMIN: POStatus.PENDING_CREATOR_REVIEW,
    POStatus.PENDING_CREATOR_REVIEW: POStatus.APPROVED,
}


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def _as_status(status) -> POStatus:
    try:
        return POStatus(status)
    except ValueError:
        raise InvalidState(f"Unknown PO status '{status}'")


def can_transition(current_status, new_status) -> bool:
    """Check if a transition is allowed."""
    return _as_status(new_status) in PO_TRANSITIONS[_as_status(current_status)]


def get_allowed_transitions(current_status) -> List[str]:
    """Statuses reachable from current status, sorted for stable output."""
    return sorted(s.value for s in PO_TRANSITIONS[_as_status(current_status)])


def validate_transition(current_status, new_status) -> None:
    """Raise InvalidState unless the transition is in the table."""
    if can_transition(current_status, new_status):
        return

    current = _as_status(current_status).value
    target = _as_status(new_status).value
    allowed = get_allowed_transitions(current)
    if not allowed:
        raise InvalidState(
            f"PO in '{current}' status cannot be modified. This is a terminal state.",
            {"status": current},
        )
    raise InvalidState(
        f"Cannot change PO from '{current}' to '{target}'. "
        f"Allowed transitions: {', '.join(allowed)}",
        {"status": current, "requested": target},
    )


def stage_for_role(role) -> POStatus:
    return ROLE_STAGE[ApprovalRole(role)]


def role_for_stage(status) -> Optional[ApprovalRole]:
    return STAGE_ROLE.get(_as_status(status))


# =============================================================================
# STATUS CHECK HELPERS
# =============================================================================

def can_submit(status) -> bool:
    return _as_status(status) == POStatus.DRAFT


def can_edit_draft(status) -> bool:
    return _as_status(status) == POStatus.DRAFT


def can_delete(status) -> bool:
    return _as_status(status) == POStatus.DRAFT


def can_cancel(status) -> bool:
    return _as_status(status) in PENDING_STATUSES


def can_edit_once(status) -> bool:
    """The single post-submission edit is open until the PO is rejected or cancelled."""
    return _as_status(status) not in (POStatus.DRAFT, POStatus.REJECTED, POStatus.CANCELLED)


def is_terminal(status) -> bool:
    return _as_status(status) in TERMINAL_STATUSES


# =============================================================================
# TRANSITION EXECUTOR
# =============================================================================

def transition_po(po, new_status, reason: Optional[str] = None, now: Optional[datetime] = None) -> POStatus:
    """
    Move a PO to a new status.

    Validates against PO_TRANSITIONS, updates the status and stamps the
    outcome fields. Returns the previous status.

    Raises:
        InvalidState: If the transition is not allowed
    """
    previous = _as_status(po.status)
    target = _as_status(new_status)
    validate_transition(previous, target)

    po.status = target.value
    now = now or datetime.now(timezone.utc)

    if target == POStatus.APPROVED:
        po.approved_at = now
    elif target == POStatus.REJECTED:
        po.rejected_at = now
        po.rejection_reason = reason
    elif target == POStatus.CANCELLED:
        po.cancelled_at = now
        po.cancellation_reason = reason

    return previous
