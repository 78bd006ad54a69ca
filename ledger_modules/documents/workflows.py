"""
Document Workflows.

State machines for invoices and bills.  Every status change made by
``DocumentLifecycleManager`` must match a transition declared here.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from ledger_kernel.exceptions import InvalidTransitionError
from ledger_kernel.logging_config import get_logger
from ledger_modules.documents.models import DocumentKind, DocumentStatus

logger = get_logger("modules.documents.workflows")


@dataclass(frozen=True)
class Guard:
    """A condition for a transition."""
    name: str
    description: str


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    guard: Guard | None = None
    posts_entry: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]
    open_states: tuple[str, ...] = ()

    def find(self, from_state: str, action: str, to_state: str | None = None) -> Transition | None:
        for transition in self.transitions:
            if transition.from_state != from_state or transition.action != action:
                continue
            if to_state is None or transition.to_state == to_state:
                return transition
        return None

    def allows(self, from_state: str, action: str) -> bool:
        return self.find(from_state, action) is not None


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

BALANCE_ZERO = Guard(
    name="balance_zero",
    description="Amount due is zero",
)

BALANCE_REMAINING = Guard(
    name="balance_remaining",
    description="Some but not all of the total has been paid",
)

NOTHING_PAID = Guard(
    name="nothing_paid",
    description="No payment remains applied",
)

logger.info(
    "document_workflow_guards_defined",
    extra={
        "guards": [
            BALANCE_ZERO.name,
            BALANCE_REMAINING.name,
            NOTHING_PAID.name,
        ],
    },
)


def _void_transitions(states: tuple[str, ...]) -> tuple[Transition, ...]:
    return tuple(
        Transition(state, "voided", action="void", posts_entry=True)
        for state in states
        if state != "voided"
    )


# -----------------------------------------------------------------------------
# Invoice Workflow
# -----------------------------------------------------------------------------

_INVOICE_STATES = ("draft", "sent", "viewed", "partial", "paid", "voided")

INVOICE_WORKFLOW = Workflow(
    name="ar_invoice",
    description="Customer invoice lifecycle",
    initial_state="draft",
    states=_INVOICE_STATES,
    transitions=(
        Transition("draft", "sent", action="issue", posts_entry=True),
        Transition("sent", "viewed", action="mark_viewed"),
        Transition("sent", "partial", action="apply_payment", guard=BALANCE_REMAINING, posts_entry=True),
        Transition("sent", "paid", action="apply_payment", guard=BALANCE_ZERO, posts_entry=True),
        Transition("viewed", "partial", action="apply_payment", guard=BALANCE_REMAINING, posts_entry=True),
        Transition("viewed", "paid", action="apply_payment", guard=BALANCE_ZERO, posts_entry=True),
        Transition("partial", "partial", action="apply_payment", guard=BALANCE_REMAINING, posts_entry=True),
        Transition("partial", "paid", action="apply_payment", guard=BALANCE_ZERO, posts_entry=True),
        Transition("partial", "partial", action="unapply_payment", guard=BALANCE_REMAINING),
        Transition("partial", "sent", action="unapply_payment", guard=NOTHING_PAID),
        Transition("paid", "partial", action="unapply_payment", guard=BALANCE_REMAINING),
        Transition("paid", "sent", action="unapply_payment", guard=NOTHING_PAID),
    ) + _void_transitions(_INVOICE_STATES),
    open_states=("sent", "viewed", "partial"),
)

logger.info(
    "ar_invoice_workflow_registered",
    extra={
        "workflow_name": INVOICE_WORKFLOW.name,
        "state_count": len(INVOICE_WORKFLOW.states),
        "transition_count": len(INVOICE_WORKFLOW.transitions),
        "initial_state": INVOICE_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Bill Workflow
# -----------------------------------------------------------------------------

_BILL_STATES = ("draft", "open", "partial", "paid", "voided")

BILL_WORKFLOW = Workflow(
    name="ap_bill",
    description="Vendor bill lifecycle",
    initial_state="draft",
    states=_BILL_STATES,
    transitions=(
        Transition("draft", "open", action="issue", posts_entry=True),
        Transition("open", "partial", action="apply_payment", guard=BALANCE_REMAINING, posts_entry=True),
        Transition("open", "paid", action="apply_payment", guard=BALANCE_ZERO, posts_entry=True),
        Transition("partial", "partial", action="apply_payment", guard=BALANCE_REMAINING, posts_entry=True),
        Transition("partial", "paid", action="apply_payment", guard=BALANCE_ZERO, posts_entry=True),
        Transition("partial", "partial", action="unapply_payment", guard=BALANCE_REMAINING),
        Transition("partial", "open", action="unapply_payment", guard=NOTHING_PAID),
        Transition("paid", "partial", action="unapply_payment", guard=BALANCE_REMAINING),
        Transition("paid", "open", action="unapply_payment", guard=NOTHING_PAID),
    ) + _void_transitions(_BILL_STATES),
    open_states=("open", "partial"),
)

logger.info(
    "ap_bill_workflow_registered",
    extra={
        "workflow_name": BILL_WORKFLOW.name,
        "state_count": len(BILL_WORKFLOW.states),
        "transition_count": len(BILL_WORKFLOW.transitions),
        "initial_state": BILL_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Lookups
# -----------------------------------------------------------------------------

_WORKFLOWS = {
    DocumentKind.INVOICE: INVOICE_WORKFLOW,
    DocumentKind.BILL: BILL_WORKFLOW,
}


def workflow_for(kind: DocumentKind) -> Workflow:
    return _WORKFLOWS[DocumentKind(kind)]


def require_transition(
    kind: DocumentKind,
    document_id: UUID,
    current: DocumentStatus,
    action: str,
    target: DocumentStatus | None = None,
) -> Transition:
    """
    Return the declared transition or raise InvalidTransitionError.

    ``target`` narrows the match for actions with several outcomes
    (apply_payment, unapply_payment).
    """
    workflow = workflow_for(kind)
    transition = workflow.find(
        DocumentStatus(current).value,
        action,
        DocumentStatus(target).value if target is not None else None,
    )
    if transition is None:
        logger.warning(
            "invalid_transition_rejected",
            extra={
                "workflow_name": workflow.name,
                "document_id": str(document_id),
                "current_status": DocumentStatus(current).value,
                "action": action,
            },
        )
        raise InvalidTransitionError(str(document_id), DocumentStatus(current).value, action)
    return transition


def status_for_amounts(
    kind: DocumentKind,
    total: Decimal,
    amount_paid: Decimal,
) -> DocumentStatus:
    """Status of an issued, non-voided document after payments change."""
    if amount_paid > 0 and amount_paid >= total:
        return DocumentStatus.PAID
    if amount_paid > 0:
        return DocumentStatus.PARTIAL
    if DocumentKind(kind) is DocumentKind.INVOICE:
        return DocumentStatus.SENT
    return DocumentStatus.OPEN


def effective_status(
    kind: DocumentKind,
    status: DocumentStatus,
    due_date: date,
    amount_due: Decimal,
    today: date,
) -> DocumentStatus:
    """Stored status, or OVERDUE when an open document is past due."""
    status = DocumentStatus(status)
    if (
        status.value in workflow_for(kind).open_states
        and due_date < today
        and amount_due > 0
    ):
        return DocumentStatus.OVERDUE
    return status
