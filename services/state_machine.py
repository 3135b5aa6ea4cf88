"""
Allowed-transition tables for Assignment, TripCost and Invoice statuses.

Create paths call ``validate_initial`` and update paths call ``validate``,
so every status change goes through the same table.
"""

from typing import Dict, FrozenSet, Iterable
import logging

from models import AssignmentStatus, CostPaymentStatus, InvoiceStatus
from .exceptions import InvalidTransitionError

logger = logging.getLogger(__name__)


class StateMachine:
    """Finite-state validator over an Enum status"""

    def __init__(self, entity: str, transitions: Dict, initial: Iterable):
        self.entity = entity
        self.transitions: Dict = {state: frozenset(targets) for state, targets in transitions.items()}
        self.initial: FrozenSet = frozenset(initial)

    def can_transition(self, current, requested) -> bool:
        if current == requested:
            return True
        return requested in self.transitions.get(current, frozenset())

    def validate(self, current, requested):
        """Raise InvalidTransitionError when current -> requested is not allowed"""
        if not self.can_transition(current, requested):
            logger.warning(f"Rejected {self.entity} transition {current.value} -> {requested.value}")
            raise InvalidTransitionError(self.entity, current, requested)
        return requested

    def validate_initial(self, requested):
        if requested not in self.initial:
            raise InvalidTransitionError(self.entity, 'new', requested)
        return requested


ASSIGNMENT_STATE_MACHINE = StateMachine(
    'Assignment',
    {
        AssignmentStatus.ASSIGNED: {AssignmentStatus.ACCEPTED, AssignmentStatus.REJECTED,
                                    AssignmentStatus.CANCELLED},
        AssignmentStatus.ACCEPTED: {AssignmentStatus.STARTED, AssignmentStatus.CANCELLED},
        AssignmentStatus.STARTED: {AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED},
        AssignmentStatus.REJECTED: set(),
        AssignmentStatus.COMPLETED: set(),
        AssignmentStatus.CANCELLED: set(),
    },
    initial={AssignmentStatus.ASSIGNED},
)

TRIP_COST_STATE_MACHINE = StateMachine(
    'Trip cost',
    {
        CostPaymentStatus.DRAFT: {CostPaymentStatus.PENDING},
        CostPaymentStatus.PENDING: {CostPaymentStatus.PAID, CostPaymentStatus.OVERDUE},
        CostPaymentStatus.OVERDUE: {CostPaymentStatus.PAID},
        CostPaymentStatus.PAID: set(),
    },
    initial={CostPaymentStatus.DRAFT},
)

INVOICE_STATE_MACHINE = StateMachine(
    'Invoice',
    {
        InvoiceStatus.DRAFT: {InvoiceStatus.PENDING, InvoiceStatus.NO_CHARGES},
        InvoiceStatus.PENDING: {InvoiceStatus.PAID, InvoiceStatus.OVERDUE},
        InvoiceStatus.OVERDUE: {InvoiceStatus.PAID},
        InvoiceStatus.PAID: set(),
        InvoiceStatus.NO_CHARGES: set(),
    },
    initial={InvoiceStatus.DRAFT, InvoiceStatus.PENDING, InvoiceStatus.NO_CHARGES},
)
