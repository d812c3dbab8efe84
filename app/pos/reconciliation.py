"""
app/pos/reconciliation.py
-------------------------
Decides whether a cart session may be finalised into an invoice.

reconcile() is a pure function returning one of three outcome values:

    Proceed                      — checkout may go ahead as-is
    NeedsConfirmation(kind, amt) — go ahead only after the operator
                                   acknowledges the consequence
    Reject(reason)               — checkout abandoned, cart untouched

Rules are evaluated top to bottom; the first that matches wins.

    1. empty cart                                   → Reject(EMPTY_CART)
    2. negative tendered / change returned          → Reject(INVALID_AMOUNT)
    3. discount < 0 or discount > subtotal          → Reject(INVALID_DISCOUNT)
    4. overpaid, change returned > change required  → Reject(EXCESS_CHANGE_RETURNED)
    5. walk-in, underpaid                           → Reject(WALK_IN_MUST_PAY_FULL)
    6. walk-in, overpaid, change not fully returned → Confirm(WALK_IN_PARTIAL_CHANGE)
    7. customer, underpaid                          → Confirm(UNPAID_BALANCE)
    8. customer, overpaid, change not fully returned → Confirm(PARTIAL_CHANGE_AS_CREDIT)
    9. otherwise                                    → Proceed

Every confirmation gate guards against money vanishing silently: change
the cashier forgot to hand back, or debt nobody recorded. A walk-in has
no ledger to carry a due or a credit, so for them the only gate is the
informational forgotten-change one.
"""
from __future__ import annotations
import enum
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from app.pos.totals import SettlementProposal, ZERO, settle

logger = logging.getLogger(__name__)


class RejectReason(enum.Enum):
    EMPTY_CART             = "empty_cart"
    INVALID_AMOUNT         = "invalid_amount"
    INVALID_DISCOUNT       = "invalid_discount"
    EXCESS_CHANGE_RETURNED = "excess_change_returned"
    WALK_IN_MUST_PAY_FULL  = "walk_in_must_pay_full"


class ConfirmationKind(enum.Enum):
    WALK_IN_PARTIAL_CHANGE   = "walk_in_partial_change"
    UNPAID_BALANCE           = "unpaid_balance"
    PARTIAL_CHANGE_AS_CREDIT = "partial_change_as_credit"


REJECT_MESSAGES = {
    RejectReason.EMPTY_CART:
        'Cart is empty!',
    RejectReason.INVALID_AMOUNT:
        'Invalid payment amount!',
    RejectReason.INVALID_DISCOUNT:
        'Discount must be between zero and the subtotal.',
    RejectReason.EXCESS_CHANGE_RETURNED:
        'You are returning more amount than required. '
        'Please correct the change returned.',
    RejectReason.WALK_IN_MUST_PAY_FULL:
        'Walk-in customers must pay full amount. '
        'Please add customer details to allow credit.',
}

CONFIRMATION_PROMPTS = {
    ConfirmationKind.WALK_IN_PARTIAL_CHANGE:
        'Change of {amount} has not been returned to the walk-in customer. '
        'Complete the sale anyway?',
    ConfirmationKind.UNPAID_BALANCE:
        'The unpaid balance of {amount} will be added to the customer\'s dues.',
    ConfirmationKind.PARTIAL_CHANGE_AS_CREDIT:
        'The remaining amount of {amount} will be saved as credit to the '
        'customer\'s account.',
}


@dataclass(frozen=True)
class Proceed:
    proposal: SettlementProposal

    def to_dict(self) -> dict:
        return {'outcome': 'proceed'}


@dataclass(frozen=True)
class NeedsConfirmation:
    kind:     ConfirmationKind
    amount:   Decimal
    proposal: SettlementProposal

    @property
    def message(self) -> str:
        return CONFIRMATION_PROMPTS[self.kind].format(amount=f'₹{self.amount}')

    def to_dict(self) -> dict:
        return {
            'outcome': 'needs_confirmation',
            'kind':    self.kind.value,
            'amount':  str(self.amount),
            'message': self.message,
        }


@dataclass(frozen=True)
class Reject:
    reason: RejectReason

    @property
    def message(self) -> str:
        return REJECT_MESSAGES[self.reason]

    def to_dict(self) -> dict:
        return {
            'outcome': 'reject',
            'reason':  self.reason.value,
            'message': self.message,
        }


ReconciliationOutcome = Union[Proceed, NeedsConfirmation, Reject]


def reconcile(session, proposal: Optional[SettlementProposal] = None) -> ReconciliationOutcome:
    """Evaluate a CartSession (and its settlement) against the payment rules."""
    if proposal is None:
        proposal = settle(session)

    outcome = _decide(session, proposal)
    logger.debug("Reconciled tab %s: %s", session.id, outcome.to_dict())
    return outcome


def _decide(session, p: SettlementProposal) -> ReconciliationOutcome:
    if session.is_empty:
        return Reject(RejectReason.EMPTY_CART)

    if p.amount_tendered < ZERO or p.change_returned < ZERO:
        return Reject(RejectReason.INVALID_AMOUNT)

    if p.discount < ZERO or p.discount > p.subtotal:
        return Reject(RejectReason.INVALID_DISCOUNT)

    if p.is_overpaid and p.change_returned > p.change_required:
        return Reject(RejectReason.EXCESS_CHANGE_RETURNED)

    # ── Walk-in ───────────────────────────────────────────────────
    if session.is_walk_in:
        if p.is_underpaid:
            return Reject(RejectReason.WALK_IN_MUST_PAY_FULL)
        if p.is_overpaid and p.change_returned < p.change_required:
            return NeedsConfirmation(
                ConfirmationKind.WALK_IN_PARTIAL_CHANGE, p.unreturned_change, p
            )
        return Proceed(p)

    # ── Registered customer ───────────────────────────────────────
    if p.is_underpaid:
        return NeedsConfirmation(ConfirmationKind.UNPAID_BALANCE, p.unpaid, p)

    if p.is_overpaid and p.change_returned < p.change_required:
        return NeedsConfirmation(
            ConfirmationKind.PARTIAL_CHANGE_AS_CREDIT, p.unreturned_change, p
        )

    return Proceed(p)
