"""
app/pos/checkout.py
-------------------
Turns a reconciled cart session into an invoice.

Steps:
  1. Re-run reconciliation on the current state of the tab.
       Reject             → returned to the caller, nothing happens
       NeedsConfirmation  → returned unless the caller already confirmed
                            exactly this kind
  2. Build the invoice payload (pure, replayable).
  3. Submit it — the only side-effecting, fallible step. While the call is
     outstanding a second checkout of the same tab is refused.
  4. On success retire the tab. On failure leave it untouched so the
     operator can retry by hand; submissions are never retried here.
"""
from __future__ import annotations
import logging
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Optional

from app.pos.errors import CheckoutInProgress
from app.pos.reconciliation import (
    ConfirmationKind, NeedsConfirmation, Proceed, Reject, reconcile,
)
from app.pos.totals import SettlementProposal, settle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InvoiceLine:
    item_id:    int
    quantity:   int
    price:      Decimal
    line_total: Decimal

    def to_dict(self) -> dict:
        return {
            'item_id':    self.item_id,
            'quantity':   self.quantity,
            'price':      str(self.price),
            'line_total': str(self.line_total),
        }


@dataclass(frozen=True)
class InvoicePayload:
    customer_id:     Optional[int]
    items:           List[InvoiceLine]
    subtotal:        Decimal
    discount:        Decimal
    total_amount:    Decimal
    paid_amount:     Decimal
    payment_method:  str
    change_returned: Decimal
    credit_applied:  Decimal
    tenders:         List[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            'customer_id':     self.customer_id,
            'items':           [i.to_dict() for i in self.items],
            'subtotal':        str(self.subtotal),
            'discount':        str(self.discount),
            'total_amount':    str(self.total_amount),
            'paid_amount':     str(self.paid_amount),
            'payment_method':  self.payment_method,
            'change_returned': str(self.change_returned),
            'credit_applied':  str(self.credit_applied),
            'tenders':         list(self.tenders),
        }


@dataclass(frozen=True)
class InvoiceReceipt:
    """What the invoicing collaborator hands back on success."""
    invoice_id:     int
    invoice_number: str


@dataclass(frozen=True)
class Completed:
    receipt:       InvoiceReceipt
    retired_id:    str
    next_active_id: str

    def to_dict(self) -> dict:
        return {
            'outcome':        'completed',
            'invoice_id':     self.receipt.invoice_id,
            'invoice_number': self.receipt.invoice_number,
            'next_active_id': self.next_active_id,
        }


def build_invoice_payload(session, proposal: SettlementProposal = None) -> InvoicePayload:
    """Snapshot a tab into the invoice payload. Stock ceilings are not sent."""
    if proposal is None:
        proposal = settle(session)

    return InvoicePayload(
        customer_id     = session.customer.id if session.customer else None,
        items           = [
            InvoiceLine(
                item_id    = line.item_id,
                quantity   = line.quantity,
                price      = line.unit_price,
                line_total = line.line_total,
            )
            for line in session.lines
        ],
        subtotal        = proposal.subtotal,
        discount        = proposal.discount,
        total_amount    = proposal.total,
        paid_amount     = proposal.amount_tendered,
        payment_method  = session.payment_method.value,
        change_returned = proposal.change_returned,
        credit_applied  = proposal.credit_applied,
        tenders         = list(session.tenders),
    )


class CheckoutFinalizer:
    """
    `submit_invoice(payload) -> InvoiceReceipt` is the invoicing collaborator;
    it must raise InvoiceSubmissionError on failure.
    """

    def __init__(self, submit_invoice: Callable[[InvoicePayload], InvoiceReceipt]):
        self.submit_invoice = submit_invoice
        self._in_flight = set()
        self._lock = threading.Lock()

    def is_in_flight(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._in_flight

    def checkout(self, manager, session_id: str = None,
                 confirmed: Optional[ConfirmationKind] = None):
        """
        Returns Reject, NeedsConfirmation or Completed.
        Raises CheckoutInProgress or InvoiceSubmissionError.
        """
        session = manager.get(session_id)
        proposal = settle(session)
        outcome = reconcile(session, proposal)

        if isinstance(outcome, Reject):
            return outcome
        if isinstance(outcome, NeedsConfirmation) and outcome.kind != confirmed:
            return outcome

        payload = build_invoice_payload(session, proposal)

        with self._lock:
            if session.id in self._in_flight:
                raise CheckoutInProgress()
            self._in_flight.add(session.id)
        try:
            receipt = self.submit_invoice(payload)
        finally:
            with self._lock:
                self._in_flight.discard(session.id)

        retired_id = session.id
        next_active = manager.retire(retired_id)
        logger.info(
            "Checked out %s as %s (total %s, paid %s, %s)",
            session.display_name, receipt.invoice_number,
            proposal.total, proposal.amount_tendered,
            'proceed' if isinstance(outcome, Proceed) else outcome.kind.value,
        )
        return Completed(receipt=receipt, retired_id=retired_id,
                         next_active_id=next_active.id)
