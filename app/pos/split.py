"""
app/pos/split.py
----------------
Split-tender composer: express one payment as cash + UPI + card parts.

The composer only ever hands a single scalar (the sum) to the cart; the
per-tender breakdown rides along on the session purely so it can be
written to the invoice. Reconciliation never looks at it.
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from app.pos.cart import PaymentMethod
from app.pos.errors import PosError, SplitMismatch
from app.pos.totals import Q, ZERO, money

TENDER_METHODS = (PaymentMethod.cash, PaymentMethod.upi, PaymentMethod.card)


@dataclass
class Tender:
    method: PaymentMethod = PaymentMethod.cash
    amount: Decimal = ZERO.quantize(Q)

    def to_dict(self) -> dict:
        return {'method': self.method.value, 'amount': str(self.amount)}


def _tender_method(value) -> PaymentMethod:
    try:
        method = PaymentMethod(value)
    except ValueError:
        method = None
    if method not in TENDER_METHODS:
        raise PosError(f'"{value}" cannot be used as part of a split payment.')
    return method


class SplitPaymentComposer:

    def __init__(self, tenders=None):
        self.tenders: List[Tender] = [Tender()]
        if tenders:
            if not isinstance(tenders, list) or not all(isinstance(t, dict) for t in tenders):
                raise PosError('Tenders must be a list of {method, amount} entries.')
            self.tenders = [
                Tender(_tender_method(t.get('method', 'cash')), money(t.get('amount')))
                for t in tenders
            ]

    def add_tender(self) -> Tender:
        tender = Tender()
        self.tenders.append(tender)
        return tender

    def remove_tender(self, index: int) -> None:
        if len(self.tenders) == 1:
            return   # always keep one row to type into
        del self.tenders[index]

    def set_tender(self, index: int, field: str, value) -> None:
        tender = self.tenders[index]
        if field == 'method':
            tender.method = _tender_method(value)
        elif field == 'amount':
            tender.amount = money(value)
        else:
            raise PosError(f'Unknown tender field "{field}".')

    def total(self) -> Decimal:
        total = ZERO
        for tender in self.tenders:
            total += tender.amount
        return total.quantize(Q)

    def apply(self, session, amount_due: Decimal) -> Decimal:
        """
        Collapse the tenders into the session's amount_tendered.
        Only an exact match with the amount due is accepted.
        """
        total = self.total()
        if total != money(amount_due):
            raise SplitMismatch(
                f'Split payment total ₹{total} must equal the amount due ₹{money(amount_due)}.'
            )
        session.set_payment(method=PaymentMethod.split.value, amount_tendered=total)
        session.tenders = [t.to_dict() for t in self.tenders if t.amount != ZERO]
        return total
