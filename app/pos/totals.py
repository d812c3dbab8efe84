"""
app/pos/totals.py
-----------------
Pure pricing & settlement arithmetic.

Nothing here mutates state — every function is a replayable computation
over a cart session snapshot. All arithmetic uses Decimal; values coming
from forms or JSON are parsed through money() first.

    subtotal      = Σ line_total
    total         = subtotal − discount
    amount_due    = total − credit_applied
    change_req    = max(0, tendered − amount_due)
    balance_due   = amount_due − tendered
"""
from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation


Q    = Decimal('0.01')   # quantize target
ZERO = Decimal('0')

# Anything at or above this is not an amount a till can take
MAX_AMOUNT = Decimal('1e12')


def money(value) -> Decimal:
    """
    Parse a form/JSON value into a 2-dp Decimal.
    Blank, unparsable or out-of-range input reads as 0, the way an empty
    amount box does.
    """
    if value is None or value == '':
        return ZERO.quantize(Q)
    if isinstance(value, float):
        value = repr(value)
    try:
        parsed = Decimal(str(value).strip())
        if not parsed.is_finite() or abs(parsed) >= MAX_AMOUNT:
            return ZERO.quantize(Q)
        return parsed.quantize(Q)
    except (InvalidOperation, ValueError):
        return ZERO.quantize(Q)


def line_total(unit_price: Decimal, quantity: int) -> Decimal:
    return (unit_price * Decimal(quantity)).quantize(Q)


def cart_subtotal(lines) -> Decimal:
    """Sum of line totals for an iterable of CartLine."""
    subtotal = ZERO
    for line in lines:
        subtotal += line.line_total
    return subtotal.quantize(Q)


@dataclass(frozen=True)
class SettlementProposal:
    """Derived view of how a cart session would settle if checked out now."""
    subtotal:        Decimal
    discount:        Decimal
    total:           Decimal
    credit_applied:  Decimal
    amount_due:      Decimal
    amount_tendered: Decimal
    change_required: Decimal
    change_returned: Decimal
    balance_due:     Decimal

    # ── Derived helpers ───────────────────────────────────────────
    @property
    def is_overpaid(self) -> bool:
        return self.amount_tendered > self.amount_due

    @property
    def is_underpaid(self) -> bool:
        return self.amount_tendered < self.amount_due

    @property
    def unpaid(self) -> Decimal:
        """Portion of the amount due that becomes a customer due."""
        return max(ZERO, self.balance_due)

    @property
    def unreturned_change(self) -> Decimal:
        """Overpayment kept by the business (becomes store credit for customers)."""
        return max(ZERO, self.change_required - self.change_returned)

    @property
    def ledger_delta(self) -> Decimal:
        """Signed change to the customer's dues (positive = owes more)."""
        return dues_delta(self.credit_applied, self.unpaid, self.unreturned_change)

    @property
    def payment_status(self) -> str:
        effective = self.amount_tendered + self.credit_applied
        if effective >= self.total:
            return 'paid'
        if effective > ZERO:
            return 'partial'
        return 'unpaid'


def dues_delta(credit_applied: Decimal, unpaid: Decimal, unreturned_change: Decimal) -> Decimal:
    """
    Net movement on a customer's dues for one sale:
      + credit consumed from their balance
      + amount left unpaid
      − change the cashier kept (credited back to them)
    """
    return (credit_applied + unpaid - unreturned_change).quantize(Q)


def settle(session) -> SettlementProposal:
    """Build the SettlementProposal for a CartSession."""
    subtotal       = session.subtotal
    discount       = session.discount
    total          = (subtotal - discount).quantize(Q)
    # the total can drop after credit was requested (discount, removed line)
    credit_applied = min(session.credit_requested, max(ZERO, total)).quantize(Q)
    amount_due     = (total - credit_applied).quantize(Q)
    tendered       = session.amount_tendered

    return SettlementProposal(
        subtotal        = subtotal,
        discount        = discount,
        total           = total,
        credit_applied  = credit_applied,
        amount_due      = amount_due,
        amount_tendered = tendered,
        change_required = max(ZERO, tendered - amount_due).quantize(Q),
        change_returned = session.change_returned,
        balance_due     = (amount_due - tendered).quantize(Q),
    )
