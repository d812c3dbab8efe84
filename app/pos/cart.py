"""
app/pos/cart.py
---------------
One in-progress sale ("tab"): line items, discount, customer, payment inputs.

Catalog and customer values are copied in as snapshots at add/select time
and trusted until the operator explicitly refreshes them — a stock change
made elsewhere while the cart is open is only detected when the invoice
is submitted.

Serialised shape (what the session store keeps, money as strings):
{
    "id":               str,
    "display_name":     "Tab 3",
    "customer":         {"id": int, "name": str, "phone": str} | null,
    "lines":            [{"item_id", "name", "unit_price", "quantity",
                          "stock_ceiling", "unit"}, ...],
    "discount":         "0.00",
    "payment_method":   "cash",
    "amount_tendered":  "0.00",
    "change_returned":  "0.00",
    "credit_requested": "0.00",
    "credit_available": "0.00",
    "tenders":          [{"method": "cash", "amount": "200.00"}, ...]
}
"""
from __future__ import annotations
import enum
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional

from app.pos.errors import OutOfStock, StockExceeded
from app.pos.totals import Q, ZERO, money, line_total, cart_subtotal


class PaymentMethod(enum.Enum):
    cash       = "cash"
    upi        = "upi"
    card       = "card"
    split      = "split"
    credit_due = "credit-due"


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class CustomerRef:
    """Snapshot of the selected customer — not a live reference."""
    id:    int
    name:  str
    phone: str = ''

    def to_dict(self) -> dict:
        return {'id': self.id, 'name': self.name, 'phone': self.phone}

    @classmethod
    def from_dict(cls, data: dict) -> 'CustomerRef':
        return cls(id=data['id'], name=data['name'], phone=data.get('phone', ''))


@dataclass
class CartLine:
    item_id:       int
    name:          str
    unit_price:    Decimal
    quantity:      int
    stock_ceiling: int
    unit:          str = 'pcs'

    @property
    def line_total(self) -> Decimal:
        return line_total(self.unit_price, self.quantity)

    def to_dict(self) -> dict:
        return {
            'item_id':       self.item_id,
            'name':          self.name,
            'unit_price':    str(self.unit_price),   # Decimal → str for JSON safety
            'quantity':      self.quantity,
            'stock_ceiling': self.stock_ceiling,
            'unit':          self.unit,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CartLine':
        return cls(
            item_id       = data['item_id'],
            name          = data['name'],
            unit_price    = money(data['unit_price']),
            quantity      = int(data['quantity']),
            stock_ceiling = int(data['stock_ceiling']),
            unit          = data.get('unit', 'pcs'),
        )


@dataclass
class CartSession:
    id:               str
    display_name:     str
    customer:         Optional[CustomerRef] = None
    lines:            List[CartLine] = field(default_factory=list)
    discount:         Decimal = ZERO.quantize(Q)
    payment_method:   PaymentMethod = PaymentMethod.cash
    amount_tendered:  Decimal = ZERO.quantize(Q)
    change_returned:  Decimal = ZERO.quantize(Q)
    credit_requested: Decimal = ZERO.quantize(Q)
    credit_available: Decimal = ZERO.quantize(Q)
    tenders:          List[dict] = field(default_factory=list)

    # ── Derived ───────────────────────────────────────────────────
    @property
    def subtotal(self) -> Decimal:
        return cart_subtotal(self.lines)

    @property
    def total(self) -> Decimal:
        return (self.subtotal - self.discount).quantize(Q)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def is_walk_in(self) -> bool:
        return self.customer is None

    def find_line(self, item_id) -> Optional[CartLine]:
        for line in self.lines:
            if str(line.item_id) == str(item_id):
                return line
        return None

    # ── Cart mutations ────────────────────────────────────────────

    def add_line(self, item) -> CartLine:
        """
        Add one unit of a catalog item (anything with id, name, unit_price,
        stock_qty). Increments an existing line by 1.

        Raises StockExceeded (quantity left as it was) or OutOfStock
        (no line created).
        """
        line = self.find_line(item.id)
        if line is not None:
            if line.quantity + 1 > line.stock_ceiling:
                raise StockExceeded(line.name, line.stock_ceiling)
            line.quantity += 1
            return line

        if item.stock_qty <= 0:
            raise OutOfStock(f'"{item.name}" is out of stock.')

        line = CartLine(
            item_id       = item.id,
            name          = item.name,
            unit_price    = money(item.unit_price),
            quantity      = 1,
            stock_ceiling = int(item.stock_qty),
            unit          = getattr(item, 'unit', None) or 'pcs',
        )
        self.lines.append(line)
        return line

    def set_quantity(self, item_id, quantity: int) -> None:
        """quantity ≤ 0 removes the line; above the stock ceiling is refused."""
        quantity = int(quantity)
        if quantity <= 0:
            self.remove_line(item_id)
            return

        line = self.find_line(item_id)
        if line is None:
            return
        if quantity > line.stock_ceiling:
            raise StockExceeded(line.name, line.stock_ceiling)
        line.quantity = quantity

    def remove_line(self, item_id) -> None:
        self.lines = [l for l in self.lines if str(l.item_id) != str(item_id)]

    def set_discount(self, amount) -> None:
        # Range is enforced at checkout by reconciliation, not here.
        self.discount = money(amount)

    # ── Customer / credit ─────────────────────────────────────────

    def set_customer(self, customer) -> None:
        """
        Attach a customer (anything with id, name, phone, dues) or None
        for walk-in. Available credit is the negative part of dues.
        """
        if customer is None:
            self.customer         = None
            self.credit_available = ZERO.quantize(Q)
        else:
            self.customer = CustomerRef(
                id    = customer.id,
                name  = customer.name,
                phone = getattr(customer, 'phone', '') or '',
            )
            self.credit_available = max(ZERO, -money(customer.dues)).quantize(Q)
        self.credit_requested = ZERO.quantize(Q)

    def set_credit_requested(self, amount) -> Decimal:
        """Clamp to [0, min(credit_available, total)] and return the stored value."""
        ceiling = max(ZERO, min(self.credit_available, self.total))
        self.credit_requested = min(max(ZERO, money(amount)), ceiling).quantize(Q)
        return self.credit_requested

    # ── Payment inputs ────────────────────────────────────────────

    def set_payment(self, method=None, amount_tendered=None, change_returned=None) -> None:
        """Update whichever payment inputs are given; tender breakdown is dropped."""
        if method is not None:
            self.payment_method = PaymentMethod(method)
        if amount_tendered is not None:
            self.amount_tendered = money(amount_tendered)
        if change_returned is not None:
            self.change_returned = money(change_returned)
        if self.payment_method is not PaymentMethod.split:
            self.tenders = []

    def clear(self) -> None:
        """Reset everything except identity and label."""
        self.customer         = None
        self.lines            = []
        self.discount         = ZERO.quantize(Q)
        self.payment_method   = PaymentMethod.cash
        self.amount_tendered  = ZERO.quantize(Q)
        self.change_returned  = ZERO.quantize(Q)
        self.credit_requested = ZERO.quantize(Q)
        self.credit_available = ZERO.quantize(Q)
        self.tenders          = []

    # ── Serialisation ─────────────────────────────────────────────

    def to_dict(self) -> dict:
        return {
            'id':               self.id,
            'display_name':     self.display_name,
            'customer':         self.customer.to_dict() if self.customer else None,
            'lines':            [l.to_dict() for l in self.lines],
            'discount':         str(self.discount),
            'payment_method':   self.payment_method.value,
            'amount_tendered':  str(self.amount_tendered),
            'change_returned':  str(self.change_returned),
            'credit_requested': str(self.credit_requested),
            'credit_available': str(self.credit_available),
            'tenders':          list(self.tenders),
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CartSession':
        customer = data.get('customer')
        return cls(
            id               = data['id'],
            display_name     = data['display_name'],
            customer         = CustomerRef.from_dict(customer) if customer else None,
            lines            = [CartLine.from_dict(l) for l in data.get('lines', [])],
            discount         = money(data.get('discount')),
            payment_method   = PaymentMethod(data.get('payment_method', 'cash')),
            amount_tendered  = money(data.get('amount_tendered')),
            change_returned  = money(data.get('change_returned')),
            credit_requested = money(data.get('credit_requested')),
            credit_available = money(data.get('credit_available')),
            tenders          = list(data.get('tenders', [])),
        )
