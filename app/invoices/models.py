from datetime import datetime
from decimal import Decimal
from app import db


class InvoiceSequence(db.Model):
    """
    One row per calendar year — holds the last-used invoice sequence number.

    COUNT(invoices) inside a transaction is not safe under concurrent
    writes (two sales would both compute the same next number). This row
    is locked with SELECT … FOR UPDATE instead, so allocation serialises
    and only advances when the sale commits.
    """
    __tablename__ = 'invoice_sequences'

    year     = db.Column(db.Integer, primary_key=True)   # e.g. 2026
    last_seq = db.Column(db.Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<InvoiceSequence year={self.year} last_seq={self.last_seq}>"


class Invoice(db.Model):
    """
    One finalised POS sale. Never updated after creation.
    """
    __tablename__ = 'invoices'

    id              = db.Column(db.Integer, primary_key=True)
    invoice_number  = db.Column(db.String(20), unique=True, nullable=False, index=True)
    customer_id     = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=True, index=True)
    subtotal        = db.Column(db.Numeric(12, 2), nullable=False)
    discount        = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total_amount    = db.Column(db.Numeric(12, 2), nullable=False)   # subtotal − discount
    paid_amount     = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    credit_applied  = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    change_returned = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    payment_method  = db.Column(db.String(20), nullable=False, default='cash')
    payment_status  = db.Column(db.String(10), nullable=False, default='unpaid')
    dues_delta      = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at      = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    # ── Relationships ─────────────────────────────────────────────
    customer = db.relationship('Customer', backref='invoices', lazy='select')
    items    = db.relationship('InvoiceItem', backref='invoice', lazy='select',
                               cascade='all, delete-orphan')
    tenders  = db.relationship('InvoiceTender', backref='invoice', lazy='select',
                               cascade='all, delete-orphan')

    @property
    def balance_due(self) -> Decimal:
        return (Decimal(str(self.total_amount)) - Decimal(str(self.credit_applied))
                - Decimal(str(self.paid_amount)))

    def to_dict(self) -> dict:
        return {
            'id':              self.id,
            'invoice_number':  self.invoice_number,
            'customer_id':     self.customer_id,
            'customer_name':   self.customer.name if self.customer else 'Walk-in',
            'items':           [i.to_dict() for i in self.items],
            'subtotal':        str(self.subtotal),
            'discount':        str(self.discount),
            'total_amount':    str(self.total_amount),
            'paid_amount':     str(self.paid_amount),
            'credit_applied':  str(self.credit_applied),
            'change_returned': str(self.change_returned),
            'payment_method':  self.payment_method,
            'payment_status':  self.payment_status,
            'dues_delta':      str(self.dues_delta),
            'tenders':         [t.to_dict() for t in self.tenders],
            'created_at':      self.created_at.isoformat(),
        }

    def __repr__(self):
        return f"<Invoice {self.invoice_number!r} ₹{self.total_amount}>"


class InvoiceItem(db.Model):
    """
    One line of an invoice. Price is a snapshot of what the cart charged,
    so later catalog edits don't alter historical invoices.
    """
    __tablename__ = 'invoice_items'

    id         = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=False)
    item_id    = db.Column(db.Integer, db.ForeignKey('items.id'), nullable=False)
    quantity   = db.Column(db.Integer, nullable=False)
    price      = db.Column(db.Numeric(10, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)   # quantity × price

    item = db.relationship('Item', lazy='select')

    def to_dict(self) -> dict:
        return {
            'item_id':    self.item_id,
            'name':       self.item.name if self.item else None,
            'quantity':   self.quantity,
            'price':      str(self.price),
            'line_total': str(self.line_total),
        }

    def __repr__(self):
        return f"<InvoiceItem invoice={self.invoice_id} item={self.item_id} qty={self.quantity}>"


class InvoiceTender(db.Model):
    """Per-tender breakdown of a split payment (cash/upi/card parts)."""
    __tablename__ = 'invoice_tenders'

    id         = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=False)
    method     = db.Column(db.String(20), nullable=False)
    amount     = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {'method': self.method, 'amount': str(self.amount)}
