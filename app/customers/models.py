from datetime import datetime
from decimal import Decimal
from app import db


class Customer(db.Model):
    """
    A registered customer.

    `dues` is a signed running balance:
        positive → customer owes the shop
        negative → shop owes the customer (store credit)
    """
    __tablename__ = 'customers'

    id         = db.Column(db.Integer, primary_key=True)
    name       = db.Column(db.String(100), nullable=False)
    phone      = db.Column(db.String(20), unique=True, nullable=False, index=True)
    email      = db.Column(db.String(120), nullable=True)
    address    = db.Column(db.String(255), nullable=True)
    dues       = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    @property
    def available_credit(self) -> Decimal:
        balance = Decimal(str(self.dues or 0))
        return -balance if balance < 0 else Decimal('0')

    def __repr__(self):
        return f"<Customer {self.name} ({self.phone}) Dues:{self.dues}>"


class LedgerEntry(db.Model):
    """
    One movement on a customer's dues, written by invoice submission.

    kind:
        'credit_used'  — store credit consumed by a sale   (+amount on dues)
        'due'          — unpaid part of a sale             (+amount on dues)
        'change_credit'— overpayment kept as credit        (−amount on dues)
        'payment'      — money received against a sale     (informational)
    """
    __tablename__ = 'ledger_entries'

    id          = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=True, index=True)
    invoice_id  = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=True, index=True)
    kind        = db.Column(db.String(20), nullable=False)
    amount      = db.Column(db.Numeric(12, 2), nullable=False)
    method      = db.Column(db.String(20), nullable=True)
    description = db.Column(db.String(255), nullable=False)
    created_at  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    customer = db.relationship('Customer', backref=db.backref('ledger', lazy='dynamic'))

    def __repr__(self):
        return f"<LedgerEntry {self.kind} {self.amount} Customer:{self.customer_id}>"
