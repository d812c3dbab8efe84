"""
app/customers/directory.py
--------------------------
Customer Directory for the POS: search, fetch and create customers.
Returns plain CustomerRecord snapshots; the dues value inside is only
as fresh as the moment it was read.
"""
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from app import db
from app.customers.models import Customer
from app.pos.errors import CustomerError


@dataclass(frozen=True)
class CustomerRecord:
    id:    int
    name:  str
    phone: str
    dues:  Decimal

    def to_dict(self) -> dict:
        return {
            'id':    self.id,
            'name':  self.name,
            'phone': self.phone,
            'dues':  str(self.dues),
        }


def _record(c: Customer) -> CustomerRecord:
    return CustomerRecord(id=c.id, name=c.name, phone=c.phone,
                          dues=Decimal(str(c.dues or 0)))


def find_customers(query: str, limit: int = 10) -> list:
    """Search by phone or name (substring, case-insensitive)."""
    q = (query or '').strip()
    if not q:
        return []
    results = Customer.query.filter(
        (Customer.phone.ilike(f'%{q}%')) |
        (Customer.name.ilike(f'%{q}%'))
    ).order_by(Customer.name.asc()).limit(limit).all()
    return [_record(c) for c in results]


def get_customer(customer_id) -> CustomerRecord:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise CustomerError('Customer not found.')
    return _record(customer)


def create_customer(fields: dict) -> CustomerRecord:
    """Name and phone are required; phone must be unique."""
    name  = (fields.get('name') or '').strip()
    phone = (fields.get('phone') or '').strip()
    if not name or not phone:
        raise CustomerError('Name and Phone are required')

    if Customer.query.filter_by(phone=phone).first():
        raise CustomerError('Customer with this phone already exists')

    customer = Customer(
        name    = name,
        phone   = phone,
        email   = (fields.get('email') or '').strip() or None,
        address = (fields.get('address') or '').strip() or None,
        dues    = Decimal('0'),
    )
    try:
        db.session.add(customer)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise CustomerError('Customer with this phone already exists')
    return _record(customer)
