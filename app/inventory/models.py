from datetime import datetime
from decimal import Decimal
from app import db


class Item(db.Model):
    """A sellable item in the shop's catalog."""
    __tablename__ = 'items'

    id            = db.Column(db.Integer, primary_key=True)
    name          = db.Column(db.String(200), nullable=False, index=True)
    sku           = db.Column(db.String(100), unique=True, nullable=False, index=True)
    unit          = db.Column(db.String(20), nullable=False, default='pcs')
    selling_price = db.Column(db.Numeric(10, 2), nullable=False)
    stock_qty     = db.Column(db.Integer, nullable=False, default=0)
    is_active     = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at    = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow   # auto-updated by SQLAlchemy on every UPDATE
    )

    __table_args__ = (
        db.CheckConstraint('stock_qty >= 0', name='check_stock_non_negative'),
        db.CheckConstraint('selling_price >= 0', name='check_price_non_negative'),
    )

    # ── Computed helpers ──────────────────────────────────────────
    @property
    def unit_price(self) -> Decimal:
        return Decimal(str(self.selling_price))

    def __repr__(self):
        return f"<Item {self.sku!r} {self.name!r}>"


class InventoryLog(db.Model):
    """
    Audit trail for stock changes.
    Tracks old vs new stock, which invoice caused it, and why.
    """
    __tablename__ = 'inventory_logs'

    id         = db.Column(db.Integer, primary_key=True)
    item_id    = db.Column(db.Integer, db.ForeignKey('items.id'), nullable=False)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=True)
    old_stock  = db.Column(db.Integer, nullable=False)
    new_stock  = db.Column(db.Integer, nullable=False)
    reason     = db.Column(db.String(255), nullable=False)
    timestamp  = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    # ── Relationships ─────────────────────────────────────────────
    item = db.relationship('Item', backref=db.backref('logs', lazy='select'))

    def __repr__(self):
        return f"<Log Item:{self.item_id} {self.old_stock}->{self.new_stock} ({self.reason})>"
