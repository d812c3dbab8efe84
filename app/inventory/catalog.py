"""
app/inventory/catalog.py
------------------------
Catalog Lookup for the POS: resolve a SKU (or numeric id) to a snapshot
of name, price and stock. The snapshot is what a cart line keeps; the
database row is never handed to the checkout engine.
"""
from dataclasses import dataclass
from decimal import Decimal

from app.inventory.models import Item
from app.pos.errors import ItemNotFound


@dataclass(frozen=True)
class CatalogItem:
    id:         int
    name:       str
    unit_price: Decimal
    stock_qty:  int
    unit:       str = 'pcs'

    def to_dict(self) -> dict:
        return {
            'id':         self.id,
            'name':       self.name,
            'unit_price': str(self.unit_price),
            'stock_qty':  self.stock_qty,
            'unit':       self.unit,
        }


def _snapshot(item: Item) -> CatalogItem:
    return CatalogItem(
        id         = item.id,
        name       = item.name,
        unit_price = item.unit_price,
        stock_qty  = item.stock_qty,
        unit       = item.unit,
    )


def find_item(sku_or_id) -> CatalogItem:
    """
    Look up an active item by SKU first, then by id when the value is numeric.
    Raises ItemNotFound.
    """
    key = str(sku_or_id or '').strip()
    if not key:
        raise ItemNotFound('Please enter a barcode.')

    item = Item.query.filter_by(sku=key, is_active=True).first()
    if item is None and key.isdigit():
        item = Item.query.filter_by(id=int(key), is_active=True).first()
    if item is None:
        raise ItemNotFound(f'No product found for barcode "{key}".')
    return _snapshot(item)


def search_items(query: str, limit: int = 20) -> list:
    """Name/SKU substring search for the item picker."""
    q = (query or '').strip()
    items = Item.query.filter(Item.is_active.is_(True))
    if q:
        items = items.filter(Item.name.ilike(f'%{q}%') | Item.sku.ilike(f'%{q}%'))
    return [_snapshot(i) for i in items.order_by(Item.name.asc()).limit(limit).all()]
