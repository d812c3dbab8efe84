from flask import request, jsonify
from app.inventory import inventory
from app.inventory.catalog import find_item, search_items


@inventory.route('/lookup')
def lookup():
    """Resolve a scanned barcode / SKU to the current catalog snapshot."""
    item = find_item(request.args.get('sku', ''))
    return jsonify(item.to_dict())


@inventory.route('/search')
def search():
    items = search_items(request.args.get('q', ''))
    return jsonify([i.to_dict() for i in items])
