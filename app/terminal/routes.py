"""
app/terminal/routes.py
----------------------
JSON endpoints for the POS screen.

Every request rebuilds a SessionManager over the Flask session, applies
one operation and answers with the resulting state, so the client can
re-render tabs, cart and totals from a single response.
"""
from flask import current_app, jsonify, request, session, url_for

from app.customers.directory import get_customer
from app.inventory.catalog import find_item
from app.terminal import terminal
from app.pos.errors import PosError
from app.pos.reconciliation import ConfirmationKind, NeedsConfirmation, Reject
from app.pos.sessions import SessionManager, SessionStore
from app.pos.split import SplitPaymentComposer
from app.pos.totals import settle


class FlaskSessionStore(SessionStore):
    """Keeps the three POS state blobs in the signed Flask session."""

    def _read(self, key):
        value = session.get(key)
        return value if isinstance(value, str) else None

    def _write(self, key, value):
        session.permanent = True
        session[key]      = value
        session.modified  = True


def _manager() -> SessionManager:
    return SessionManager(FlaskSessionStore())


def _json() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _state(manager: SessionManager, status=200, **extra):
    active = manager.active
    p = settle(active)
    body = manager.to_dict()
    body['totals'] = {
        'subtotal':          str(p.subtotal),
        'discount':          str(p.discount),
        'total':             str(p.total),
        'credit_available':  str(active.credit_available),
        'credit_applied':    str(p.credit_applied),
        'amount_due':        str(p.amount_due),
        'amount_tendered':   str(p.amount_tendered),
        'change_required':   str(p.change_required),
        'change_returned':   str(p.change_returned),
        'balance_due':       str(p.balance_due),
    }
    body.update(extra)
    return jsonify(body), status


# ── STATE ─────────────────────────────────────────────────────────

@terminal.route('/state')
def state():
    return _state(_manager())


# ── TABS ──────────────────────────────────────────────────────────

@terminal.route('/tabs', methods=['POST'])
def open_tab():
    manager = _manager()
    manager.open_tab()
    return _state(manager, status=201)


@terminal.route('/tabs/<tab_id>', methods=['DELETE'])
def close_tab(tab_id):
    manager = _manager()
    manager.close_tab(tab_id)
    return _state(manager)


@terminal.route('/tabs/<tab_id>/activate', methods=['POST'])
def switch_tab(tab_id):
    manager = _manager()
    manager.switch_to(tab_id)
    return _state(manager)


@terminal.route('/tabs/<tab_id>/move', methods=['POST'])
def move_tab(tab_id):
    manager = _manager()
    manager.reorder(tab_id, _json().get('before_id'))
    return _state(manager)


# ── CART ──────────────────────────────────────────────────────────

@terminal.route('/cart/items', methods=['POST'])
def add_item():
    """Scan / pick an item: look it up in the catalog, add one unit."""
    item = find_item(_json().get('sku', ''))
    manager = _manager()
    with manager.editing() as tab:
        tab.add_line(item)
    return _state(manager)


@terminal.route('/cart/items/<item_id>', methods=['PATCH'])
def set_quantity(item_id):
    try:
        quantity = int(_json().get('quantity'))
    except (TypeError, ValueError):
        raise PosError('Quantity must be a whole number.') from None
    manager = _manager()
    with manager.editing() as tab:
        tab.set_quantity(item_id, quantity)
    return _state(manager)


@terminal.route('/cart/items/<item_id>', methods=['DELETE'])
def remove_item(item_id):
    manager = _manager()
    with manager.editing() as tab:
        tab.remove_line(item_id)
    return _state(manager)


@terminal.route('/cart/discount', methods=['POST'])
def set_discount():
    manager = _manager()
    with manager.editing() as tab:
        tab.set_discount(_json().get('amount'))
    return _state(manager)


@terminal.route('/cart/customer', methods=['POST'])
def set_customer():
    """Attach a customer by id, or detach with {"customer_id": null}."""
    customer_id = _json().get('customer_id')
    customer = get_customer(customer_id) if customer_id is not None else None
    manager = _manager()
    with manager.editing() as tab:
        tab.set_customer(customer)
    return _state(manager)


@terminal.route('/cart/credit', methods=['POST'])
def set_credit():
    manager = _manager()
    with manager.editing() as tab:
        tab.set_credit_requested(_json().get('amount'))
    return _state(manager)


@terminal.route('/cart/payment', methods=['POST'])
def set_payment():
    data = _json()
    manager = _manager()
    try:
        with manager.editing() as tab:
            tab.set_payment(
                method          = data.get('method'),
                amount_tendered = data.get('amount_tendered'),
                change_returned = data.get('change_returned'),
            )
    except ValueError:
        raise PosError(f'Unknown payment method "{data.get("method")}".') from None
    return _state(manager)


@terminal.route('/cart/split', methods=['POST'])
def apply_split():
    """Collapse a list of {method, amount} tenders into the tab's payment."""
    tenders = _json().get('tenders') or []
    composer = SplitPaymentComposer(tenders)
    manager = _manager()
    with manager.editing() as tab:
        composer.apply(tab, settle(tab).amount_due)
    return _state(manager)


# ── PARKED ORDERS ─────────────────────────────────────────────────

@terminal.route('/park', methods=['POST'])
def park():
    manager = _manager()
    order = manager.park_active()
    return _state(manager, parked_id=order.id, message='Order parked successfully!')


@terminal.route('/parked/<parked_id>/retrieve', methods=['POST'])
def retrieve_parked(parked_id):
    manager = _manager()
    manager.retrieve_parked(parked_id)
    return _state(manager)


@terminal.route('/parked/<parked_id>', methods=['DELETE'])
def discard_parked(parked_id):
    manager = _manager()
    manager.discard_parked(parked_id)
    return _state(manager)


# ── CHECKOUT ──────────────────────────────────────────────────────

@terminal.route('/checkout', methods=['POST'])
def checkout():
    """
    Check out a tab (the active one unless "tab_id" is given).

      400  rejected — fix the cart/payment and try again
      409  needs confirmation — re-submit with {"confirm": <kind>}
      201  invoice created
    """
    data = _json()
    confirm = data.get('confirm')
    try:
        confirmed = ConfirmationKind(confirm) if confirm else None
    except ValueError:
        raise PosError(f'Unknown confirmation "{confirm}".') from None

    manager = _manager()
    finalizer = current_app.extensions['pos_finalizer']
    result = finalizer.checkout(manager, data.get('tab_id'), confirmed=confirmed)

    if isinstance(result, Reject):
        current_app.logger.info(f"Checkout rejected: {result.reason.value}")
        return jsonify(result.to_dict()), 400

    if isinstance(result, NeedsConfirmation):
        return jsonify(result.to_dict()), 409

    return _state(
        manager, status=201,
        checkout={
            **result.to_dict(),
            'invoice_url': url_for('invoices.detail', invoice_id=result.receipt.invoice_id),
        },
    )
