"""
test_pos_routes.py — POS screen endpoints, end to end.
Run: pytest test_pos_routes.py -v
"""
from decimal import Decimal

import pytest

from app import create_app, db
from app.customers.models import Customer
from app.inventory.models import Item
from app.invoices.models import Invoice


@pytest.fixture
def client():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        db.session.add_all([
            Item(name='Basmati Rice 1kg', sku='RICE001', selling_price=Decimal('250.00'), stock_qty=4),
            Item(name='USB Cable',        sku='USB001',  selling_price=Decimal('199.00'), stock_qty=0),
            Customer(name='Ravi Kumar',   phone='9800000002', dues=Decimal('0')),
        ])
        db.session.commit()
        yield app.test_client()
        db.session.remove()
        db.drop_all()


def add(client, sku='RICE001'):
    return client.post('/pos/cart/items', json={'sku': sku})


def pay(client, amount, change='0', method='cash'):
    return client.post('/pos/cart/payment', json={
        'method': method, 'amount_tendered': amount, 'change_returned': change,
    })


def attach_customer(client):
    customer_id = Customer.query.filter_by(phone='9800000002').first().id
    return client.post('/pos/cart/customer', json={'customer_id': customer_id})


def test_state_starts_with_one_empty_tab(client):
    data = client.get('/pos/state').get_json()
    assert [t['display_name'] for t in data['tabs']] == ['Tab 1']
    assert data['totals']['subtotal'] == '0.00'


def test_add_item_and_totals(client):
    add(client)
    data = add(client).get_json()
    assert data['tabs'][0]['lines'][0]['quantity'] == 2
    assert data['totals']['subtotal'] == '500.00'
    assert data['totals']['total'] == '500.00'


def test_scenario_f_out_of_stock_item_is_rejected(client):
    resp = add(client, 'USB001')
    assert resp.status_code == 400
    assert 'out of stock' in resp.get_json()['error']
    assert client.get('/pos/state').get_json()['tabs'][0]['lines'] == []


def test_unknown_barcode_is_404(client):
    resp = add(client, 'NOPE')
    assert resp.status_code == 404


def test_quantity_above_stock_leaves_line_unchanged(client):
    add(client)
    item_id = Item.query.filter_by(sku='RICE001').first().id
    resp = client.patch(f'/pos/cart/items/{item_id}', json={'quantity': 5})
    assert resp.status_code == 400
    assert client.get('/pos/state').get_json()['tabs'][0]['lines'][0]['quantity'] == 1


def test_scenario_a_empty_cart_checkout(client):
    resp = client.post('/pos/checkout', json={})
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'empty_cart'


def test_scenario_b_walk_in_exact_payment(client):
    add(client)
    add(client)
    pay(client, '500')

    resp = client.post('/pos/checkout', json={})
    assert resp.status_code == 201
    body = resp.get_json()
    invoice = db.session.get(Invoice, body['checkout']['invoice_id'])
    assert invoice.paid_amount == Decimal('500.00')
    assert invoice.change_returned == Decimal('0.00')
    assert body['checkout']['invoice_url'] == f'/invoices/{invoice.id}'

    # tab retired, a fresh empty one took its place
    assert len(body['tabs']) == 1
    assert body['tabs'][0]['lines'] == []

    detail = client.get(body['checkout']['invoice_url']).get_json()
    assert detail['invoice_number'] == invoice.invoice_number


def test_walk_in_underpayment_is_rejected(client):
    add(client)
    pay(client, '100')
    resp = client.post('/pos/checkout', json={})
    assert resp.status_code == 400
    assert resp.get_json()['reason'] == 'walk_in_must_pay_full'
    assert Invoice.query.count() == 0


def test_scenario_c_unpaid_balance_needs_confirmation(client):
    add(client)
    add(client)
    attach_customer(client)
    pay(client, '300')

    resp = client.post('/pos/checkout', json={})
    assert resp.status_code == 409
    assert resp.get_json()['kind'] == 'unpaid_balance'
    assert resp.get_json()['amount'] == '200.00'
    assert Invoice.query.count() == 0

    resp = client.post('/pos/checkout', json={'confirm': 'unpaid_balance'})
    assert resp.status_code == 201
    assert Customer.query.filter_by(phone='9800000002').first().dues == Decimal('200.00')


def test_scenario_d_partial_change_as_credit(client):
    add(client)
    add(client)
    attach_customer(client)
    pay(client, '600', change='50')

    resp = client.post('/pos/checkout', json={})
    assert resp.status_code == 409
    assert resp.get_json()['kind'] == 'partial_change_as_credit'
    assert resp.get_json()['amount'] == '50.00'

    resp = client.post('/pos/checkout', json={'confirm': 'partial_change_as_credit'})
    assert resp.status_code == 201
    assert Customer.query.filter_by(phone='9800000002').first().dues == Decimal('-50.00')


def test_scenario_e_split_payment(client):
    add(client)
    add(client)
    resp = client.post('/pos/cart/split', json={'tenders': [
        {'method': 'cash', 'amount': '200'},
        {'method': 'upi', 'amount': '300'},
    ]})
    assert resp.status_code == 200
    tab = resp.get_json()['tabs'][0]
    assert tab['amount_tendered'] == '500.00'
    assert tab['payment_method'] == 'split'

    assert client.post('/pos/checkout', json={}).status_code == 201


def test_split_payment_must_match_amount_due(client):
    add(client)
    resp = client.post('/pos/cart/split', json={'tenders': [{'method': 'cash', 'amount': '100'}]})
    assert resp.status_code == 400


@pytest.mark.parametrize('tenders', [[5], 'cash', {'method': 'cash'}])
def test_malformed_tenders_are_a_client_error(client, tenders):
    add(client)
    resp = client.post('/pos/cart/split', json={'tenders': tenders})
    assert resp.status_code == 400
    assert 'error' in resp.get_json()


def test_huge_typed_amount_reads_as_zero(client):
    add(client)
    resp = pay(client, '1e30')
    assert resp.status_code == 200
    assert resp.get_json()['totals']['amount_tendered'] == '0.00'

    client.post('/pos/cart/discount', json={'amount': '1e30'})
    assert client.get('/pos/state').get_json()['totals']['discount'] == '0.00'


def test_non_object_json_bodies_are_ignored(client):
    add(client)
    assert client.post('/pos/cart/payment', json=[1, 2]).status_code == 200
    assert client.post('/pos/checkout', json=['confirm']).status_code == 400   # walk-in, unpaid
    assert client.post('/customers/create', json=['x']).status_code == 400

    resp = client.post('/pos/cart/items', json=['RICE001'])
    assert resp.status_code == 404       # no sku given


def test_bad_quantity_is_a_client_error(client):
    add(client)
    item_id = Item.query.filter_by(sku='RICE001').first().id
    resp = client.patch(f'/pos/cart/items/{item_id}', json={'quantity': 'two'})
    assert resp.status_code == 400
    assert resp.get_json()['error'] == 'Quantity must be a whole number.'


def test_submission_failure_keeps_the_tab(client):
    add(client)
    add(client)
    pay(client, '500')
    Item.query.filter_by(sku='RICE001').first().stock_qty = 1
    db.session.commit()

    resp = client.post('/pos/checkout', json={})
    assert resp.status_code == 502
    assert 'Insufficient stock' in resp.get_json()['error']
    assert client.get('/pos/state').get_json()['tabs'][0]['lines'][0]['quantity'] == 2


def test_tabs_and_parked_orders(client):
    add(client)
    parked = client.post('/pos/park').get_json()
    assert parked['tabs'][0]['lines'] == []
    assert parked['parked'][0]['customer_name'] == 'Walk-in'

    opened = client.post('/pos/tabs')
    assert opened.status_code == 201
    assert [t['display_name'] for t in opened.get_json()['tabs']] == ['Tab 1', 'Tab 2']

    restored = client.post(f"/pos/parked/{parked['parked_id']}/retrieve").get_json()
    assert [t['display_name'] for t in restored['tabs']] == ['Tab 1', 'Tab 2', 'Tab 3']
    assert restored['parked'] == []
    assert restored['tabs'][2]['lines'][0]['quantity'] == 1
    assert restored['active_id'] == restored['tabs'][2]['id']

    first_id = restored['tabs'][0]['id']
    closed = client.delete(f'/pos/tabs/{first_id}').get_json()
    assert [t['display_name'] for t in closed['tabs']] == ['Tab 2', 'Tab 3']


def test_parking_an_empty_cart_is_refused(client):
    resp = client.post('/pos/park')
    assert resp.status_code == 400


def test_closing_the_last_tab_is_ignored(client):
    only = client.get('/pos/state').get_json()['tabs'][0]['id']
    data = client.delete(f'/pos/tabs/{only}').get_json()
    assert [t['id'] for t in data['tabs']] == [only]


def test_customer_search_and_create(client):
    resp = client.post('/customers/create', json={'name': 'John Doe', 'phone': '9876543210'})
    assert resp.status_code == 200
    assert resp.get_json()['name'] == 'John Doe'

    resp = client.post('/customers/create', json={'name': 'Dup', 'phone': '9876543210'})
    assert resp.status_code == 400

    data = client.get('/customers/search?q=9876').get_json()
    assert [c['name'] for c in data] == ['John Doe']


def test_client_errors_do_not_chain_the_parse_failure(client):
    from app.pos.errors import PosError
    from app.terminal import routes

    app = client.application
    calls = [
        ('/pos/cart/items/1', 'PATCH', {'quantity': 'two'}, lambda: routes.set_quantity('1')),
        ('/pos/cart/payment', 'POST', {'method': 'cheque'}, routes.set_payment),
        ('/pos/checkout', 'POST', {'confirm': 'maybe'}, routes.checkout),
    ]
    for path, method, body, view in calls:
        with app.test_request_context(path, method=method, json=body):
            with pytest.raises(PosError) as exc:
                view()
        assert exc.value.__cause__ is None
        assert exc.value.__suppress_context__
