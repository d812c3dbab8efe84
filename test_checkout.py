"""
test_checkout.py — Checkout finalizer against a stub invoicing collaborator.
Run: pytest test_checkout.py -v
"""
import threading
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.pos.checkout import (
    CheckoutFinalizer, Completed, InvoiceReceipt, build_invoice_payload,
)
from app.pos.errors import CheckoutInProgress, InvoiceSubmissionError
from app.pos.reconciliation import ConfirmationKind, NeedsConfirmation, Reject, RejectReason
from app.pos.sessions import KeyValueSessionStore, SessionManager


class StubInvoicing:
    def __init__(self, fail=False):
        self.fail = fail
        self.payloads = []

    def __call__(self, payload):
        self.payloads.append(payload)
        if self.fail:
            raise InvoiceSubmissionError('Insufficient stock for "Kettle".')
        return InvoiceReceipt(invoice_id=len(self.payloads),
                              invoice_number=f'INV-2026-{len(self.payloads):05d}')


def kettle(stock=5):
    return SimpleNamespace(id=11, name='Kettle', unit_price=Decimal('250.00'),
                           stock_qty=stock, unit='pcs')


def customer(dues='0'):
    return SimpleNamespace(id=5, name='Ravi', phone='98', dues=Decimal(dues))


@pytest.fixture
def manager():
    return SessionManager(KeyValueSessionStore({}))


def fill(manager, qty=2, tendered='500', change='0', with_customer=False, dues='0'):
    with manager.editing() as tab:
        tab.add_line(kettle())
        tab.set_quantity(11, qty)
        if with_customer:
            tab.set_customer(customer(dues))
        tab.set_payment(amount_tendered=tendered, change_returned=change)
    return manager.active


# ── Payload ───────────────────────────────────────────────────────

def test_payload_carries_settlement_but_not_stock_snapshot(manager):
    tab = fill(manager, with_customer=True, dues='-100')
    with manager.editing() as t:
        t.set_credit_requested('100')
        t.set_discount('20')

    payload = build_invoice_payload(tab)
    data = payload.to_dict()

    assert data['customer_id'] == 5
    assert data['items'] == [
        {'item_id': 11, 'quantity': 2, 'price': '250.00', 'line_total': '500.00'}
    ]
    assert 'stock_ceiling' not in data['items'][0]
    assert payload.total_amount == Decimal('480.00')
    assert payload.paid_amount == Decimal('500.00')
    assert payload.credit_applied == Decimal('100.00')


# ── Outcomes ──────────────────────────────────────────────────────

def test_reject_is_returned_and_nothing_is_submitted(manager):
    invoicing = StubInvoicing()
    result = CheckoutFinalizer(invoicing).checkout(manager)
    assert result == Reject(RejectReason.EMPTY_CART)
    assert invoicing.payloads == []


def test_scenario_b_walk_in_exact_payment_completes(manager):
    tab = fill(manager, tendered='500')
    invoicing = StubInvoicing()

    result = CheckoutFinalizer(invoicing).checkout(manager)

    assert isinstance(result, Completed)
    assert result.retired_id == tab.id
    assert invoicing.payloads[0].paid_amount == Decimal('500.00')
    assert invoicing.payloads[0].change_returned == Decimal('0')
    # last tab retired → a fresh one replaces it
    assert len(manager.sessions) == 1
    assert manager.active_id == result.next_active_id != tab.id
    assert manager.active.is_empty


def test_confirmation_needed_until_acknowledged(manager):
    fill(manager, tendered='300', with_customer=True)
    invoicing = StubInvoicing()
    finalizer = CheckoutFinalizer(invoicing)

    first = finalizer.checkout(manager)
    assert isinstance(first, NeedsConfirmation)
    assert first.kind is ConfirmationKind.UNPAID_BALANCE
    assert invoicing.payloads == []

    wrong = finalizer.checkout(manager, confirmed=ConfirmationKind.PARTIAL_CHANGE_AS_CREDIT)
    assert isinstance(wrong, NeedsConfirmation)
    assert invoicing.payloads == []

    done = finalizer.checkout(manager, confirmed=ConfirmationKind.UNPAID_BALANCE)
    assert isinstance(done, Completed)
    assert invoicing.payloads[0].paid_amount == Decimal('300.00')


def test_checkout_of_a_background_tab_keeps_the_active_one(manager):
    background = fill(manager, tendered='500')
    front = manager.open_tab()

    result = CheckoutFinalizer(StubInvoicing()).checkout(manager, background.id)

    assert isinstance(result, Completed)
    assert manager.active_id == front.id
    assert [s.id for s in manager.sessions] == [front.id]


def test_failed_submission_leaves_the_tab_intact(manager):
    tab = fill(manager, tendered='500')
    before = tab.to_dict()
    invoicing = StubInvoicing(fail=True)
    finalizer = CheckoutFinalizer(invoicing)

    with pytest.raises(InvoiceSubmissionError):
        finalizer.checkout(manager)

    assert manager.active.to_dict() == before
    assert len(invoicing.payloads) == 1           # tried once, never retried
    assert not finalizer.is_in_flight(tab.id)


def test_second_checkout_while_in_flight_is_refused(manager):
    tab = fill(manager, tendered='500')
    release = threading.Event()
    entered = threading.Event()

    def slow_invoicing(payload):
        entered.set()
        release.wait(timeout=5)
        return InvoiceReceipt(invoice_id=1, invoice_number='INV-2026-00001')

    finalizer = CheckoutFinalizer(slow_invoicing)
    results = []
    worker = threading.Thread(target=lambda: results.append(finalizer.checkout(manager, tab.id)))
    worker.start()
    assert entered.wait(timeout=5)

    try:
        assert finalizer.is_in_flight(tab.id)
        with pytest.raises(CheckoutInProgress):
            finalizer.checkout(manager, tab.id)
    finally:
        release.set()
        worker.join(timeout=5)

    assert isinstance(results[0], Completed)
    assert not finalizer.is_in_flight(tab.id)
