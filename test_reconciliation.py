"""
test_reconciliation.py — Checkout decision rules.
Run: pytest test_reconciliation.py -v
"""
import itertools
from decimal import Decimal
from types import SimpleNamespace

import pytest

from app.pos.cart import CartSession
from app.pos.reconciliation import (
    ConfirmationKind, NeedsConfirmation, Proceed, Reject, RejectReason, reconcile,
)
from app.pos.totals import settle


def make_tab(total='500.00', customer=False, tendered='0', change='0',
             discount='0', credit_dues=None, credit='0'):
    tab = CartSession(id='t1', display_name='Tab 1')
    if total is not None:
        tab.add_line(SimpleNamespace(id=1, name='Hamper', unit_price=Decimal(total),
                                     stock_qty=5, unit='pcs'))
    if customer:
        dues = credit_dues if credit_dues is not None else '0'
        tab.set_customer(SimpleNamespace(id=3, name='Ravi', phone='1',
                                         dues=Decimal(dues)))
        tab.set_credit_requested(credit)
    tab.set_discount(discount)
    tab.set_payment(amount_tendered=tendered, change_returned=change)
    return tab


# ── Individual rules ──────────────────────────────────────────────

def test_empty_cart_is_rejected():
    outcome = reconcile(make_tab(total=None, tendered='100'))
    assert outcome == Reject(RejectReason.EMPTY_CART)


def test_negative_tendered_is_rejected():
    outcome = reconcile(make_tab(tendered='-1'))
    assert isinstance(outcome, Reject)
    assert outcome.reason is RejectReason.INVALID_AMOUNT


def test_negative_change_returned_is_rejected():
    outcome = reconcile(make_tab(tendered='600', change='-5'))
    assert outcome.reason is RejectReason.INVALID_AMOUNT


@pytest.mark.parametrize('discount', ['-1', '500.01'])
def test_out_of_range_discount_is_rejected(discount):
    outcome = reconcile(make_tab(tendered='500', discount=discount))
    assert outcome.reason is RejectReason.INVALID_DISCOUNT


def test_discount_equal_to_subtotal_is_allowed():
    outcome = reconcile(make_tab(tendered='0', discount='500'))
    assert isinstance(outcome, Proceed)


@pytest.mark.parametrize('customer', [False, True])
def test_returning_more_change_than_owed_is_rejected(customer):
    outcome = reconcile(make_tab(customer=customer, tendered='600', change='150'))
    assert outcome.reason is RejectReason.EXCESS_CHANGE_RETURNED


def test_walk_in_must_pay_full():
    outcome = reconcile(make_tab(tendered='499.99'))
    assert outcome.reason is RejectReason.WALK_IN_MUST_PAY_FULL
    assert 'Walk-in customers must pay full amount' in outcome.message


def test_walk_in_partial_change_needs_confirmation():
    outcome = reconcile(make_tab(tendered='600', change='60'))
    assert isinstance(outcome, NeedsConfirmation)
    assert outcome.kind is ConfirmationKind.WALK_IN_PARTIAL_CHANGE
    assert outcome.amount == Decimal('40.00')


def test_walk_in_with_full_change_proceeds():
    assert isinstance(reconcile(make_tab(tendered='600', change='100')), Proceed)


def test_customer_partial_change_becomes_credit():
    outcome = reconcile(make_tab(customer=True, tendered='600', change='30'))
    assert outcome.kind is ConfirmationKind.PARTIAL_CHANGE_AS_CREDIT
    assert outcome.amount == Decimal('70.00')
    assert outcome.amount > 0
    assert outcome.amount == outcome.proposal.change_required - outcome.proposal.change_returned


def test_applied_credit_reduces_amount_due():
    tab = make_tab(customer=True, credit_dues='-200', credit='200', tendered='300')
    outcome = reconcile(tab)
    assert outcome.proposal.amount_due == Decimal('300.00')
    assert isinstance(outcome, Proceed)


def test_credit_left_over_from_a_higher_total_is_not_offered_back_as_change():
    tab = make_tab(customer=True, credit_dues='-500', credit='500', discount='100')
    outcome = reconcile(tab)
    assert isinstance(outcome, Proceed)
    assert outcome.proposal.credit_applied == Decimal('400.00')
    assert outcome.proposal.amount_due == Decimal('0.00')
    assert outcome.proposal.ledger_delta == Decimal('400.00')


def test_reconcile_does_not_mutate_the_tab():
    tab = make_tab(customer=True, tendered='100')
    before = tab.to_dict()
    reconcile(tab)
    assert tab.to_dict() == before


# ── Scenarios ─────────────────────────────────────────────────────

def test_scenario_a_empty_cart():
    assert reconcile(make_tab(total=None)) == Reject(RejectReason.EMPTY_CART)


def test_scenario_b_walk_in_exact_payment():
    outcome = reconcile(make_tab(tendered='500'))
    assert isinstance(outcome, Proceed)
    assert outcome.proposal.change_required == Decimal('0')


def test_scenario_c_customer_underpays():
    outcome = reconcile(make_tab(customer=True, tendered='300'))
    assert outcome.kind is ConfirmationKind.UNPAID_BALANCE
    assert outcome.amount == Decimal('200.00')
    assert outcome.proposal.ledger_delta == Decimal('200.00')


def test_scenario_d_customer_overpays_keeps_part_of_change():
    outcome = reconcile(make_tab(customer=True, tendered='600', change='50'))
    assert outcome.kind is ConfirmationKind.PARTIAL_CHANGE_AS_CREDIT
    assert outcome.amount == Decimal('50.00')
    assert outcome.proposal.ledger_delta == Decimal('-50.00')


# ── Precedence is total ───────────────────────────────────────────

def expected_outcome(has_customer, paid_vs_due, change_vs_required):
    """Independent statement of the rule table for one combination."""
    overpaid  = paid_vs_due == 'over'
    underpaid = paid_vs_due == 'under'
    if overpaid and change_vs_required == 'more':
        return RejectReason.EXCESS_CHANGE_RETURNED
    if not has_customer:
        if underpaid:
            return RejectReason.WALK_IN_MUST_PAY_FULL
        if overpaid and change_vs_required == 'less':
            return ConfirmationKind.WALK_IN_PARTIAL_CHANGE
        return 'proceed'
    if underpaid:
        return ConfirmationKind.UNPAID_BALANCE
    if overpaid and change_vs_required == 'less':
        return ConfirmationKind.PARTIAL_CHANGE_AS_CREDIT
    return 'proceed'


TENDERED = {'under': '400', 'exact': '500', 'over': '600'}


def change_for(paid_vs_due, change_vs_required):
    required = max(Decimal(TENDERED[paid_vs_due]) - Decimal('500'), Decimal('0'))
    offset = {'less': -10, 'equal': 0, 'more': 10}[change_vs_required]
    return str(max(required + offset, Decimal('0')))


@pytest.mark.parametrize(
    'has_customer,paid_vs_due,change_vs_required',
    list(itertools.product([False, True], ['under', 'exact', 'over'],
                           ['less', 'equal', 'more'])),
)
def test_every_combination_maps_to_exactly_one_outcome(has_customer, paid_vs_due,
                                                       change_vs_required):
    tab = make_tab(customer=has_customer, tendered=TENDERED[paid_vs_due],
                   change=change_for(paid_vs_due, change_vs_required))
    outcome = reconcile(tab, settle(tab))
    expected = expected_outcome(has_customer, paid_vs_due, change_vs_required)

    if expected == 'proceed':
        assert isinstance(outcome, Proceed)
    elif isinstance(expected, RejectReason):
        assert isinstance(outcome, Reject) and outcome.reason is expected
    else:
        assert isinstance(outcome, NeedsConfirmation) and outcome.kind is expected

    if not has_customer and paid_vs_due == 'under':
        assert not isinstance(outcome, Proceed)
