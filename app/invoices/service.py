"""
app/invoices/service.py
-----------------------
Invoice submission — the single write boundary behind POS checkout.

create_invoice(payload) does, in ONE transaction:
  1. Lock each item row with SELECT … FOR UPDATE (sorted by id, so two
     concurrent sales never lock the same rows in different orders)
  2. Re-check stock against the live rows — the cart only had snapshots
  3. Lock the customer row and re-check the credit being applied
  4. Deduct stock + write inventory logs
  5. Allocate the invoice number
  6. Persist Invoice + InvoiceItems (+ split tenders)
  7. Move the customer's dues and write ledger entries
  8. Commit

Any failure rolls the whole thing back and surfaces as
InvoiceSubmissionError — nothing is partially written.
"""
from decimal import Decimal

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from app import db
from app.customers.models import Customer, LedgerEntry
from app.inventory.models import Item, InventoryLog
from app.invoices.models import Invoice, InvoiceItem, InvoiceTender
from app.invoices.numbering import generate_invoice_number
from app.pos.checkout import InvoicePayload, InvoiceReceipt
from app.pos.errors import InvoiceSubmissionError
from app.pos.totals import Q, ZERO, SettlementProposal, line_total


def settlement_for(payload: InvoicePayload) -> SettlementProposal:
    """Rebuild the settlement figures from what the client submitted."""
    amount_due = (payload.total_amount - payload.credit_applied).quantize(Q)
    tendered   = payload.paid_amount
    return SettlementProposal(
        subtotal        = payload.subtotal,
        discount        = payload.discount,
        total           = payload.total_amount,
        credit_applied  = payload.credit_applied,
        amount_due      = amount_due,
        amount_tendered = tendered,
        change_required = max(ZERO, tendered - amount_due).quantize(Q),
        change_returned = payload.change_returned,
        balance_due     = (amount_due - tendered).quantize(Q),
    )


def _validate(payload: InvoicePayload, settlement: SettlementProposal) -> None:
    if not payload.items:
        raise ValueError('No items in invoice.')

    subtotal = ZERO
    for line in payload.items:
        if line.quantity <= 0:
            raise ValueError(f'Invalid quantity for item {line.item_id}.')
        subtotal += line_total(line.price, line.quantity)
    if subtotal.quantize(Q) != payload.subtotal:
        raise ValueError('Invoice subtotal does not match its line items.')
    if payload.total_amount != (payload.subtotal - payload.discount).quantize(Q):
        raise ValueError('Invoice total does not match subtotal less discount.')

    if payload.credit_applied < ZERO:
        raise ValueError('Credit applied cannot be negative.')
    if payload.credit_applied > payload.total_amount:
        raise ValueError(
            f'Credit applied (₹{payload.credit_applied}) cannot exceed total amount '
            f'(₹{payload.total_amount}).'
        )

    if settlement.change_returned > settlement.change_required:
        raise ValueError('You are returning more amount than required.')

    if payload.customer_id is None:
        if payload.credit_applied > ZERO:
            raise ValueError('Walk-in customers cannot use credit.')
        if settlement.is_underpaid:
            raise ValueError('Walk-in customers must pay full amount.')


def create_invoice(payload: InvoicePayload) -> InvoiceReceipt:
    settlement = settlement_for(payload)

    try:
        _validate(payload, settlement)

        # ── Lock item rows in a deterministic order ──────────────
        locked = {}
        for item_id in sorted({line.item_id for line in payload.items}):
            item = (
                db.session.query(Item)
                .filter(Item.id == item_id)
                .with_for_update()
                .first()
            )
            if item is None:
                raise ValueError(f'Item ID {item_id} no longer exists.')
            locked[item_id] = item

        # ── Stock validation (all-or-nothing) ────────────────────
        required = {}
        for line in payload.items:
            required[line.item_id] = required.get(line.item_id, 0) + line.quantity
        for item_id, qty in required.items():
            item = locked[item_id]
            if item.stock_qty < qty:
                raise ValueError(
                    f'Insufficient stock for "{item.name}". '
                    f'Available: {item.stock_qty}, requested: {qty}.'
                )

        # ── Customer + credit re-check ───────────────────────────
        customer = None
        if payload.customer_id is not None:
            customer = (
                db.session.query(Customer)
                .filter(Customer.id == payload.customer_id)
                .with_for_update()
                .first()
            )
            if customer is None:
                raise ValueError('Customer not found.')
            if payload.credit_applied > customer.available_credit:
                raise ValueError(
                    f'Credit applied (₹{payload.credit_applied}) exceeds available '
                    f'credit (₹{customer.available_credit}).'
                )

        # ── Invoice header ───────────────────────────────────────
        invoice_number = generate_invoice_number(db.session)
        delta = settlement.ledger_delta if customer is not None else ZERO

        invoice = Invoice(
            invoice_number  = invoice_number,
            customer_id     = payload.customer_id,
            subtotal        = payload.subtotal,
            discount        = payload.discount,
            total_amount    = payload.total_amount,
            paid_amount     = payload.paid_amount,
            credit_applied  = payload.credit_applied,
            change_returned = payload.change_returned,
            payment_method  = payload.payment_method,
            payment_status  = settlement.payment_status,
            dues_delta      = delta,
        )
        db.session.add(invoice)
        db.session.flush()   # assigns invoice.id without committing

        # ── Lines + stock deduction ──────────────────────────────
        for line in payload.items:
            item = locked[line.item_id]
            old_stock = item.stock_qty
            item.stock_qty -= line.quantity
            db.session.add(InventoryLog(
                item_id    = item.id,
                invoice_id = invoice.id,
                old_stock  = old_stock,
                new_stock  = item.stock_qty,
                reason     = f'Sale {invoice_number}',
            ))
            db.session.add(InvoiceItem(
                invoice_id = invoice.id,
                item_id    = line.item_id,
                quantity   = line.quantity,
                price      = line.price,
                line_total = line_total(line.price, line.quantity),
            ))

        for tender in payload.tenders:
            db.session.add(InvoiceTender(
                invoice_id = invoice.id,
                method     = tender['method'],
                amount     = Decimal(str(tender['amount'])),
            ))

        # ── Ledger ───────────────────────────────────────────────
        if customer is not None:
            customer.dues = Decimal(str(customer.dues or 0)) + delta
            _post_ledger_entries(customer, invoice, payload, settlement)
        elif payload.paid_amount > ZERO:
            db.session.add(LedgerEntry(
                invoice_id  = invoice.id,
                kind        = 'payment',
                amount      = min(payload.paid_amount, settlement.amount_due),
                method      = payload.payment_method,
                description = f'Payment received for invoice {invoice_number}',
            ))

        db.session.commit()

    except ValueError as exc:
        db.session.rollback()
        current_app.logger.warning(f"Invoice rollback (ValueError): {exc}")
        raise InvoiceSubmissionError(str(exc)) from exc

    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"Invoice rollback (database): {exc}")
        raise InvoiceSubmissionError('A database error occurred. Please try again.') from exc

    current_app.logger.info(
        f"Invoice {invoice_number} created | Total: {payload.total_amount} "
        f"| Paid: {payload.paid_amount} | Dues delta: {delta}"
    )
    return InvoiceReceipt(invoice_id=invoice.id, invoice_number=invoice_number)


def _post_ledger_entries(customer, invoice, payload, settlement) -> None:
    number = invoice.invoice_number

    def post(kind, amount, description, method=None):
        db.session.add(LedgerEntry(
            customer_id = customer.id,
            invoice_id  = invoice.id,
            kind        = kind,
            amount      = amount,
            method      = method,
            description = description,
        ))

    if settlement.credit_applied > ZERO:
        post('credit_used', settlement.credit_applied,
             f'Customer credit applied to invoice {number}', method='credit')
    if settlement.unpaid > ZERO:
        post('due', settlement.unpaid, f'Due added for invoice {number}')
    if settlement.unreturned_change > ZERO:
        post('change_credit', -settlement.unreturned_change,
             f'Credit due to customer - change not returned for invoice {number}')

    received = min(payload.paid_amount, settlement.amount_due)
    if received > ZERO:
        post('payment', received, f'Payment received for invoice {number}',
             method=payload.payment_method)
