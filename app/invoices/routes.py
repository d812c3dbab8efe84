from flask import abort, current_app, jsonify, request
from app import db
from app.invoices import invoices
from app.invoices.models import Invoice


@invoices.route('/')
def index():
    """Most recent invoices first; ?customer_id= narrows to one customer."""
    query = Invoice.query
    customer_id = request.args.get('customer_id', type=int)
    if customer_id is not None:
        query = query.filter(Invoice.customer_id == customer_id)
    limit = current_app.config['RECENT_INVOICES_LIMIT']
    rows = query.order_by(Invoice.created_at.desc(), Invoice.id.desc()).limit(limit).all()
    return jsonify([
        {
            'id':             inv.id,
            'invoice_number': inv.invoice_number,
            'customer_name':  inv.customer.name if inv.customer else 'Walk-in',
            'total_amount':   str(inv.total_amount),
            'payment_status': inv.payment_status,
            'created_at':     inv.created_at.isoformat(),
        }
        for inv in rows
    ])


@invoices.route('/<int:invoice_id>')
def detail(invoice_id):
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        abort(404)
    return jsonify(invoice.to_dict())
