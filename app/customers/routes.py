from flask import request, jsonify
from app.customers import customers
from app.customers.directory import find_customers, create_customer


@customers.route('/search')
def search():
    results = find_customers(request.args.get('q', ''))
    return jsonify([c.to_dict() for c in results])


@customers.route('/create', methods=['POST'])
def create():
    data = request.get_json(silent=True)
    customer = create_customer(data if isinstance(data, dict) else {})
    return jsonify({**customer.to_dict(), 'message': 'Customer created successfully'})
