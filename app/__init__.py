import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from app.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # One finalizer per process: its in-flight set spans requests.
    from app.pos.checkout import CheckoutFinalizer
    from app.invoices.service import create_invoice
    app.extensions['pos_finalizer'] = CheckoutFinalizer(create_invoice)

    # ── Blueprints ────────────────────────────────────────────────
    from app.terminal import terminal as terminal_blueprint
    app.register_blueprint(terminal_blueprint, url_prefix='/pos')

    from app.inventory import inventory as inventory_blueprint
    app.register_blueprint(inventory_blueprint, url_prefix='/inventory')

    from app.customers import customers as customers_blueprint
    app.register_blueprint(customers_blueprint, url_prefix='/customers')

    from app.invoices import invoices as invoices_blueprint
    app.register_blueprint(invoices_blueprint, url_prefix='/invoices')

    # ── Error Handlers ────────────────────────────────────────────
    from app.pos.errors import PosError

    @app.errorhandler(PosError)
    def pos_error(e):
        return jsonify({'error': e.message}), e.status_code

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(e):
        return jsonify({'error': 'Server error'}), 500

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    return app


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables and seed the invoice sequence for this year."""
        from datetime import date
        from app.invoices.models import InvoiceSequence

        db.create_all()
        click.echo('✅  Database tables created.')

        # Pre-seed the sequence row so the first sale of the year
        # doesn't INSERT inside its own transaction.
        year = date.today().year
        if not db.session.get(InvoiceSequence, year):
            db.session.add(InvoiceSequence(year=year, last_seq=0))
            db.session.commit()
            click.echo(f'✅  Invoice sequence seeded for {year} (starts at 0).')
        else:
            click.echo(f'ℹ️   Invoice sequence for {year} already exists.')

    @app.cli.command('show-sequences')
    def show_sequences():
        """Show current invoice sequence counters (diagnostic)."""
        from app.invoices.models import InvoiceSequence
        from app.invoices.numbering import format_invoice_number
        rows = InvoiceSequence.query.order_by(InvoiceSequence.year.desc()).all()
        if not rows:
            click.echo('No sequence rows found. Run flask init-db first.')
            return
        click.echo(f'{"Year":<8} {"Last Seq":<12} {"Next Invoice"}')
        click.echo('─' * 40)
        for row in rows:
            next_inv = format_invoice_number(row.year, row.last_seq + 1)
            click.echo(f'{row.year:<8} {row.last_seq:<12} {next_inv}')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate database with demo items and customers."""
        from decimal import Decimal
        from app.inventory.models import Item, InventoryLog
        from app.customers.models import Customer

        click.echo("🌱 Seeding demo data...")
        db.create_all()

        if Item.query.count() < 5:
            demo_items = [
                ('Basmati Rice 1kg', 'RICE001', '90.00',  40, 'pcs'),
                ('Sunflower Oil 1L', 'OIL001',  '150.00', 25, 'pcs'),
                ('Toor Dal 500g',    'DAL001',  '75.00',  30, 'pcs'),
                ('Notebook A5',      'NB001',   '45.00',  60, 'pcs'),
                ('Pen Set',          'PEN001',  '120.00', 15, 'pcs'),
                ('Desk Lamp',        'LAMP001', '899.00', 5,  'pcs'),
                ('USB Cable',        'USB001',  '199.00', 0,  'pcs'),
            ]
            for name, sku, price, stock, unit in demo_items:
                item = Item(name=name, sku=sku, selling_price=Decimal(price),
                            stock_qty=stock, unit=unit)
                db.session.add(item)
                db.session.flush()
                db.session.add(InventoryLog(item_id=item.id, old_stock=0, new_stock=stock,
                                            reason='Initial Demo Stock'))
            db.session.commit()
            click.echo("✅ Items seeded.")

        if Customer.query.count() == 0:
            db.session.add_all([
                Customer(name='Asha Verma',  phone='9800000001', dues=Decimal('0')),
                Customer(name='Ravi Kumar',  phone='9800000002', dues=Decimal('350.00')),
                Customer(name='Meena Iyer',  phone='9800000003', dues=Decimal('-120.00')),
            ])
            db.session.commit()
            click.echo("✅ Customers seeded.")

        click.echo("✅ Demo seed complete.")

    # ── ProxyFix (HTTPS termination at the load balancer) ──
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
