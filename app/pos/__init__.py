"""
Checkout engine: carts, tabs, settlement, reconciliation and checkout.
Plain Python only; the HTTP layer lives in app.terminal.
"""
