"""
app/pos/errors.py
-----------------
Exception hierarchy for the checkout engine.

Checkout *decisions* (reject / needs confirmation) are returned as values
by app.pos.reconciliation — the exceptions here cover the local,
recoverable conditions raised while mutating a cart or a tab set, plus
the single fallible I/O step (invoice submission).
"""


class PosError(Exception):
    """Base class — every engine error carries an operator-facing message."""

    status_code = 400

    def __init__(self, message: str = None):
        super().__init__(message or self.__class__.__doc__)
        self.message = message or self.__class__.__doc__


# ── Cart / stock ──────────────────────────────────────────────────

class OutOfStock(PosError):
    """This item is out of stock."""


class StockExceeded(PosError):
    """Requested quantity exceeds available stock."""

    def __init__(self, name: str, available: int):
        super().__init__(f'Only {available} units of "{name}" available in stock.')
        self.available = available


class EmptyCart(PosError):
    """Cart is empty."""


class ItemNotFound(PosError):
    """Product not found."""

    status_code = 404


# ── Tabs / parked orders ──────────────────────────────────────────

class UnknownTab(PosError):
    """No such tab."""

    status_code = 404


class UnknownParkedOrder(PosError):
    """No such parked order."""

    status_code = 404


# ── Payment ───────────────────────────────────────────────────────

class SplitMismatch(PosError):
    """Split payment total must equal the amount due."""


class CheckoutInProgress(PosError):
    """A checkout for this tab is already being submitted."""

    status_code = 409


class InvoiceSubmissionError(PosError):
    """The invoice could not be saved. Please try again."""

    status_code = 502


# ── Customers ─────────────────────────────────────────────────────

class CustomerError(PosError):
    """Customer could not be saved."""
