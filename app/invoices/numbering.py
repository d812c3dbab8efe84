"""
app/invoices/numbering.py
-------------------------
Gap-free invoice numbers: INV-YYYY-NNNNN, restarting at 1 each year.

The counter for a year is one InvoiceSequence row, bumped while it is
locked FOR UPDATE inside the sale's transaction. A sale that rolls back
takes its bump with it, so the series never skips a number.
"""
from datetime import date

PREFIX = 'INV'


def format_invoice_number(year: int, seq: int) -> str:
    return f"{PREFIX}-{year}-{seq:05d}"


def _locked_sequence(db_session, year: int):
    from app.invoices.models import InvoiceSequence
    return (
        db_session.query(InvoiceSequence)
        .filter(InvoiceSequence.year == year)
        .with_for_update()
        .first()
    )


def generate_invoice_number(db_session, year: int = None) -> str:
    """
    Allocate the next number for `year` (default: this year).
    Call inside the transaction that writes the invoice.
    """
    from app.invoices.models import InvoiceSequence

    year = year or date.today().year
    row = _locked_sequence(db_session, year)
    if row is None:
        # first sale of the year: `flask init-db` normally pre-seeds this
        db_session.add(InvoiceSequence(year=year, last_seq=0))
        db_session.flush()
        row = _locked_sequence(db_session, year)

    row.last_seq += 1
    db_session.flush()
    return format_invoice_number(year, row.last_seq)
