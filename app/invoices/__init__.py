from flask import Blueprint

invoices = Blueprint('invoices', __name__)

from app.invoices import routes  # noqa: F401, E402
from app.invoices import models  # noqa: F401, E402  — registers Invoice/InvoiceItem with SQLAlchemy
