from flask import Blueprint

customers = Blueprint('customers', __name__)

from app.customers import routes  # noqa: F401, E402
from app.customers import models  # noqa: F401, E402  — registers Customer/LedgerEntry with SQLAlchemy
