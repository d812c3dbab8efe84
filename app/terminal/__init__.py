from flask import Blueprint

terminal = Blueprint('terminal', __name__)

from app.terminal import routes  # noqa: F401, E402
