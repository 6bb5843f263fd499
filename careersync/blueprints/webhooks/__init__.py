from flask import Blueprint

bp = Blueprint("webhooks", __name__)

# Import submodules so their @bp.route decorators register
from . import routes  # noqa: E402,F401
