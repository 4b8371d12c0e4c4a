"""Billing blueprint - Stripe checkout and payment webhook."""
from flask import Blueprint
from flask_cors import CORS

billing_bp = Blueprint('billing', __name__)

# Called from the web client and from Stripe
CORS(billing_bp, resources={r"/*": {"origins": "*", "methods": ["GET", "POST", "OPTIONS"]}})

from tripflow.blueprints.billing import routes  # noqa: F401, E402
