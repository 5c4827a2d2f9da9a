from .core_routes import core
from .auth_routes import auth_bp
from .admin_routes import admin_bp
from .campaign_routes import campaigns_bp
from .donation_routes import donations_bp
from .donor_routes import donors_bp
from .payment_routes import payments_bp
from .webhook_routes import webhooks_bp

__all__ = [
    "core",
    "auth_bp",
    "admin_bp",
    "campaigns_bp",
    "donations_bp",
    "donors_bp",
    "payments_bp",
    "webhooks_bp",
]
