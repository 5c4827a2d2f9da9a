import json
import logging
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

import pydantic
from flask import Flask, jsonify
from flask.json.provider import DefaultJSONProvider
from flask_jwt_extended import JWTManager

from donations_api.config import Settings
from donations_api.container import ServiceContainer, build_services
from donations_api.errors import DonationsError
from donations_api.realtime import init_socketio
from donations_api.routes import (
    admin_bp,
    auth_bp,
    campaigns_bp,
    core,
    donations_bp,
    donors_bp,
    payments_bp,
    webhooks_bp,
)

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class JSONProvider(DefaultJSONProvider):
    """ISO-8601 dates and exact decimal strings on the wire."""

    @staticmethod
    def default(o):
        if isinstance(o, date):
            return o.isoformat()
        if isinstance(o, (Decimal, UUID)):
            return str(o)
        return DefaultJSONProvider.default(o)


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)


def create_app(
    settings: Settings | None = None, services: ServiceContainer | None = None
):
    if settings is None:
        settings = services.settings if services is not None else Settings.from_env()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    app.json = JSONProvider(app)
    app.url_map.strict_slashes = False

    # JWT
    app.config["JWT_SECRET_KEY"] = settings.jwt_secret
    app.config["JWT_TOKEN_LOCATION"] = ["headers"]
    app.config["JWT_HEADER_NAME"] = "Authorization"
    app.config["JWT_HEADER_TYPE"] = "Bearer"
    app.config["JWT_ACCESS_TOKEN_EXPIRES"] = timedelta(minutes=15)
    JWTManager(app)

    socketio = init_socketio(
        app, settings.socketio_cors_origins, settings.socketio_async_mode
    )
    if services is None:
        services = build_services(settings, socketio)
    app.extensions["donations"] = services

    @app.errorhandler(DonationsError)
    def handle_domain_error(e: DonationsError):
        if e.status_code >= 500:
            logger.error("%s: %s", e.code, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(pydantic.ValidationError)
    def handle_invalid_request(e: pydantic.ValidationError):
        return (
            jsonify(
                {
                    "error": "VALIDATION_ERROR",
                    "message": "invalid request",
                    "details": json.loads(e.json(include_url=False)),
                }
            ),
            400,
        )

    app.register_blueprint(core)
    app.register_blueprint(auth_bp)
    app.register_blueprint(donations_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(campaigns_bp)
    app.register_blueprint(donors_bp)
    app.register_blueprint(admin_bp)

    logger.info("donations api ready (%d routes)", len(list(app.url_map.iter_rules())))
    return app
