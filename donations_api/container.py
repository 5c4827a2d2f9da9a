from dataclasses import dataclass
from typing import Any

from donations_api.config import Settings


@dataclass
class ServiceContainer:
    """Collaborators the workflow needs. Built once per app; tests pass fakes."""

    settings: Settings
    store: Any
    gateway: Any
    notifier: Any
    dispatcher: Any
    cache: Any = None
    socketio: Any = None


def build_services(settings: Settings, socketio=None) -> ServiceContainer:
    from donations_api.models.store import PostgresStore
    from donations_api.services.email_service import Notifier
    from donations_api.services.gateway import StripeGateway
    from donations_api.tasks import NotificationDispatcher
    from donations_api.utils.cache import redis_client

    store = PostgresStore(settings.database_url)
    notifier = Notifier.from_settings(settings)
    return ServiceContainer(
        settings=settings,
        store=store,
        gateway=StripeGateway(
            settings.stripe_secret_key,
            settings.stripe_webhook_secret,
            timeout=settings.stripe_timeout,
            max_retries=settings.stripe_max_retries,
        ),
        notifier=notifier,
        dispatcher=NotificationDispatcher(
            notifier,
            store,
            use_queue=settings.use_email_queue,
            redis_url=settings.redis_url,
        ),
        cache=redis_client(settings.redis_url),
        socketio=socketio,
    )


def current_services() -> ServiceContainer:
    from flask import current_app

    return current_app.extensions["donations"]
