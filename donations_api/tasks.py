"""
Background tasks for RQ (Redis Queue).

Run worker: rq worker -u $REDIS_URL --with-scheduler

With USE_EMAIL_QUEUE=0 (or when Redis is unreachable) notifications run on a
small in-process thread pool instead, so the HTTP response never waits on
email delivery.
"""

from __future__ import annotations
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Any, Dict

from donations_api.errors import DonationsError

logger = logging.getLogger(__name__)


def notify_donation(notifier, store, donation: Dict[str, Any]) -> None:
    """Receipt, thank-you and admin emails for one donation. Notifier errors are logged."""
    campaign_title = None
    preferences = None
    try:
        if donation.get("campaign_id"):
            camp = store.get_campaign(str(donation["campaign_id"]))
            campaign_title = (camp or {}).get("title")
        donor = store.get_donor(donation["donor_email"])
        preferences = (donor or {}).get("communication_preferences")
    except DonationsError as e:
        logger.warning("notification lookup failed for %s: %s", donation.get("id"), e)

    for send in (notifier.send_receipt, notifier.send_thank_you):
        try:
            send(donation, campaign_title, preferences)
        except DonationsError as e:
            logger.error("email for donation %s failed: %s", donation.get("id"), e)
    try:
        notifier.send_admin_notification(donation, campaign_title)
    except DonationsError as e:
        logger.error("admin email for donation %s failed: %s", donation.get("id"), e)


def send_donation_notifications(donation_id: str) -> None:
    """RQ job entry point. Rebuilds its collaborators from the environment."""
    from donations_api.config import Settings
    from donations_api.models.store import PostgresStore
    from donations_api.services.email_service import Notifier

    settings = Settings.from_env()
    store = PostgresStore(settings.database_url)
    donation = store.get_donation(donation_id)
    if not donation:
        logger.warning("donation %s vanished before notification", donation_id)
        return
    notify_donation(Notifier.from_settings(settings), store, donation)


def _log_failure(donation_id, future: Future) -> None:
    exc = future.exception()
    if exc is not None:
        logger.error(
            "notification task for donation %s failed: %s",
            donation_id,
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )


class NotificationDispatcher:
    def __init__(
        self,
        notifier,
        store,
        *,
        use_queue: bool = False,
        redis_url: str | None = None,
        max_workers: int = 4,
    ):
        self.notifier = notifier
        self.store = store
        self.use_queue = use_queue
        self.redis_url = redis_url
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="notify"
        )

    def dispatch(self, donation: Dict[str, Any]) -> str:
        """
        Hand a committed donation to the email pipeline.
        Returns "queued" if enqueued on RQ, "thread" if run on the local pool.
        """
        if self.use_queue:
            try:
                from redis import Redis
                from rq import Queue

                conn = Redis.from_url(self.redis_url, decode_responses=False)
                q = Queue("default", connection=conn)
                q.enqueue(
                    send_donation_notifications, str(donation["id"]), job_timeout="2m"
                )
                return "queued"
            except Exception as e:
                logger.warning("RQ enqueue failed (%s), using thread pool", e)

        future = self._pool.submit(notify_donation, self.notifier, self.store, donation)
        future.add_done_callback(partial(_log_failure, donation.get("id")))
        return "thread"

    def shutdown(self) -> None:
        self._pool.shutdown(wait=True)
