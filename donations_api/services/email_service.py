from __future__ import annotations
import logging
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple

from donations_api.errors import NotifierError
from donations_api.utils.email_sender import check_provider, send_email

logger = logging.getLogger(__name__)


def _money(amount: Any, currency: str | None) -> str:
    return f"{Decimal(amount):,.2f} {(currency or 'USD').upper()}"


def _receipt_number(d: Dict[str, Any]) -> str:
    return str(d.get("id") or "")[-8:].upper()


def _target(d: Dict[str, Any], campaign_title: str | None) -> str:
    return campaign_title or d.get("ministry") or "our ministry"


class Notifier:
    """
    Donation emails. Failures surface as NotifierError; callers running after
    commit log them and move on.
    """

    def __init__(
        self,
        *,
        from_email: str,
        from_name: str,
        admin_email: str | None = None,
        log_only: bool = True,
        sender: Callable[..., Tuple[Optional[str], Optional[str]]] = send_email,
    ):
        self.from_email = from_email
        self.from_name = from_name
        self.admin_email = admin_email
        self.log_only = log_only
        self.sender = sender

    @classmethod
    def from_settings(cls, settings) -> "Notifier":
        return cls(
            from_email=settings.from_email,
            from_name=settings.from_name,
            admin_email=settings.admin_email,
            log_only=settings.dev_email_log_only,
        )

    def _deliver(
        self, to_email: str, subject: str, body_text: str, body_html: str | None = None
    ) -> Tuple[str, Optional[str]]:
        if self.log_only:
            logger.info("[email][dev] to=%s subj=%s\n%s", to_email, subject, body_text)
            return "log", None
        provider, msg_id = self.sender(
            to_email=to_email,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            from_email=self.from_email,
            from_name=self.from_name,
        )
        if provider is None:
            raise NotifierError(f"send to {to_email} failed: {msg_id}")
        logger.info("email sent provider=%s msg_id=%s subj=%s", provider, msg_id, subject)
        return provider, msg_id

    def send_receipt(
        self,
        donation: Dict[str, Any],
        campaign_title: str | None = None,
        preferences: Dict[str, bool] | None = None,
    ) -> Tuple[str, Optional[str]] | None:
        prefs = preferences or {}
        if prefs.get("email") is False or prefs.get("tax_receipts") is False:
            logger.info("receipt skipped for donation %s (preferences)", donation.get("id"))
            return None
        kind = "Recurring Donation" if donation.get("is_recurring") else "One-time Donation"
        body = (
            f"Hi {donation.get('donor_first_name') or 'friend'},\n\n"
            f"Thank you for your gift of {_money(donation['amount'], donation.get('currency'))} "
            f"to {_target(donation, campaign_title)}.\n\n"
            f"Receipt number: {_receipt_number(donation)}\n"
            f"Transaction: {donation.get('stripe_payment_intent_id')}\n"
            f"Type: {kind}\n"
            f"Frequency: {donation.get('recurring_frequency') or 'N/A'}\n"
        )
        if self.admin_email:
            body += f"\nQuestions? Write to {self.admin_email}.\n"
        return self._deliver(
            donation["donor_email"], "Thank you for your donation - Receipt", body
        )

    def send_thank_you(
        self,
        donation: Dict[str, Any],
        campaign_title: str | None = None,
        preferences: Dict[str, bool] | None = None,
    ) -> Tuple[str, Optional[str]] | None:
        if (preferences or {}).get("email") is False:
            return None
        kind = "recurring" if donation.get("is_recurring") else "one-time"
        body = (
            f"Dear {donation.get('donor_first_name') or 'friend'},\n\n"
            f"Your {kind} gift to {_target(donation, campaign_title)} makes a real "
            f"difference. Thank you for standing with us.\n"
        )
        if donation.get("message"):
            body += f"\nYour message: {donation['message']}\n"
        return self._deliver(
            donation["donor_email"], "Thank you for your generous support!", body
        )

    def send_admin_notification(
        self, donation: Dict[str, Any], campaign_title: str | None = None
    ) -> Tuple[str, Optional[str]] | None:
        if not self.admin_email:
            return None
        name = f"{donation.get('donor_first_name') or ''} {donation.get('donor_last_name') or ''}".strip()
        amount = _money(donation["amount"], donation.get("currency"))
        body = (
            f"Donor: {name} <{donation.get('donor_email')}>\n"
            f"Amount: {amount}\n"
            f"For: {_target(donation, campaign_title)}\n"
            f"Type: {'Recurring' if donation.get('is_recurring') else 'One-time'}\n"
            f"Message: {donation.get('message') or 'No message provided'}\n"
            f"Transaction: {donation.get('stripe_payment_intent_id')}\n"
            f"Donation id: {donation.get('id')}\n"
        )
        return self._deliver(self.admin_email, f"New Donation Received - {amount}", body)

    def test_connection(self) -> Tuple[bool, str]:
        if self.log_only:
            return True, "log-only"
        return check_provider()
