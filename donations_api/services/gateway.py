"""
Stripe adapter.

This is the only place that knows Stripe speaks minor units (cents). Callers
pass and receive `Decimal` amounts in major units; nothing here guesses a
unit from the size of a number.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any

import stripe

from donations_api.errors import GatewayError

logger = logging.getLogger(__name__)

STRIPE_API_VERSION = "2023-10-16"
CENT = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(cents: int | None) -> Decimal:
    return (Decimal(int(cents or 0)) / 100).quantize(CENT)


def to_plain(obj: Any) -> dict[str, Any]:
    """StripeObject (any SDK version) or dict -> plain dict."""
    if obj is None:
        return {}
    if hasattr(obj, "to_dict_recursive"):
        return obj.to_dict_recursive()
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    return dict(obj)


@dataclass
class PaymentIntentHandle:
    intent_id: str
    client_secret: str
    subscription_id: str | None = None
    customer_id: str | None = None


@dataclass
class PaymentIntentInfo:
    intent_id: str
    status: str
    amount: Decimal
    currency: str
    fee: Decimal = Decimal("0.00")
    metadata: dict[str, Any] = field(default_factory=dict)
    customer_id: str | None = None
    invoice_id: str | None = None
    subscription_id: str | None = None


@dataclass
class InvoiceInfo:
    invoice_id: str
    subscription_id: str | None
    customer_id: str | None
    amount: Decimal
    currency: str
    intent_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundInfo:
    refund_id: str
    intent_id: str
    amount: Decimal
    status: str


def intent_from_dict(d: dict[str, Any]) -> PaymentIntentInfo:
    cents = d.get("amount_received") or d.get("amount") or 0
    invoice = d.get("invoice")
    # expanded on retrieve, a bare id inside webhook payloads
    if isinstance(invoice, dict):
        invoice_id, subscription_id = invoice.get("id"), invoice.get("subscription")
    else:
        invoice_id, subscription_id = invoice, None
    return PaymentIntentInfo(
        intent_id=d["id"],
        status=d.get("status") or "unknown",
        amount=from_minor_units(cents),
        currency=(d.get("currency") or "usd").upper(),
        fee=from_minor_units(d.get("application_fee_amount")),
        metadata=dict(d.get("metadata") or {}),
        customer_id=d.get("customer"),
        invoice_id=invoice_id,
        subscription_id=subscription_id,
    )


def invoice_from_dict(d: dict[str, Any]) -> InvoiceInfo:
    return InvoiceInfo(
        invoice_id=d["id"],
        subscription_id=d.get("subscription"),
        customer_id=d.get("customer"),
        amount=from_minor_units(d.get("amount_paid")),
        currency=(d.get("currency") or "usd").upper(),
        intent_id=d.get("payment_intent"),
        metadata=dict((d.get("subscription_details") or {}).get("metadata") or {}),
    )


def refund_from_charge(d: dict[str, Any]) -> RefundInfo:
    refunds = (d.get("refunds") or {}).get("data") or [{}]
    return RefundInfo(
        refund_id=refunds[0].get("id") or "",
        intent_id=d.get("payment_intent") or "",
        amount=from_minor_units(d.get("amount_refunded")),
        status="succeeded" if d.get("refunded") else "partial",
    )


class StripeGateway:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str = "",
        *,
        timeout: int = 30,
        max_retries: int = 3,
    ):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        stripe.max_network_retries = max_retries
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)

    def _opts(self) -> dict[str, Any]:
        if not self.api_key:
            raise GatewayError("STRIPE_SECRET_KEY is not configured")
        return {"api_key": self.api_key, "stripe_version": STRIPE_API_VERSION}

    def _call(self, what: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs, **self._opts())
        except stripe.StripeError as e:
            logger.error("stripe %s failed: %s", what, e)
            raise GatewayError(f"Failed to {what}: {e.user_message or e}") from e

    def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict[str, str],
        receipt_email: str | None = None,
    ) -> PaymentIntentHandle:
        params: dict[str, Any] = {
            "amount": to_minor_units(amount),
            "currency": currency.lower(),
            "metadata": metadata,
            "automatic_payment_methods": {"enabled": True},
        }
        if receipt_email:
            params["receipt_email"] = receipt_email
        pi = self._call("create payment intent", stripe.PaymentIntent.create, **params)
        return PaymentIntentHandle(intent_id=pi.id, client_secret=pi.client_secret)

    def retrieve_payment_intent(self, intent_id: str) -> PaymentIntentInfo:
        pi = self._call(
            "retrieve payment intent", stripe.PaymentIntent.retrieve,
            intent_id,
            expand=["invoice"],
        )
        return intent_from_dict(to_plain(pi))

    def create_customer(
        self, email: str, name: str, address: dict[str, Any] | None = None
    ) -> str:
        params: dict[str, Any] = {"email": email, "name": name}
        if address:
            params["address"] = address
        return self._call("create customer", stripe.Customer.create, **params).id

    def create_price(
        self, amount: Decimal, currency: str, interval: str, interval_count: int = 1
    ) -> str:
        price = self._call(
            "create price",
            stripe.Price.create,
            unit_amount=to_minor_units(amount),
            currency=currency.lower(),
            recurring={"interval": interval, "interval_count": interval_count},
            product_data={"name": "Recurring Donation"},
        )
        return price.id

    def create_subscription(
        self, customer_id: str, price_id: str, metadata: dict[str, str]
    ) -> PaymentIntentHandle:
        sub = self._call(
            "create subscription",
            stripe.Subscription.create,
            customer=customer_id,
            items=[{"price": price_id}],
            metadata=metadata,
            payment_behavior="default_incomplete",
            expand=["latest_invoice.payment_intent"],
        )
        d = to_plain(sub)
        pi = (d.get("latest_invoice") or {}).get("payment_intent") or {}
        if pi.get("id"):
            # invoice intents carry no metadata of their own
            self._call(
                "tag subscription payment intent",
                stripe.PaymentIntent.modify,
                pi["id"],
                metadata=metadata,
            )
        return PaymentIntentHandle(
            intent_id=pi.get("id", ""),
            client_secret=pi.get("client_secret", ""),
            subscription_id=d["id"],
            customer_id=customer_id,
        )

    def cancel_subscription(self, subscription_id: str) -> dict[str, Any]:
        sub = self._call(
            "cancel subscription", stripe.Subscription.cancel, subscription_id
        )
        return to_plain(sub)

    def create_refund(
        self, intent_id: str, amount: Decimal | None = None, reason: str | None = None
    ) -> RefundInfo:
        params: dict[str, Any] = {"payment_intent": intent_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        if reason:
            params["reason"] = reason
        refund = self._call("create refund", stripe.Refund.create, **params)
        return RefundInfo(
            refund_id=refund.id,
            intent_id=intent_id,
            amount=from_minor_units(refund.amount),
            status=refund.status,
        )

    def list_payment_methods(self, customer_id: str) -> list[dict[str, Any]]:
        res = self._call(
            "list payment methods",
            stripe.PaymentMethod.list,
            customer=customer_id,
            type="card",
        )
        return [to_plain(pm) for pm in res.data]

    def construct_event(self, payload: bytes, sig_header: str | None) -> dict[str, Any]:
        """Verify the signature and return the event as a plain dict.

        Raises stripe.SignatureVerificationError or ValueError on a bad payload.
        """
        event = stripe.Webhook.construct_event(
            payload=payload,
            sig_header=sig_header or "",
            secret=self.webhook_secret,
        )
        return to_plain(event)

    def ping(self) -> bool:
        self._call("retrieve account", stripe.Account.retrieve)
        return True
