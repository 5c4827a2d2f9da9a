"""
Unit Tests for the Stripe adapter

The stripe SDK is patched out; these tests pin the unit conversion and the
mapping of Stripe payloads onto gateway records.
"""
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
import stripe

from donations_api.errors import GatewayError
from donations_api.services.gateway import (
    STRIPE_API_VERSION,
    StripeGateway,
    from_minor_units,
    intent_from_dict,
    invoice_from_dict,
    refund_from_charge,
    to_minor_units,
)


# ============================================================================
# FIXTURES
# ============================================================================


@pytest.fixture
def gw():
    """Gateway with a dummy key; no network calls are made"""
    return StripeGateway("sk_test_dummy", "whsec_dummy", timeout=5, max_retries=0)


# ============================================================================
# UNIT CONVERSION
# ============================================================================


class TestMinorUnits:
    @pytest.mark.parametrize(
        "amount,cents",
        [(Decimal("50.00"), 5000), (Decimal("0.01"), 1), (Decimal("19.99"), 1999), (Decimal("1"), 100)],
    )
    def test_to_minor(self, amount, cents):
        assert to_minor_units(amount) == cents

    def test_from_minor(self):
        assert from_minor_units(5000) == Decimal("50.00")
        assert from_minor_units(None) == Decimal("0.00")

    def test_small_and_large_amounts_use_the_same_rule(self):
        # 50 cents stays 50 cents, $5,000 stays $5,000
        assert from_minor_units(50) == Decimal("0.50")
        assert from_minor_units(500000) == Decimal("5000.00")


# ============================================================================
# PAYLOAD MAPPING
# ============================================================================


class TestPayloads:
    def test_intent_with_expanded_invoice(self):
        info = intent_from_dict(
            {
                "id": "pi_1",
                "status": "succeeded",
                "amount": 2500,
                "amount_received": 2500,
                "currency": "eur",
                "application_fee_amount": 103,
                "metadata": {"ministry": "Holiday Homes"},
                "customer": "cus_1",
                "invoice": {"id": "in_1", "subscription": "sub_1"},
            }
        )
        assert info.amount == Decimal("25.00")
        assert info.currency == "EUR"
        assert info.fee == Decimal("1.03")
        assert (info.invoice_id, info.subscription_id) == ("in_1", "sub_1")
        assert info.metadata["ministry"] == "Holiday Homes"

    def test_intent_with_bare_invoice_id(self):
        info = intent_from_dict({"id": "pi_1", "amount": 100, "invoice": "in_9"})
        assert info.invoice_id == "in_9"
        assert info.subscription_id is None
        assert info.status == "unknown"

    def test_invoice(self):
        inv = invoice_from_dict(
            {
                "id": "in_2",
                "subscription": "sub_1",
                "customer": "cus_1",
                "amount_paid": 1000,
                "currency": "usd",
                "payment_intent": "pi_2",
                "subscription_details": {"metadata": {"donor_email": "a@b.org"}},
            }
        )
        assert inv.amount == Decimal("10.00")
        assert inv.intent_id == "pi_2"
        assert inv.metadata == {"donor_email": "a@b.org"}

    def test_partial_refund_charge(self):
        r = refund_from_charge(
            {"payment_intent": "pi_1", "amount_refunded": 1500, "refunded": False,
             "refunds": {"data": [{"id": "re_1"}]}}
        )
        assert (r.refund_id, r.intent_id, r.amount, r.status) == ("re_1", "pi_1", Decimal("15.00"), "partial")


# ============================================================================
# SDK CALLS
# ============================================================================


class TestStripeGateway:
    def test_create_intent_sends_cents(self, gw):
        with patch.object(stripe.PaymentIntent, "create") as create:
            create.return_value = MagicMock(id="pi_1", client_secret="pi_1_secret")
            handle = gw.create_payment_intent(Decimal("50.00"), "USD", {"k": "v"}, "a@b.org")

        kwargs = create.call_args.kwargs
        assert kwargs["amount"] == 5000
        assert kwargs["currency"] == "usd"
        assert kwargs["receipt_email"] == "a@b.org"
        assert kwargs["api_key"] == "sk_test_dummy"
        assert kwargs["stripe_version"] == STRIPE_API_VERSION
        assert handle.intent_id == "pi_1"

    def test_retrieve_expands_invoice(self, gw):
        with patch.object(stripe.PaymentIntent, "retrieve") as retrieve:
            retrieve.return_value = {"id": "pi_1", "status": "succeeded", "amount": 5000}
            info = gw.retrieve_payment_intent("pi_1")
        assert retrieve.call_args.kwargs["expand"] == ["invoice"]
        assert info.amount == Decimal("50.00")

    def test_stripe_error_becomes_gateway_error(self, gw):
        with patch.object(stripe.PaymentIntent, "retrieve") as retrieve:
            retrieve.side_effect = stripe.InvalidRequestError("No such payment_intent", "id")
            with pytest.raises(GatewayError):
                gw.retrieve_payment_intent("pi_missing")

    def test_missing_key(self):
        with pytest.raises(GatewayError):
            StripeGateway("").retrieve_payment_intent("pi_1")

    def test_subscription_tags_invoice_intent(self, gw):
        sub = {
            "id": "sub_1",
            "latest_invoice": {"payment_intent": {"id": "pi_9", "client_secret": "pi_9_secret"}},
        }
        with patch.object(stripe.Subscription, "create", return_value=sub) as create, \
                patch.object(stripe.PaymentIntent, "modify") as modify:
            handle = gw.create_subscription("cus_1", "price_1", {"ministry": "Holiday Homes"})

        assert create.call_args.kwargs["payment_behavior"] == "default_incomplete"
        assert modify.call_args.args[0] == "pi_9"
        assert modify.call_args.kwargs["metadata"] == {"ministry": "Holiday Homes"}
        assert (handle.intent_id, handle.subscription_id) == ("pi_9", "sub_1")

    def test_partial_refund(self, gw):
        with patch.object(stripe.Refund, "create") as create:
            create.return_value = MagicMock(id="re_1", amount=2000, status="succeeded")
            info = gw.create_refund("pi_1", Decimal("20.00"), "requested_by_customer")
        assert create.call_args.kwargs["amount"] == 2000
        assert info.amount == Decimal("20.00")

    def test_construct_event_uses_secret(self, gw):
        with patch.object(stripe.Webhook, "construct_event") as construct:
            construct.return_value = {"id": "evt_1", "type": "charge.refunded"}
            event = gw.construct_event(b"{}", "t=1,v1=abc")
        assert construct.call_args.kwargs["secret"] == "whsec_dummy"
        assert event["type"] == "charge.refunded"
