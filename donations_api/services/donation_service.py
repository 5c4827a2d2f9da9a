"""
Donation confirmation workflow.

A successful payment produces exactly one donation row, one campaign
increment (when attributed to a campaign) and one donor upsert, all in a
single transaction. The gateway round-trip always happens before the
transaction opens. Emails, cache invalidation and the live feed run after
commit and never undo a recorded donation.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from donations_api import metrics
from donations_api.errors import (
    AttributionNotFound,
    DonationNotFound,
    DuplicateIntent,
    GatewayDeclined,
    ValidationError,
)
from donations_api.models.status import (
    DEDICATION_TYPES,
    FREQUENCY_INTERVALS,
    RECURRING_FREQUENCIES,
    PaymentStatus,
    classify_donor,
    donor_tags,
    sources_for,
)
from donations_api.models.types import DonationInput, DonorSnapshot
from donations_api.realtime import campaign_room
from donations_api.services.gateway import InvoiceInfo, PaymentIntentInfo, RefundInfo
from donations_api.utils.cache import invalidate, progress_key
from donations_api.utils.masking import display_name

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
MESSAGE_MAX = 1000
DEDICATION_NAME_MAX = 100


@dataclass
class ConfirmationResult:
    donation: Dict[str, Any]
    created: bool


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Validation
# ============================================================================


def validate_amount(settings, amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (InvalidOperation, ValueError):
        raise ValidationError("amount must be a number")
    if not value.is_finite():
        raise ValidationError("amount must be a number")
    if value != value.quantize(CENT):
        raise ValidationError("amount has more than two decimal places")
    if value < settings.min_donation or value > settings.max_donation:
        raise ValidationError(
            f"amount must be between {settings.min_donation} and {settings.max_donation}"
        )
    return value.quantize(CENT)


def validate_currency(settings, currency: str | None) -> str:
    code = (currency or settings.default_currency).upper()
    if code not in settings.supported_currencies:
        raise ValidationError(f"unsupported currency {code}")
    return code


def validate_donation_fields(di: DonationInput, *, partial: bool = False) -> None:
    """`partial` allows donor email and attribution to come from the intent."""
    if (di.donor.email or not partial) and "@" not in (di.donor.email or ""):
        raise ValidationError("a valid donor email is required")
    if di.campaign_id and di.ministry:
        raise ValidationError("give campaign_id or ministry, not both")
    if not partial and not (di.campaign_id or di.ministry):
        raise ValidationError("one of campaign_id or ministry is required")
    if di.is_recurring and di.recurring_frequency not in RECURRING_FREQUENCIES:
        raise ValidationError(
            "recurring_frequency must be one of " + ", ".join(RECURRING_FREQUENCIES)
        )
    if di.message and len(di.message) > MESSAGE_MAX:
        raise ValidationError(f"message is limited to {MESSAGE_MAX} characters")
    if di.dedication_type not in DEDICATION_TYPES:
        raise ValidationError("invalid dedication_type")
    if di.dedication_name and len(di.dedication_name) > DEDICATION_NAME_MAX:
        raise ValidationError(
            f"dedication_name is limited to {DEDICATION_NAME_MAX} characters"
        )


def require_attribution(
    settings, store, di: DonationInput, *, accepting_only: bool
) -> Optional[Dict[str, Any]]:
    """
    Resolve the attribution key. `accepting_only` additionally refuses
    campaigns that are not active; confirmation skips that check because the
    money has already moved.
    """
    if di.ministry:
        if di.ministry not in settings.ministries:
            raise AttributionNotFound(f"unknown ministry {di.ministry!r}")
        return None
    camp = store.get_campaign(di.campaign_id)
    if camp is None:
        raise AttributionNotFound(f"campaign {di.campaign_id} not found")
    if accepting_only and camp["status"] != "active":
        raise AttributionNotFound(
            f"campaign {di.campaign_id} is not accepting donations",
            campaign_status=camp["status"],
        )
    return camp


# ============================================================================
# Intent creation
# ============================================================================


def create_intent(
    services, di: DonationInput, amount: Any, currency: str | None = None
) -> Dict[str, Any]:
    settings = services.settings
    value = validate_amount(settings, amount)
    code = validate_currency(settings, currency)
    validate_donation_fields(di)
    require_attribution(settings, services.store, di, accepting_only=True)

    metadata = di.to_metadata()
    gateway = services.gateway
    if di.is_recurring:
        interval, count = FREQUENCY_INTERVALS[di.recurring_frequency]
        customer_id = gateway.create_customer(
            di.donor.email, di.donor.full_name, di.donor.address
        )
        price_id = gateway.create_price(value, code, interval, count)
        handle = gateway.create_subscription(customer_id, price_id, metadata)
    else:
        handle = gateway.create_payment_intent(
            value, code, metadata, receipt_email=di.donor.email
        )

    logger.info(
        "intent created pi=%s amount=%s %s recurring=%s",
        handle.intent_id,
        value,
        code,
        di.is_recurring,
    )
    return {
        "client_secret": handle.client_secret,
        "payment_intent_id": handle.intent_id,
        "subscription_id": handle.subscription_id,
        "customer_id": handle.customer_id,
        "amount": str(value),
        "currency": code,
    }


# ============================================================================
# Confirmation
# ============================================================================


def build_donation_record(
    intent: PaymentIntentInfo,
    di: DonationInput,
    *,
    source: str,
    at: datetime,
    invoice_id: str | None = None,
    subscription_id: str | None = None,
) -> Dict[str, Any]:
    """Donation row from gateway-reported money and donor-supplied context."""
    donor = di.donor
    return {
        "stripe_payment_intent_id": intent.intent_id or None,
        "stripe_invoice_id": invoice_id or intent.invoice_id,
        "stripe_subscription_id": subscription_id or intent.subscription_id,
        "stripe_customer_id": intent.customer_id,
        "campaign_id": di.campaign_id,
        "ministry": di.ministry,
        "donor_first_name": donor.first_name,
        "donor_last_name": donor.last_name,
        "donor_email": donor.email.lower(),
        "donor_phone": donor.phone,
        "donor_address": donor.address,
        "amount": intent.amount,
        "currency": intent.currency,
        "net_amount": intent.amount - intent.fee,
        "transaction_fee": intent.fee,
        "is_recurring": di.is_recurring,
        "recurring_frequency": di.recurring_frequency if di.is_recurring else None,
        "is_anonymous": di.is_anonymous,
        "message": (di.message or None) and di.message[:MESSAGE_MAX],
        "dedication_type": di.dedication_type or "none",
        "dedication_name": di.dedication_name,
        "payment_status": PaymentStatus.SUCCEEDED.value,
        "source": source,
        "processed_at": at,
    }


def _reclassify(tx, donor: Dict[str, Any]) -> Dict[str, Any]:
    total = Decimal(donor["total_donated"])
    count = int(donor["donation_count"])
    has_sub = bool(donor.get("active_subscriptions"))
    updated = tx.set_donor_classification(
        donor["id"],
        classify_donor(total, count, has_sub),
        donor_tags(donor.get("tags"), total, count, has_sub),
    )
    return updated or donor


def _persist_success(services, rec: Dict[str, Any], di: DonationInput) -> ConfirmationResult:
    store = services.store
    campaign = None
    try:
        with store.transaction() as tx:
            donation = tx.insert_donation(rec)
            if donation.get("campaign_id"):
                campaign = tx.increment_campaign(
                    str(donation["campaign_id"]), donation["amount"]
                )
            donor = tx.upsert_donor(
                di.donor.to_dict(),
                donation["amount"],
                donation["currency"],
                rec["processed_at"],
            )
            if donation.get("stripe_subscription_id"):
                donor = (
                    tx.add_donor_subscription(
                        donor["email"], donation["stripe_subscription_id"]
                    )
                    or donor
                )
            _reclassify(tx, donor)
    except DuplicateIntent as dup:
        existing = dup.existing or store.get_donation_by_intent(
            rec["stripe_payment_intent_id"]
        )
        metrics.DONATION_REPLAYS.inc()
        logger.info(
            "replay pi=%s invoice=%s -> donation %s",
            rec.get("stripe_payment_intent_id"),
            rec.get("stripe_invoice_id"),
            (existing or {}).get("id"),
        )
        return ConfirmationResult(donation=existing, created=False)

    logger.info(
        "donation %s recorded pi=%s amount=%s %s campaign=%s ministry=%s",
        donation["id"],
        donation["stripe_payment_intent_id"],
        donation["amount"],
        donation["currency"],
        donation.get("campaign_id"),
        donation.get("ministry"),
    )
    after_commit(services, donation, campaign)
    return ConfirmationResult(donation=donation, created=True)


def after_commit(
    services, donation: Dict[str, Any], campaign: Dict[str, Any] | None = None
) -> None:
    """Side effects of a committed donation. Each failure is logged and dropped."""
    metrics.DONATIONS_RECORDED.labels(source=donation.get("source") or "web").inc()
    metrics.DONATION_AMOUNT.labels(currency=donation["currency"]).inc(
        float(donation["amount"])
    )

    try:
        services.dispatcher.dispatch(donation)
    except Exception:
        logger.exception("notification dispatch failed for %s", donation["id"])

    cid = donation.get("campaign_id")
    if not cid:
        return
    invalidate(services.cache, progress_key(cid))
    if services.socketio is None:
        return
    payload = {
        "campaign_id": str(cid),
        "donation_id": str(donation["id"]),
        "amount": float(donation["amount"]),
        "currency": donation["currency"],
        "donor": display_name(
            donation.get("donor_first_name"),
            donation.get("donor_last_name"),
            bool(donation.get("is_anonymous")),
        ),
    }
    if campaign:
        payload["raised_amount"] = float(campaign["raised_amount"])
        payload["campaign_status"] = campaign["status"]
    try:
        services.socketio.emit("donation", payload, to=campaign_room(cid))
    except Exception:
        logger.exception("live feed emit failed for campaign %s", cid)


def confirm_donation(
    services,
    intent_id: str,
    donation_input: DonationInput | None = None,
    verified_intent: PaymentIntentInfo | None = None,
    source: str | None = None,
) -> ConfirmationResult:
    """
    Record the donation for a succeeded intent, or replay the existing one.

    `verified_intent` is a signature-checked payload from a webhook; when
    given, the gateway is not asked again. Attribution stored on the intent
    wins, so the caller's campaign or ministry is only checked when the
    intent carries none.
    """
    settings = services.settings
    if donation_input is not None:
        validate_donation_fields(donation_input, partial=True)

    intent = verified_intent or services.gateway.retrieve_payment_intent(intent_id)
    if intent.status != PaymentStatus.SUCCEEDED.value:
        metrics.PAYMENTS_DECLINED.labels(payment_status=intent.status).inc()
        logger.info("pi=%s not succeeded (status=%s)", intent_id, intent.status)
        raise GatewayDeclined(intent.status, intent_id)

    from_intent = DonationInput.from_metadata(intent.metadata)
    di = donation_input.merged_with(from_intent) if donation_input else from_intent
    if not di.donor.email:
        raise ValidationError("donor email missing from request and intent")
    if not (di.campaign_id or di.ministry):
        raise ValidationError("donation has no campaign_id or ministry")
    require_attribution(settings, services.store, di, accepting_only=False)
    if intent.subscription_id and not di.is_recurring:
        di.is_recurring = True

    rec = build_donation_record(
        intent, di, source=source or di.source, at=_now()
    )
    return _persist_success(services, rec, di)


def _input_from_donation(d: Dict[str, Any]) -> DonationInput:
    return DonationInput(
        donor=DonorSnapshot(
            email=d["donor_email"],
            first_name=d.get("donor_first_name") or "",
            last_name=d.get("donor_last_name") or "",
            phone=d.get("donor_phone"),
            address=d.get("donor_address"),
        ),
        campaign_id=str(d["campaign_id"]) if d.get("campaign_id") else None,
        ministry=d.get("ministry"),
        is_recurring=True,
        recurring_frequency=d.get("recurring_frequency"),
        is_anonymous=bool(d.get("is_anonymous")),
        dedication_type=d.get("dedication_type") or "none",
        dedication_name=d.get("dedication_name"),
        source="recurring_webhook",
    )


def record_recurring_payment(
    services, invoice: InvoiceInfo
) -> ConfirmationResult | None:
    """
    One new donation per paid invoice. Donor and attribution are copied from
    the subscription's first donation; the invoice id is the dedup key.
    """
    if not invoice.subscription_id:
        logger.info("invoice %s has no subscription, skipping", invoice.invoice_id)
        return None

    origin = services.store.get_subscription_origin(invoice.subscription_id)
    if origin is not None:
        di = _input_from_donation(origin)
    elif invoice.metadata:
        di = DonationInput.from_metadata(invoice.metadata)
        di.is_recurring = True
        di.source = "recurring_webhook"
    else:
        logger.warning(
            "invoice %s: no origin donation or metadata for subscription %s",
            invoice.invoice_id,
            invoice.subscription_id,
        )
        return None

    if not di.donor.email or not (di.campaign_id or di.ministry):
        logger.warning("invoice %s: incomplete donor context", invoice.invoice_id)
        return None

    paid = PaymentIntentInfo(
        intent_id=invoice.intent_id or "",
        status=PaymentStatus.SUCCEEDED.value,
        amount=invoice.amount,
        currency=invoice.currency,
        customer_id=invoice.customer_id,
    )
    rec = build_donation_record(
        paid,
        di,
        source="recurring_webhook",
        at=_now(),
        invoice_id=invoice.invoice_id,
        subscription_id=invoice.subscription_id,
    )
    return _persist_success(services, rec, di)


# ============================================================================
# Later transitions
# ============================================================================


def mark_failed(services, intent_id: str) -> Dict[str, Any] | None:
    with services.store.transaction() as tx:
        row = tx.transition_by_intent(
            intent_id,
            PaymentStatus.FAILED.value,
            sources_for(PaymentStatus.FAILED.value),
            at=_now(),
        )
    if row is None:
        logger.info("pi=%s failed; no donation to transition", intent_id)
    else:
        logger.info("donation %s marked failed", row["id"])
    return row


def cancel_subscription_donations(
    services, subscription_id: str
) -> List[Dict[str, Any]]:
    """
    Cancel every donation under the subscription. Donor totals are rebuilt
    from the succeeded donations that remain and the donor is reclassified
    without the subscription. Campaign totals are left alone.
    """
    with services.store.transaction() as tx:
        rows = tx.cancel_by_subscription(
            subscription_id, sources_for(PaymentStatus.CANCELED.value), _now()
        )
        emails = {r["donor_email"].lower() for r in rows if r.get("donor_email")}
        emails.update(
            d["email"] for d in tx.remove_donor_subscription(subscription_id)
        )
        for email in sorted(emails):
            donor = tx.recompute_donor_totals(email)
            if donor:
                _reclassify(tx, donor)
    logger.info(
        "subscription %s canceled, %d donation(s) updated", subscription_id, len(rows)
    )
    return rows


def mark_refunded(
    services, intent_id: str, refunded_amount: Decimal | None = None
) -> Dict[str, Any] | None:
    """
    succeeded -> refunded. Donor totals are rebuilt from the remaining
    succeeded donations; campaign totals reverse only when configured to.

    A later partial refund of an already refunded donation only raises
    `refunded_amount` to the new cumulative figure.
    """
    campaign = None
    with services.store.transaction() as tx:
        row = tx.transition_by_intent(
            intent_id,
            PaymentStatus.REFUNDED.value,
            sources_for(PaymentStatus.REFUNDED.value),
            refunded_amount=refunded_amount,
            at=_now(),
        )
        if row is None:
            if refunded_amount is not None:
                row = tx.update_refunded_amount(intent_id, refunded_amount, _now())
            if row is None:
                logger.info("pi=%s: nothing to refund", intent_id)
            else:
                logger.info(
                    "donation %s refunded amount raised to %s",
                    row["id"],
                    row["refunded_amount"],
                )
            return row
        donor = tx.recompute_donor_totals(row["donor_email"])
        if donor:
            _reclassify(tx, donor)
        if services.settings.refund_reverses_campaign_totals and row.get("campaign_id"):
            campaign = tx.decrement_campaign(str(row["campaign_id"]), row["amount"])

    logger.info(
        "donation %s refunded amount=%s", row["id"], row.get("refunded_amount")
    )
    if campaign is not None:
        invalidate(services.cache, progress_key(row["campaign_id"]))
    return row


def refund_donation(
    services,
    intent_id: str,
    amount: Any = None,
    reason: str | None = None,
) -> tuple[Dict[str, Any], RefundInfo]:
    existing = services.store.get_donation_by_intent(intent_id)
    if existing is None:
        raise DonationNotFound(f"no donation for payment intent {intent_id}")
    if existing["payment_status"] != PaymentStatus.SUCCEEDED.value:
        raise ValidationError(
            f"cannot refund a {existing['payment_status']} donation",
            payment_status=existing["payment_status"],
        )
    value = None
    if amount is not None:
        value = Decimal(str(amount)).quantize(CENT)
        if value <= 0 or value > Decimal(existing["amount"]):
            raise ValidationError("refund amount must be positive and not exceed the donation")

    refund = services.gateway.create_refund(intent_id, value, reason)
    row = mark_refunded(services, intent_id, refund.amount)
    return row or services.store.get_donation_by_intent(intent_id), refund


def cancel_subscription(services, subscription_id: str) -> List[Dict[str, Any]]:
    services.gateway.cancel_subscription(subscription_id)
    return cancel_subscription_donations(services, subscription_id)
