from prometheus_client import Counter

DONATIONS_RECORDED = Counter(
    "donations_recorded_total",
    "Donations persisted, by source",
    ["source"],
)
DONATION_AMOUNT = Counter(
    "donation_amount_total",
    "Sum of recorded donation amounts in major units",
    ["currency"],
)
DONATION_REPLAYS = Counter(
    "donation_replays_total",
    "Confirmations resolved against an existing donation",
)
PAYMENTS_DECLINED = Counter(
    "payments_declined_total",
    "Confirmations refused because the gateway did not report success",
    ["payment_status"],
)
WEBHOOK_EVENTS = Counter(
    "stripe_webhook_events_total",
    "Stripe webhook deliveries by type and outcome",
    ["event_type", "outcome"],
)
