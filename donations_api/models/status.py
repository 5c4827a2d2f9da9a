"""
Payment status state machine, campaign statuses and donor classification.

Donation statuses only move forward:

    pending -> processing -> succeeded | failed | requires_action
    requires_action -> processing | succeeded | failed
    succeeded -> refunded
    succeeded | failed -> canceled
"""

from decimal import Decimal
from enum import Enum


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    REQUIRES_ACTION = "requires_action"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    REFUNDED = "refunded"
    CANCELED = "canceled"


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    PAUSED = "paused"
    DRAFT = "draft"


class DonorType(str, Enum):
    FIRST_TIME = "first_time"
    RETURNING = "returning"
    RECURRING = "recurring"
    MAJOR_DONOR = "major_donor"
    CHAMPION = "champion"


RECURRING_FREQUENCIES = ("monthly", "quarterly", "annually")
DEDICATION_TYPES = ("in_honor", "in_memory", "none")

# Stripe price intervals
FREQUENCY_INTERVALS = {
    "monthly": ("month", 1),
    "quarterly": ("month", 3),
    "annually": ("year", 1),
}

_ALLOWED: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(
        {
            PaymentStatus.PROCESSING,
            PaymentStatus.SUCCEEDED,
            PaymentStatus.FAILED,
            PaymentStatus.REQUIRES_ACTION,
            PaymentStatus.CANCELED,
        }
    ),
    PaymentStatus.PROCESSING: frozenset(
        {PaymentStatus.SUCCEEDED, PaymentStatus.FAILED, PaymentStatus.REQUIRES_ACTION}
    ),
    PaymentStatus.REQUIRES_ACTION: frozenset(
        {PaymentStatus.PROCESSING, PaymentStatus.SUCCEEDED, PaymentStatus.FAILED}
    ),
    PaymentStatus.SUCCEEDED: frozenset(
        {PaymentStatus.REFUNDED, PaymentStatus.CANCELED}
    ),
    PaymentStatus.FAILED: frozenset({PaymentStatus.CANCELED}),
    PaymentStatus.REFUNDED: frozenset(),
    PaymentStatus.CANCELED: frozenset(),
}


def can_transition(current: str, new: str) -> bool:
    """True when `current -> new` is a forward move. Same-state is not a move."""
    return PaymentStatus(new) in _ALLOWED[PaymentStatus(current)]


def sources_for(new: str) -> list[str]:
    """All statuses from which `new` may be reached (used in SQL guards)."""
    target = PaymentStatus(new)
    return sorted(s.value for s, nxt in _ALLOWED.items() if target in nxt)


MAJOR_DONOR_THRESHOLD = Decimal("1000")
CHAMPION_DONATION_COUNT = 12


def classify_donor(
    total_donated: Decimal, donation_count: int, has_active_subscription: bool
) -> str:
    if Decimal(total_donated) >= MAJOR_DONOR_THRESHOLD:
        return DonorType.MAJOR_DONOR.value
    if donation_count >= CHAMPION_DONATION_COUNT:
        return DonorType.CHAMPION.value
    if has_active_subscription:
        return DonorType.RECURRING.value
    if donation_count > 1:
        return DonorType.RETURNING.value
    return DonorType.FIRST_TIME.value


def donor_tags(
    existing: list[str] | None,
    total_donated: Decimal,
    donation_count: int,
    has_active_subscription: bool,
) -> list[str]:
    """Tags accumulate; crossing a threshold adds one, nothing removes them."""
    tags = list(existing or [])
    wanted = []
    if Decimal(total_donated) >= MAJOR_DONOR_THRESHOLD:
        wanted.append("major_donor")
    if donation_count >= CHAMPION_DONATION_COUNT:
        wanted.append("champion")
    if has_active_subscription:
        wanted.append("recurring_donor")
    for t in wanted:
        if t not in tags:
            tags.append(t)
    return tags
