from donations_api.errors import DonorNotFound, ValidationError
from donations_api.models.donor import DEFAULT_PREFERENCES
from donations_api.models.status import PaymentStatus
from donations_api.services.analytics_service import donor_stats


def get_donor_profile(services, email: str):
    donor = services.store.get_donor(email)
    if donor is None:
        raise DonorNotFound(f"no donor with email {email}")
    history = services.store.list_donations(donor_email=email, limit=50)
    return {
        "donor": donor,
        "stats": donor_stats(history, email),
        "donations": history,
    }


def update_preferences(services, email: str, preferences: dict):
    unknown = set(preferences) - set(DEFAULT_PREFERENCES)
    if unknown:
        raise ValidationError(
            "unknown preference(s): " + ", ".join(sorted(unknown)),
            allowed=sorted(DEFAULT_PREFERENCES),
        )
    donor = services.store.update_donor_preferences(email, preferences)
    if donor is None:
        raise DonorNotFound(f"no donor with email {email}")
    return donor


def segments(services):
    out = services.store.donor_segments()
    out["succeeded_donations"] = services.store.count_donations(
        status=PaymentStatus.SUCCEEDED.value
    )
    return out
