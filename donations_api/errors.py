from typing import Any


class DonationsError(Exception):
    """Base error. `code` is the machine-readable string returned to clients."""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str | None = None, **extra: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.extra = extra

    def to_dict(self) -> dict[str, Any]:
        out = {"error": self.code, "message": self.message}
        out.update(self.extra)
        return out


class ValidationError(DonationsError):
    status_code = 400
    code = "VALIDATION_ERROR"


class AttributionNotFound(DonationsError):
    status_code = 404
    code = "ATTRIBUTION_NOT_FOUND"


class DonationNotFound(DonationsError):
    status_code = 404
    code = "DONATION_NOT_FOUND"


class DonorNotFound(DonationsError):
    status_code = 404
    code = "DONOR_NOT_FOUND"


class GatewayDeclined(DonationsError):
    """The gateway reports the payment as not succeeded. Terminal for the intent."""

    status_code = 400
    code = "PAYMENT_NOT_SUCCEEDED"

    def __init__(self, payment_status: str, intent_id: str | None = None):
        super().__init__(
            "payment not successful",
            payment_status=payment_status,
            payment_intent_id=intent_id,
        )
        self.payment_status = payment_status
        self.intent_id = intent_id


class GatewayError(DonationsError):
    status_code = 502
    code = "GATEWAY_ERROR"


class PersistenceError(DonationsError):
    status_code = 500
    code = "DATABASE_ERROR"


class DuplicateIntent(DonationsError):
    """
    Raised by the store when a donation already exists for the idempotency key.
    The workflow resolves it as a replay; it never reaches a client.
    """

    status_code = 200
    code = "DUPLICATE_INTENT"

    def __init__(self, existing: dict[str, Any]):
        super().__init__("donation already recorded")
        self.existing = existing


class NotifierError(DonationsError):
    code = "EMAIL_ERROR"
