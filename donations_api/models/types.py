import json
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any


@dataclass
class DonorSnapshot:
    """Donor contact details copied onto each donation at the time it is made."""

    email: str
    first_name: str = ""
    last_name: str = ""
    phone: str | None = None
    address: dict[str, Any] | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class DonationInput:
    """Donation fields supplied by the donor. Amounts here are advisory only."""

    donor: DonorSnapshot
    campaign_id: str | None = None
    ministry: str | None = None
    is_recurring: bool = False
    recurring_frequency: str | None = None
    is_anonymous: bool = False
    message: str | None = None
    dedication_type: str = "none"
    dedication_name: str | None = None
    source: str = "web"
    amount: Decimal | None = None
    currency: str | None = None

    def to_metadata(self) -> dict[str, str]:
        """Flatten into Stripe intent metadata (string values, <=500 chars each)."""
        md = {
            "donor_email": self.donor.email,
            "donor_first_name": self.donor.first_name,
            "donor_last_name": self.donor.last_name,
            "donor_name": self.donor.full_name,
            "is_recurring": "true" if self.is_recurring else "false",
            "is_anonymous": "true" if self.is_anonymous else "false",
            "dedication_type": self.dedication_type or "none",
            "source": self.source,
        }
        if self.campaign_id:
            md["campaign_id"] = self.campaign_id
        if self.ministry:
            md["ministry"] = self.ministry
        if self.donor.phone:
            md["donor_phone"] = self.donor.phone
        if self.donor.address:
            md["donor_address"] = json.dumps(self.donor.address)[:500]
        if self.recurring_frequency:
            md["recurring_frequency"] = self.recurring_frequency
        if self.message:
            md["message"] = self.message[:500]
        if self.dedication_name:
            md["dedication_name"] = self.dedication_name
        return md

    @classmethod
    def from_metadata(cls, md: dict[str, Any] | None) -> "DonationInput":
        md = md or {}
        address = None
        if md.get("donor_address"):
            try:
                address = json.loads(md["donor_address"])
            except ValueError:
                address = None
        donor = DonorSnapshot(
            email=(md.get("donor_email") or "").strip().lower(),
            first_name=md.get("donor_first_name") or "",
            last_name=md.get("donor_last_name") or "",
            phone=md.get("donor_phone") or None,
            address=address,
        )
        return cls(
            donor=donor,
            campaign_id=md.get("campaign_id") or None,
            ministry=md.get("ministry") or None,
            is_recurring=md.get("is_recurring") == "true",
            recurring_frequency=md.get("recurring_frequency") or None,
            is_anonymous=md.get("is_anonymous") == "true",
            message=md.get("message") or None,
            dedication_type=md.get("dedication_type") or "none",
            dedication_name=md.get("dedication_name") or None,
            source=md.get("source") or "webhook",
        )

    def merged_with(self, fallback: "DonationInput") -> "DonationInput":
        """
        Fill donor gaps from `fallback` (usually intent metadata). Attribution
        recorded on the intent at creation wins over whatever the client sends
        at confirm time.
        """
        donor = self.donor
        if not donor.email:
            donor = fallback.donor
        if fallback.campaign_id or fallback.ministry:
            campaign_id, ministry = fallback.campaign_id, fallback.ministry
        else:
            campaign_id, ministry = self.campaign_id, self.ministry
        return DonationInput(
            donor=donor,
            campaign_id=campaign_id,
            ministry=ministry,
            is_recurring=self.is_recurring or fallback.is_recurring,
            recurring_frequency=self.recurring_frequency
            or fallback.recurring_frequency,
            is_anonymous=self.is_anonymous or fallback.is_anonymous,
            message=self.message or fallback.message,
            dedication_type=(
                self.dedication_type
                if self.dedication_type != "none"
                else fallback.dedication_type
            ),
            dedication_name=self.dedication_name or fallback.dedication_name,
            source=self.source,
            amount=self.amount,
            currency=self.currency,
        )
