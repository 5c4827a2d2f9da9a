from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from donations_api.models.status import PaymentStatus
from donations_api.models.types import DonationInput, DonorSnapshot

Frequency = Literal["monthly", "quarterly", "annually"]
Dedication = Literal["in_honor", "in_memory", "none"]


class DonorInfo(BaseModel):
    """Donor contact details"""
    email: EmailStr
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(..., min_length=1, max_length=50)
    phone: Optional[str] = Field(None, max_length=30)
    address: Optional[dict] = None

    def to_snapshot(self) -> DonorSnapshot:
        return DonorSnapshot(
            email=str(self.email).strip().lower(),
            first_name=self.first_name.strip(),
            last_name=self.last_name.strip(),
            phone=self.phone,
            address=self.address,
        )


class _DonationFields(BaseModel):
    campaign_id: Optional[str] = Field(None, description="Campaign to credit")
    ministry: Optional[str] = Field(None, max_length=100, description="Ministry to credit")
    is_recurring: bool = False
    recurring_frequency: Optional[Frequency] = None
    is_anonymous: bool = Field(default=False, description="Hide donor identity")
    message: Optional[str] = Field(None, max_length=1000)
    dedication_type: Dedication = "none"
    dedication_name: Optional[str] = Field(None, max_length=100)


class CreateIntentRequest(_DonationFields):
    """Body of POST /api/donations/intent"""
    amount: Decimal = Field(..., gt=0, description="Amount in major currency units")
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    donor: DonorInfo

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "amount": "50.00",
                "currency": "USD",
                "ministry": "Clean Water Initiative",
                "donor": {
                    "email": "ada@example.com",
                    "first_name": "Ada",
                    "last_name": "Lovelace",
                },
                "is_recurring": False,
            }
        }
    )

    def to_input(self) -> DonationInput:
        return DonationInput(
            donor=self.donor.to_snapshot(),
            campaign_id=self.campaign_id,
            ministry=self.ministry,
            is_recurring=self.is_recurring,
            recurring_frequency=self.recurring_frequency,
            is_anonymous=self.is_anonymous,
            message=self.message,
            dedication_type=self.dedication_type,
            dedication_name=self.dedication_name,
            source="web",
            amount=self.amount,
            currency=self.currency,
        )


class ConfirmDonationRequest(_DonationFields):
    """Body of POST /api/donations/confirm. Amounts are never read from here."""
    payment_intent_id: str = Field(..., min_length=3, max_length=255)
    donor: Optional[DonorInfo] = None
    source: Literal["web", "admin"] = "web"

    def to_input(self) -> DonationInput:
        return DonationInput(
            donor=self.donor.to_snapshot() if self.donor else DonorSnapshot(email=""),
            campaign_id=self.campaign_id,
            ministry=self.ministry,
            is_recurring=self.is_recurring,
            recurring_frequency=self.recurring_frequency,
            is_anonymous=self.is_anonymous,
            message=self.message,
            dedication_type=self.dedication_type,
            dedication_name=self.dedication_name,
            source=self.source,
        )


class DonationQuery(BaseModel):
    """Query string of GET /api/donations"""
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    status: Optional[PaymentStatus] = None
    campaign_id: Optional[str] = None
    ministry: Optional[str] = None
    donor_email: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    def filters(self) -> dict:
        return {
            "status": self.status.value if self.status else None,
            "campaign_id": self.campaign_id,
            "ministry": self.ministry,
            "donor_email": self.donor_email,
            "start": self.start_date,
            "end": self.end_date,
        }


class AnalyticsQuery(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    campaign_id: Optional[str] = None
    ministry: Optional[str] = None
    days: int = Field(30, ge=1, le=366)
    limit: int = Field(10, ge=1, le=100)
