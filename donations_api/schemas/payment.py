from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class RefundRequest(BaseModel):
    """Body of POST /api/payments/refund"""
    payment_intent_id: str = Field(..., min_length=3, max_length=255)
    amount: Optional[Decimal] = Field(None, gt=0, description="Partial refund amount")
    reason: Optional[Literal["duplicate", "fraudulent", "requested_by_customer"]] = None


class PreferencesRequest(BaseModel):
    """Body of PATCH /api/donors/<email>/preferences"""
    model_config = ConfigDict(extra="forbid")

    email: Optional[bool] = None
    newsletter: Optional[bool] = None
    updates: Optional[bool] = None
    tax_receipts: Optional[bool] = None

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class CampaignQuery(BaseModel):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=50)
    status: Optional[Literal["active", "completed", "paused", "draft"]] = None
    category: Optional[str] = None
