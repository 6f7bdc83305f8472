"""
API Schemas Module

This module defines Pydantic models for request/response validation. Bodies
are camelCase on the wire; snake_case field names are accepted on input too.
"""

from datetime import datetime
from typing import Literal, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    model_validator,
)
from pydantic.alias_generators import to_camel

from db.models import PaymentKind, PaymentStatus


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckoutSessionCreate(CamelModel):
    amount: int = Field(gt=0, description="Amount in minor currency units")
    currency: str = Field(min_length=3, max_length=3)
    email: EmailStr
    landlord_id: Optional[str] = None
    metadata: dict[str, str] = Field(default_factory=dict)


class SubscriptionCheckoutCreate(CamelModel):
    plan: str
    user_id: str
    trial_days: Optional[int] = Field(default=None, ge=1, le=730)
    promotion_code: Optional[str] = None


class CheckoutSessionOut(CamelModel):
    url: str
    session_id: str


class VerifyPaymentOut(CamelModel):
    status: Literal["success", "pending"]
    session_id: str
    customer_email: Optional[str] = None
    amount_total: Optional[int] = None
    currency: Optional[str] = None
    metadata: Optional[dict[str, str]] = None
    payment_status: Optional[str] = None


class PaymentOut(CamelModel):
    id: str
    kind: PaymentKind
    status: PaymentStatus
    customer_email: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    failure_reason: Optional[str] = None
    payment_metadata: dict = Field(
        default_factory=dict,
        validation_alias=AliasChoices("payment_metadata", "metadata"),
        serialization_alias="metadata",
    )
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentHistoryOut(CamelModel):
    user_id: str
    payments: list[PaymentOut]


class RefundCreate(CamelModel):
    payment_intent_id: str
    amount: Optional[int] = Field(default=None, gt=0, description="Partial refund, minor units")
    reason: Optional[Literal["duplicate", "fraudulent", "requested_by_customer"]] = None
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=255)


class RefundOut(CamelModel):
    id: str
    payment_intent_id: str
    amount: int
    currency: str
    status: str


class SubscriptionOut(CamelModel):
    id: str
    customer_id: Optional[str] = None
    status: str
    cancel_at_period_end: bool = False


class ProviderPaymentOut(CamelModel):
    id: str
    amount: int
    currency: str
    status: str
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    created: int
    description: Optional[str] = None


class CustomerPaymentsOut(CamelModel):
    payments: list[ProviderPaymentOut]
    has_more: bool


class PromotionCodeCreate(CamelModel):
    code: str = Field(min_length=3, max_length=64)
    percent_off: Optional[float] = Field(default=None, gt=0, le=100)
    amount_off: Optional[int] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    duration: Literal["once", "repeating", "forever"] = "once"
    duration_in_months: Optional[int] = Field(default=None, ge=1)
    max_redemptions: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def check_discount(self):
        if (self.percent_off is None) == (self.amount_off is None):
            raise ValueError("Provide exactly one of percent_off or amount_off")
        if self.amount_off is not None and not self.currency:
            raise ValueError("currency is required with amount_off")
        if self.duration == "repeating" and not self.duration_in_months:
            raise ValueError("duration_in_months is required for repeating coupons")
        return self


class PromotionCodeOut(CamelModel):
    coupon_id: str
    promotion_code_id: str
    code: str
