"""
Stripe event envelope and the closed set of event types this service handles.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class EventType(str, Enum):
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
    PAYMENT_INTENT_FAILED = "payment_intent.payment_failed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"

    @classmethod
    def parse(cls, value: str) -> "EventType | None":
        """Return the matching member, or None for types we do not handle."""
        try:
            return cls(value)
        except ValueError:
            return None


class EventEnvelope(BaseModel):
    """A verified Stripe event. Frozen once built."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    # epoch seconds on the wire, parsed as a UTC datetime
    created: datetime | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    livemode: bool = False
    api_version: str | None = None

    @property
    def kind(self) -> EventType | None:
        return EventType.parse(self.type)

    @property
    def payload(self) -> dict[str, Any]:
        """The event payload (``data.object``)."""
        return self.data.get("object") or {}
