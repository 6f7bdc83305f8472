"""
Database Models Module

This module defines SQLAlchemy ORM models for the records written by the
webhook handlers:
- Payments (checkout sessions and payment intents)
- Subscriptions
- Invoices (recurring payments, dunning flag)
- Webhook deliveries
"""

from datetime import UTC, datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def _now() -> datetime:
    return datetime.now(UTC)


class PaymentKind(PyEnum):
    checkout_session = "checkout_session"
    payment_intent = "payment_intent"


class PaymentStatus(PyEnum):
    completed = "completed"
    succeeded = "succeeded"
    failed = "failed"


class Payment(Base):
    """One-off payment keyed by the Stripe checkout session or payment intent id."""

    __tablename__ = "payments"
    __table_args__ = (Index("ix_payments_user_created", "user_id", "created_at"),)

    id = Column(String(255), primary_key=True)
    kind = Column(Enum(PaymentKind), nullable=False)
    status = Column(Enum(PaymentStatus), nullable=False)
    customer_id = Column(String(255), index=True)
    customer_email = Column(String(320))
    user_id = Column(String(255))
    payment_intent_id = Column(String(255))
    amount = Column(Integer)  # minor currency units
    currency = Column(String(3))
    failure_reason = Column(Text)
    payment_metadata = Column("metadata", JSON, nullable=False, default=dict)
    last_event_id = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    def __repr__(self):
        return f"<Payment(id={self.id}, kind={self.kind}, status={self.status})>"


class Subscription(Base):
    """Latest known state of a Stripe subscription."""

    __tablename__ = "subscriptions"

    id = Column(String(255), primary_key=True)
    customer_id = Column(String(255), index=True)
    status = Column(String(32), nullable=False)
    price_id = Column(String(255))
    current_period_start = Column(DateTime)
    current_period_end = Column(DateTime)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    canceled_at = Column(DateTime)
    ended_at = Column(DateTime)
    terminated = Column(Boolean, nullable=False, default=False)
    last_event_id = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    def __repr__(self):
        return f"<Subscription(id={self.id}, status={self.status})>"


class InvoiceStatus(PyEnum):
    paid = "paid"
    failed = "failed"


class Invoice(Base):
    """Recurring payment outcome for a Stripe invoice."""

    __tablename__ = "invoices"

    id = Column(String(255), primary_key=True)
    customer_id = Column(String(255), index=True)
    subscription_id = Column(String(255), index=True)
    status = Column(Enum(InvoiceStatus), nullable=False)
    amount_paid = Column(Integer)
    amount_due = Column(Integer)
    currency = Column(String(3))
    attempt_count = Column(Integer)
    next_payment_attempt = Column(DateTime)
    needs_dunning = Column(Boolean, nullable=False, default=False)
    last_event_id = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    def __repr__(self):
        return f"<Invoice(id={self.id}, status={self.status}, dunning={self.needs_dunning})>"


class DeliveryStatus(PyEnum):
    processed = "processed"
    failed = "failed"


class WebhookEvent(Base):
    """Delivery log keyed by the Stripe event id."""

    __tablename__ = "webhook_events"

    id = Column(String(255), primary_key=True)
    type = Column(String(255), nullable=False, index=True)
    livemode = Column(Boolean, nullable=False, default=False)
    event_created = Column(DateTime)
    status = Column(Enum(DeliveryStatus), nullable=False)
    error = Column(Text)
    created_at = Column(DateTime, nullable=False, default=_now)
    updated_at = Column(DateTime, nullable=False, default=_now, onupdate=_now)

    def __repr__(self):
        return f"<WebhookEvent(id={self.id}, type={self.type}, status={self.status})>"
