"""
Per-event-type webhook handlers.

Each handler takes the verified envelope and the sink, performs one upsert
keyed by the Stripe object id and returns. Stripe delivers at least once, so
running a handler twice for the same event must leave the sink unchanged.
"""

from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any

import structlog

from core.logging import BusinessEvents
from db.models import InvoiceStatus, PaymentKind, PaymentStatus
from db.sink import PaymentSink
from webhooks.events import EventEnvelope, EventType

log = structlog.get_logger(__name__)

Handler = Callable[[EventEnvelope, PaymentSink], None]


class HandlerError(Exception):
    """A webhook handler failed; the whole delivery should be retried."""

    def __init__(self, event_type: str, event_id: str, message: str):
        super().__init__(f"{event_type} ({event_id}): {message}")
        self.event_type = event_type
        self.event_id = event_id


def _ts(value: Any) -> datetime | None:
    """Stripe epoch seconds to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), UTC)


def _id_of(value: Any) -> str | None:
    # Expandable fields arrive either as an id string or as the expanded object
    if isinstance(value, dict):
        return value.get("id")
    return value


def _require_id(event: EventEnvelope) -> str:
    object_id = event.payload.get("id")
    if not object_id:
        raise ValueError("event payload has no object id")
    return object_id


def handle_checkout_session_completed(event: EventEnvelope, sink: PaymentSink) -> None:
    session = event.payload
    metadata = session.get("metadata") or {}
    customer_details = session.get("customer_details") or {}
    sink.record_payment(
        _require_id(event),
        kind=PaymentKind.checkout_session,
        status=PaymentStatus.completed,
        event_id=event.id,
        customer_id=_id_of(session.get("customer")),
        customer_email=session.get("customer_email") or customer_details.get("email"),
        user_id=metadata.get("landlordId") or metadata.get("userId"),
        payment_intent_id=_id_of(session.get("payment_intent")),
        amount=session.get("amount_total"),
        currency=session.get("currency"),
        payment_metadata=metadata,
    )


def handle_payment_intent_succeeded(event: EventEnvelope, sink: PaymentSink) -> None:
    intent = event.payload
    sink.record_payment(
        _require_id(event),
        kind=PaymentKind.payment_intent,
        status=PaymentStatus.succeeded,
        event_id=event.id,
        customer_id=_id_of(intent.get("customer")),
        amount=intent.get("amount_received") or intent.get("amount"),
        currency=intent.get("currency"),
        failure_reason=None,
        payment_metadata=intent.get("metadata") or {},
    )


def handle_payment_intent_failed(event: EventEnvelope, sink: PaymentSink) -> None:
    intent = event.payload
    last_error = intent.get("last_payment_error") or {}
    sink.record_payment(
        _require_id(event),
        kind=PaymentKind.payment_intent,
        status=PaymentStatus.failed,
        event_id=event.id,
        customer_id=_id_of(intent.get("customer")),
        amount=intent.get("amount"),
        currency=intent.get("currency"),
        failure_reason=last_error.get("message") or last_error.get("code"),
        payment_metadata=intent.get("metadata") or {},
    )


def _subscription_fields(subscription: dict[str, Any]) -> dict[str, Any]:
    items = (subscription.get("items") or {}).get("data") or []
    first_item = items[0] if items else {}
    price = first_item.get("price") or {}
    # Newer API versions carry the billing period on the subscription item
    period_start = subscription.get("current_period_start") or first_item.get(
        "current_period_start"
    )
    period_end = subscription.get("current_period_end") or first_item.get(
        "current_period_end"
    )
    return {
        "customer_id": _id_of(subscription.get("customer")),
        "status": subscription.get("status") or "unknown",
        "price_id": _id_of(price),
        "current_period_start": _ts(period_start),
        "current_period_end": _ts(period_end),
        "cancel_at_period_end": bool(subscription.get("cancel_at_period_end")),
        "canceled_at": _ts(subscription.get("canceled_at")),
        "ended_at": _ts(subscription.get("ended_at")),
    }


def handle_subscription_created(event: EventEnvelope, sink: PaymentSink) -> None:
    sink.record_subscription(
        _require_id(event),
        event_id=event.id,
        terminated=False,
        **_subscription_fields(event.payload),
    )


def handle_subscription_updated(event: EventEnvelope, sink: PaymentSink) -> None:
    fields = _subscription_fields(event.payload)
    sink.record_subscription(
        _require_id(event),
        event_id=event.id,
        terminated=fields["status"] == "canceled",
        **fields,
    )


def handle_subscription_deleted(event: EventEnvelope, sink: PaymentSink) -> None:
    fields = _subscription_fields(event.payload)
    fields["status"] = "canceled"
    if fields["ended_at"] is None:
        fields["ended_at"] = event.created
    subscription_id = _require_id(event)
    sink.record_subscription(subscription_id, event_id=event.id, terminated=True, **fields)
    log.info(
        BusinessEvents.SUBSCRIPTION_TERMINATED,
        subscription_id=subscription_id,
        customer_id=fields["customer_id"],
        event_id=event.id,
    )


def _invoice_fields(invoice: dict[str, Any]) -> dict[str, Any]:
    subscription = invoice.get("subscription")
    if subscription is None:
        # Newer API versions moved the subscription under parent details
        details = (invoice.get("parent") or {}).get("subscription_details") or {}
        subscription = details.get("subscription")
    return {
        "customer_id": _id_of(invoice.get("customer")),
        "subscription_id": _id_of(subscription),
        "amount_paid": invoice.get("amount_paid"),
        "amount_due": invoice.get("amount_due"),
        "currency": invoice.get("currency"),
        "attempt_count": invoice.get("attempt_count"),
        "next_payment_attempt": _ts(invoice.get("next_payment_attempt")),
    }


def handle_invoice_payment_succeeded(event: EventEnvelope, sink: PaymentSink) -> None:
    sink.record_invoice(
        _require_id(event),
        status=InvoiceStatus.paid,
        event_id=event.id,
        needs_dunning=False,
        **_invoice_fields(event.payload),
    )


def handle_invoice_payment_failed(event: EventEnvelope, sink: PaymentSink) -> None:
    sink.record_invoice(
        _require_id(event),
        status=InvoiceStatus.failed,
        event_id=event.id,
        needs_dunning=True,
        **_invoice_fields(event.payload),
    )


def handle_unrecognized(event: EventEnvelope, sink: PaymentSink) -> None:
    """Default arm: new or uninteresting event types are acknowledged and logged."""
    log.info(BusinessEvents.WEBHOOK_UNHANDLED, event_id=event.id, event_type=event.type)


HANDLERS: dict[EventType, Handler] = {
    EventType.CHECKOUT_SESSION_COMPLETED: handle_checkout_session_completed,
    EventType.PAYMENT_INTENT_SUCCEEDED: handle_payment_intent_succeeded,
    EventType.PAYMENT_INTENT_FAILED: handle_payment_intent_failed,
    EventType.SUBSCRIPTION_CREATED: handle_subscription_created,
    EventType.SUBSCRIPTION_UPDATED: handle_subscription_updated,
    EventType.SUBSCRIPTION_DELETED: handle_subscription_deleted,
    EventType.INVOICE_PAYMENT_SUCCEEDED: handle_invoice_payment_succeeded,
    EventType.INVOICE_PAYMENT_FAILED: handle_invoice_payment_failed,
}


def build_registry(
    handlers: Mapping[EventType, Handler] = HANDLERS,
) -> Mapping[EventType, Handler]:
    """Freeze the handler table, refusing one that misses an event type."""
    missing = [kind.value for kind in EventType if kind not in handlers]
    if missing:
        raise ValueError(f"No webhook handler registered for: {', '.join(missing)}")
    return MappingProxyType(dict(handlers))
