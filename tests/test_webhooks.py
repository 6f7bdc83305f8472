"""
End-to-end tests for POST /webhooks/stripe.
"""

from unittest.mock import patch

from sqlalchemy import func, select

from db.models import (
    DeliveryStatus,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentStatus,
    Subscription,
    WebhookEvent,
)
from webhooks import DeliveryState


def count(session, model):
    return session.scalar(select(func.count()).select_from(model))


def test_missing_signature_header_is_rejected(client, make_event, test_db_session):
    payload = make_event("payment_intent.succeeded", {"id": "pi_1"})

    response = client.post(
        "/webhooks/stripe", content=payload, headers={"content-type": "application/json"}
    )

    assert response.status_code == 400
    assert response.text.startswith("Webhook Error:")
    assert count(test_db_session, Payment) == 0
    assert count(test_db_session, WebhookEvent) == 0


def test_bad_signature_is_rejected(client, make_event, sign_payload):
    payload = make_event("payment_intent.succeeded", {"id": "pi_1"})

    response = client.post(
        "/webhooks/stripe",
        content=payload,
        headers={"stripe-signature": sign_payload(payload, secret="whsec_wrong")},
    )

    assert response.status_code == 400
    assert response.text.startswith("Webhook Error: No signatures found")


def test_payment_intent_succeeded_is_acknowledged_and_recorded(post_webhook, test_db_session):
    response = post_webhook(
        "payment_intent.succeeded", {"id": "pi_1", "amount": 5000, "currency": "usd"}
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    payment = test_db_session.get(Payment, "pi_1")
    assert payment.status == PaymentStatus.succeeded
    assert payment.amount == 5000


def test_invoice_payment_failed_is_flagged_for_dunning(post_webhook, test_db_session):
    response = post_webhook(
        "invoice.payment_failed", {"id": "in_1", "amount_due": 2000, "currency": "usd"}
    )

    assert response.status_code == 200
    assert response.json() == {"received": True}
    invoice = test_db_session.get(Invoice, "in_1")
    assert invoice.status == InvoiceStatus.failed
    assert invoice.needs_dunning is True


def test_unknown_event_type_is_acknowledged(post_webhook, test_db_session):
    response = post_webhook("charge.dispute.created", {"id": "dp_1"}, event_id="evt_unknown")

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert count(test_db_session, Payment) == 0
    assert count(test_db_session, Subscription) == 0
    assert count(test_db_session, Invoice) == 0
    delivery = test_db_session.get(WebhookEvent, "evt_unknown")
    assert delivery.type == "charge.dispute.created"
    assert delivery.status == DeliveryStatus.processed


def test_duplicate_delivery_records_one_payment(post_webhook, test_db_session):
    session = {
        "id": "cs_dup",
        "customer_email": "landlord@example.com",
        "amount_total": 2900,
        "currency": "usd",
        "metadata": {"landlordId": "landlord_1"},
    }

    first = post_webhook("checkout.session.completed", session, event_id="evt_dup")
    second = post_webhook("checkout.session.completed", session, event_id="evt_dup")

    assert first.status_code == second.status_code == 200
    assert count(test_db_session, Payment) == 1
    assert count(test_db_session, WebhookEvent) == 1


def test_handler_failure_returns_500(client, sink, post_webhook, test_db_session):
    with patch.object(sink, "record_payment", side_effect=RuntimeError("db down")):
        response = post_webhook(
            "payment_intent.succeeded", {"id": "pi_1", "amount": 5000}, event_id="evt_fail"
        )

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook handler failed"}
    delivery = test_db_session.get(WebhookEvent, "evt_fail")
    assert delivery.status == DeliveryStatus.failed
    assert "db down" in delivery.error


def test_redelivery_after_failure_succeeds(client, sink, post_webhook, test_db_session):
    with patch.object(sink, "record_payment", side_effect=RuntimeError("db down")):
        assert post_webhook("payment_intent.succeeded", {"id": "pi_1"}, "evt_r").status_code == 500

    response = post_webhook("payment_intent.succeeded", {"id": "pi_1"}, "evt_r")

    assert response.status_code == 200
    test_db_session.expire_all()
    assert test_db_session.get(WebhookEvent, "evt_r").status == DeliveryStatus.processed
    assert test_db_session.get(Payment, "pi_1").status == PaymentStatus.succeeded


def test_subscription_events_out_of_order(post_webhook, test_db_session):
    updated = post_webhook(
        "customer.subscription.updated",
        {"id": "sub_1", "customer": "cus_1", "status": "active"},
        event_id="evt_2",
    )
    created = post_webhook(
        "customer.subscription.created",
        {"id": "sub_1", "customer": "cus_1", "status": "incomplete"},
        event_id="evt_1",
    )

    assert updated.status_code == created.status_code == 200
    assert test_db_session.get(Subscription, "sub_1").status == "incomplete"


def test_gateway_reports_states(gateway, make_event, sign_payload):
    payload = make_event("invoice.payment_succeeded", {"id": "in_9", "amount_paid": 100})

    accepted = gateway.receive(payload, sign_payload(payload))
    rejected = gateway.receive(payload, None)

    assert accepted.state is DeliveryState.ACKNOWLEDGED
    assert accepted.event.id == "evt_test_1"
    assert rejected.state is DeliveryState.REJECTED
    assert rejected.event is None
    assert "stripe-signature" in rejected.error


def test_delivery_log_failure_still_acknowledges(sink, post_webhook, test_db_session):
    with patch.object(sink, "record_delivery", side_effect=RuntimeError("sink offline")):
        response = post_webhook("payment_intent.succeeded", {"id": "pi_1", "amount": 5000})

    assert response.status_code == 200
    assert response.json() == {"received": True}
    assert test_db_session.get(Payment, "pi_1").status == PaymentStatus.succeeded
    assert count(test_db_session, WebhookEvent) == 0


def test_delivery_log_failure_on_unknown_type_still_acknowledges(sink, post_webhook):
    with patch.object(sink, "record_delivery", side_effect=RuntimeError("sink offline")), patch(
        "webhooks.gateway.log"
    ) as log:
        response = post_webhook("product.created", {"id": "prod_1"})

    assert response.status_code == 200
    assert response.json() == {"received": True}
    log.error.assert_called_once()
    assert log.error.call_args.args[0] == "webhook.delivery_record_failed"
    assert log.error.call_args.kwargs["status"] == "processed"


def test_delivery_log_failure_after_handler_failure_is_500(sink, post_webhook):
    with patch.object(sink, "record_invoice", side_effect=RuntimeError("db down")), patch.object(
        sink, "record_delivery", side_effect=RuntimeError("sink offline")
    ):
        response = post_webhook("invoice.payment_failed", {"id": "in_1"})

    assert response.status_code == 500
    assert response.json() == {"error": "Webhook handler failed"}
