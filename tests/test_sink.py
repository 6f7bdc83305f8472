"""
Tests for the SQLAlchemy sink upserts.
"""

from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from db.models import (
    DeliveryStatus,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentKind,
    PaymentStatus,
    WebhookEvent,
)
from db.sink import SQLAlchemySink, _upsert


@pytest.fixture
def fetch(test_db_session):
    def _fetch(model, key):
        test_db_session.expire_all()
        return test_db_session.get(model, key)

    return _fetch


def test_write_over_row_committed_by_another_writer(sink, session_factory, fetch):
    with session_factory() as other:
        other.add(
            Payment(
                id="pi_1",
                kind=PaymentKind.payment_intent,
                status=PaymentStatus.failed,
                last_event_id="evt_failed",
            )
        )
        other.commit()

    # A writer that read before the other commit landed still sees no row
    with patch.object(Session, "get", return_value=None):
        sink.record_payment(
            "pi_1",
            kind=PaymentKind.payment_intent,
            status=PaymentStatus.succeeded,
            event_id="evt_succeeded",
            amount=5000,
        )

    payment = fetch(Payment, "pi_1")
    assert payment.status == PaymentStatus.succeeded
    assert payment.amount == 5000
    assert payment.last_event_id == "evt_succeeded"


def test_two_sinks_writing_one_invoice_leave_one_row(session_factory, fetch, test_db_session):
    first = SQLAlchemySink(session_factory)
    second = SQLAlchemySink(session_factory)

    first.record_invoice(
        "in_1", status=InvoiceStatus.failed, event_id="evt_1", needs_dunning=True
    )
    second.record_invoice(
        "in_1", status=InvoiceStatus.paid, event_id="evt_2", needs_dunning=False
    )

    assert test_db_session.scalar(select(func.count()).select_from(Invoice)) == 1
    invoice = fetch(Invoice, "in_1")
    assert invoice.status == InvoiceStatus.paid
    assert invoice.needs_dunning is False


def test_upsert_keeps_columns_it_does_not_write(sink, fetch):
    sink.record_invoice("in_1", status=InvoiceStatus.failed, event_id="evt_1", amount_due=2000)
    sink.record_invoice("in_1", status=InvoiceStatus.paid, event_id="evt_2", amount_paid=2000)

    invoice = fetch(Invoice, "in_1")
    assert invoice.amount_due == 2000
    assert invoice.amount_paid == 2000
    assert invoice.last_event_id == "evt_2"


def test_payment_metadata_is_written_to_metadata_column(sink, fetch):
    sink.record_payment(
        "cs_1",
        kind=PaymentKind.checkout_session,
        status=PaymentStatus.completed,
        event_id="evt_1",
        payment_metadata={"plan": "pro"},
    )
    sink.record_payment(
        "cs_1",
        kind=PaymentKind.checkout_session,
        status=PaymentStatus.completed,
        event_id="evt_2",
        payment_metadata={"plan": "starter"},
    )

    assert fetch(Payment, "cs_1").payment_metadata == {"plan": "starter"}


def test_delivery_status_is_overwritten_on_redelivery(sink, fetch):
    sink.record_delivery(
        "evt_1", event_type="invoice.payment_failed", status=DeliveryStatus.failed, error="boom"
    )
    sink.record_delivery(
        "evt_1", event_type="invoice.payment_failed", status=DeliveryStatus.processed
    )

    delivery = fetch(WebhookEvent, "evt_1")
    assert delivery.status == DeliveryStatus.processed
    assert delivery.error is None


def test_unsupported_dialect_is_refused():
    session = MagicMock()
    session.get_bind.return_value.dialect.name = "mssql"

    with pytest.raises(RuntimeError, match="mssql"):
        _upsert(session, Payment, "pi_1", {"amount": 100})

    session.execute.assert_not_called()


def test_delivery_rows_only_hold_final_outcomes():
    assert [s.value for s in DeliveryStatus] == ["processed", "failed"]
    assert WebhookEvent.__table__.c.status.default is None
