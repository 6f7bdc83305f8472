"""
Persistence/Notification Sink

Durable side effects of webhook handlers. Every write is an upsert keyed by
the provider-assigned id, so a redelivered event rewrites the same row with
the same values. Each write is a single INSERT ... ON CONFLICT DO UPDATE, so
concurrent writes for one entity never collide on the key and the last one wins.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy import inspect, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session, sessionmaker

from core.logging import BusinessEvents
from db.models import (
    DeliveryStatus,
    Invoice,
    InvoiceStatus,
    Payment,
    PaymentKind,
    PaymentStatus,
    Subscription,
    WebhookEvent,
)

log = structlog.get_logger(__name__)


class PaymentSink(ABC):
    """Write contract consumed by the webhook handlers."""

    @abstractmethod
    def record_payment(
        self,
        payment_id: str,
        *,
        kind: PaymentKind,
        status: PaymentStatus,
        event_id: str,
        **fields: Any,
    ) -> None: ...

    @abstractmethod
    def record_subscription(
        self, subscription_id: str, *, event_id: str, **fields: Any
    ) -> None: ...

    @abstractmethod
    def record_invoice(
        self,
        invoice_id: str,
        *,
        status: InvoiceStatus,
        event_id: str,
        **fields: Any,
    ) -> None: ...

    @abstractmethod
    def record_delivery(
        self,
        event_id: str,
        *,
        event_type: str,
        status: DeliveryStatus,
        livemode: bool = False,
        event_created: datetime | None = None,
        error: str | None = None,
    ) -> None: ...

    @abstractmethod
    def list_payments(self, user_id: str) -> list[Payment]: ...


_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _upsert(session: Session, model, key: str, fields: dict[str, Any]) -> None:
    """Insert the row for ``key`` or overwrite ``fields`` on it in one statement."""
    dialect = session.get_bind().dialect.name
    if dialect not in _INSERTS:
        raise RuntimeError(f"No atomic upsert for the {dialect} dialect")

    # Attribute names differ from column names where a column shadows a reserved name
    columns = inspect(model).columns
    values = {columns[name].key: value for name, value in fields.items()}
    stmt = _INSERTS[dialect](model.__table__).values(id=key, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["id"], set_={**values, "updated_at": datetime.now(UTC)}
    )
    session.execute(stmt)


class SQLAlchemySink(PaymentSink):
    """Sink backed by the SQLAlchemy models in ``db.models``."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _write(self, model, key: str, fields: dict[str, Any]) -> None:
        with self._session_factory() as session:
            try:
                _upsert(session, model, key, fields)
                session.commit()
            except Exception:
                session.rollback()
                raise

    def record_payment(self, payment_id, *, kind, status, event_id, **fields):
        fields.update(kind=kind, status=status, last_event_id=event_id)
        if fields.get("payment_metadata") is None:
            fields["payment_metadata"] = {}
        self._write(Payment, payment_id, fields)
        log.info(
            BusinessEvents.PAYMENT_RECORDED,
            payment_id=payment_id,
            kind=kind.value,
            status=status.value,
            event_id=event_id,
        )

    def record_subscription(self, subscription_id, *, event_id, **fields):
        fields["last_event_id"] = event_id
        self._write(Subscription, subscription_id, fields)
        log.info(
            BusinessEvents.SUBSCRIPTION_RECORDED,
            subscription_id=subscription_id,
            status=fields.get("status"),
            terminated=fields.get("terminated", False),
            event_id=event_id,
        )

    def record_invoice(self, invoice_id, *, status, event_id, **fields):
        fields.update(status=status, last_event_id=event_id)
        self._write(Invoice, invoice_id, fields)
        log.info(
            BusinessEvents.INVOICE_RECORDED,
            invoice_id=invoice_id,
            status=status.value,
            event_id=event_id,
        )
        if fields.get("needs_dunning"):
            log.warning(
                BusinessEvents.INVOICE_DUNNING_FLAGGED,
                invoice_id=invoice_id,
                customer_id=fields.get("customer_id"),
                subscription_id=fields.get("subscription_id"),
                attempt_count=fields.get("attempt_count"),
            )

    def record_delivery(
        self,
        event_id,
        *,
        event_type,
        status,
        livemode=False,
        event_created=None,
        error=None,
    ):
        self._write(
            WebhookEvent,
            event_id,
            {
                "type": event_type,
                "status": status,
                "livemode": livemode,
                "event_created": event_created,
                "error": error,
            },
        )

    def list_payments(self, user_id):
        with self._session_factory() as session:
            stmt = (
                select(Payment)
                .where(Payment.user_id == user_id)
                .order_by(Payment.created_at.desc())
            )
            return list(session.scalars(stmt))
