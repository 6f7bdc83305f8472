"""
Webhook ingestion gateway.

One delivery moves RECEIVED -> VERIFIED -> DISPATCHED -> ACKNOWLEDGED, or
stops at REJECTED (bad signature) or FAILED (handler raised). Nothing about a
delivery outlives the request apart from what the sink records.
"""

from dataclasses import dataclass
from enum import Enum

import structlog

from core.logging import BusinessEvents
from core.metrics import webhook_events, webhook_rejections
from core.tracing import tracer
from db.models import DeliveryStatus
from db.sink import PaymentSink
from webhooks.dispatcher import EventDispatcher
from webhooks.events import EventEnvelope
from webhooks.handlers import HandlerError
from webhooks.verification import SignatureVerifier, VerificationError

log = structlog.get_logger(__name__)


class DeliveryState(str, Enum):
    RECEIVED = "received"
    VERIFIED = "verified"
    DISPATCHED = "dispatched"
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class WebhookResult:
    state: DeliveryState
    event: EventEnvelope | None = None
    error: str | None = None


class WebhookGateway:
    def __init__(
        self,
        verifier: SignatureVerifier,
        sink: PaymentSink,
        dispatcher: EventDispatcher | None = None,
    ):
        self.verifier = verifier
        self.sink = sink
        self.dispatcher = dispatcher or EventDispatcher(sink)

    def receive(self, raw_body: bytes, signature_header: str | None) -> WebhookResult:
        """Verify, dispatch and record one delivery."""
        with tracer.start_as_current_span("webhook.receive") as span:
            log.debug(BusinessEvents.WEBHOOK_RECEIVED, size=len(raw_body))

            try:
                event = self.verifier.verify(raw_body, signature_header)
            except VerificationError as e:
                webhook_rejections.inc()
                log.warning(BusinessEvents.WEBHOOK_REJECTED, reason=str(e))
                span.set_attribute("webhook.state", DeliveryState.REJECTED.value)
                return WebhookResult(DeliveryState.REJECTED, error=str(e))

            span.set_attribute("webhook.event_id", event.id)
            span.set_attribute("webhook.event_type", event.type)
            log.info(
                BusinessEvents.WEBHOOK_VERIFIED,
                event_id=event.id,
                event_type=event.type,
                livemode=event.livemode,
            )

            try:
                handled = self.dispatcher.dispatch(event)
            except HandlerError as e:
                webhook_events.labels(event_type=event.type, outcome="failed").inc()
                self._record_best_effort(event, DeliveryStatus.failed, error=str(e))
                span.set_attribute("webhook.state", DeliveryState.FAILED.value)
                return WebhookResult(DeliveryState.FAILED, event=event, error=str(e))

            self._record_best_effort(event, DeliveryStatus.processed)

            outcome = "handled" if handled else "unhandled"
            webhook_events.labels(event_type=event.type, outcome=outcome).inc()
            span.set_attribute("webhook.state", DeliveryState.ACKNOWLEDGED.value)
            return WebhookResult(DeliveryState.ACKNOWLEDGED, event=event)

    def _record(self, event: EventEnvelope, status: DeliveryStatus, error: str | None = None):
        self.sink.record_delivery(
            event.id,
            event_type=event.type,
            status=status,
            livemode=event.livemode,
            event_created=event.created,
            error=error,
        )

    def _record_best_effort(
        self, event: EventEnvelope, status: DeliveryStatus, error: str | None = None
    ) -> None:
        # The delivery log never decides the outcome of a delivery
        try:
            self._record(event, status, error=error)
        except Exception as e:
            log.error(
                "webhook.delivery_record_failed",
                event_id=event.id,
                status=status.value,
                error=str(e),
            )
