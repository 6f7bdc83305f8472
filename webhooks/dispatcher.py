"""Route a verified event to exactly one handler."""

from collections.abc import Mapping
from time import perf_counter

import structlog

from core.logging import BusinessEvents
from core.metrics import webhook_handler_latency
from db.sink import PaymentSink
from webhooks.events import EventEnvelope, EventType
from webhooks.handlers import Handler, HandlerError, build_registry, handle_unrecognized

log = structlog.get_logger(__name__)


class EventDispatcher:
    def __init__(
        self,
        sink: PaymentSink,
        registry: Mapping[EventType, Handler] | None = None,
        default: Handler = handle_unrecognized,
    ):
        self.sink = sink
        self.registry = registry if registry is not None else build_registry()
        self.default = default

    def handler_for(self, event: EventEnvelope) -> Handler:
        kind = event.kind
        if kind is None:
            return self.default
        return self.registry.get(kind, self.default)

    def dispatch(self, event: EventEnvelope) -> bool:
        """Run the handler for ``event``.

        Returns True when a dedicated handler ran, False for the default arm.
        No compensation is attempted on failure; the provider retries the
        whole delivery.

        Raises:
            HandlerError: the handler raised
        """
        handler = self.handler_for(event)
        started = perf_counter()
        try:
            handler(event, self.sink)
        except Exception as e:
            log.error(
                BusinessEvents.WEBHOOK_HANDLER_FAILED,
                event_id=event.id,
                event_type=event.type,
                handler=handler.__name__,
                error=str(e),
            )
            raise HandlerError(event.type, event.id, str(e)) from e
        finally:
            webhook_handler_latency.observe(perf_counter() - started)

        log.info(
            BusinessEvents.WEBHOOK_HANDLED,
            event_id=event.id,
            event_type=event.type,
            handler=handler.__name__,
        )
        return handler is not self.default
