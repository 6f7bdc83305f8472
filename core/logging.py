import logging
import sys
import structlog
import os
from opentelemetry.instrumentation.logging import LoggingInstrumentor


def get_log_level():
    """Get log level from environment or default to INFO"""
    return os.getenv("LOG_LEVEL", "INFO").upper()


def get_log_renderer():
    """Get log renderer based on environment"""
    env = os.getenv("ENVIRONMENT", "development")
    # Use JSON format for tests and production
    if env in ["test", "production"]:
        return structlog.processors.JSONRenderer()
    # Pretty printing for local development
    return structlog.dev.ConsoleRenderer(colors=True, sort_keys=False)


def configure_logging():
    """Set up structlog + OTEL context injection."""
    shared_processors = [
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            get_log_renderer(),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    env = os.getenv("ENVIRONMENT", "development")
    if env == "test":
        # In test mode, write to stdout for easier capture
        handler = logging.StreamHandler(sys.stdout)
    else:
        handler = logging.StreamHandler()

    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger = logging.getLogger()
    root_logger.handlers = [handler]  # Replace any existing handlers
    root_logger.setLevel(get_log_level())

    # Silence Uvicorn noise but keep access logs routed through structlog
    logging.getLogger("uvicorn.error").handlers.clear()
    logging.getLogger("uvicorn.access").handlers.clear()

    # SQL echo is controlled by DEBUG on the engine, not the root level
    logging.getLogger("sqlalchemy").setLevel(logging.ERROR)

    # Initialize OpenTelemetry logging instrumentation AFTER configuring logging
    LoggingInstrumentor().instrument(set_logging_format=False)


# Business Event Log Names
class BusinessEvents:
    """Standard names for business event logs"""

    API_ENTRY = "api.request"

    WEBHOOK_RECEIVED = "webhook.received"
    WEBHOOK_VERIFIED = "webhook.verified"
    WEBHOOK_REJECTED = "webhook.rejected"
    WEBHOOK_UNHANDLED = "webhook.unhandled"
    WEBHOOK_HANDLED = "webhook.handled"
    WEBHOOK_HANDLER_FAILED = "webhook.handler_failed"

    PAYMENT_RECORDED = "payment.recorded"
    SUBSCRIPTION_RECORDED = "subscription.recorded"
    SUBSCRIPTION_TERMINATED = "subscription.terminated"
    INVOICE_RECORDED = "invoice.recorded"
    INVOICE_DUNNING_FLAGGED = "invoice.dunning_flagged"

    CHECKOUT_SESSION_CREATED = "checkout.session_created"
    CHECKOUT_SESSION_VERIFIED = "checkout.session_verified"
    REFUND_CREATED = "refund.created"
    SUBSCRIPTION_CANCELED = "subscription.canceled"
    PROMOTION_CODE_CREATED = "promotion_code.created"
    PROVIDER_FAILURE = "provider.failure"


# Configure logging when module is imported
configure_logging()
