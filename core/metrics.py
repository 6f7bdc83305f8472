"""
Prometheus metrics instrumentation for the Rent Control billing backend.

This module sets up FastAPI instrumentation to expose metrics in Prometheus format
at the /metrics endpoint with optional authentication.
"""

from prometheus_fastapi_instrumentator import Instrumentator
from prometheus_client import Counter, Histogram
from fastapi import Request, status
from fastapi.responses import JSONResponse
import os

# Webhook metrics
webhook_events = Counter(
    "rentcontrol_webhook_events_total",
    "Webhook deliveries that passed signature verification",
    ["event_type", "outcome"],  # outcome: handled, unhandled, failed
)

webhook_rejections = Counter(
    "rentcontrol_webhook_rejections_total",
    "Webhook deliveries rejected during signature verification",
)

webhook_handler_latency = Histogram(
    "rentcontrol_webhook_handler_latency_seconds",
    "Time taken by a single webhook handler",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.5],
)

# Payment route metrics
checkout_sessions = Counter(
    "rentcontrol_checkout_sessions_total",
    "Checkout sessions created through the API",
    ["mode"],  # payment or subscription
)


def init_metrics(app):
    """
    Initialize Prometheus metrics instrumentation for the FastAPI app.

    Args:
        app: FastAPI application instance

    Returns:
        Instrumentator instance
    """
    inst = Instrumentator(
        should_group_status_codes=False,
        should_ignore_untemplated=True,
        excluded_handlers=["/metrics"],
    )

    inst.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
    return inst


def add_metrics_auth_middleware(app):
    """
    Add middleware to protect the /metrics endpoint in production.
    For production use, set METRICS_AUTH_TOKEN environment variable.
    """

    @app.middleware("http")
    async def metrics_auth_middleware(request: Request, call_next):
        if request.url.path == "/metrics":
            if os.getenv("ENVIRONMENT", "development") != "production":
                return await call_next(request)

            auth_header = request.headers.get("X-Metrics-Auth")
            expected_token = os.getenv("METRICS_AUTH_TOKEN")

            if expected_token and auth_header == expected_token:
                return await call_next(request)

            # Allow internal network access (VPN/private networks)
            client_ip = request.client.host if request.client else None
            if client_ip and (
                client_ip.startswith("10.")
                or client_ip.startswith("192.168.")
                or client_ip.startswith("172.")
            ):
                return await call_next(request)

            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"detail": "Metrics endpoint access denied"},
            )

        return await call_next(request)
