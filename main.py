"""
Rent Control Backend - Main Application Entry Point

This module initializes the FastAPI application and sets up the core routing.
It fronts the Stripe payment processor: checkout sessions, subscriptions,
refunds and promotion codes go out through the provider client, and signed
Stripe webhooks come back in through the webhook gateway.
"""

from contextlib import asynccontextmanager
from datetime import UTC, datetime

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from api import routes, webhooks
from api.middleware import log_api_entry
from core.dependencies import clear_settings, get_settings, init_settings
from core.logging import configure_logging
from core.metrics import add_metrics_auth_middleware, init_metrics
from core.settings import Settings
from core.tracing import init_tracer
from db.session import get_session_factory, init_db, reset_engines
from db.sink import SQLAlchemySink
from payments.stripe_client import StripeProviderClient
from webhooks import WebhookGateway
from webhooks.verification import SignatureVerifier

log = structlog.get_logger(__name__)


def build_services(app: FastAPI, settings: Settings) -> None:
    """Construct the sink, provider client and webhook gateway for this process."""
    sink = SQLAlchemySink(get_session_factory(settings))
    verifier = SignatureVerifier(
        settings.STRIPE_WEBHOOK_SECRET, tolerance=settings.STRIPE_WEBHOOK_TOLERANCE
    )
    app.state.sink = sink
    app.state.provider_client = StripeProviderClient.from_settings(settings)
    app.state.gateway = WebhookGateway(verifier, sink)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI application startup and shutdown events."""
    # Startup
    init_settings()
    settings = get_settings()

    init_tracer(settings.OTEL_SERVICE_NAME, settings.OTEL_EXPORTER_OTLP_ENDPOINT)
    init_db(settings)
    build_services(app, settings)

    if not settings.STRIPE_WEBHOOK_SECRET:
        log.warning("STRIPE_WEBHOOK_SECRET not set; every webhook will be rejected")

    yield
    # Shutdown
    reset_engines()
    clear_settings()


app = FastAPI(
    title="Rent Control Backend",
    description="""
    ## Stripe billing backend for Rent Control

    ### Key Features:
    - **Checkout**: one-off and subscription checkout sessions with trials and promotion codes
    - **Webhooks**: signature-verified Stripe events recorded idempotently
    - **Billing management**: refunds, subscription cancellation, promotion codes
    - **Operations**: structured logging, Prometheus metrics, OpenTelemetry tracing
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Initialize FastAPI instrumentation
FastAPIInstrumentor.instrument_app(app)

# Initialize Prometheus metrics
init_metrics(app)

# Add metrics authentication middleware (for production)
add_metrics_auth_middleware(app)

# Add logging middleware
app.middleware("http")(log_api_entry)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization", "stripe-signature"],
    allow_credentials=True,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "detail": jsonable_errors(exc)},
    )


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    return [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg"), "type": err.get("type")}
        for err in exc.errors()
    ]


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error("api.unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)},
    )


@app.get("/")
async def root():
    """Root endpoint providing API information."""
    return {
        "message": "Rent Control Backend API",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "createCheckoutSession": "/api/create-checkout-session",
            "subscriptionCheckout": "/api/checkout",
            "verifyPayment": "/api/verify-payment",
            "paymentHistory": "/api/payment-history/{user_id}",
            "refunds": "/api/refunds",
            "subscriptions": "/api/subscriptions/{subscription_id}",
            "customerPayments": "/api/customers/{customer_id}/payments",
            "promotionCodes": "/api/promotion-codes",
            "stripeWebhook": "/webhooks/stripe",
            "metrics": "/metrics",
        },
    }


@app.get("/health")
async def health(settings: Settings = Depends(get_settings)):
    """Health check endpoint alias."""
    return await health_check(settings)


@app.get("/healthz")
async def health_check(settings: Settings = Depends(get_settings)):
    """Health check endpoint to verify API status."""
    return {
        "status": "ok",
        "app_name": settings.APP_NAME,
        "environment": settings.ENVIRONMENT,
        "timestamp": datetime.now(UTC).isoformat(),
    }


# Webhooks read the raw body, so they sit outside the JSON API prefix
app.include_router(webhooks.router, tags=["webhooks"])

API_PREFIX = "/api"

app.include_router(routes.router, prefix=API_PREFIX)


def main():
    configure_logging()
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=5050)


if __name__ == "__main__":
    main()
