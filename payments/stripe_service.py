"""
Stripe Checkout Service

This module handles the checkout flows exposed by the payment routes:
- One-off payment checkout sessions
- Subscription checkout sessions (plans, trials, promotion codes)
- Post-redirect payment verification
"""

from datetime import UTC, datetime
from typing import Any

import structlog
from starlette.concurrency import run_in_threadpool

from core.logging import BusinessEvents
from core.metrics import checkout_sessions
from core.settings import Settings
from payments.stripe_client import StripeProviderClient

log = structlog.get_logger(__name__)

SHIPPING_COUNTRIES = [
    "US", "CA", "GB", "AU", "DE", "FR", "ES", "IT", "NL", "SE", "NO", "DK", "FI",
]


class CheckoutError(ValueError):
    """The checkout request cannot be turned into a Stripe session."""


class StripeService:
    def __init__(self, provider: StripeProviderClient, settings: Settings):
        self.provider = provider
        self.settings = settings

    async def create_payment_checkout(
        self,
        amount: int,
        currency: str,
        email: str,
        landlord_id: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """
        Create a one-off payment checkout session.

        Args:
            amount: Amount in minor currency units
            currency: ISO currency code
            email: Payer email, prefilled on the Stripe page
            landlord_id: Our user id, echoed back in webhook metadata
            metadata: Extra metadata (plan, billingCycle, ...)

        Returns:
            Dict containing the hosted checkout url and session id
        """
        metadata = dict(metadata or {})
        plan = metadata.get("plan", "professional")
        billing_cycle = metadata.get("billingCycle", "monthly")
        landlord_id = landlord_id or "unknown"

        line_items = [
            {
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": {
                        "name": "Rent Control Subscription",
                        "description": f"{plan.title()} Plan - {billing_cycle} billing",
                        "metadata": {
                            "landlordId": landlord_id,
                            "plan": plan,
                            "billingCycle": billing_cycle,
                        },
                    },
                    "unit_amount": amount,
                },
                "quantity": 1,
            }
        ]
        metadata.update(
            landlordId=landlord_id,
            email=email,
            timestamp=datetime.now(UTC).isoformat(),
        )
        client_url = self.settings.CLIENT_URL
        session = await run_in_threadpool(
            lambda: self.provider.create_checkout_session(
                mode="payment",
                line_items=line_items,
                customer_email=email,
                metadata=metadata,
                success_url=f"{client_url}/payment-processing?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{client_url}/payment-processing?canceled=true",
                billing_address_collection="auto",
                shipping_address_collection={"allowed_countries": SHIPPING_COUNTRIES},
            )
        )
        checkout_sessions.labels(mode="payment").inc()
        log.info(
            BusinessEvents.CHECKOUT_SESSION_CREATED,
            session_id=session.id,
            mode="payment",
            email=email,
            amount=amount,
        )
        return {"url": session.url, "session_id": session.id}

    async def create_subscription_checkout(
        self,
        plan: str,
        user_id: str,
        trial_days: int | None = None,
        promotion_code: str | None = None,
    ) -> dict[str, Any]:
        """Create a subscription checkout session for one of the configured plans."""
        price_id = self.settings.price_map.get(plan)
        if not price_id:
            raise CheckoutError(f"Unknown plan: {plan}")

        discounts = None
        if promotion_code:
            promo = await run_in_threadpool(
                self.provider.find_promotion_code, promotion_code
            )
            if promo is None:
                raise CheckoutError(f"Unknown or inactive promotion code: {promotion_code}")
            discounts = [{"promotion_code": promo.id}]

        base_url = self.settings.BASE_URL
        session = await run_in_threadpool(
            lambda: self.provider.create_checkout_session(
                mode="subscription",
                line_items=[{"price": price_id, "quantity": 1}],
                metadata={"userId": user_id, "plan": plan},
                success_url=f"{base_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/choose-plan",
                trial_days=trial_days,
                discounts=discounts,
            )
        )
        checkout_sessions.labels(mode="subscription").inc()
        log.info(
            BusinessEvents.CHECKOUT_SESSION_CREATED,
            session_id=session.id,
            mode="subscription",
            plan=plan,
            user_id=user_id,
        )
        return {"url": session.url, "session_id": session.id}

    async def verify_payment(self, session_id: str) -> dict[str, Any]:
        """Report whether a checkout session has been paid."""
        session = await run_in_threadpool(
            self.provider.retrieve_checkout_session, session_id
        )
        log.info(
            BusinessEvents.CHECKOUT_SESSION_VERIFIED,
            session_id=session_id,
            payment_status=session.payment_status,
        )
        if session.payment_status == "paid":
            return {
                "status": "success",
                "session_id": session.id,
                "customer_email": session.customer_email,
                "amount_total": session.amount_total,
                "currency": session.currency,
                "metadata": dict(session.metadata or {}),
            }
        return {
            "status": "pending",
            "session_id": session.id,
            "payment_status": session.payment_status,
        }
