"""
Stripe Payment Provider Client

Thin wrapper over an explicitly constructed ``stripe.StripeClient``. The
instance is built once at startup and injected where it is needed; nothing in
this module touches the global ``stripe.api_key``.
"""

import uuid
from typing import Any

import stripe
import structlog
import tenacity

from core.logging import BusinessEvents
from core.settings import Settings

log = structlog.get_logger(__name__)


class PaymentProviderError(Exception):
    pass


_retry_on_connection_error = tenacity.retry(
    retry=tenacity.retry_if_exception_type(stripe.APIConnectionError),
    stop=tenacity.stop_after_attempt(3),
    wait=tenacity.wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)


class StripeProviderClient:
    def __init__(self, client: stripe.StripeClient):
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "StripeProviderClient":
        return cls(
            stripe.StripeClient(
                settings.STRIPE_SECRET_KEY,
                max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
            )
        )

    def _call(self, operation: str, fn, *args, **kwargs):
        """Invoke a Stripe service method, mapping SDK errors to PaymentProviderError."""
        try:
            return _retry_on_connection_error(fn)(*args, **kwargs)
        except stripe.StripeError as e:
            log.error(BusinessEvents.PROVIDER_FAILURE, operation=operation, error=str(e))
            raise PaymentProviderError(e.user_message or str(e)) from e

    # Checkout

    def create_checkout_session(
        self,
        *,
        mode: str,
        line_items: list[dict[str, Any]],
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        customer_id: str | None = None,
        metadata: dict[str, str] | None = None,
        trial_days: int | None = None,
        discounts: list[dict[str, str]] | None = None,
        **extra: Any,
    ):
        """Create a checkout session in ``payment`` or ``subscription`` mode."""
        if mode not in ("payment", "subscription"):
            raise ValueError(f"Unsupported checkout mode: {mode}")
        params: dict[str, Any] = {
            "mode": mode,
            "payment_method_types": ["card"],
            "line_items": line_items,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata or {},
            **extra,
        }
        if customer_id:
            params["customer"] = customer_id
        elif customer_email:
            params["customer_email"] = customer_email
        if trial_days:
            if mode != "subscription":
                raise ValueError("Trial days only apply to subscription checkout")
            params["subscription_data"] = {"trial_period_days": trial_days}
        if discounts:
            params["discounts"] = discounts
        return self._call(
            "checkout.sessions.create", self.client.checkout.sessions.create, params=params
        )

    def retrieve_checkout_session(self, session_id: str):
        return self._call(
            "checkout.sessions.retrieve",
            self.client.checkout.sessions.retrieve,
            session_id,
        )

    # Subscriptions

    def retrieve_subscription(self, subscription_id: str):
        return self._call(
            "subscriptions.retrieve", self.client.subscriptions.retrieve, subscription_id
        )

    def update_subscription(self, subscription_id: str, **params: Any):
        return self._call(
            "subscriptions.update",
            self.client.subscriptions.update,
            subscription_id,
            params=params,
        )

    def cancel_subscription(self, subscription_id: str, at_period_end: bool = False):
        """Cancel now, or flag the subscription to end with the current period."""
        if at_period_end:
            return self.update_subscription(subscription_id, cancel_at_period_end=True)
        return self._call(
            "subscriptions.cancel", self.client.subscriptions.cancel, subscription_id
        )

    def list_subscriptions(self, customer_id: str, status: str = "all"):
        result = self._call(
            "subscriptions.list",
            self.client.subscriptions.list,
            params={"customer": customer_id, "status": status},
        )
        return list(result.data)

    # Payments and refunds

    def list_payment_intents(
        self, customer_id: str, limit: int = 20, starting_after: str | None = None
    ):
        """One page of a customer's payment intents, with the customer expanded."""
        params: dict[str, Any] = {
            "customer": customer_id,
            "limit": limit,
            "expand": ["data.customer"],
        }
        if starting_after:
            params["starting_after"] = starting_after
        return self._call(
            "payment_intents.list", self.client.payment_intents.list, params=params
        )

    def create_refund(
        self,
        payment_intent_id: str,
        amount: int | None = None,
        reason: str | None = None,
        idempotency_key: str | None = None,
    ):
        """Refund a payment intent in full, or ``amount`` minor units of it.

        Stripe replays the first response for a repeated ``idempotency_key``, so
        a caller retrying one refund passes the same key each time. Without a
        key every call is a distinct refund.
        """
        params: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount is not None:
            if amount <= 0:
                raise ValueError("Refund amount must be positive")
            params["amount"] = amount
        if reason:
            params["reason"] = reason
        key = idempotency_key or f"refund-{uuid.uuid4()}"
        refund = self._call(
            "refunds.create",
            self.client.refunds.create,
            params=params,
            options={"idempotency_key": key},
        )
        log.info(
            BusinessEvents.REFUND_CREATED,
            refund_id=refund.id,
            payment_intent_id=payment_intent_id,
            amount=refund.amount,
        )
        return refund

    # Coupons and promotion codes

    def create_coupon(
        self,
        *,
        duration: str = "once",
        percent_off: float | None = None,
        amount_off: int | None = None,
        currency: str | None = None,
        duration_in_months: int | None = None,
        name: str | None = None,
    ):
        if (percent_off is None) == (amount_off is None):
            raise ValueError("Exactly one of percent_off or amount_off is required")
        params: dict[str, Any] = {"duration": duration}
        if percent_off is not None:
            params["percent_off"] = percent_off
        else:
            if not currency:
                raise ValueError("currency is required with amount_off")
            params["amount_off"] = amount_off
            params["currency"] = currency.lower()
        if duration == "repeating":
            params["duration_in_months"] = duration_in_months
        if name:
            params["name"] = name
        return self._call("coupons.create", self.client.coupons.create, params=params)

    def create_promotion_code(
        self, coupon_id: str, code: str, max_redemptions: int | None = None
    ):
        params: dict[str, Any] = {"coupon": coupon_id, "code": code}
        if max_redemptions:
            params["max_redemptions"] = max_redemptions
        return self._call(
            "promotion_codes.create", self.client.promotion_codes.create, params=params
        )

    def find_promotion_code(self, code: str):
        """Return the active promotion code object for ``code``, or None."""
        result = self._call(
            "promotion_codes.list",
            self.client.promotion_codes.list,
            params={"code": code, "active": True, "limit": 1},
        )
        return result.data[0] if result.data else None
