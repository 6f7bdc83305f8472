"""
Payment routes: checkout sessions, verification, history, refunds,
subscriptions and promotion codes.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from api.schemas import (
    CheckoutSessionCreate,
    CheckoutSessionOut,
    CustomerPaymentsOut,
    PaymentHistoryOut,
    PaymentOut,
    PromotionCodeCreate,
    PromotionCodeOut,
    ProviderPaymentOut,
    RefundCreate,
    RefundOut,
    SubscriptionCheckoutCreate,
    SubscriptionOut,
    VerifyPaymentOut,
)
from core.dependencies import get_provider_client, get_settings, get_sink
from core.logging import BusinessEvents
from core.settings import Settings
from db.sink import PaymentSink
from payments.stripe_client import PaymentProviderError, StripeProviderClient
from payments.stripe_service import CheckoutError, StripeService

log = structlog.get_logger(__name__)

router = APIRouter()


def get_stripe_service(
    provider: StripeProviderClient = Depends(get_provider_client),
    settings: Settings = Depends(get_settings),
) -> StripeService:
    return StripeService(provider, settings)


def _provider_failure(e: PaymentProviderError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))


def _subscription_out(subscription) -> SubscriptionOut:
    customer = subscription.customer
    return SubscriptionOut(
        id=subscription.id,
        customer_id=customer if isinstance(customer, str) else getattr(customer, "id", None),
        status=subscription.status,
        cancel_at_period_end=bool(subscription.cancel_at_period_end),
    )


def _provider_payment_out(intent) -> ProviderPaymentOut:
    customer = intent.customer
    if isinstance(customer, str):
        customer_id, customer_email = customer, None
    else:
        customer_id = getattr(customer, "id", None)
        customer_email = getattr(customer, "email", None)
    return ProviderPaymentOut(
        id=intent.id,
        amount=intent.amount,
        currency=intent.currency,
        status=intent.status,
        customer_id=customer_id,
        customer_email=customer_email,
        created=intent.created,
        description=intent.description,
    )


@router.post("/create-checkout-session", response_model=CheckoutSessionOut)
async def create_checkout_session(
    body: CheckoutSessionCreate, service: StripeService = Depends(get_stripe_service)
):
    """Create a one-off payment checkout session and return its hosted url."""
    try:
        return await service.create_payment_checkout(
            amount=body.amount,
            currency=body.currency,
            email=body.email,
            landlord_id=body.landlord_id,
            metadata=body.metadata,
        )
    except PaymentProviderError as e:
        raise _provider_failure(e)


@router.post("/checkout", response_model=CheckoutSessionOut)
async def create_subscription_checkout(
    body: SubscriptionCheckoutCreate,
    service: StripeService = Depends(get_stripe_service),
):
    """Create a subscription checkout session for a configured plan."""
    try:
        return await service.create_subscription_checkout(
            plan=body.plan,
            user_id=body.user_id,
            trial_days=body.trial_days,
            promotion_code=body.promotion_code,
        )
    except CheckoutError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except PaymentProviderError as e:
        raise _provider_failure(e)


@router.get(
    "/verify-payment", response_model=VerifyPaymentOut, response_model_exclude_unset=True
)
async def verify_payment(
    session_id: str | None = Query(default=None),
    service: StripeService = Depends(get_stripe_service),
):
    """Check the payment status of a checkout session after redirect."""
    if not session_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing session_id parameter",
        )
    try:
        return await service.verify_payment(session_id)
    except PaymentProviderError as e:
        raise _provider_failure(e)


@router.get("/payment-history/{user_id}", response_model=PaymentHistoryOut)
async def payment_history(user_id: str, sink: PaymentSink = Depends(get_sink)):
    """Payments recorded from webhooks for one of our users."""
    payments = await run_in_threadpool(sink.list_payments, user_id)
    return PaymentHistoryOut(
        user_id=user_id,
        payments=[PaymentOut.model_validate(p) for p in payments],
    )


@router.post("/refunds", response_model=RefundOut, status_code=status.HTTP_201_CREATED)
async def create_refund(
    body: RefundCreate,
    provider: StripeProviderClient = Depends(get_provider_client),
):
    """Refund a payment intent in full, or partially when ``amount`` is given."""
    try:
        refund = await run_in_threadpool(
            provider.create_refund,
            body.payment_intent_id,
            body.amount,
            body.reason,
            body.idempotency_key,
        )
    except PaymentProviderError as e:
        raise _provider_failure(e)
    return RefundOut(
        id=refund.id,
        payment_intent_id=body.payment_intent_id,
        amount=refund.amount,
        currency=refund.currency,
        status=refund.status,
    )


@router.get("/subscriptions/{subscription_id}", response_model=SubscriptionOut)
async def get_subscription(
    subscription_id: str,
    provider: StripeProviderClient = Depends(get_provider_client),
):
    try:
        subscription = await run_in_threadpool(
            provider.retrieve_subscription, subscription_id
        )
    except PaymentProviderError as e:
        raise _provider_failure(e)
    return _subscription_out(subscription)


@router.post("/subscriptions/{subscription_id}/cancel", response_model=SubscriptionOut)
async def cancel_subscription(
    subscription_id: str,
    at_period_end: bool = Query(default=False),
    provider: StripeProviderClient = Depends(get_provider_client),
):
    """Cancel a subscription now, or at the end of the current period."""
    try:
        subscription = await run_in_threadpool(
            provider.cancel_subscription, subscription_id, at_period_end
        )
    except PaymentProviderError as e:
        raise _provider_failure(e)
    log.info(
        BusinessEvents.SUBSCRIPTION_CANCELED,
        subscription_id=subscription_id,
        at_period_end=at_period_end,
    )
    return _subscription_out(subscription)


@router.get(
    "/customers/{customer_id}/subscriptions", response_model=list[SubscriptionOut]
)
async def list_customer_subscriptions(
    customer_id: str,
    provider: StripeProviderClient = Depends(get_provider_client),
):
    try:
        subscriptions = await run_in_threadpool(provider.list_subscriptions, customer_id)
    except PaymentProviderError as e:
        raise _provider_failure(e)
    return [_subscription_out(s) for s in subscriptions]


@router.get("/customers/{customer_id}/payments", response_model=CustomerPaymentsOut)
async def list_customer_payments(
    customer_id: str,
    limit: int = Query(default=20, ge=1, le=100),
    starting_after: str | None = Query(default=None),
    provider: StripeProviderClient = Depends(get_provider_client),
):
    """One page of a customer's payment intents; pass the last id as ``starting_after``."""
    try:
        page = await run_in_threadpool(
            provider.list_payment_intents, customer_id, limit, starting_after
        )
    except PaymentProviderError as e:
        raise _provider_failure(e)
    return CustomerPaymentsOut(
        payments=[_provider_payment_out(p) for p in page.data],
        has_more=bool(page.has_more),
    )


@router.post(
    "/promotion-codes",
    response_model=PromotionCodeOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_promotion_code(
    body: PromotionCodeCreate,
    provider: StripeProviderClient = Depends(get_provider_client),
):
    """Create a coupon and a customer-facing promotion code for it."""
    try:
        coupon = await run_in_threadpool(
            lambda: provider.create_coupon(
                duration=body.duration,
                percent_off=body.percent_off,
                amount_off=body.amount_off,
                currency=body.currency,
                duration_in_months=body.duration_in_months,
                name=body.code,
            )
        )
        promo = await run_in_threadpool(
            provider.create_promotion_code, coupon.id, body.code, body.max_redemptions
        )
    except PaymentProviderError as e:
        raise _provider_failure(e)
    log.info(
        BusinessEvents.PROMOTION_CODE_CREATED,
        coupon_id=coupon.id,
        promotion_code_id=promo.id,
        code=body.code,
    )
    return PromotionCodeOut(coupon_id=coupon.id, promotion_code_id=promo.id, code=body.code)
