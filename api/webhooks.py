"""
Webhook handlers for payment providers
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from starlette.concurrency import run_in_threadpool

from core.dependencies import get_gateway
from webhooks import DeliveryState, WebhookGateway

router = APIRouter()


@router.post("/webhooks/stripe", include_in_schema=False)
async def stripe_webhook(request: Request, gateway: WebhookGateway = Depends(get_gateway)):
    # Raw bytes: the signature covers the body exactly as sent
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    result = await run_in_threadpool(gateway.receive, payload, signature)

    if result.state is DeliveryState.REJECTED:
        return PlainTextResponse(f"Webhook Error: {result.error}", status_code=400)
    if result.state is DeliveryState.FAILED:
        return JSONResponse({"error": "Webhook handler failed"}, status_code=500)
    return {"received": True}
