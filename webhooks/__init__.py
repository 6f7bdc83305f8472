"""
Stripe webhook ingestion package.
Exposes the gateway used by the HTTP route.
"""

from .gateway import DeliveryState, WebhookGateway, WebhookResult

__all__ = ["DeliveryState", "WebhookGateway", "WebhookResult"]
