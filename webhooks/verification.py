"""
Stripe webhook signature verification.

Verification runs on the exact bytes received. The body must not be parsed
or re-serialized before it gets here, or the signature will not match.
"""

import json

import stripe
from pydantic import ValidationError

from webhooks.events import EventEnvelope

DEFAULT_TOLERANCE = stripe.Webhook.DEFAULT_TOLERANCE


class VerificationError(Exception):
    """The delivery could not be authenticated or parsed."""


class SignatureVerifier:
    def __init__(self, secret: str, tolerance: int = DEFAULT_TOLERANCE):
        """
        Args:
            secret: Endpoint signing secret (``whsec_...``)
            tolerance: Maximum timestamp age in seconds; 0 disables the check
        """
        self.secret = secret
        self.tolerance = tolerance

    def verify(self, raw_body: bytes, signature_header: str | None) -> EventEnvelope:
        """Authenticate ``raw_body`` and parse it into an EventEnvelope.

        Raises:
            VerificationError: missing header or secret, bad signature, stale
                timestamp, undecodable body, or an envelope without id/type
        """
        if not signature_header:
            raise VerificationError("No stripe-signature header value was provided.")
        if not self.secret:
            raise VerificationError("Webhook signing secret is not configured.")

        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            raise VerificationError("Request body is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self.secret, tolerance=self.tolerance or None
            )
        except stripe.SignatureVerificationError as e:
            raise VerificationError(str(e)) from e

        try:
            return EventEnvelope.model_validate(json.loads(payload))
        except (json.JSONDecodeError, ValidationError) as e:
            raise VerificationError(f"Invalid payload: {e}") from e
