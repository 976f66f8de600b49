"""
Signature Verifier
==================
The only authentication boundary of the webhook: Stripe signs the exact raw
body, so verification runs on the bytes as received and JSON is decoded
only afterwards.

pip install stripe structlog
"""

import json
from typing import Any, Dict, Optional

import stripe
import structlog

from pipeline.errors import ConfigurationMissing, SignatureInvalid


DEFAULT_TOLERANCE_SECONDS = 300


class SignatureVerifier:
    """
    Verify `stripe-signature` headers against a pre-shared signing secret.

    Example:
        verifier = SignatureVerifier(settings.stripe_webhook_secret)
        event = verifier.verify(await request.body(), request.headers.get("stripe-signature"))
    """

    def __init__(self, signing_secret: str, tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS):
        self._secret = signing_secret
        self._tolerance = tolerance_seconds
        self._logger = structlog.get_logger().bind(component="signature_verifier")

    def verify(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """
        Return the decoded event if `payload` was signed with our secret.

        Raises:
            ConfigurationMissing: signing secret was never provisioned
            SignatureInvalid: missing/invalid/expired signature or undecodable body
        """
        if not self._secret:
            raise ConfigurationMissing("STRIPE_WEBHOOK_SECRET")

        if not signature:
            raise SignatureInvalid("No stripe-signature header value was provided.")

        try:
            body = payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SignatureInvalid("Webhook payload is not valid UTF-8.") from e

        try:
            stripe.WebhookSignature.verify_header(body, signature, self._secret, self._tolerance)
        except stripe.SignatureVerificationError as e:
            self._logger.warning("signature_rejected", error=str(e))
            raise SignatureInvalid(str(e)) from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise SignatureInvalid("Webhook payload is not valid JSON.") from e

        if not isinstance(event, dict):
            raise SignatureInvalid("Webhook payload is not a JSON object.")

        return event
