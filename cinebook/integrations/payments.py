"""
Stripe hosted-checkout client.

Every outbound call carries a bounded timeout and a small number of Stripe retries
(exponential backoff between attempts). Provider failures surface as
``PaymentProviderUnavailable``; a bad webhook signature as
``InvalidProviderEvent``.
"""

import logging
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional

import stripe

from cinebook.core.config import settings
from cinebook.core.exceptions import PaymentProviderUnavailable, ValidationFailed

logger = logging.getLogger(__name__)


class InvalidProviderEvent(ValidationFailed):
    error = "invalid_signature"


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: Optional[int]) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(Decimal("0.01"))


class PaymentGateway:
    def __init__(
        self,
        secret_key: Optional[str],
        webhook_secret: Optional[str] = None,
        timeout: int = 10,
        max_network_retries: int = 2,
    ):
        self.webhook_secret = webhook_secret
        self._client = None
        if secret_key:
            self._client = stripe.StripeClient(
                secret_key,
                http_client=stripe.RequestsClient(timeout=timeout),
                max_network_retries=max_network_retries,
            )

    @classmethod
    def from_settings(cls) -> "PaymentGateway":
        return cls(
            secret_key=settings.STRIPE_SECRET_KEY,
            webhook_secret=settings.STRIPE_WEBHOOK_SECRET,
            timeout=settings.STRIPE_TIMEOUT_SECONDS,
            max_network_retries=settings.STRIPE_MAX_NETWORK_RETRIES,
        )

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def _require_client(self):
        if self._client is None:
            raise PaymentProviderUnavailable("Payment provider is not configured")
        return self._client

    def create_checkout_session(
        self,
        *,
        amount: Decimal,
        currency: str,
        product_name: str,
        description: str,
        metadata: Dict[str, str],
        expires_at: datetime,
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a one-line-item hosted checkout; returns {"id", "url"}."""
        client = self._require_client()
        params: Dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {
                            "name": product_name,
                            "description": description,
                        },
                        "unit_amount": to_minor_units(amount),
                    },
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "metadata": metadata,
            "expires_at": int(expires_at.timestamp()),
        }
        if customer_email:
            params["customer_email"] = customer_email

        try:
            session = client.checkout.sessions.create(params=params)
        except stripe.StripeError as e:
            logger.warning("Checkout session creation failed: %s", e)
            raise PaymentProviderUnavailable("Payment provider is unavailable, try again shortly")
        return {"id": session.id, "url": session.url}

    def retrieve_session(self, session_ref: str):
        client = self._require_client()
        try:
            return client.checkout.sessions.retrieve(session_ref)
        except stripe.StripeError as e:
            logger.warning("Checkout session lookup failed for %s: %s", session_ref, e)
            raise PaymentProviderUnavailable("Payment provider is unavailable")

    def find_session_by_payment_intent(self, payment_intent_id: str):
        """The checkout session that owns a payment intent, or None."""
        client = self._require_client()
        try:
            sessions = client.checkout.sessions.list(
                params={"payment_intent": payment_intent_id, "limit": 1}
            )
        except stripe.StripeError as e:
            logger.warning("Session lookup by payment intent %s failed: %s", payment_intent_id, e)
            raise PaymentProviderUnavailable("Payment provider is unavailable")
        data: List = sessions.data
        return data[0] if data else None

    def construct_event(self, payload: bytes, signature: Optional[str]):
        """Verify a webhook payload against the endpoint secret."""
        if not self.webhook_secret:
            raise PaymentProviderUnavailable("Webhook secret is not configured")
        if not signature:
            raise InvalidProviderEvent("Missing signature header")
        try:
            return stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning("Webhook signature verification failed: %s", e)
            raise InvalidProviderEvent("Invalid signature")


gateway = PaymentGateway.from_settings()


def get_payment_gateway() -> PaymentGateway:
    return gateway
