# Filename: neodrive/billing.py
"""Payment-processor glue (Stripe)."""
from dataclasses import dataclass
from typing import Any, Dict, Optional
import json
import logging

import stripe

from .errors import PaymentError

logger = logging.getLogger(__name__)


@dataclass
class CheckoutSession:
    id: str
    url: str


class PaymentGateway:
    def __init__(self, secret_key: Optional[str], webhook_secret: str):
        self.secret_key = secret_key
        self.webhook_secret = webhook_secret

    @property
    def enabled(self) -> bool:
        return bool(self.secret_key)

    def create_customer(self, email: str, name: str) -> Optional[str]:
        if not self.enabled:
            return None
        try:
            customer = stripe.Customer.create(email=email, name=name, api_key=self.secret_key)
        except stripe.StripeError as e:
            raise PaymentError(f"Failed to create Stripe customer for {email}") from e
        return customer.id

    def create_checkout_session(
        self,
        *,
        price_id: str,
        customer_email: str,
        success_url: str,
        cancel_url: str,
        metadata: Dict[str, str],
    ) -> CheckoutSession:
        if not self.enabled:
            raise PaymentError("Stripe secret key is not configured", "Payments are not available")
        try:
            session = stripe.checkout.Session.create(
                api_key=self.secret_key,
                payment_method_types=["card"],
                line_items=[{"price": price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{success_url}?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{cancel_url}?session_id={{CHECKOUT_SESSION_ID}}",
                customer_email=customer_email,
                metadata=metadata,
            )
        except stripe.StripeError as e:
            raise PaymentError("Failed to create checkout session") from e
        logger.info("Created checkout session %s for %s", session.id, customer_email)
        return CheckoutSession(id=session.id, url=session.url)

    def construct_event(self, payload: bytes, signature: str) -> Dict[str, Any]:
        """Verify a webhook payload and return the event as plain JSON.

        Raises ValueError for malformed payloads and
        stripe.SignatureVerificationError for bad signatures.
        """
        stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        return json.loads(payload)
