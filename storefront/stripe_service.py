import logging

import stripe

from storefront.config import Settings
from storefront.errors import GatewayError

logger = logging.getLogger(__name__)


def configure_stripe(settings: Settings):
    stripe.api_key = settings.stripe_secret_key
    stripe.default_http_client = stripe.RequestsClient(timeout=settings.gateway_timeout)


def create_payment(amount: int, currency: str, metadata: dict, shipping: dict, receipt_email: str):
    try:
        return stripe.PaymentIntent.create(
            amount=amount,
            currency=currency,
            automatic_payment_methods={"enabled": True},
            metadata=metadata,
            shipping=shipping,
            receipt_email=receipt_email,
        )
    except stripe.StripeError as exc:
        status = exc.http_status or 500
        logger.warning("payment intent not created", extra={"code": exc.code, "http_status": status})
        raise GatewayError(
            exc.user_message or str(exc) or "Payment gateway error",
            code=exc.code,
            status_code=400 if 400 <= status < 500 else 500,
        ) from exc


def construct_event(payload: bytes, signature: str, secret: str):
    return stripe.Webhook.construct_event(payload, signature, secret)
