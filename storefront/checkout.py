"""Checkout and order status updates.

Checkout validates the form, charges the gateway for the product price plus
a fixed shipping surcharge, and only then records the order. Recording is
best-effort from the caller's point of view: once the payment intent exists
the browser must get its client secret back.
"""

import logging
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Optional, Union

from storefront import stripe_service
from storefront.errors import InvalidPriceError, ValidationError
from storefront.orders import COUNTRY_CODE, Address, Customer, Order, OrderStatus, to_iso, utcnow
from storefront.stores import ReplicatingStore

logger = logging.getLogger(__name__)

CURRENCY = "pln"
SHIPPING_MINOR_UNITS = 100
DEFAULT_PRODUCT_NAME = "Product"
DEFAULT_DELIVERY = "courier"

REQUIRED_FIELDS = ("email", "full_name", "address1", "zip", "city", "phone")

_CURRENCY_SUFFIX = re.compile(r"\s*(?:zł|pln)$", re.IGNORECASE)
_GROUPED_THOUSANDS = re.compile(r"^\d{1,3}(?:[ \u00a0]\d{3})+(?:[.,]\d+)?$")


def parse_price(value: Union[str, int, float, Decimal, None]) -> Decimal:
    """Parse a product price into a positive Decimal.

    Accepts numbers or scraped price text such as ``"99,99 zł"`` or
    ``"1 299,00 PLN"``. Anything else that ``Decimal`` cannot read as a
    whole is rejected, never trimmed into a different number.

    Raises:
        InvalidPriceError: If the value is missing, not a number, or not
            positive.
    """
    if value is None or isinstance(value, bool):
        raise InvalidPriceError("Invalid product price")
    text = _CURRENCY_SUFFIX.sub("", str(value).strip())
    if _GROUPED_THOUSANDS.match(text):
        text = text.replace(" ", "").replace("\u00a0", "")
    if text.count(",") == 1 and "." not in text:
        text = text.replace(",", ".")
    if "_" in text or any(c.isspace() for c in text):
        raise InvalidPriceError("Invalid product price")
    try:
        price = Decimal(text)
    except InvalidOperation:
        raise InvalidPriceError("Invalid product price")
    if not price.is_finite() or price <= 0:
        raise InvalidPriceError("Invalid product price")
    return price


def to_minor_units(price: Decimal) -> int:
    return int((price * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def total_minor_units(price: Decimal) -> int:
    return to_minor_units(price) + SHIPPING_MINOR_UNITS


@dataclass
class CheckoutRequest:
    product_price: Union[str, float, None]
    product_name: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    zip: Optional[str] = None
    city: Optional[str] = None
    phone: Optional[str] = None
    delivery: Optional[str] = None


@dataclass(frozen=True)
class CheckoutResult:
    client_secret: str
    payment_intent_id: str
    amount: Decimal


def _clean(value: Optional[str]) -> str:
    return (value or "").strip()


class CheckoutService:
    def __init__(self, store: ReplicatingStore):
        self.store = store

    def validate(self, request: CheckoutRequest) -> Decimal:
        missing = [name for name in REQUIRED_FIELDS if not _clean(getattr(request, name))]
        if missing:
            raise ValidationError("Missing required fields: " + ", ".join(missing))
        return parse_price(request.product_price)

    def checkout(self, request: CheckoutRequest) -> CheckoutResult:
        price = self.validate(request)
        amount_minor = total_minor_units(price)

        product_name = _clean(request.product_name) or DEFAULT_PRODUCT_NAME
        delivery = _clean(request.delivery) or DEFAULT_DELIVERY
        customer = Customer(
            email=_clean(request.email),
            full_name=_clean(request.full_name),
            phone=_clean(request.phone),
        )
        address = Address(
            line1=_clean(request.address1),
            line2=_clean(request.address2) or None,
            postal_code=_clean(request.zip),
            city=_clean(request.city),
            country_code=COUNTRY_CODE,
        )
        created_at = utcnow()

        intent = stripe_service.create_payment(
            amount_minor,
            CURRENCY,
            metadata={
                "product_name": product_name,
                "product_price": str(price),
                "customer_email": customer.email,
                "customer_name": customer.full_name,
                "customer_phone": customer.phone,
                "address": ", ".join(filter(None, [address.line1, address.line2, address.postal_code, address.city])),
                "delivery": delivery,
                "created_at": to_iso(created_at),
            },
            shipping={
                "name": customer.full_name,
                "phone": customer.phone,
                "address": {
                    "line1": address.line1,
                    "line2": address.line2,
                    "postal_code": address.postal_code,
                    "city": address.city,
                    "country": address.country_code,
                },
            },
            receipt_email=customer.email,
        )

        order = Order(
            payment_intent_id=intent.id,
            amount=Decimal(amount_minor) / 100,
            product_name=product_name,
            customer=customer,
            address=address,
            delivery=delivery,
            status=OrderStatus.PENDING,
            client_secret=intent.client_secret,
            created_at=created_at,
        )
        report = self.store.save(order)
        if not report.durable:
            logger.error("checkout succeeded but order is not durable", extra={"payment_intent_id": order.payment_intent_id})
        logger.info("payment intent created", extra={"payment_intent_id": order.payment_intent_id, "amount": amount_minor})

        return CheckoutResult(
            client_secret=intent.client_secret,
            payment_intent_id=intent.id,
            amount=order.amount,
        )


class StatusUpdateService:
    """Moves an order through its lifecycle in every store.

    Unknown ids are accepted silently; notifications may arrive replayed or
    before the order was recorded.
    """

    def __init__(self, store: ReplicatingStore):
        self.store = store

    def update(self, payment_intent_id: Optional[str], status: Optional[str]) -> int:
        payment_intent_id = _clean(payment_intent_id)
        if not payment_intent_id:
            raise ValidationError("Missing paymentIntentId")
        try:
            new_status = OrderStatus(_clean(status))
        except ValueError:
            raise ValidationError(
                "Invalid status, expected one of: " + ", ".join(s.value for s in OrderStatus)
            )

        changed = self.store.update_status(payment_intent_id, new_status)
        logger.info("order status updated", extra={"payment_intent_id": payment_intent_id, "status": new_status.value, "changed": changed})
        return changed
