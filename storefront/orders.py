"""Order entity and its JSON record shape.

The backup file and the HTTP responses share one camelCase record layout;
``Order.to_record`` and ``Order.from_record`` are the only places that know
about it.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

COUNTRY_CODE = "PL"


class OrderStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def from_iso(value: Optional[str]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise TypeError(f"expected an ISO timestamp string, got {type(value).__name__}")
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass(frozen=True)
class Customer:
    email: str
    full_name: str
    phone: str


@dataclass(frozen=True)
class Address:
    line1: str
    postal_code: str
    city: str
    line2: Optional[str] = None
    country_code: str = COUNTRY_CODE


@dataclass(frozen=True)
class Order:
    """A customer order, keyed by the gateway's payment intent id.

    Attributes:
        payment_intent_id: Gateway-assigned id, unique in every store.
        amount: Total charged in major units, two decimal places.
        status: Lifecycle value, changed only by status updates.
        client_secret: Gateway secret the browser needs to finish paying.
    """

    payment_intent_id: str
    amount: Decimal
    product_name: str
    customer: Customer
    address: Address
    delivery: str
    status: OrderStatus
    client_secret: Optional[str]
    created_at: datetime
    updated_at: Optional[datetime] = None

    def with_status(self, status: OrderStatus, at: Optional[datetime] = None) -> "Order":
        return replace(self, status=status, updated_at=at or utcnow())

    def to_record(self) -> dict:
        return {
            "paymentIntentId": self.payment_intent_id,
            "amount": f"{self.amount:.2f}",
            "productName": self.product_name,
            "customer": {
                "email": self.customer.email,
                "fullName": self.customer.full_name,
                "phone": self.customer.phone,
            },
            "address": {
                "line1": self.address.line1,
                "line2": self.address.line2,
                "postalCode": self.address.postal_code,
                "city": self.address.city,
                "countryCode": self.address.country_code,
            },
            "delivery": self.delivery,
            "status": self.status.value,
            "clientSecret": self.client_secret,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: dict) -> "Order":
        """Build an Order from a record dict.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed.
        """
        customer = record["customer"]
        address = record["address"]
        return cls(
            payment_intent_id=record["paymentIntentId"],
            amount=Decimal(str(record["amount"])),
            product_name=record.get("productName") or "",
            customer=Customer(
                email=customer["email"],
                full_name=customer["fullName"],
                phone=customer["phone"],
            ),
            address=Address(
                line1=address["line1"],
                line2=address.get("line2"),
                postal_code=address["postalCode"],
                city=address["city"],
                country_code=address.get("countryCode") or COUNTRY_CODE,
            ),
            delivery=record.get("delivery") or "",
            status=OrderStatus(record["status"]),
            client_secret=record.get("clientSecret"),
            created_at=from_iso(record["createdAt"]),
            updated_at=from_iso(record.get("updatedAt")),
        )
