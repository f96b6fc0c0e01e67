from sqlalchemy import Column, DateTime, Integer, Numeric, String
from storefront.database import Base


class OrderRecord(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    payment_intent_id = Column(String, unique=True, index=True, nullable=False)   # Stripe PaymentIntent ID
    amount = Column(Numeric(10, 2), nullable=False)
    product_name = Column(String)
    customer_email = Column(String, nullable=False)
    customer_name = Column(String, nullable=False)
    customer_phone = Column(String, nullable=False)
    address_line1 = Column(String, nullable=False)
    address_line2 = Column(String)
    postal_code = Column(String, nullable=False)
    city = Column(String, nullable=False)
    country_code = Column(String(2), nullable=False)
    delivery = Column(String)
    status = Column(String, nullable=False)                                     # pending | succeeded | failed
    client_secret = Column(String)
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))
