import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from .database import Base  # Import the Base class from our database setup


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"


class ProductStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    OUT_OF_STOCK = "out_of_stock"


# Defines the ORM model for one checkout attempt.
class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), index=True, nullable=False)  # Owning identity.
    order_number = Column(String(64), unique=True, index=True, nullable=False)  # Human-readable, immutable.
    email = Column(String(255))
    order_status = Column(String(20), nullable=False, default=OrderStatus.PENDING.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    currency = Column(String(3), nullable=False, default="INR")
    subtotal_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)

    # Shipping address, flattened.
    shipping_first_name = Column(String(100))
    shipping_last_name = Column(String(100))
    shipping_address1 = Column(String(255))
    shipping_address2 = Column(String(255))
    shipping_city = Column(String(100))
    shipping_province = Column(String(100))
    shipping_postal_code = Column(String(20))
    shipping_country = Column(String(100))
    shipping_phone = Column(String(30))
    billing_address = Column(JSON)

    notes = Column(Text)

    # Gateway correlation, filled at creation (order id) and on confirmation (payment id, signature).
    gateway_order_id = Column(String(64), index=True)
    gateway_payment_id = Column(String(64))
    gateway_signature = Column(String(128))

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    paid_at = Column(DateTime(timezone=True))

    line_items = relationship("OrderLineItem", back_populates="order", order_by="OrderLineItem.created_at")


# One product/variant quantity within an order. Immutable after creation.
class OrderLineItem(Base):
    __tablename__ = "order_line_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id"), index=True, nullable=False)
    product_id = Column(String(36), nullable=False)
    variant_id = Column(String(36))
    product_name = Column(String(255))  # Denormalized at checkout time.
    variant_title = Column(String(255))
    quantity = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)  # Unit price.
    total_price = Column(Numeric(10, 2), nullable=False)  # price * quantity.
    sku = Column(String(100))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    order = relationship("Order", back_populates="line_items")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), unique=True)
    price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default=ProductStatus.ACTIVE.value)

    variants = relationship("ProductVariant", back_populates="product")


# The variant row doubles as the inventory counter.
class ProductVariant(Base):
    __tablename__ = "product_variants"

    id = Column(String(36), primary_key=True, default=_uuid)
    product_id = Column(String(36), ForeignKey("products.id"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    sku = Column(String(100))
    price = Column(Numeric(10, 2))  # Falls back to the product price when empty.
    inventory_quantity = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    product = relationship("Product", back_populates="variants")


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)  # Same id the identity provider hands out.
    email = Column(String(255))
    role = Column(String(20), nullable=False, default="customer")
    first_name = Column(String(100))
    last_name = Column(String(100))
    phone = Column(String(30))
