from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# --- Request Models ---

class CartItem(BaseModel):
    """One cart line as the storefront sends it."""
    product_id: str
    variant_id: Optional[str] = None
    product_name: Optional[str] = None
    variant_title: Optional[str] = None
    quantity: int
    price: Optional[Decimal] = None
    sku: Optional[str] = None


class Address(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    first_name: Optional[str] = Field(None, alias="firstName")
    last_name: Optional[str] = Field(None, alias="lastName")
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = Field(None, alias="postalCode")
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None

    def is_blank(self) -> bool:
        return not any(value and str(value).strip() for value in self.model_dump().values())


class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    cart_items: List[CartItem] = Field(default_factory=list, alias="cartItems")
    shipping_address: Optional[Address] = Field(None, alias="shippingAddress")
    billing_address: Optional[Address] = Field(None, alias="billingAddress")
    total_amount: Optional[Decimal] = Field(None, alias="totalAmount")


class VerifyPaymentRequest(BaseModel):
    razorpay_order_id: str = ""
    razorpay_payment_id: str = ""
    razorpay_signature: str = ""
    order_id: str = ""


# --- Response Models ---

class OrderHandleOut(BaseModel):
    id: str
    order_number: str
    razorpay_order_id: str
    amount: int
    currency: str
    key_id: str


class CreateOrderResponse(BaseModel):
    success: bool = True
    order: OrderHandleOut


class ConfirmedOrderOut(BaseModel):
    id: str
    order_number: str
    order_status: str
    payment_status: str


class InventoryFailureOut(BaseModel):
    variant_id: str
    quantity_change: int
    reason: Optional[str] = None


class VerifyPaymentResponse(BaseModel):
    success: bool = True
    order: ConfirmedOrderOut
    inventory_failures: List[InventoryFailureOut] = Field(default_factory=list)


class LineItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    variant_id: Optional[str] = None
    product_name: Optional[str] = None
    variant_title: Optional[str] = None
    quantity: int
    price: Decimal
    total_price: Decimal
    sku: Optional[str] = None


class OrderOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    order_number: str
    user_id: str
    email: Optional[str] = None
    order_status: str
    payment_status: str
    currency: str
    subtotal_price: Decimal
    total_price: Decimal
    shipping_first_name: Optional[str] = None
    shipping_last_name: Optional[str] = None
    shipping_address1: Optional[str] = None
    shipping_address2: Optional[str] = None
    shipping_city: Optional[str] = None
    shipping_province: Optional[str] = None
    shipping_postal_code: Optional[str] = None
    shipping_country: Optional[str] = None
    shipping_phone: Optional[str] = None
    gateway_order_id: Optional[str] = None
    gateway_payment_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    paid_at: Optional[datetime] = None
    line_items: List[LineItemOut] = Field(default_factory=list)


class OrderAnalyticsOut(BaseModel):
    order_count: int
    paid_count: int
    revenue: Decimal
    by_status: dict


class LowStockVariantOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    product_id: str
    title: str
    sku: Optional[str] = None
    inventory_quantity: int
