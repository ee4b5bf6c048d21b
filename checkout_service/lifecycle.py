"""Order lifecycle: checkout submission, payment confirmation, stock adjustment.

An order is created as ``pending/pending`` once the payment gateway has handed
out an order handle, and flips exactly once to ``processing/paid`` when a
correctly signed confirmation arrives from the order's owner.
"""
from __future__ import annotations

import logging
import secrets
import string
import time
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from .errors import InvalidInput, OrderNotFound, PaymentVerificationFailed
from .ports import (
    EventPublisher,
    Identity,
    IdentityProvider,
    InventoryAdjustment,
    LedgerStore,
    OrderDraft,
    PaymentGateway,
)
from .schemas import CreateOrderRequest, VerifyPaymentRequest

logger = logging.getLogger(__name__)

ORDER_NUMBER_ALPHABET = string.digits + string.ascii_uppercase
PRICE_TOLERANCE = Decimal("0.01")
CENTS = Decimal("0.01")


def generate_order_number() -> str:
    """``ORD-<epoch millis>-<9 base36 chars>``. Unique with high probability only."""
    suffix = "".join(secrets.choice(ORDER_NUMBER_ALPHABET) for _ in range(9))
    return f"ORD-{int(time.time() * 1000)}-{suffix}"


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class OrderHandle:
    order_id: str
    order_number: str
    gateway_order_id: str
    amount_minor_units: int
    currency: str
    key_id: str


@dataclass(frozen=True)
class ConfirmationResult:
    order_id: str
    order_number: str
    order_status: str
    payment_status: str
    inventory_failures: list[InventoryAdjustment] = field(default_factory=list)


class OrderLifecycleManager:
    def __init__(
        self,
        identity_provider: IdentityProvider,
        gateway: PaymentGateway,
        ledger: LedgerStore,
        publisher: EventPublisher,
        currency: str = "INR",
        order_number_factory=None,
    ):
        self.identity_provider = identity_provider
        self.gateway = gateway
        self.ledger = ledger
        self.publisher = publisher
        self.currency = currency
        self.order_number_factory = order_number_factory or generate_order_number

    def authenticate(self, credential: str) -> Identity:
        """Resolve the caller once, before any request body is looked at."""
        return self.identity_provider.resolve(credential)

    def create_order(self, req: CreateOrderRequest, identity: Identity) -> OrderHandle:
        line_items, total = self._price_cart(req)
        order_number = self.order_number_factory()
        amount = to_minor_units(total)

        # Nothing is written until the gateway has accepted the order.
        remote = self.gateway.create_remote_order(
            amount_minor_units=amount,
            currency=self.currency,
            receipt=order_number,
            metadata={"user_id": identity.identity_id, "order_number": order_number},
        )

        shipping = req.shipping_address
        draft = OrderDraft(
            user_id=identity.identity_id,
            order_number=order_number,
            email=shipping.email or identity.email,
            currency=remote.currency,
            subtotal_price=total,
            total_price=total,
            gateway_order_id=remote.gateway_order_id,
            shipping={
                "shipping_first_name": shipping.first_name,
                "shipping_last_name": shipping.last_name,
                "shipping_address1": shipping.address1,
                "shipping_address2": shipping.address2,
                "shipping_city": shipping.city,
                "shipping_province": shipping.province,
                "shipping_postal_code": shipping.postal_code,
                "shipping_country": shipping.country,
                "shipping_phone": shipping.phone,
            },
            billing_address=req.billing_address.model_dump() if req.billing_address else None,
            line_items=line_items,
        )
        order = self.ledger.insert_order(draft)
        logger.info("Order %s created for user %s (%s items)", order_number, identity.identity_id, len(line_items))

        self.publisher.publish(
            "order.created",
            {
                "order_id": order.id,
                "order_number": order_number,
                "user_id": identity.identity_id,
                "amount": remote.amount_minor_units,
                "currency": remote.currency,
            },
        )
        return OrderHandle(
            order_id=order.id,
            order_number=order_number,
            gateway_order_id=remote.gateway_order_id,
            amount_minor_units=remote.amount_minor_units,
            currency=remote.currency,
            key_id=self.gateway.key_id,
        )

    def _price_cart(self, req: CreateOrderRequest):
        """Resolve every cart line against the catalog and return (line item rows, total)."""
        if not req.cart_items:
            raise InvalidInput("Cart items are required")
        if req.shipping_address is None or req.shipping_address.is_blank() or not req.total_amount:
            raise InvalidInput("Shipping address and total amount are required")
        if req.total_amount <= 0:
            raise InvalidInput("Total amount must be positive")

        rows = []
        total = Decimal("0")
        for item in req.cart_items:
            if item.quantity <= 0:
                raise InvalidInput(f"Quantity for product {item.product_id} must be positive")
            entry = self.ledger.resolve_catalog(item.product_id, item.variant_id)
            if entry is None:
                raise InvalidInput(f"Unknown product or variant: {item.product_id}/{item.variant_id}")
            if item.price is not None and abs(item.price - entry.unit_price) > PRICE_TOLERANCE:
                raise InvalidInput(f"Price for {entry.product_name} has changed")

            line_total = (entry.unit_price * item.quantity).quantize(CENTS)
            total += line_total
            rows.append(
                {
                    "product_id": entry.product_id,
                    "variant_id": entry.variant_id,
                    "product_name": entry.product_name,
                    "variant_title": entry.variant_title,
                    "quantity": item.quantity,
                    "price": entry.unit_price,
                    "total_price": line_total,
                    "sku": entry.sku or item.sku,
                }
            )

        if abs(req.total_amount - total) > PRICE_TOLERANCE:
            raise InvalidInput("Total amount does not match cart contents")
        return rows, total

    def confirm_payment(self, req: VerifyPaymentRequest, identity: Identity) -> ConfirmationResult:
        if not (req.razorpay_order_id and req.razorpay_payment_id and req.razorpay_signature and req.order_id):
            raise InvalidInput("Payment confirmation fields are required")

        if not self.gateway.verify_payment_signature(
            req.razorpay_order_id, req.razorpay_payment_id, req.razorpay_signature
        ):
            logger.warning(
                "Signature mismatch for order %s (received %s...)", req.order_id, req.razorpay_signature[:10]
            )
            raise PaymentVerificationFailed()

        order = self.ledger.mark_paid(
            order_id=req.order_id,
            user_id=identity.identity_id,
            gateway_order_id=req.razorpay_order_id,
            gateway_payment_id=req.razorpay_payment_id,
            signature=req.razorpay_signature,
        )
        if order is None:
            # Wrong owner, unknown id, or already confirmed.
            self.ledger.rollback()
            logger.warning("No confirmable order %s for user %s", req.order_id, identity.identity_id)
            raise OrderNotFound()

        failures = []
        for item in self.ledger.line_items(order.id):
            if not item.variant_id:
                continue
            adjustment = self.ledger.adjust_inventory(item.variant_id, -item.quantity)
            if not adjustment.applied:
                failures.append(adjustment)

        self.ledger.commit()
        logger.info("Order %s paid with payment %s", order.order_number, req.razorpay_payment_id)

        self.publisher.publish(
            "order.paid",
            {
                "order_id": order.id,
                "order_number": order.order_number,
                "user_id": identity.identity_id,
                "payment_id": req.razorpay_payment_id,
            },
        )
        for failure in failures:
            logger.error(
                "Inventory for variant %s not adjusted by %s on order %s: %s",
                failure.variant_id, failure.quantity_change, order.order_number, failure.reason,
            )
            self.publisher.publish(
                "inventory.adjustment_failed",
                {
                    "order_id": order.id,
                    "order_number": order.order_number,
                    "variant_id": failure.variant_id,
                    "quantity_change": failure.quantity_change,
                    "reason": failure.reason,
                },
            )

        return ConfirmationResult(
            order_id=order.id,
            order_number=order.order_number,
            order_status=order.order_status,
            payment_status=order.payment_status,
            inventory_failures=failures,
        )

    def get_order(self, order_id: str, identity: Identity):
        order = self.ledger.get_order(order_id, identity.identity_id)
        if order is None:
            raise OrderNotFound()
        return order

    def list_orders(self, identity: Identity, limit: int = 20, offset: int = 0):
        return self.ledger.list_orders(identity.identity_id, limit, offset)
