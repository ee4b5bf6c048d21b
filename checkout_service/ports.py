from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol


@dataclass(frozen=True)
class Identity:
    identity_id: str
    email: str | None = None


@dataclass(frozen=True)
class RemoteOrder:
    gateway_order_id: str
    amount_minor_units: int
    currency: str


@dataclass(frozen=True)
class CatalogEntry:
    """Authoritative price and naming for one cart reference."""

    product_id: str
    variant_id: str | None
    product_name: str
    variant_title: str | None
    sku: str | None
    unit_price: Decimal


@dataclass(frozen=True)
class InventoryAdjustment:
    variant_id: str
    quantity_change: int
    applied: bool
    reason: str | None = None


@dataclass
class OrderDraft:
    """Everything needed to insert one pending order and its line items."""

    user_id: str
    order_number: str
    email: str | None
    currency: str
    subtotal_price: Decimal
    total_price: Decimal
    gateway_order_id: str
    shipping: dict[str, Any]
    billing_address: dict[str, Any] | None = None
    line_items: list[dict[str, Any]] = field(default_factory=list)


class IdentityProvider(Protocol):
    def resolve(self, credential: str) -> Identity:
        """Return the identity behind ``credential`` or raise ``Unauthenticated``."""
        ...


class PaymentGateway(Protocol):
    key_id: str

    def create_remote_order(
        self, *, amount_minor_units: int, currency: str, receipt: str, metadata: dict[str, str]
    ) -> RemoteOrder:
        ...

    def verify_payment_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        ...


class LedgerStore(Protocol):
    def resolve_catalog(self, product_id: str, variant_id: str | None) -> CatalogEntry | None:
        ...

    def insert_order(self, draft: OrderDraft):
        """Insert the order and its line items in one transaction."""
        ...

    def mark_paid(
        self,
        *,
        order_id: str,
        user_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ):
        """Flip a pending order owned by ``user_id`` to paid; ``None`` when no row matched."""
        ...

    def line_items(self, order_id: str) -> list:
        ...

    def adjust_inventory(self, variant_id: str, quantity_change: int) -> InventoryAdjustment:
        ...

    def get_order(self, order_id: str, user_id: str):
        ...

    def list_orders(self, user_id: str, limit: int, offset: int) -> list:
        ...

    def get_role(self, identity_id: str) -> str:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...


class EventPublisher(Protocol):
    def publish(self, routing_key: str, message: dict) -> None:
        ...
