from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import case, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .errors import Conflict, DownstreamStoreError
from .models import (
    Order,
    OrderLineItem,
    OrderStatus,
    PaymentStatus,
    Product,
    ProductVariant,
    Profile,
    utcnow,
)
from .ports import CatalogEntry, InventoryAdjustment, OrderDraft

logger = logging.getLogger(__name__)


class SqlLedgerStore:
    """Relational storage for orders, line items and inventory counters.

    One instance wraps one request-scoped session. ``insert_order`` commits on
    its own; the confirmation path stages ``mark_paid`` plus the inventory
    adjustments and the caller decides when to ``commit``.
    """

    def __init__(self, db: Session, allow_backorder: bool = False):
        self.db = db
        self.allow_backorder = allow_backorder

    # --- Catalog ---

    def resolve_catalog(self, product_id: str, variant_id: str | None) -> CatalogEntry | None:
        product = self.db.get(Product, product_id)
        if product is None:
            return None

        variant = None
        if variant_id:
            variant = self.db.get(ProductVariant, variant_id)
            if variant is None or variant.product_id != product.id:
                return None

        unit_price = variant.price if variant is not None and variant.price is not None else product.price
        return CatalogEntry(
            product_id=product.id,
            variant_id=variant.id if variant is not None else None,
            product_name=product.name,
            variant_title=variant.title if variant is not None else None,
            sku=variant.sku if variant is not None else None,
            unit_price=Decimal(unit_price),
        )

    # --- Orders ---

    def insert_order(self, draft: OrderDraft) -> Order:
        order = Order(
            user_id=draft.user_id,
            order_number=draft.order_number,
            email=draft.email,
            order_status=OrderStatus.PENDING.value,
            payment_status=PaymentStatus.PENDING.value,
            currency=draft.currency,
            subtotal_price=draft.subtotal_price,
            total_price=draft.total_price,
            billing_address=draft.billing_address,
            gateway_order_id=draft.gateway_order_id,
            **draft.shipping,
        )
        try:
            self.db.add(order)
            self.db.flush()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("Order number collision for %s: %s", draft.order_number, e.orig)
            raise Conflict() from e
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to insert order %s: %s", draft.order_number, e)
            raise DownstreamStoreError("Failed to create order") from e

        try:
            for item in draft.line_items:
                self.db.add(OrderLineItem(order_id=order.id, **item))
            self.db.commit()
        except SQLAlchemyError as e:
            # Line items and the order share the transaction, so neither survives.
            self.db.rollback()
            logger.error("Failed to insert line items for order %s: %s", draft.order_number, e)
            raise DownstreamStoreError("Failed to create order") from e

        self.db.refresh(order)
        return order

    def mark_paid(
        self,
        *,
        order_id: str,
        user_id: str,
        gateway_order_id: str,
        gateway_payment_id: str,
        signature: str,
    ) -> Order | None:
        now = utcnow()
        stmt = (
            update(Order)
            .where(
                Order.id == order_id,
                Order.user_id == user_id,
                Order.payment_status == PaymentStatus.PENDING.value,
                Order.gateway_order_id == gateway_order_id,
            )
            .values(
                payment_status=PaymentStatus.PAID.value,
                order_status=OrderStatus.PROCESSING.value,
                gateway_payment_id=gateway_payment_id,
                gateway_signature=signature,
                updated_at=now,
                paid_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to mark order %s as paid: %s", order_id, e)
            raise DownstreamStoreError("Failed to update order") from e

        if result.rowcount == 0:
            return None
        return self.db.get(Order, order_id, populate_existing=True)

    def line_items(self, order_id: str) -> list[OrderLineItem]:
        stmt = select(OrderLineItem).where(OrderLineItem.order_id == order_id).order_by(OrderLineItem.created_at)
        return list(self.db.scalars(stmt))

    def get_order(self, order_id: str, user_id: str) -> Order | None:
        stmt = (
            select(Order)
            .options(selectinload(Order.line_items))
            .where(Order.id == order_id, Order.user_id == user_id)
        )
        return self.db.scalars(stmt).first()

    def list_orders(self, user_id: str, limit: int, offset: int) -> list[Order]:
        stmt = (
            select(Order)
            .options(selectinload(Order.line_items))
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc())
            .limit(limit)
            .offset(offset)
        )
        return list(self.db.scalars(stmt))

    # --- Inventory ---

    def adjust_inventory(self, variant_id: str, quantity_change: int) -> InventoryAdjustment:
        """Apply a relative change to one variant's stock inside a savepoint.

        Without backorders a decrement larger than the stock on hand empties
        the counter and comes back as ``applied=False`` with reason
        ``insufficient stock`` so the shortfall can be reconciled.
        """
        adjusted = ProductVariant.inventory_quantity + quantity_change
        floored = quantity_change < 0 and not self.allow_backorder

        def _update(*criteria, value=adjusted):
            return (
                update(ProductVariant)
                .where(ProductVariant.id == variant_id, *criteria)
                .values(inventory_quantity=value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

        short = False
        try:
            with self.db.begin_nested():
                if floored:
                    result = self.db.execute(_update(ProductVariant.inventory_quantity >= -quantity_change))
                    if result.rowcount == 0:
                        result = self.db.execute(_update(value=case((adjusted >= 0, adjusted), else_=0)))
                        short = True
                else:
                    result = self.db.execute(_update())
        except SQLAlchemyError as e:
            logger.error("Inventory update failed for variant %s: %s", variant_id, e)
            return InventoryAdjustment(variant_id, quantity_change, applied=False, reason="update failed")

        if result.rowcount == 0:
            logger.error("Inventory update skipped, variant %s not found", variant_id)
            return InventoryAdjustment(variant_id, quantity_change, applied=False, reason="variant not found")
        if short:
            logger.warning("Variant %s ran out of stock taking %s units", variant_id, -quantity_change)
            return InventoryAdjustment(variant_id, quantity_change, applied=False, reason="insufficient stock")
        return InventoryAdjustment(variant_id, quantity_change, applied=True)

    # --- Profiles ---

    def get_role(self, identity_id: str) -> str:
        profile = self.db.get(Profile, identity_id)
        return profile.role if profile is not None and profile.role else "customer"

    # --- Transaction control ---

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Commit failed: %s", e)
            raise DownstreamStoreError("Failed to update order") from e

    def rollback(self) -> None:
        self.db.rollback()
