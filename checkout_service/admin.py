from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session, selectinload

from .errors import Forbidden
from .models import Order, PaymentStatus, ProductVariant

ADMIN_ROLE = "admin"


def require_admin(role: str) -> None:
    if role != ADMIN_ROLE:
        raise Forbidden("Admin access required")


def _date_bounds(stmt, date_from: Optional[datetime], date_to: Optional[datetime]):
    if date_from is not None:
        stmt = stmt.where(Order.created_at >= date_from)
    if date_to is not None:
        stmt = stmt.where(Order.created_at <= date_to)
    return stmt


def list_orders(
    db: Session,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
    search: Optional[str] = None,
    date_from: Optional[datetime] = None,
    date_to: Optional[datetime] = None,
) -> list[Order]:
    """Newest-first order listing for the back office."""
    stmt = select(Order).options(selectinload(Order.line_items))
    if status:
        stmt = stmt.where(Order.order_status == status)
    if search:
        stmt = stmt.where(Order.order_number.icontains(search, autoescape=True))
    stmt = _date_bounds(stmt, date_from, date_to)
    stmt = stmt.order_by(Order.created_at.desc()).limit(limit).offset((page - 1) * limit)
    return list(db.scalars(stmt))


def order_analytics(db: Session, date_from: Optional[datetime] = None, date_to: Optional[datetime] = None) -> dict:
    stmt = _date_bounds(
        select(Order.order_status, Order.payment_status, func.count(), func.sum(Order.total_price)).group_by(
            Order.order_status, Order.payment_status
        ),
        date_from,
        date_to,
    )

    order_count = 0
    paid_count = 0
    revenue = Decimal("0")
    by_status: dict[str, int] = {}
    for order_status, payment_status, count, total in db.execute(stmt):
        order_count += count
        by_status[order_status] = by_status.get(order_status, 0) + count
        if payment_status == PaymentStatus.PAID.value:
            paid_count += count
            revenue += Decimal(total or 0)

    return {
        "order_count": order_count,
        "paid_count": paid_count,
        "revenue": revenue.quantize(Decimal("0.01")),
        "by_status": by_status,
    }


def low_stock_variants(db: Session, threshold: int = 10) -> list[ProductVariant]:
    stmt = (
        select(ProductVariant)
        .where(ProductVariant.inventory_quantity <= threshold)
        .order_by(ProductVariant.inventory_quantity.asc())
    )
    return list(db.scalars(stmt))
