# Overview: Service-layer operations for sales; records completed sales and aggregates units sold.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Sale, SaleLine
from .concurrency import atomic
from .document_service import next_document_number, DOC_SALE
from .inventory_service import (
    get_product_in_branch,
    lock_product,
    _decrease_stock_inner,
    SOURCE_SALE,
)
from .permission_service import require_permission, require_branch_access
from stockroom.time_utils import utcnow, parse_iso_datetime


class SaleValidationError(ValidationError):
    pass


def _parse_occurred_at(value) -> datetime:
    if value is None:
        return utcnow()
    if isinstance(value, datetime):
        return value
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        raise SaleValidationError("Invalid occurred_at format")
    return parsed or utcnow()


def record_sale(ctx, *, branch_id: int, lines: list[dict], occurred_at=None) -> Sale:
    """
    Record a completed sale and take the sold units out of stock.

    lines: [{"product_id": int, "quantity": int, "unit_price_cents": int?}]
    Unit price defaults to the record's retail price.

    Raises:
        SaleValidationError: empty sale, bad quantity, insufficient stock
    """
    require_permission(ctx, "RECORD_SALES")
    require_branch_access(ctx, branch_id)
    if not lines:
        raise SaleValidationError("A sale needs at least one line")

    sold_at = _parse_occurred_at(occurred_at)

    with atomic():
        sale_number = next_document_number(
            business_id=ctx.business_id,
            document_type=DOC_SALE,
            prefix="SALE",
            pad=4,
        )
        sale = Sale(
            business_id=ctx.business_id,
            branch_id=branch_id,
            sale_number=sale_number,
            staff_id=ctx.staff_id,
            occurred_at=sold_at,
        )
        db.session.add(sale)
        db.session.flush()

        total = 0
        for raw in lines:
            try:
                product_id = int(raw["product_id"])
                quantity = int(raw["quantity"])
            except (KeyError, TypeError, ValueError):
                raise SaleValidationError("Each line needs product_id and quantity")
            if quantity <= 0:
                raise SaleValidationError("Quantity must be positive")

            get_product_in_branch(branch_id, product_id)
            product = lock_product(product_id, branch_id)
            unit_price = raw.get("unit_price_cents")
            if unit_price is None:
                unit_price = product.retail_price_cents or 0
            unit_price = int(unit_price)
            if unit_price < 0:
                raise SaleValidationError("unit_price_cents cannot be negative")

            _decrease_stock_inner(
                product,
                quantity,
                source=SOURCE_SALE,
                actor_staff_id=ctx.staff_id,
                reference_type="sale",
                reference_id=sale.id,
                reference_number=sale_number,
            )
            line_total = unit_price * quantity
            total += line_total
            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=product.id,
                quantity=quantity,
                unit_price_cents=unit_price,
                line_total_cents=line_total,
            ))

        sale.total_cents = total

    return sale


def window_start(as_of: datetime, window_days: int) -> datetime:
    return as_of - timedelta(days=window_days)


def units_sold(*, product_id: int, window_days: int, as_of: datetime | None = None) -> int:
    """Units of one branch record sold in (as_of - window, as_of]."""
    as_of = as_of or utcnow()
    total = (
        db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0))
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(
            SaleLine.product_id == product_id,
            Sale.occurred_at > window_start(as_of, window_days),
            Sale.occurred_at <= as_of,
        )
        .scalar()
    )
    return int(total or 0)


def units_sold_by_product(
    *,
    business_id: int,
    branch_ids: list[int],
    window_days: int,
    as_of: datetime | None = None,
) -> dict[int, int]:
    """Units sold per product record across branches, same window semantics."""
    if not branch_ids:
        return {}
    as_of = as_of or utcnow()
    rows = (
        db.session.query(SaleLine.product_id, func.sum(SaleLine.quantity))
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(
            Sale.business_id == business_id,
            Sale.branch_id.in_(branch_ids),
            Sale.occurred_at > window_start(as_of, window_days),
            Sale.occurred_at <= as_of,
        )
        .group_by(SaleLine.product_id)
        .all()
    )
    return {product_id: int(qty or 0) for product_id, qty in rows}
