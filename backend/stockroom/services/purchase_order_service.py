# Overview: Service-layer operations for purchase orders; encapsulates business logic and database work.

"""
Purchase Order Service

LIFECYCLE:
1. Draft: created manually or by converting a supplier request; lines editable
2. Sent: transmitted to the supplier (sent_via records the channels)
3. Approved: supplier accepted; only Approved orders can be received against
4. Delivered: confirmed GRNs cover every ordered quantity (set by the GRN service)
5. Cancelled: from Draft, Sent or Approved

Lines snapshot product SKU, name and the branch's current stock at the time
they are written. A line's product may be a record of another branch of the
same business (ordering an item the branch does not stock yet); receiving it
creates the branch record.
"""

from __future__ import annotations

import logging

from ..extensions import db
from ..errors import NotFoundError, ValidationError, StateError
from ..models import PurchaseOrder, PurchaseOrderLine, Product
from ..models.procurement import COMMUNICATION_METHODS
from .concurrency import atomic
from .document_service import next_document_number, DOC_PURCHASE_ORDER
from .inventory_service import find_product_by_sku
from .ledger_service import append_procurement_event
from .lifecycle_service import advance, PURCHASE_ORDER_LIFECYCLE
from .permission_service import require_permission, require_branch_access, resolve_branch_filter
from .supplier_service import validate_supplier_for_business, SupplierValidationError
from stockroom.time_utils import utcnow, parse_iso_date


logger = logging.getLogger(__name__)

STATUS_DRAFT = "Draft"
STATUS_SENT = "Sent"
STATUS_APPROVED = "Approved"
STATUS_DELIVERED = "Delivered"
STATUS_CANCELLED = "Cancelled"


class PurchaseOrderNotFoundError(NotFoundError):
    """Raised when a purchase order is not found."""
    pass


class PurchaseOrderValidationError(ValidationError):
    """Raised when purchase order data fails validation."""
    pass


class PurchaseOrderStateError(StateError):
    """Raised when an operation is invalid for the current order status."""
    pass


def _parse_expected_date(value):
    try:
        return parse_iso_date(value)
    except ValueError:
        raise PurchaseOrderValidationError("Invalid expected_delivery_date format")


def validate_communication_methods(methods, error_cls=PurchaseOrderValidationError) -> list[str]:
    """Non-empty, known, de-duplicated, order kept."""
    if not methods:
        raise error_cls("At least one communication method is required")
    if isinstance(methods, str):
        methods = [methods]
    cleaned = []
    for method in methods:
        if method not in COMMUNICATION_METHODS:
            raise error_cls(
                f"Unknown communication method '{method}'. Must be one of: {', '.join(COMMUNICATION_METHODS)}"
            )
        if method not in cleaned:
            cleaned.append(method)
    return cleaned


def _branch_stock_for(product: Product, branch_id: int) -> int:
    if product.branch_id == branch_id:
        return product.stock
    local = find_product_by_sku(branch_id, product.sku)
    return local.stock if local else 0


def _build_lines(business_id: int, branch_id: int, items) -> list[PurchaseOrderLine]:
    if not items:
        raise PurchaseOrderValidationError("A purchase order needs at least one line")

    lines = []
    seen = set()
    for item in items:
        try:
            product_id = int(item["product_id"])
            quantity = int(item["requested_quantity"])
        except (KeyError, TypeError, ValueError):
            raise PurchaseOrderValidationError("Each line needs product_id and requested_quantity")
        if quantity <= 0:
            raise PurchaseOrderValidationError("requested_quantity must be positive")
        if product_id in seen:
            raise PurchaseOrderValidationError(f"Product {product_id} appears on more than one line")
        seen.add(product_id)

        product = db.session.query(Product).filter_by(id=product_id, business_id=business_id).first()
        if not product:
            raise PurchaseOrderValidationError(f"Product {product_id} not found")

        unit_cost = item.get("unit_cost_cents", product.cost_price_cents)
        if unit_cost is not None:
            try:
                unit_cost = int(unit_cost)
            except (TypeError, ValueError):
                raise PurchaseOrderValidationError("unit_cost_cents must be a whole number")
            if unit_cost < 0:
                raise PurchaseOrderValidationError("unit_cost_cents cannot be negative")

        lines.append(PurchaseOrderLine(
            product_id=product.id,
            product_sku=product.sku,
            product_name=product.name,
            current_stock=_branch_stock_for(product, branch_id),
            requested_quantity=quantity,
            unit_cost_cents=unit_cost,
            total_cost_cents=(unit_cost * quantity) if unit_cost is not None else None,
        ))
    return lines


def _create_purchase_order_inner(
    ctx,
    *,
    branch_id: int,
    supplier_id: int,
    items,
    expected_delivery_date=None,
    notes: str | None = None,
    source_request_id: int | None = None,
) -> PurchaseOrder:
    """Validate, number and add a Draft order. Flushes, never commits."""
    try:
        validate_supplier_for_business(supplier_id, ctx.business_id)
    except SupplierValidationError as exc:
        raise PurchaseOrderValidationError(str(exc))
    expected = _parse_expected_date(expected_delivery_date)
    lines = _build_lines(ctx.business_id, branch_id, items)

    po_number = next_document_number(
        business_id=ctx.business_id,
        document_type=DOC_PURCHASE_ORDER,
        prefix="PO",
    )
    po = PurchaseOrder(
        business_id=ctx.business_id,
        branch_id=branch_id,
        supplier_id=supplier_id,
        po_number=po_number,
        status=STATUS_DRAFT,
        expected_delivery_date=expected,
        notes=notes,
        source_request_id=source_request_id,
        created_by_staff_id=ctx.staff_id,
    )
    po.lines = lines
    db.session.add(po)
    db.session.flush()

    append_procurement_event(
        business_id=ctx.business_id,
        branch_id=branch_id,
        event_type="purchase_order.created",
        entity_type="purchase_order",
        entity_id=po.id,
        document_number=po.po_number,
        actor_staff_id=ctx.staff_id,
        note=f"From supplier request {source_request_id}" if source_request_id else None,
    )
    return po


def create_purchase_order(
    ctx,
    *,
    branch_id: int,
    supplier_id: int,
    items,
    expected_delivery_date=None,
    notes: str | None = None,
) -> PurchaseOrder:
    """
    Create a Draft purchase order.

    items: [{"product_id": int, "requested_quantity": int, "unit_cost_cents": int?}]
    unit_cost_cents defaults to the product's cost price.

    Raises:
        PurchaseOrderValidationError: no lines, bad quantities, unknown product/supplier
    """
    require_permission(ctx, "MANAGE_PURCHASE_ORDERS")
    require_branch_access(ctx, branch_id)
    with atomic():
        po = _create_purchase_order_inner(
            ctx,
            branch_id=branch_id,
            supplier_id=supplier_id,
            items=items,
            expected_delivery_date=expected_delivery_date,
            notes=notes,
        )
    logger.info("Purchase order %s created by staff %s", po.po_number, ctx.staff_id)
    return po


def get_purchase_order(ctx, po_id: int) -> PurchaseOrder:
    """
    Raises:
        PurchaseOrderNotFoundError: unknown id or order of another business
        PermissionDeniedError: order's branch outside the actor's scope
    """
    po = db.session.query(PurchaseOrder).filter_by(id=po_id, business_id=ctx.business_id).first()
    if not po:
        raise PurchaseOrderNotFoundError(f"Purchase order {po_id} not found")
    require_branch_access(ctx, po.branch_id)
    return po


def update_purchase_order(
    ctx,
    po_id: int,
    *,
    items=None,
    notes: str | None = None,
    expected_delivery_date=None,
) -> PurchaseOrder:
    """
    Edit a Draft order. Passing items replaces every line.
    """
    require_permission(ctx, "MANAGE_PURCHASE_ORDERS")
    po = get_purchase_order(ctx, po_id)
    if po.status != STATUS_DRAFT:
        raise PurchaseOrderStateError(f"Cannot edit purchase order in {po.status} status")

    with atomic():
        if items is not None:
            new_lines = _build_lines(ctx.business_id, po.branch_id, items)
            po.lines.clear()
            db.session.flush()
            po.lines.extend(new_lines)
        if notes is not None:
            po.notes = notes
        if expected_delivery_date is not None:
            po.expected_delivery_date = _parse_expected_date(expected_delivery_date)
        db.session.flush()
        append_procurement_event(
            business_id=po.business_id,
            branch_id=po.branch_id,
            event_type="purchase_order.updated",
            entity_type="purchase_order",
            entity_id=po.id,
            document_number=po.po_number,
            actor_staff_id=ctx.staff_id,
        )
    return po


def send_purchase_order(ctx, po_id: int, *, methods) -> PurchaseOrder:
    """Draft -> Sent, recording the channels used."""
    require_permission(ctx, "MANAGE_PURCHASE_ORDERS")
    po = get_purchase_order(ctx, po_id)
    methods = validate_communication_methods(methods)
    with atomic():
        advance(
            po,
            PURCHASE_ORDER_LIFECYCLE,
            STATUS_SENT,
            error_cls=PurchaseOrderStateError,
            sent_at=utcnow(),
            sent_via=methods,
        )
        append_procurement_event(
            business_id=po.business_id,
            branch_id=po.branch_id,
            event_type="purchase_order.sent",
            entity_type="purchase_order",
            entity_id=po.id,
            document_number=po.po_number,
            actor_staff_id=ctx.staff_id,
            note=", ".join(methods),
        )
    return po


def approve_purchase_order(ctx, po_id: int) -> PurchaseOrder:
    """Sent -> Approved. Approved orders become available for receiving."""
    require_permission(ctx, "APPROVE_PURCHASE_ORDERS")
    po = get_purchase_order(ctx, po_id)
    with atomic():
        advance(
            po,
            PURCHASE_ORDER_LIFECYCLE,
            STATUS_APPROVED,
            error_cls=PurchaseOrderStateError,
            approved_at=utcnow(),
            approved_by_staff_id=ctx.staff_id,
        )
        append_procurement_event(
            business_id=po.business_id,
            branch_id=po.branch_id,
            event_type="purchase_order.approved",
            entity_type="purchase_order",
            entity_id=po.id,
            document_number=po.po_number,
            actor_staff_id=ctx.staff_id,
        )
    return po


def cancel_purchase_order(ctx, po_id: int, *, reason: str | None = None) -> PurchaseOrder:
    require_permission(ctx, "MANAGE_PURCHASE_ORDERS")
    po = get_purchase_order(ctx, po_id)
    with atomic():
        advance(
            po,
            PURCHASE_ORDER_LIFECYCLE,
            STATUS_CANCELLED,
            error_cls=PurchaseOrderStateError,
            cancelled_at=utcnow(),
            cancelled_reason=(reason or "").strip()[:255] or None,
        )
        append_procurement_event(
            business_id=po.business_id,
            branch_id=po.branch_id,
            event_type="purchase_order.cancelled",
            entity_type="purchase_order",
            entity_id=po.id,
            document_number=po.po_number,
            actor_staff_id=ctx.staff_id,
            note=reason,
        )
    return po


def list_purchase_orders(
    ctx,
    *,
    branch_id: int | None = None,
    supplier_id: int | None = None,
    status: str | None = None,
) -> list[PurchaseOrder]:
    branch_ids = resolve_branch_filter(ctx, branch_id)
    if not branch_ids:
        return []
    query = db.session.query(PurchaseOrder).filter(
        PurchaseOrder.business_id == ctx.business_id,
        PurchaseOrder.branch_id.in_(branch_ids),
    )
    if supplier_id:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    if status:
        PURCHASE_ORDER_LIFECYCLE.validate_status(status)
        query = query.filter(PurchaseOrder.status == status)
    return query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).all()


def list_available_for_grn(ctx, *, branch_id: int | None = None) -> list[PurchaseOrder]:
    """Orders that can be received against (status Approved)."""
    return list_purchase_orders(ctx, branch_id=branch_id, status=STATUS_APPROVED)
