# Overview: Service-layer operations for supplier requests (low-stock alerts to suppliers).

"""
Supplier Request Service

A supplier request records that the branch asked a supplier to restock one
product. It is dispatched through the notification collaborator on creation
and keeps the outcome (status Sent / Failed, sent_via).

CONVERSION (one-way):
    Requested -> Converted   creates exactly one Draft purchase order
    Requested -> Cancelled

Only one Requested request may exist per product and branch. Deleting a
request never touches a purchase order created from it.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFoundError, ValidationError, StateError, PermissionDeniedError
from ..models import SupplierRequest, Product, Business
from .concurrency import atomic
from .ledger_service import append_procurement_event
from .lifecycle_service import advance, SUPPLIER_REQUEST_LIFECYCLE
from .permission_service import require_permission, require_branch_access, resolve_branch_filter
from .purchase_order_service import _create_purchase_order_inner, validate_communication_methods
from .supplier_service import validate_supplier_for_business, SupplierValidationError
from . import notification_service
from stockroom.time_utils import utcnow


logger = logging.getLogger(__name__)

CONVERSION_REQUESTED = "Requested"
CONVERSION_CONVERTED = "Converted"
CONVERSION_CANCELLED = "Cancelled"

DISPATCH_SENT = "Sent"
DISPATCH_FAILED = "Failed"


class SupplierRequestNotFoundError(NotFoundError):
    pass


class SupplierRequestValidationError(ValidationError):
    pass


class SupplierRequestStateError(StateError):
    pass


class SupplierRequestPermissionError(PermissionDeniedError):
    pass


def get_active_request(branch_id: int, product_id: int) -> SupplierRequest | None:
    return db.session.query(SupplierRequest).filter_by(
        branch_id=branch_id,
        product_id=product_id,
        conversion_status=CONVERSION_REQUESTED,
    ).first()


def create_supplier_request(
    ctx,
    *,
    branch_id: int,
    product_id: int,
    supplier_id: int,
    requested_quantity: int,
    communication_methods,
    custom_message: str | None = None,
) -> SupplierRequest:
    """
    Record and dispatch a restock request.

    Raises:
        SupplierRequestValidationError: quantity <= 0, no/unknown methods,
            product not in branch, inactive supplier
        SupplierRequestStateError: an open request already exists for the
            product at this branch
    """
    require_permission(ctx, "CREATE_SUPPLIER_REQUEST")
    branch = require_branch_access(ctx, branch_id)

    try:
        requested_quantity = int(requested_quantity)
    except (TypeError, ValueError):
        raise SupplierRequestValidationError("requested_quantity must be a whole number")
    if requested_quantity <= 0:
        raise SupplierRequestValidationError("requested_quantity must be positive")
    methods = validate_communication_methods(communication_methods, SupplierRequestValidationError)

    product = db.session.query(Product).filter_by(id=product_id, branch_id=branch_id).first()
    if not product or product.business_id != ctx.business_id:
        raise SupplierRequestValidationError(f"Product {product_id} not found in branch {branch_id}")
    try:
        supplier = validate_supplier_for_business(supplier_id, ctx.business_id)
    except SupplierValidationError as exc:
        raise SupplierRequestValidationError(str(exc))

    if get_active_request(branch_id, product_id):
        raise SupplierRequestStateError(
            f"An open supplier request already exists for {product.name} at this branch"
        )

    request = SupplierRequest(
        business_id=ctx.business_id,
        branch_id=branch_id,
        product_id=product.id,
        supplier_id=supplier.id,
        current_stock=product.stock,
        requested_quantity=requested_quantity,
        communication_methods=methods,
        custom_message=custom_message,
        status=DISPATCH_FAILED,
        conversion_status=CONVERSION_REQUESTED,
        created_by_staff_id=ctx.staff_id,
    )
    db.session.add(request)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise SupplierRequestStateError(
            f"An open supplier request already exists for {product.name} at this branch"
        )

    business = db.session.get(Business, ctx.business_id)
    subject, message = notification_service.build_reorder_message(
        business_name=business.name if business else "",
        branch_name=branch.name,
        product_name=product.name,
        sku=product.sku,
        current_stock=product.stock,
        requested_quantity=requested_quantity,
        custom_message=custom_message,
    )
    delivered = notification_service.dispatch(supplier, methods, subject=subject, message=message)
    request.status = DISPATCH_SENT if delivered else DISPATCH_FAILED
    request.sent_via = delivered

    append_procurement_event(
        business_id=ctx.business_id,
        branch_id=branch_id,
        event_type="supplier_request.created",
        entity_type="supplier_request",
        entity_id=request.id,
        actor_staff_id=ctx.staff_id,
        note=f"{request.status}: {', '.join(delivered) or 'no channel delivered'}",
    )
    db.session.commit()
    logger.info(
        "Supplier request %s for product %s at branch %s: %s",
        request.id, product.id, branch_id, request.status,
    )
    return request


def get_supplier_request(ctx, request_id: int) -> SupplierRequest:
    request = db.session.query(SupplierRequest).filter_by(id=request_id, business_id=ctx.business_id).first()
    if not request:
        raise SupplierRequestNotFoundError(f"Supplier request {request_id} not found")
    require_branch_access(ctx, request.branch_id)
    return request


def list_supplier_requests(
    ctx,
    *,
    branch_id: int | None = None,
    product_id: int | None = None,
    supplier_id: int | None = None,
    conversion_status: str | None = None,
    limit: int = 100,
) -> list[SupplierRequest]:
    branch_ids = resolve_branch_filter(ctx, branch_id)
    if not branch_ids:
        return []
    query = db.session.query(SupplierRequest).filter(
        SupplierRequest.business_id == ctx.business_id,
        SupplierRequest.branch_id.in_(branch_ids),
    )
    if product_id:
        query = query.filter(SupplierRequest.product_id == product_id)
    if supplier_id:
        query = query.filter(SupplierRequest.supplier_id == supplier_id)
    if conversion_status:
        SUPPLIER_REQUEST_LIFECYCLE.validate_status(conversion_status)
        query = query.filter(SupplierRequest.conversion_status == conversion_status)
    limit = max(1, min(limit, 500))
    return query.order_by(SupplierRequest.created_at.desc(), SupplierRequest.id.desc()).limit(limit).all()


def convert_to_purchase_order(
    ctx,
    request_id: int,
    *,
    expected_delivery_date=None,
    notes: str | None = None,
):
    """
    Convert an open request into a Draft purchase order.

    The order gets one line for the requested product and quantity, priced
    at the product's cost price. The request and the order are written in
    one transaction; a request that is no longer Requested (already
    converted or cancelled, possibly by a concurrent caller) raises
    SupplierRequestStateError and no order is created.

    Returns:
        (SupplierRequest, PurchaseOrder)
    """
    require_permission(ctx, "CONVERT_SUPPLIER_REQUEST")
    request = get_supplier_request(ctx, request_id)
    if request.conversion_status != CONVERSION_REQUESTED:
        raise SupplierRequestStateError(
            f"Supplier request {request_id} is already {request.conversion_status}"
        )

    with atomic():
        po = _create_purchase_order_inner(
            ctx,
            branch_id=request.branch_id,
            supplier_id=request.supplier_id,
            items=[{
                "product_id": request.product_id,
                "requested_quantity": request.requested_quantity,
            }],
            expected_delivery_date=expected_delivery_date,
            notes=notes,
            source_request_id=request.id,
        )
        advance(
            request,
            SUPPLIER_REQUEST_LIFECYCLE,
            CONVERSION_CONVERTED,
            error_cls=SupplierRequestStateError,
            converted_to_po_id=po.id,
            converted_at=utcnow(),
            converted_by_staff_id=ctx.staff_id,
        )
        append_procurement_event(
            business_id=ctx.business_id,
            branch_id=request.branch_id,
            event_type="supplier_request.converted",
            entity_type="supplier_request",
            entity_id=request.id,
            document_number=po.po_number,
            actor_staff_id=ctx.staff_id,
        )

    logger.info("Supplier request %s converted to %s", request.id, po.po_number)
    return request, po


def cancel_supplier_request(ctx, request_id: int, *, reason: str | None = None) -> SupplierRequest:
    require_permission(ctx, "CANCEL_SUPPLIER_REQUEST")
    request = get_supplier_request(ctx, request_id)
    with atomic():
        advance(
            request,
            SUPPLIER_REQUEST_LIFECYCLE,
            CONVERSION_CANCELLED,
            error_cls=SupplierRequestStateError,
            cancelled_at=utcnow(),
            cancelled_reason=(reason or "").strip()[:255] or None,
        )
        append_procurement_event(
            business_id=ctx.business_id,
            branch_id=request.branch_id,
            event_type="supplier_request.cancelled",
            entity_type="supplier_request",
            entity_id=request.id,
            actor_staff_id=ctx.staff_id,
            note=reason,
        )
    return request


def delete_supplier_request(ctx, request_id: int) -> None:
    """
    Hard-delete a request. Allowed for its creator or a role holding
    DELETE_ANY_SUPPLIER_REQUEST. A purchase order converted from it stays.
    """
    request = get_supplier_request(ctx, request_id)
    if request.created_by_staff_id != ctx.staff_id and not ctx.can("DELETE_ANY_SUPPLIER_REQUEST"):
        raise SupplierRequestPermissionError("Only the creator or the business owner can delete this request")

    with atomic():
        append_procurement_event(
            business_id=ctx.business_id,
            branch_id=request.branch_id,
            event_type="supplier_request.deleted",
            entity_type="supplier_request",
            entity_id=request.id,
            actor_staff_id=ctx.staff_id,
            note=request.conversion_status,
        )
        db.session.delete(request)
