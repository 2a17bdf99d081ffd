# Overview: Service-layer operations for goods received notes; confirmation adds received stock to the branch.

"""
Goods Received Note Service

WHY: Stock from suppliers enters a branch only through a confirmed GRN, and
only for quantities actually delivered.

LIFECYCLE:
1. Draft: created against an Approved purchase order; received quantities editable
2. Confirmed: stock incremented once per line; note and lines immutable

RULES:
- Entered quantities are clamped into [0, ordered] rather than rejected.
- A note needs at least one unit received.
- Confirmation is all-or-nothing: status change, stock increments, stock
  movements and ledger events commit together or not at all.
- Confirming twice is a state error and never adds stock again.
- Confirmation re-checks the order: it must still be Approved, and no line
  may exceed what earlier confirmed notes left outstanding.
- When confirmed notes cover every ordered quantity, the purchase order
  moves Approved -> Delivered.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError, StateError
from ..models import GoodsReceivedNote, GoodsReceivedLine, PurchaseOrder
from ..models.procurement import calculate_delivery_status, DELIVERY_FULL, DELIVERY_PARTIAL
from .concurrency import atomic, lock_for_update
from .document_service import next_document_number, DOC_GOODS_RECEIVED
from .inventory_service import _receive_into_branch_inner
from .ledger_service import append_procurement_event
from .lifecycle_service import advance, GOODS_RECEIVED_LIFECYCLE, PURCHASE_ORDER_LIFECYCLE
from .permission_service import require_permission, require_branch_access, resolve_branch_filter
from .purchase_order_service import STATUS_APPROVED as PO_APPROVED, STATUS_DELIVERED as PO_DELIVERED
from stockroom.time_utils import utcnow


logger = logging.getLogger(__name__)

STATUS_DRAFT = "Draft"
STATUS_CONFIRMED = "Confirmed"

__all__ = [
    "DELIVERY_FULL",
    "DELIVERY_PARTIAL",
    "calculate_delivery_status",
]


class GoodsReceivedNotFoundError(NotFoundError):
    pass


class GoodsReceivedValidationError(ValidationError):
    pass


class GoodsReceivedStateError(StateError):
    pass


@dataclass
class GRNConfirmationResult:
    grn: GoodsReceivedNote
    products_updated: list[int] = field(default_factory=list)
    products_created: list[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "grn": self.grn.to_dict(),
            "products_updated": list(self.products_updated),
            "products_created": list(self.products_created),
        }


def clamp_received_quantity(ordered: int, entered) -> int:
    """Coerce an entered quantity into [0, ordered]."""
    if entered is None or entered == "":
        return 0
    try:
        value = int(float(entered))
    except (TypeError, ValueError):
        raise GoodsReceivedValidationError(f"Invalid received quantity: {entered!r}")
    return max(0, min(int(ordered), value))


def _normalize_received(received) -> dict[int, dict]:
    """
    Accepts {product_id: quantity} or
    [{"product_id": ..., "received_quantity": ..., "notes": ...}].
    """
    if received is None:
        return {}
    normalized = {}
    if isinstance(received, dict):
        for key, qty in received.items():
            try:
                normalized[int(key)] = {"quantity": qty, "notes": None}
            except (TypeError, ValueError):
                raise GoodsReceivedValidationError(f"Invalid product id: {key!r}")
        return normalized
    for item in received:
        try:
            product_id = int(item["product_id"])
        except (KeyError, TypeError, ValueError):
            raise GoodsReceivedValidationError("Each received line needs a product_id")
        normalized[product_id] = {
            "quantity": item.get("received_quantity"),
            "notes": item.get("notes"),
        }
    return normalized


def get_goods_received_note(ctx, grn_id: int) -> GoodsReceivedNote:
    grn = db.session.query(GoodsReceivedNote).filter_by(id=grn_id, business_id=ctx.business_id).first()
    if not grn:
        raise GoodsReceivedNotFoundError(f"Goods received note {grn_id} not found")
    require_branch_access(ctx, grn.branch_id)
    return grn


def create_goods_received_note(
    ctx,
    *,
    purchase_order_id: int,
    received,
    notes: str | None = None,
) -> GoodsReceivedNote:
    """
    Draft a GRN with one line per purchase order line.

    Lines missing from `received` count as 0 received.

    Raises:
        GoodsReceivedStateError: order is not Approved
        GoodsReceivedValidationError: nothing received, unknown product
    """
    require_permission(ctx, "RECEIVE_GOODS")
    po = db.session.query(PurchaseOrder).filter_by(id=purchase_order_id, business_id=ctx.business_id).first()
    if not po:
        raise GoodsReceivedNotFoundError(f"Purchase order {purchase_order_id} not found")
    require_branch_access(ctx, po.branch_id)
    if po.status != PO_APPROVED:
        raise GoodsReceivedStateError(
            f"Purchase order {po.po_number} is {po.status}; only Approved orders can be received"
        )

    entered = _normalize_received(received)
    ordered_ids = {line.product_id for line in po.lines}
    unknown = set(entered) - ordered_ids
    if unknown:
        raise GoodsReceivedValidationError(
            f"Products not on purchase order {po.po_number}: {', '.join(str(p) for p in sorted(unknown))}"
        )

    lines = []
    for po_line in po.lines:
        entry = entered.get(po_line.product_id, {})
        lines.append(GoodsReceivedLine(
            product_id=po_line.product_id,
            product_sku=po_line.product_sku,
            product_name=po_line.product_name,
            ordered_quantity=po_line.requested_quantity,
            received_quantity=clamp_received_quantity(po_line.requested_quantity, entry.get("quantity")),
            notes=entry.get("notes"),
        ))
    if sum(line.received_quantity for line in lines) <= 0:
        raise GoodsReceivedValidationError("At least one product must have a received quantity")

    with atomic():
        grn_number = next_document_number(
            business_id=ctx.business_id,
            document_type=DOC_GOODS_RECEIVED,
            prefix="GRN",
        )
        grn = GoodsReceivedNote(
            business_id=ctx.business_id,
            branch_id=po.branch_id,
            purchase_order_id=po.id,
            supplier_id=po.supplier_id,
            grn_number=grn_number,
            status=STATUS_DRAFT,
            notes=notes,
            received_by_staff_id=ctx.staff_id,
        )
        grn.lines = lines
        db.session.add(grn)
        db.session.flush()
        append_procurement_event(
            business_id=ctx.business_id,
            branch_id=grn.branch_id,
            event_type="goods_received.created",
            entity_type="goods_received_note",
            entity_id=grn.id,
            document_number=grn.grn_number,
            actor_staff_id=ctx.staff_id,
            note=f"{po.po_number} {grn.delivery_status}",
        )
    return grn


def update_goods_received_lines(ctx, grn_id: int, received, *, notes: str | None = None) -> GoodsReceivedNote:
    """Re-enter received quantities on a Draft note (same clamping rules)."""
    require_permission(ctx, "RECEIVE_GOODS")
    grn = get_goods_received_note(ctx, grn_id)
    if grn.status != STATUS_DRAFT:
        raise GoodsReceivedStateError(f"Cannot edit goods received note in {grn.status} status")

    entered = _normalize_received(received)
    by_product = {line.product_id: line for line in grn.lines}
    unknown = set(entered) - set(by_product)
    if unknown:
        raise GoodsReceivedValidationError(
            f"Products not on {grn.grn_number}: {', '.join(str(p) for p in sorted(unknown))}"
        )

    new_quantities = {
        product_id: clamp_received_quantity(by_product[product_id].ordered_quantity, entry.get("quantity"))
        for product_id, entry in entered.items()
    }
    total = sum(new_quantities.get(pid, line.received_quantity) for pid, line in by_product.items())
    if total <= 0:
        raise GoodsReceivedValidationError("At least one product must have a received quantity")

    with atomic():
        for product_id, quantity in new_quantities.items():
            line = by_product[product_id]
            line.received_quantity = quantity
            if entered[product_id].get("notes") is not None:
                line.notes = entered[product_id]["notes"]
        if notes is not None:
            grn.notes = notes
        db.session.flush()
        append_procurement_event(
            business_id=grn.business_id,
            branch_id=grn.branch_id,
            event_type="goods_received.updated",
            entity_type="goods_received_note",
            entity_id=grn.id,
            document_number=grn.grn_number,
            actor_staff_id=ctx.staff_id,
            note=grn.delivery_status,
        )
    return grn


def confirmed_quantities_for_order(purchase_order_id: int) -> dict[int, int]:
    """Units received per product across Confirmed notes of an order."""
    rows = (
        db.session.query(GoodsReceivedLine.product_id, func.sum(GoodsReceivedLine.received_quantity))
        .join(GoodsReceivedNote, GoodsReceivedNote.id == GoodsReceivedLine.grn_id)
        .filter(
            GoodsReceivedNote.purchase_order_id == purchase_order_id,
            GoodsReceivedNote.status == STATUS_CONFIRMED,
        )
        .group_by(GoodsReceivedLine.product_id)
        .all()
    )
    return {product_id: int(qty or 0) for product_id, qty in rows}


def _mark_order_delivered_if_complete(po: PurchaseOrder, actor_staff_id: int) -> bool:
    if po.status != PO_APPROVED:
        return False
    received = confirmed_quantities_for_order(po.id)
    if any(received.get(line.product_id, 0) < line.requested_quantity for line in po.lines):
        return False
    advance(po, PURCHASE_ORDER_LIFECYCLE, PO_DELIVERED, delivered_at=utcnow())
    append_procurement_event(
        business_id=po.business_id,
        branch_id=po.branch_id,
        event_type="purchase_order.delivered",
        entity_type="purchase_order",
        entity_id=po.id,
        document_number=po.po_number,
        actor_staff_id=actor_staff_id,
    )
    return True


def confirm_goods_received_note(ctx, grn_id: int) -> GRNConfirmationResult:
    """
    Confirm a Draft note and add every received quantity to branch stock.

    Raises:
        GoodsReceivedStateError: note is not Draft (including a second confirm,
            or a concurrent confirm that won the race)
        GoodsReceivedStateError: purchase order is no longer Approved
            (cancelled, or already delivered by another note)
        GoodsReceivedValidationError: nothing received, or a line exceeds what
            earlier confirmed notes left outstanding on the order
    """
    require_permission(ctx, "CONFIRM_GOODS_RECEIVED")
    grn = get_goods_received_note(ctx, grn_id)
    if grn.status != STATUS_DRAFT:
        raise GoodsReceivedStateError(f"Goods received note {grn.grn_number} is already {grn.status}")
    if grn.total_received_quantity <= 0:
        raise GoodsReceivedValidationError("At least one product must have a received quantity")

    result = GRNConfirmationResult(grn=grn)
    with atomic():
        po = lock_for_update(
            db.session.query(PurchaseOrder).filter_by(id=grn.purchase_order_id)
        ).populate_existing().one()
        if po.status != PO_APPROVED:
            raise GoodsReceivedStateError(
                f"Purchase order {po.po_number} is {po.status}; only Approved orders can be received"
            )
        outstanding = {}
        for po_line in po.lines:
            outstanding[po_line.product_id] = outstanding.get(po_line.product_id, 0) + po_line.requested_quantity
        for product_id, qty in confirmed_quantities_for_order(po.id).items():
            outstanding[product_id] = outstanding.get(product_id, 0) - qty
        for line in grn.lines:
            remaining = max(0, outstanding.get(line.product_id, 0))
            if line.received_quantity > remaining:
                raise GoodsReceivedValidationError(
                    f"{line.product_name}: {line.received_quantity} received but only "
                    f"{remaining} still outstanding on {po.po_number}"
                )

        advance(
            grn,
            GOODS_RECEIVED_LIFECYCLE,
            STATUS_CONFIRMED,
            error_cls=GoodsReceivedStateError,
            confirmed_at=utcnow(),
            confirmed_by_staff_id=ctx.staff_id,
        )

        for line in grn.lines:
            if line.received_quantity <= 0:
                continue
            product, created = _receive_into_branch_inner(
                business_id=grn.business_id,
                branch_id=grn.branch_id,
                source_product_id=line.product_id,
                sku=line.product_sku,
                name=line.product_name,
                quantity=line.received_quantity,
                actor_staff_id=ctx.staff_id,
                reference_type="goods_received_note",
                reference_id=grn.id,
                reference_number=grn.grn_number,
            )
            (result.products_created if created else result.products_updated).append(product.id)

        append_procurement_event(
            business_id=grn.business_id,
            branch_id=grn.branch_id,
            event_type="goods_received.confirmed",
            entity_type="goods_received_note",
            entity_id=grn.id,
            document_number=grn.grn_number,
            actor_staff_id=ctx.staff_id,
            note=f"{len(result.products_updated)} updated, {len(result.products_created)} created",
        )
        db.session.flush()
        _mark_order_delivered_if_complete(po, ctx.staff_id)

    logger.info(
        "GRN %s confirmed: %s products updated, %s created",
        grn.grn_number, len(result.products_updated), len(result.products_created),
    )
    return result


def list_goods_received_notes(
    ctx,
    *,
    branch_id: int | None = None,
    purchase_order_id: int | None = None,
    status: str | None = None,
) -> list[GoodsReceivedNote]:
    branch_ids = resolve_branch_filter(ctx, branch_id)
    if not branch_ids:
        return []
    query = db.session.query(GoodsReceivedNote).filter(
        GoodsReceivedNote.business_id == ctx.business_id,
        GoodsReceivedNote.branch_id.in_(branch_ids),
    )
    if purchase_order_id:
        query = query.filter(GoodsReceivedNote.purchase_order_id == purchase_order_id)
    if status:
        GOODS_RECEIVED_LIFECYCLE.validate_status(status)
        query = query.filter(GoodsReceivedNote.status == status)
    return query.order_by(GoodsReceivedNote.created_at.desc(), GoodsReceivedNote.id.desc()).all()
