# Overview: Service-layer operations for supplier invoices; approval books the procurement expense.

"""
Supplier Invoice Service

LIFECYCLE: Draft -> Approved -> Paid (one-way)

- An invoice is raised against a Confirmed GRN; one invoice per GRN.
- Lines and tax are editable while Draft; subtotal and total are recomputed
  on every edit (total = subtotal + tax).
- Approval writes exactly one "Inventory Procurement" expense equal to the
  total, in the same transaction as the status change.
- Outstanding payables = sum of Approved (unpaid) invoice totals.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import NotFoundError, ValidationError, StateError, CollaboratorError
from ..models import SupplierInvoice, SupplierInvoiceLine, GoodsReceivedNote
from .concurrency import atomic
from .expense_service import (
    _create_system_expense_inner,
    ExpenseError,
    CATEGORY_INVENTORY_PROCUREMENT,
    SOURCE_SUPPLIER_INVOICE,
)
from .ledger_service import append_procurement_event
from .lifecycle_service import advance, SUPPLIER_INVOICE_LIFECYCLE
from .permission_service import require_permission, require_branch_access, resolve_branch_filter
from stockroom.time_utils import utcnow, parse_iso_date


logger = logging.getLogger(__name__)

STATUS_DRAFT = "Draft"
STATUS_APPROVED = "Approved"
STATUS_PAID = "Paid"

GRN_CONFIRMED = "Confirmed"


class SupplierInvoiceNotFoundError(NotFoundError):
    pass


class SupplierInvoiceValidationError(ValidationError):
    pass


class SupplierInvoiceStateError(StateError):
    pass


class SupplierInvoiceCollaboratorError(CollaboratorError):
    pass


def _as_cents(value, field_name: str) -> int | None:
    if value is None or value == "":
        return None
    try:
        cents = int(value)
    except (TypeError, ValueError):
        raise SupplierInvoiceValidationError(f"{field_name} must be a whole number of cents")
    if cents < 0:
        raise SupplierInvoiceValidationError(f"{field_name} cannot be negative")
    return cents


def price_invoice_line(quantity: int, unit_price_cents=None, line_total_cents=None) -> tuple[int, int]:
    """
    Return (unit_price_cents, line_total_cents) for a line.

    When unit price is given the total is derived from it; otherwise the
    unit price is derived from the total, rounded half up. With neither,
    the line is priced at 0.
    """
    quantity = int(quantity)
    unit = _as_cents(unit_price_cents, "unit_price_cents")
    total = _as_cents(line_total_cents, "line_total_cents")
    if unit is not None:
        return unit, unit * quantity
    if total is not None:
        if quantity <= 0:
            return 0, total
        return (total + quantity // 2) // quantity, total
    return 0, 0


def calculate_invoice_totals(line_totals, tax_cents=None) -> tuple[int, int]:
    """(subtotal_cents, total_cents); missing tax counts as 0."""
    subtotal = sum(int(t) for t in line_totals)
    return subtotal, subtotal + int(tax_cents or 0)


def _recompute_totals(invoice: SupplierInvoice) -> None:
    invoice.subtotal_cents, invoice.total_cents = calculate_invoice_totals(
        (line.line_total_cents for line in invoice.lines),
        invoice.tax_cents,
    )


def _parse_required_date(value, field_name: str):
    if value is None or value == "":
        raise SupplierInvoiceValidationError(f"{field_name} is required")
    try:
        return parse_iso_date(value)
    except ValueError:
        raise SupplierInvoiceValidationError(f"Invalid {field_name} format")


def _default_unit_costs(grn: GoodsReceivedNote) -> dict[int, int]:
    po = grn.purchase_order
    if not po:
        return {}
    return {line.product_id: line.unit_cost_cents or 0 for line in po.lines}


def _build_invoice_lines(grn: GoodsReceivedNote, items) -> list[SupplierInvoiceLine]:
    received = {line.product_id: line for line in grn.lines if line.received_quantity > 0}
    if items is None:
        costs = _default_unit_costs(grn)
        items = [
            {"product_id": product_id, "unit_price_cents": costs.get(product_id, 0)}
            for product_id in received
        ]

    lines = []
    seen = set()
    for item in items:
        try:
            product_id = int(item["product_id"])
        except (KeyError, TypeError, ValueError):
            raise SupplierInvoiceValidationError("Each invoice line needs a product_id")
        if product_id in seen:
            raise SupplierInvoiceValidationError(f"Product {product_id} appears on more than one line")
        seen.add(product_id)
        grn_line = received.get(product_id)
        if grn_line is None:
            raise SupplierInvoiceValidationError(
                f"Product {product_id} was not received on {grn.grn_number}"
            )

        quantity = item.get("quantity", grn_line.received_quantity)
        try:
            quantity = int(quantity)
        except (TypeError, ValueError):
            raise SupplierInvoiceValidationError("quantity must be a whole number")
        if quantity < 0:
            raise SupplierInvoiceValidationError("quantity cannot be negative")

        unit, total = price_invoice_line(
            quantity,
            item.get("unit_price_cents"),
            item.get("line_total_cents"),
        )
        lines.append(SupplierInvoiceLine(
            product_id=product_id,
            product_sku=grn_line.product_sku,
            product_name=grn_line.product_name,
            quantity=quantity,
            unit_price_cents=unit,
            line_total_cents=total,
        ))
    if not lines:
        raise SupplierInvoiceValidationError("An invoice needs at least one line")
    return lines


def get_supplier_invoice(ctx, invoice_id: int) -> SupplierInvoice:
    invoice = db.session.query(SupplierInvoice).filter_by(id=invoice_id, business_id=ctx.business_id).first()
    if not invoice:
        raise SupplierInvoiceNotFoundError(f"Supplier invoice {invoice_id} not found")
    require_branch_access(ctx, invoice.branch_id)
    return invoice


def get_invoice_for_grn(grn_id: int) -> SupplierInvoice | None:
    return db.session.query(SupplierInvoice).filter_by(grn_id=grn_id).first()


def create_supplier_invoice(
    ctx,
    *,
    grn_id: int,
    invoice_number: str,
    invoice_date,
    due_date,
    items=None,
    tax_cents=None,
    notes: str | None = None,
) -> SupplierInvoice:
    """
    Draft an invoice for a Confirmed GRN.

    items: [{"product_id": int, "unit_price_cents": int?, "line_total_cents": int?, "quantity": int?}]
    Quantity defaults to the received quantity; omitted items mean one line
    per received product priced at the order's unit cost.

    Raises:
        SupplierInvoiceStateError: GRN not Confirmed, or already invoiced
        SupplierInvoiceValidationError: blank number, bad dates, negative
            amounts, total <= 0
    """
    require_permission(ctx, "MANAGE_SUPPLIER_INVOICES")
    grn = db.session.query(GoodsReceivedNote).filter_by(id=grn_id, business_id=ctx.business_id).first()
    if not grn:
        raise SupplierInvoiceNotFoundError(f"Goods received note {grn_id} not found")
    require_branch_access(ctx, grn.branch_id)
    if grn.status != GRN_CONFIRMED:
        raise SupplierInvoiceStateError(f"{grn.grn_number} must be Confirmed before it can be invoiced")
    existing = get_invoice_for_grn(grn.id)
    if existing:
        raise SupplierInvoiceStateError(
            f"{grn.grn_number} already has invoice {existing.invoice_number}"
        )

    invoice_number = (invoice_number or "").strip()
    if not invoice_number:
        raise SupplierInvoiceValidationError("invoice_number is required")
    parsed_invoice_date = _parse_required_date(invoice_date, "invoice_date")
    parsed_due_date = _parse_required_date(due_date, "due_date")
    tax = _as_cents(tax_cents, "tax_cents")

    lines = _build_invoice_lines(grn, items)
    subtotal, total = calculate_invoice_totals((line.line_total_cents for line in lines), tax)
    if total <= 0:
        raise SupplierInvoiceValidationError("Invoice total must be greater than zero")

    invoice = SupplierInvoice(
        business_id=ctx.business_id,
        branch_id=grn.branch_id,
        supplier_id=grn.supplier_id,
        purchase_order_id=grn.purchase_order_id,
        grn_id=grn.id,
        invoice_number=invoice_number,
        invoice_date=parsed_invoice_date,
        due_date=parsed_due_date,
        subtotal_cents=subtotal,
        tax_cents=tax,
        total_cents=total,
        status=STATUS_DRAFT,
        notes=notes,
        created_by_staff_id=ctx.staff_id,
    )
    invoice.lines = lines
    try:
        with atomic():
            db.session.add(invoice)
            db.session.flush()
            append_procurement_event(
                business_id=ctx.business_id,
                branch_id=invoice.branch_id,
                event_type="supplier_invoice.created",
                entity_type="supplier_invoice",
                entity_id=invoice.id,
                document_number=invoice.invoice_number,
                actor_staff_id=ctx.staff_id,
                note=grn.grn_number,
            )
    except IntegrityError:
        raise SupplierInvoiceStateError(f"{grn.grn_number} already has an invoice")
    return invoice


def _require_draft(invoice: SupplierInvoice) -> None:
    if invoice.status != STATUS_DRAFT:
        raise SupplierInvoiceStateError(
            f"Invoice {invoice.invoice_number} is {invoice.status} and can no longer be edited"
        )


def update_invoice_line(
    ctx,
    invoice_id: int,
    product_id: int,
    *,
    unit_price_cents=None,
    line_total_cents=None,
) -> SupplierInvoice:
    """Re-price one line; the other price field is derived from the one given."""
    require_permission(ctx, "MANAGE_SUPPLIER_INVOICES")
    invoice = get_supplier_invoice(ctx, invoice_id)
    _require_draft(invoice)
    line = next((candidate for candidate in invoice.lines if candidate.product_id == int(product_id)), None)
    if line is None:
        raise SupplierInvoiceValidationError(f"Product {product_id} is not on invoice {invoice.invoice_number}")
    if unit_price_cents is None and line_total_cents is None:
        raise SupplierInvoiceValidationError("Provide unit_price_cents or line_total_cents")

    unit, total = price_invoice_line(line.quantity, unit_price_cents, line_total_cents)
    with atomic():
        line.unit_price_cents = unit
        line.line_total_cents = total
        _recompute_totals(invoice)
        if invoice.total_cents <= 0:
            raise SupplierInvoiceValidationError("Invoice total must be greater than zero")
    return invoice


def update_invoice_tax(ctx, invoice_id: int, tax_cents) -> SupplierInvoice:
    require_permission(ctx, "MANAGE_SUPPLIER_INVOICES")
    invoice = get_supplier_invoice(ctx, invoice_id)
    _require_draft(invoice)
    tax = _as_cents(tax_cents, "tax_cents")
    with atomic():
        invoice.tax_cents = tax
        _recompute_totals(invoice)
        if invoice.total_cents <= 0:
            raise SupplierInvoiceValidationError("Invoice total must be greater than zero")
    return invoice


def delete_supplier_invoice(ctx, invoice_id: int) -> None:
    """Delete a Draft invoice; its GRN can be invoiced again."""
    require_permission(ctx, "MANAGE_SUPPLIER_INVOICES")
    invoice = get_supplier_invoice(ctx, invoice_id)
    _require_draft(invoice)
    with atomic():
        append_procurement_event(
            business_id=invoice.business_id,
            branch_id=invoice.branch_id,
            event_type="supplier_invoice.deleted",
            entity_type="supplier_invoice",
            entity_id=invoice.id,
            document_number=invoice.invoice_number,
            actor_staff_id=ctx.staff_id,
        )
        db.session.delete(invoice)


def approve_supplier_invoice(ctx, invoice_id: int) -> SupplierInvoice:
    """
    Draft -> Approved and book the expense.

    The status change and the expense commit together. If the expense cannot
    be written the invoice stays Draft and SupplierInvoiceCollaboratorError
    is raised.
    """
    require_permission(ctx, "APPROVE_SUPPLIER_INVOICES")
    invoice = get_supplier_invoice(ctx, invoice_id)
    if invoice.total_cents <= 0:
        raise SupplierInvoiceValidationError("Invoice total must be greater than zero")

    try:
        with atomic():
            advance(
                invoice,
                SUPPLIER_INVOICE_LIFECYCLE,
                STATUS_APPROVED,
                error_cls=SupplierInvoiceStateError,
                approved_at=utcnow(),
                approved_by_staff_id=ctx.staff_id,
            )
            expense = _create_system_expense_inner(
                business_id=invoice.business_id,
                branch_id=invoice.branch_id,
                title=f"Supplier Invoice: {invoice.invoice_number}",
                category=CATEGORY_INVENTORY_PROCUREMENT,
                description=f"Supplier invoice {invoice.invoice_number} for {invoice.goods_received_note.grn_number}",
                amount_cents=invoice.total_cents,
                expense_date=invoice.invoice_date,
                source_type=SOURCE_SUPPLIER_INVOICE,
                source_reference_id=invoice.id,
                source_reference_number=invoice.invoice_number,
                created_by_staff_id=ctx.staff_id,
            )
            invoice.linked_expense_id = expense.id
            append_procurement_event(
                business_id=invoice.business_id,
                branch_id=invoice.branch_id,
                event_type="supplier_invoice.approved",
                entity_type="supplier_invoice",
                entity_id=invoice.id,
                document_number=invoice.invoice_number,
                actor_staff_id=ctx.staff_id,
                note=f"expense {expense.id}",
            )
    except ExpenseError as exc:
        raise SupplierInvoiceCollaboratorError(
            f"Invoice {invoice_id} was not approved: {exc}"
        ) from exc

    logger.info("Supplier invoice %s approved; expense %s", invoice.invoice_number, invoice.linked_expense_id)
    return invoice


def mark_invoice_paid(ctx, invoice_id: int) -> SupplierInvoice:
    """Approved -> Paid. The invoice drops out of outstanding payables."""
    require_permission(ctx, "PAY_SUPPLIER_INVOICES")
    invoice = get_supplier_invoice(ctx, invoice_id)
    with atomic():
        advance(
            invoice,
            SUPPLIER_INVOICE_LIFECYCLE,
            STATUS_PAID,
            error_cls=SupplierInvoiceStateError,
            paid_at=utcnow(),
            paid_by_staff_id=ctx.staff_id,
        )
        append_procurement_event(
            business_id=invoice.business_id,
            branch_id=invoice.branch_id,
            event_type="supplier_invoice.paid",
            entity_type="supplier_invoice",
            entity_id=invoice.id,
            document_number=invoice.invoice_number,
            actor_staff_id=ctx.staff_id,
        )
    return invoice


def list_supplier_invoices(
    ctx,
    *,
    branch_id: int | None = None,
    supplier_id: int | None = None,
    status: str | None = None,
) -> list[SupplierInvoice]:
    branch_ids = resolve_branch_filter(ctx, branch_id)
    if not branch_ids:
        return []
    query = db.session.query(SupplierInvoice).filter(
        SupplierInvoice.business_id == ctx.business_id,
        SupplierInvoice.branch_id.in_(branch_ids),
    )
    if supplier_id:
        query = query.filter(SupplierInvoice.supplier_id == supplier_id)
    if status:
        SUPPLIER_INVOICE_LIFECYCLE.validate_status(status)
        query = query.filter(SupplierInvoice.status == status)
    return query.order_by(SupplierInvoice.due_date.asc(), SupplierInvoice.id.asc()).all()


def get_outstanding_payables(business_id: int, branch_id: int | None = None) -> int:
    """Sum of total_cents over Approved invoices."""
    query = db.session.query(func.coalesce(func.sum(SupplierInvoice.total_cents), 0)).filter(
        SupplierInvoice.business_id == business_id,
        SupplierInvoice.status == STATUS_APPROVED,
    )
    if branch_id is not None:
        query = query.filter(SupplierInvoice.branch_id == branch_id)
    return int(query.scalar() or 0)
