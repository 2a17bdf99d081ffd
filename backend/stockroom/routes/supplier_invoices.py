# backend/stockroom/routes/supplier_invoices.py
"""
Supplier invoice and payables API routes.
"""
from flask import Blueprint, request, jsonify, g

from stockroom.decorators import require_actor, json_body, optional_int_arg
from stockroom.services import supplier_invoice_service
from stockroom.services.permission_service import require_permission, require_branch_access


supplier_invoices_bp = Blueprint("supplier_invoices", __name__, url_prefix="/api/supplier-invoices")


@supplier_invoices_bp.route("", methods=["POST"])
@require_actor
def create_supplier_invoice():
    """
    Draft an invoice for a Confirmed GRN.

    Request body:
    {
        "grn_id": int,
        "invoice_number": str,
        "invoice_date": "YYYY-MM-DD",
        "due_date": "YYYY-MM-DD",
        "items": [{"product_id": int, "unit_price_cents": int | "line_total_cents": int}] (optional),
        "tax_cents": int (optional),
        "notes": str (optional)
    }

    Returns:
        201: Invoice created
        400: Invalid request or total <= 0
        409: GRN not Confirmed or already invoiced
    """
    data = json_body()
    try:
        invoice = supplier_invoice_service.create_supplier_invoice(
            g.actor,
            grn_id=int(data["grn_id"]),
            invoice_number=data.get("invoice_number"),
            invoice_date=data.get("invoice_date"),
            due_date=data.get("due_date"),
            items=data.get("items"),
            tax_cents=data.get("tax_cents"),
            notes=data.get("notes"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        return jsonify({"error": "grn_id must be an integer"}), 400
    return jsonify({"supplier_invoice": invoice.to_dict()}), 201


@supplier_invoices_bp.get("")
@require_actor
def list_supplier_invoices():
    invoices = supplier_invoice_service.list_supplier_invoices(
        g.actor,
        branch_id=optional_int_arg("branch_id"),
        supplier_id=optional_int_arg("supplier_id"),
        status=request.args.get("status") or None,
    )
    return jsonify({"supplier_invoices": [i.to_dict(include_lines=False) for i in invoices]})


@supplier_invoices_bp.get("/outstanding")
@require_actor
def outstanding_payables():
    """Sum of Approved (unpaid) invoice totals."""
    require_permission(g.actor, "VIEW_PAYABLES")
    branch_id = optional_int_arg("branch_id")
    if branch_id is not None:
        require_branch_access(g.actor, branch_id)
    total = supplier_invoice_service.get_outstanding_payables(g.actor.business_id, branch_id)
    return jsonify({"outstanding_cents": total, "branch_id": branch_id})


@supplier_invoices_bp.get("/<int:invoice_id>")
@require_actor
def get_supplier_invoice(invoice_id: int):
    invoice = supplier_invoice_service.get_supplier_invoice(g.actor, invoice_id)
    return jsonify({"supplier_invoice": invoice.to_dict()})


@supplier_invoices_bp.put("/<int:invoice_id>/lines/<int:product_id>")
@require_actor
def update_invoice_line(invoice_id: int, product_id: int):
    data = json_body()
    invoice = supplier_invoice_service.update_invoice_line(
        g.actor,
        invoice_id,
        product_id,
        unit_price_cents=data.get("unit_price_cents"),
        line_total_cents=data.get("line_total_cents"),
    )
    return jsonify({"supplier_invoice": invoice.to_dict()})


@supplier_invoices_bp.put("/<int:invoice_id>/tax")
@require_actor
def update_invoice_tax(invoice_id: int):
    data = json_body()
    invoice = supplier_invoice_service.update_invoice_tax(g.actor, invoice_id, data.get("tax_cents"))
    return jsonify({"supplier_invoice": invoice.to_dict()})


@supplier_invoices_bp.delete("/<int:invoice_id>")
@require_actor
def delete_supplier_invoice(invoice_id: int):
    supplier_invoice_service.delete_supplier_invoice(g.actor, invoice_id)
    return jsonify({"deleted": True})


@supplier_invoices_bp.post("/<int:invoice_id>/approve")
@require_actor
def approve_supplier_invoice(invoice_id: int):
    """
    Approve a Draft invoice and book its expense.

    Returns:
        200: Invoice approved (linked_expense_id set)
        409: Invoice not Draft
        502: Expense could not be recorded; invoice left Draft
    """
    invoice = supplier_invoice_service.approve_supplier_invoice(g.actor, invoice_id)
    return jsonify({"supplier_invoice": invoice.to_dict()})


@supplier_invoices_bp.post("/<int:invoice_id>/pay")
@require_actor
def mark_invoice_paid(invoice_id: int):
    invoice = supplier_invoice_service.mark_invoice_paid(g.actor, invoice_id)
    return jsonify({"supplier_invoice": invoice.to_dict()})
