# backend/stockroom/routes/inventory.py
"""
Inventory, supplier directory, sales capture and spreadsheet import/export routes.
"""
import io

from flask import Blueprint, request, jsonify, g, send_file

from stockroom.decorators import require_actor, json_body, optional_int_arg
from stockroom.services import (
    inventory_service,
    import_service,
    sales_service,
    supplier_service,
)
from stockroom.services.permission_service import require_branch_access
from stockroom.time_utils import utcnow


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@inventory_bp.get("/products")
@require_actor
def list_products():
    products = inventory_service.list_products(
        g.actor,
        branch_id=optional_int_arg("branch_id"),
        include_inactive=request.args.get("include_inactive") in ("1", "true"),
    )
    return jsonify({"products": [p.to_dict() for p in products]})


@inventory_bp.post("/products")
@require_actor
def create_product():
    """
    Request body:
    {
        "branch_id": int,
        "name": str,
        "sku": str (optional; generated when blank),
        "category_id": int, "supplier_id": int (optional),
        "stock": int, "low_stock_threshold": int (optional),
        "cost_price_cents": int, "retail_price_cents": int, "wholesale_price_cents": int (optional)
    }
    """
    data = json_body()
    try:
        product = inventory_service.create_product(
            g.actor,
            branch_id=int(data["branch_id"]),
            name=data["name"],
            sku=data.get("sku"),
            category_id=data.get("category_id"),
            supplier_id=data.get("supplier_id"),
            stock=data.get("stock", 0),
            low_stock_threshold=data.get("low_stock_threshold", 10),
            cost_price_cents=data.get("cost_price_cents"),
            retail_price_cents=data.get("retail_price_cents"),
            wholesale_price_cents=data.get("wholesale_price_cents"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        return jsonify({"error": "branch_id must be an integer"}), 400
    return jsonify({"product": product.to_dict()}), 201


@inventory_bp.post("/products/<int:product_id>/adjust")
@require_actor
def adjust_stock(product_id: int):
    data = json_body()
    if "new_stock" not in data:
        return jsonify({"error": "Missing required field: 'new_stock'"}), 400
    product = inventory_service.adjust_stock(
        g.actor, product_id, new_stock=data["new_stock"], reason=data.get("reason")
    )
    return jsonify({"product": product.to_dict()})


@inventory_bp.get("/products/<int:product_id>/movements")
@require_actor
def stock_movements(product_id: int):
    product = inventory_service.get_product(g.actor.business_id, product_id)
    require_branch_access(g.actor, product.branch_id)
    movements = inventory_service.list_stock_movements(product.id)
    return jsonify({"movements": [m.to_dict() for m in movements]})


@inventory_bp.get("/low-stock")
@require_actor
def low_stock():
    products = inventory_service.list_low_stock(g.actor, branch_id=optional_int_arg("branch_id"))
    return jsonify({"products": [p.to_dict() for p in products]})


@inventory_bp.post("/sales")
@require_actor
def record_sale():
    """
    Request body:
    {
        "branch_id": int,
        "lines": [{"product_id": int, "quantity": int, "unit_price_cents": int (optional)}],
        "occurred_at": ISO datetime (optional)
    }
    """
    data = json_body()
    try:
        sale = sales_service.record_sale(
            g.actor,
            branch_id=int(data["branch_id"]),
            lines=data.get("lines") or [],
            occurred_at=data.get("occurred_at"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        return jsonify({"error": "branch_id must be an integer"}), 400
    return jsonify({"sale": sale.to_dict()}), 201


@inventory_bp.get("/suppliers")
@require_actor
def list_suppliers():
    suppliers = supplier_service.list_suppliers(
        g.actor.business_id,
        include_inactive=request.args.get("include_inactive") in ("1", "true"),
        search=request.args.get("search") or None,
    )
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]})


@inventory_bp.post("/suppliers")
@require_actor
def create_supplier():
    data = json_body()
    supplier = supplier_service.create_supplier(
        g.actor,
        name=data.get("name"),
        contact_name=data.get("contact_name"),
        contact_email=data.get("contact_email"),
        contact_phone=data.get("contact_phone"),
        whatsapp_number=data.get("whatsapp_number"),
        address=data.get("address"),
        notes=data.get("notes"),
    )
    return jsonify({"supplier": supplier.to_dict()}), 201


@inventory_bp.put("/suppliers/<int:supplier_id>")
@require_actor
def update_supplier(supplier_id: int):
    supplier = supplier_service.update_supplier(g.actor, supplier_id, **json_body())
    return jsonify({"supplier": supplier.to_dict()})


@inventory_bp.delete("/suppliers/<int:supplier_id>")
@require_actor
def deactivate_supplier(supplier_id: int):
    supplier = supplier_service.deactivate_supplier(g.actor, supplier_id)
    return jsonify({"supplier": supplier.to_dict()})


@inventory_bp.get("/categories")
@require_actor
def list_categories():
    categories = supplier_service.list_categories(g.actor.business_id)
    return jsonify({"categories": [c.to_dict() for c in categories]})


@inventory_bp.post("/categories")
@require_actor
def create_category():
    category = supplier_service.create_category(g.actor, json_body().get("name"))
    return jsonify({"category": category.to_dict()}), 201


@inventory_bp.post("/import")
@require_actor
def import_inventory():
    """
    Bulk-create inventory records from an uploaded .xlsx or .csv sheet.

    Form data:
        file: the spreadsheet

    Returns:
        200: {created, errors, warnings, total_rows}
        400: No file, unsupported format or unreadable workbook
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required"}), 400

    upload = request.files["file"]
    result = import_service.import_inventory_file(g.actor, upload.stream, upload.filename or "")
    return jsonify(result.to_dict())


@inventory_bp.get("/export")
@require_actor
def export_inventory():
    buffer = io.BytesIO()
    import_service.export_inventory_xlsx(g.actor, buffer, branch_id=optional_int_arg("branch_id"))
    buffer.seek(0)
    return send_file(
        buffer,
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=f"inventory-{utcnow():%Y%m%d}.xlsx",
    )
