# backend/stockroom/routes/purchase_orders.py
"""
Purchase order API routes.
"""
from flask import Blueprint, request, jsonify, g

from stockroom.decorators import require_actor, json_body, optional_int_arg
from stockroom.services import purchase_order_service


purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.route("", methods=["POST"])
@require_actor
def create_purchase_order():
    """
    Create a Draft purchase order.

    Request body:
    {
        "branch_id": int,
        "supplier_id": int,
        "items": [{"product_id": int, "requested_quantity": int, "unit_cost_cents": int (optional)}],
        "expected_delivery_date": "YYYY-MM-DD" (optional),
        "notes": str (optional)
    }

    Returns:
        201: Purchase order created
        400: Invalid request
        403: Forbidden
    """
    data = json_body()
    try:
        po = purchase_order_service.create_purchase_order(
            g.actor,
            branch_id=int(data["branch_id"]),
            supplier_id=int(data["supplier_id"]),
            items=data.get("items") or [],
            expected_delivery_date=data.get("expected_delivery_date"),
            notes=data.get("notes"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        return jsonify({"error": "branch_id and supplier_id must be integers"}), 400
    return jsonify({"purchase_order": po.to_dict()}), 201


@purchase_orders_bp.get("")
@require_actor
def list_purchase_orders():
    if request.args.get("available_for_grn") in ("1", "true"):
        orders = purchase_order_service.list_available_for_grn(g.actor, branch_id=optional_int_arg("branch_id"))
    else:
        orders = purchase_order_service.list_purchase_orders(
            g.actor,
            branch_id=optional_int_arg("branch_id"),
            supplier_id=optional_int_arg("supplier_id"),
            status=request.args.get("status") or None,
        )
    return jsonify({"purchase_orders": [po.to_dict(include_lines=False) for po in orders]})


@purchase_orders_bp.get("/<int:po_id>")
@require_actor
def get_purchase_order(po_id: int):
    po = purchase_order_service.get_purchase_order(g.actor, po_id)
    return jsonify({"purchase_order": po.to_dict()})


@purchase_orders_bp.put("/<int:po_id>")
@require_actor
def update_purchase_order(po_id: int):
    """Edit a Draft order; "items" replaces every line."""
    data = json_body()
    po = purchase_order_service.update_purchase_order(
        g.actor,
        po_id,
        items=data.get("items"),
        notes=data.get("notes"),
        expected_delivery_date=data.get("expected_delivery_date"),
    )
    return jsonify({"purchase_order": po.to_dict()})


@purchase_orders_bp.post("/<int:po_id>/send")
@require_actor
def send_purchase_order(po_id: int):
    data = json_body()
    po = purchase_order_service.send_purchase_order(g.actor, po_id, methods=data.get("methods"))
    return jsonify({"purchase_order": po.to_dict()})


@purchase_orders_bp.post("/<int:po_id>/approve")
@require_actor
def approve_purchase_order(po_id: int):
    po = purchase_order_service.approve_purchase_order(g.actor, po_id)
    return jsonify({"purchase_order": po.to_dict()})


@purchase_orders_bp.post("/<int:po_id>/cancel")
@require_actor
def cancel_purchase_order(po_id: int):
    data = json_body()
    po = purchase_order_service.cancel_purchase_order(g.actor, po_id, reason=data.get("reason"))
    return jsonify({"purchase_order": po.to_dict()})
