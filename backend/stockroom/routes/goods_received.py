# backend/stockroom/routes/goods_received.py
"""
Goods received note API routes.
"""
from flask import Blueprint, request, jsonify, g

from stockroom.decorators import require_actor, json_body, optional_int_arg
from stockroom.services import goods_received_service


goods_received_bp = Blueprint("goods_received", __name__, url_prefix="/api/goods-received")


@goods_received_bp.route("", methods=["POST"])
@require_actor
def create_goods_received_note():
    """
    Record a delivery against an Approved purchase order.

    Request body:
    {
        "purchase_order_id": int,
        "lines": [{"product_id": int, "received_quantity": int, "notes": str (optional)}],
        "notes": str (optional)
    }

    Quantities above the ordered amount are reduced to it; negatives become 0.

    Returns:
        201: Draft GRN created
        400: Nothing received / invalid lines
        409: Purchase order not Approved
    """
    data = json_body()
    try:
        grn = goods_received_service.create_goods_received_note(
            g.actor,
            purchase_order_id=int(data["purchase_order_id"]),
            received=data.get("lines") or [],
            notes=data.get("notes"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        return jsonify({"error": "purchase_order_id must be an integer"}), 400
    return jsonify({"goods_received_note": grn.to_dict()}), 201


@goods_received_bp.get("")
@require_actor
def list_goods_received_notes():
    notes = goods_received_service.list_goods_received_notes(
        g.actor,
        branch_id=optional_int_arg("branch_id"),
        purchase_order_id=optional_int_arg("purchase_order_id"),
        status=request.args.get("status") or None,
    )
    return jsonify({"goods_received_notes": [n.to_dict(include_lines=False) for n in notes]})


@goods_received_bp.get("/<int:grn_id>")
@require_actor
def get_goods_received_note(grn_id: int):
    grn = goods_received_service.get_goods_received_note(g.actor, grn_id)
    return jsonify({"goods_received_note": grn.to_dict()})


@goods_received_bp.put("/<int:grn_id>")
@require_actor
def update_goods_received_note(grn_id: int):
    data = json_body()
    grn = goods_received_service.update_goods_received_lines(
        g.actor,
        grn_id,
        data.get("lines") or [],
        notes=data.get("notes"),
    )
    return jsonify({"goods_received_note": grn.to_dict()})


@goods_received_bp.post("/<int:grn_id>/confirm")
@require_actor
def confirm_goods_received_note(grn_id: int):
    """
    Confirm a Draft GRN and add received stock to the branch.

    Returns:
        200: {grn, products_updated, products_created}
        409: GRN already confirmed
    """
    result = goods_received_service.confirm_goods_received_note(g.actor, grn_id)
    return jsonify(result.to_dict())
