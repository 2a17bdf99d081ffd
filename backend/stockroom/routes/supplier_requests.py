# backend/stockroom/routes/supplier_requests.py
"""
Supplier request API routes (restock requests sent to suppliers).
"""
from flask import Blueprint, request, jsonify, g

from stockroom.decorators import require_actor, json_body, optional_int_arg
from stockroom.services import supplier_request_service


supplier_requests_bp = Blueprint("supplier_requests", __name__, url_prefix="/api/supplier-requests")


@supplier_requests_bp.route("", methods=["POST"])
@require_actor
def create_supplier_request():
    """
    Create and dispatch a supplier request.

    Request body:
    {
        "branch_id": int,
        "product_id": int,
        "supplier_id": int,
        "requested_quantity": int,
        "communication_methods": ["Email" | "SMS" | "WhatsApp", ...],
        "custom_message": str (optional)
    }

    Returns:
        201: Request recorded (status Sent or Failed)
        400: Invalid request
        409: An open request already exists for the product at this branch
    """
    data = json_body()
    try:
        supplier_request = supplier_request_service.create_supplier_request(
            g.actor,
            branch_id=int(data["branch_id"]),
            product_id=int(data["product_id"]),
            supplier_id=int(data["supplier_id"]),
            requested_quantity=data["requested_quantity"],
            communication_methods=data.get("communication_methods"),
            custom_message=data.get("custom_message"),
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        return jsonify({"error": "branch_id, product_id and supplier_id must be integers"}), 400
    return jsonify({"supplier_request": supplier_request.to_dict()}), 201


@supplier_requests_bp.get("")
@require_actor
def list_supplier_requests():
    requests_ = supplier_request_service.list_supplier_requests(
        g.actor,
        branch_id=optional_int_arg("branch_id"),
        product_id=optional_int_arg("product_id"),
        supplier_id=optional_int_arg("supplier_id"),
        conversion_status=request.args.get("conversion_status") or None,
        limit=optional_int_arg("limit") or 100,
    )
    return jsonify({"supplier_requests": [r.to_dict() for r in requests_]})


@supplier_requests_bp.get("/<int:request_id>")
@require_actor
def get_supplier_request(request_id: int):
    supplier_request = supplier_request_service.get_supplier_request(g.actor, request_id)
    return jsonify({"supplier_request": supplier_request.to_dict()})


@supplier_requests_bp.post("/<int:request_id>/convert")
@require_actor
def convert_supplier_request(request_id: int):
    """
    Convert a Requested request into a Draft purchase order.

    Request body (optional):
    {
        "expected_delivery_date": "YYYY-MM-DD",
        "notes": str
    }

    Returns:
        201: {supplier_request, purchase_order}
        409: Request already converted or cancelled
    """
    data = json_body()
    supplier_request, po = supplier_request_service.convert_to_purchase_order(
        g.actor,
        request_id,
        expected_delivery_date=data.get("expected_delivery_date"),
        notes=data.get("notes"),
    )
    return jsonify({
        "supplier_request": supplier_request.to_dict(),
        "purchase_order": po.to_dict(),
    }), 201


@supplier_requests_bp.post("/<int:request_id>/cancel")
@require_actor
def cancel_supplier_request(request_id: int):
    data = json_body()
    supplier_request = supplier_request_service.cancel_supplier_request(
        g.actor, request_id, reason=data.get("reason")
    )
    return jsonify({"supplier_request": supplier_request.to_dict()})


@supplier_requests_bp.delete("/<int:request_id>")
@require_actor
def delete_supplier_request(request_id: int):
    supplier_request_service.delete_supplier_request(g.actor, request_id)
    return jsonify({"deleted": True})
