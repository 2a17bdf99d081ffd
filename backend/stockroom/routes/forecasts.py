# backend/stockroom/routes/forecasts.py
"""
Reorder forecasting API routes.
"""
from flask import Blueprint, request, jsonify, g

from stockroom.decorators import require_actor, json_body, optional_int_arg
from stockroom.errors import ValidationError
from stockroom.services import forecast_service
from stockroom.time_utils import parse_iso_datetime


forecasts_bp = Blueprint("forecasts", __name__, url_prefix="/api/forecasts")


def _as_of_arg():
    try:
        return parse_iso_datetime(request.args.get("as_of"))
    except ValueError:
        raise ValidationError("as_of must be an ISO-8601 datetime")


@forecasts_bp.get("")
@require_actor
def forecast_report():
    """
    Forecast report for the actor's branches.

    Query params:
        branch_id: int (optional; defaults to every accessible branch)
        window: 7 | 14 | 30 | 60 (optional; business default)
        top_n: int (optional)
        as_of: ISO datetime (optional)

    Returns:
        200: {counts, forecasts, urgent, reorder_soon, high_velocity, slow_moving, ...}
        400: invalid window
        403: branch outside scope
    """
    report = forecast_service.build_forecast_report(
        g.actor,
        branch_id=optional_int_arg("branch_id"),
        window_days=optional_int_arg("window"),
        top_n=optional_int_arg("top_n"),
        as_of=_as_of_arg(),
    )
    return jsonify(report.to_dict())


@forecasts_bp.get("/products/<int:product_id>")
@require_actor
def product_forecast(product_id: int):
    forecast = forecast_service.forecast_product(
        g.actor,
        product_id,
        window_days=optional_int_arg("window"),
        as_of=_as_of_arg(),
    )
    return jsonify({"forecast": forecast.to_dict()})


@forecasts_bp.get("/config")
@require_actor
def get_config():
    settings = forecast_service.get_forecast_settings(g.actor.business_id)
    return jsonify({
        "config": settings.to_dict(),
        "allowed_windows": list(forecast_service.allowed_windows()),
    })


@forecasts_bp.put("/config")
@require_actor
def update_config():
    """
    Request body: any subset of
    {
        "default_sales_period_days": int,
        "reorder_cycle_days": int,
        "default_lead_time_days": int,
        "reorder_soon_multiplier": float,
        "slow_moving_max_daily_sales": float,
        "slow_moving_min_stock": int
    }
    """
    settings = forecast_service.update_forecasting_config(g.actor, **json_body())
    return jsonify({"config": settings.to_dict()})


@forecasts_bp.put("/lead-times")
@require_actor
def set_lead_time():
    """
    Request body:
    {
        "scope": "product" | "supplier",
        "target_id": int,
        "lead_time_days": int
    }
    """
    data = json_body()
    try:
        row = forecast_service.set_lead_time(
            g.actor,
            scope=data["scope"],
            target_id=int(data["target_id"]),
            lead_time_days=data["lead_time_days"],
        )
    except KeyError as e:
        return jsonify({"error": f"Missing required field: {e}"}), 400
    except (TypeError, ValueError):
        return jsonify({"error": "target_id must be an integer"}), 400
    return jsonify({"lead_time": row.to_dict()})


@forecasts_bp.delete("/lead-times/<scope>/<int:target_id>")
@require_actor
def clear_lead_time(scope: str, target_id: int):
    deleted = forecast_service.clear_lead_time(g.actor, scope=scope, target_id=target_id)
    if not deleted:
        return jsonify({"error": "Lead time override not found"}), 404
    return jsonify({"deleted": True})
