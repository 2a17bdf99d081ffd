# Overview: Service-layer reorder forecasting; derives stock status and reorder suggestions from sales history.

"""
Reorder Forecasting Service

Forecasts are derived on every read and never stored. Inputs:
- current stock of the branch inventory record
- units sold over a rolling window (7, 14, 30 or 60 days)
- lead time, resolved per product -> per supplier -> business default ->
  application default

FORMULAS:
    average_daily_sales        = units_sold / window_days
    reorder_point              = average_daily_sales * lead_time_days
    suggested_reorder_quantity = max(0, ceil(average_daily_sales * reorder_cycle_days - stock))
    estimated_reorder_cost     = suggested_reorder_quantity * unit cost
    days_until_stockout        = stock / average_daily_sales   (None when ADS is 0)

STATUS:
    Urgent        stock <= reorder_point
    Reorder Soon  reorder_point < stock <= reorder_point * multiplier
    OK            otherwise

compute_forecast() and classify_stock_status() are pure; everything touching
the database lives below them.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, asdict
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import (
    Product,
    Supplier,
    LeadTimeConfig,
    ForecastingConfig,
)
from ..models.forecasting import LEAD_TIME_SCOPE_PRODUCT, LEAD_TIME_SCOPE_SUPPLIER
from .permission_service import require_permission, require_branch_access, resolve_branch_filter
from . import sales_service
from stockroom.time_utils import utcnow


logger = logging.getLogger(__name__)

STATUS_OK = "OK"
STATUS_REORDER_SOON = "Reorder Soon"
STATUS_URGENT = "Urgent"

FALLBACK_LEAD_TIME_DAYS = 7


class ForecastValidationError(ValidationError):
    pass


class ForecastNotFoundError(NotFoundError):
    pass


@dataclass(frozen=True)
class ForecastSettings:
    """Effective forecasting policy for one business."""
    default_sales_period_days: int = 30
    reorder_cycle_days: int = 14
    default_lead_time_days: int = 7
    reorder_soon_multiplier: float = 1.5
    slow_moving_max_daily_sales: float = 0.5
    slow_moving_min_stock: int = 10

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Forecast:
    product_id: int | None
    product_name: str | None
    sku: str | None
    branch_id: int | None
    supplier_id: int | None
    current_stock: int
    average_daily_sales: float
    lead_time_days: int
    reorder_point: float
    suggested_reorder_quantity: int
    estimated_reorder_cost_cents: int
    days_until_stockout: float | None
    status: str
    unit_cost_cents: int = 0
    window_days: int = 30

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ForecastReport:
    window_days: int
    generated_at: datetime
    forecasts: list[Forecast] = field(default_factory=list)
    urgent: list[Forecast] = field(default_factory=list)
    reorder_soon: list[Forecast] = field(default_factory=list)
    ok: list[Forecast] = field(default_factory=list)
    high_velocity: list[Forecast] = field(default_factory=list)
    slow_moving: list[Forecast] = field(default_factory=list)
    total_reorder_quantity: int = 0
    total_estimated_reorder_cost_cents: int = 0

    @property
    def counts(self) -> dict:
        return {
            STATUS_URGENT: len(self.urgent),
            STATUS_REORDER_SOON: len(self.reorder_soon),
            STATUS_OK: len(self.ok),
        }

    def to_dict(self) -> dict:
        return {
            "window_days": self.window_days,
            "generated_at": self.generated_at.isoformat(),
            "counts": self.counts,
            "total_reorder_quantity": self.total_reorder_quantity,
            "total_estimated_reorder_cost_cents": self.total_estimated_reorder_cost_cents,
            "forecasts": [f.to_dict() for f in self.forecasts],
            "urgent": [f.to_dict() for f in self.urgent],
            "reorder_soon": [f.to_dict() for f in self.reorder_soon],
            "high_velocity": [f.to_dict() for f in self.high_velocity],
            "slow_moving": [f.to_dict() for f in self.slow_moving],
        }


# -- Pure computations --

def classify_stock_status(current_stock: int, reorder_point: float, multiplier: float = 1.5) -> str:
    if current_stock <= reorder_point:
        return STATUS_URGENT
    if current_stock <= reorder_point * multiplier:
        return STATUS_REORDER_SOON
    return STATUS_OK


def best_unit_cost_cents(cost_price_cents=None, wholesale_price_cents=None, retail_price_cents=None) -> int:
    """Cost price, else wholesale, else retail, else 0."""
    for value in (cost_price_cents, wholesale_price_cents, retail_price_cents):
        if value is not None:
            return int(value)
    return 0


def compute_forecast(
    *,
    current_stock: int,
    units_sold: int,
    window_days: int,
    lead_time_days: int,
    reorder_cycle_days: int = 14,
    reorder_soon_multiplier: float = 1.5,
    unit_cost_cents: int = 0,
    product_id: int | None = None,
    product_name: str | None = None,
    sku: str | None = None,
    branch_id: int | None = None,
    supplier_id: int | None = None,
) -> Forecast:
    if window_days <= 0:
        raise ForecastValidationError("window_days must be positive")
    current_stock = max(0, int(current_stock))
    units_sold = max(0, int(units_sold or 0))

    ads = units_sold / window_days
    reorder_point = ads * lead_time_days
    suggested = max(0, math.ceil(ads * reorder_cycle_days - current_stock))
    days_until_stockout = current_stock / ads if ads > 0 else None

    return Forecast(
        product_id=product_id,
        product_name=product_name,
        sku=sku,
        branch_id=branch_id,
        supplier_id=supplier_id,
        current_stock=current_stock,
        average_daily_sales=ads,
        lead_time_days=lead_time_days,
        reorder_point=reorder_point,
        suggested_reorder_quantity=suggested,
        estimated_reorder_cost_cents=suggested * unit_cost_cents,
        days_until_stockout=days_until_stockout,
        status=classify_stock_status(current_stock, reorder_point, reorder_soon_multiplier),
        unit_cost_cents=unit_cost_cents,
        window_days=window_days,
    )


def summarize_forecasts(
    forecasts: list[Forecast],
    *,
    window_days: int,
    top_n: int = 10,
    slow_moving_max_daily_sales: float = 0.5,
    slow_moving_min_stock: int = 10,
    generated_at: datetime | None = None,
) -> ForecastReport:
    report = ForecastReport(window_days=window_days, generated_at=generated_at or utcnow())
    report.forecasts = list(forecasts)

    report.urgent = sorted(
        (f for f in forecasts if f.status == STATUS_URGENT),
        key=lambda f: (f.days_until_stockout is None, f.days_until_stockout or 0),
    )
    report.reorder_soon = [f for f in forecasts if f.status == STATUS_REORDER_SOON]
    report.ok = [f for f in forecasts if f.status == STATUS_OK]

    needing = report.urgent + report.reorder_soon
    report.total_reorder_quantity = sum(f.suggested_reorder_quantity for f in needing)
    report.total_estimated_reorder_cost_cents = sum(f.estimated_reorder_cost_cents for f in needing)

    report.high_velocity = sorted(
        (f for f in forecasts if f.average_daily_sales > 0),
        key=lambda f: f.average_daily_sales,
        reverse=True,
    )[:top_n]
    report.slow_moving = sorted(
        (
            f for f in forecasts
            if f.average_daily_sales < slow_moving_max_daily_sales
            and f.current_stock > slow_moving_min_stock
        ),
        key=lambda f: f.current_stock,
        reverse=True,
    )[:top_n]
    return report


# -- Configuration --

def _app_settings() -> ForecastSettings:
    cfg = current_app.config
    return ForecastSettings(
        default_sales_period_days=cfg.get("DEFAULT_SALES_PERIOD_DAYS", 30),
        reorder_cycle_days=cfg.get("DEFAULT_REORDER_CYCLE_DAYS", 14),
        default_lead_time_days=cfg.get("DEFAULT_LEAD_TIME_DAYS", FALLBACK_LEAD_TIME_DAYS),
        reorder_soon_multiplier=cfg.get("REORDER_SOON_MULTIPLIER", 1.5),
        slow_moving_max_daily_sales=cfg.get("SLOW_MOVING_MAX_DAILY_SALES", 0.5),
        slow_moving_min_stock=cfg.get("SLOW_MOVING_MIN_STOCK", 10),
    )


def allowed_windows() -> tuple:
    return tuple(current_app.config.get("FORECAST_WINDOWS", (7, 14, 30, 60)))


def validate_window(window_days) -> int:
    try:
        window_days = int(window_days)
    except (TypeError, ValueError):
        raise ForecastValidationError("window_days must be a number")
    if window_days not in allowed_windows():
        raise ForecastValidationError(
            f"window_days must be one of {', '.join(str(w) for w in allowed_windows())}"
        )
    return window_days


def get_forecast_settings(business_id: int) -> ForecastSettings:
    row = db.session.query(ForecastingConfig).filter_by(business_id=business_id).first()
    if not row:
        return _app_settings()
    return ForecastSettings(
        default_sales_period_days=row.default_sales_period_days,
        reorder_cycle_days=row.reorder_cycle_days,
        default_lead_time_days=row.default_lead_time_days,
        reorder_soon_multiplier=row.reorder_soon_multiplier,
        slow_moving_max_daily_sales=row.slow_moving_max_daily_sales,
        slow_moving_min_stock=row.slow_moving_min_stock,
    )


def update_forecasting_config(ctx, **fields) -> ForecastSettings:
    """
    Override forecasting policy for the actor's business.

    Unspecified fields keep their current effective value.
    """
    require_permission(ctx, "CONFIGURE_FORECASTING")
    current = get_forecast_settings(ctx.business_id).to_dict()
    unknown = set(fields) - set(current)
    if unknown:
        raise ForecastValidationError(f"Unknown forecasting settings: {', '.join(sorted(unknown))}")

    merged = {**current, **{k: v for k, v in fields.items() if v is not None}}
    if merged["default_sales_period_days"] not in allowed_windows():
        raise ForecastValidationError("default_sales_period_days must be an allowed window")
    for key in ("reorder_cycle_days", "default_lead_time_days"):
        if int(merged[key]) <= 0:
            raise ForecastValidationError(f"{key} must be positive")
    if float(merged["reorder_soon_multiplier"]) < 1:
        raise ForecastValidationError("reorder_soon_multiplier must be at least 1")
    if float(merged["slow_moving_max_daily_sales"]) < 0 or int(merged["slow_moving_min_stock"]) < 0:
        raise ForecastValidationError("Slow-moving thresholds cannot be negative")

    row = db.session.query(ForecastingConfig).filter_by(business_id=ctx.business_id).first()
    if not row:
        row = ForecastingConfig(business_id=ctx.business_id)
        db.session.add(row)
    for key, value in merged.items():
        setattr(row, key, value)
    row.updated_by_staff_id = ctx.staff_id
    db.session.commit()
    logger.info("Forecasting config updated for business %s by staff %s", ctx.business_id, ctx.staff_id)
    return get_forecast_settings(ctx.business_id)


# -- Lead times --

def resolve_lead_time_days(business_id: int, product_id: int | None, supplier_id: int | None = None) -> int:
    """
    Per-product override, else per-supplier, else business default, else
    application default. Never fails.
    """
    if product_id:
        row = db.session.query(LeadTimeConfig).filter_by(
            business_id=business_id, scope=LEAD_TIME_SCOPE_PRODUCT, product_id=product_id
        ).first()
        if row:
            return row.lead_time_days
    if supplier_id:
        row = db.session.query(LeadTimeConfig).filter_by(
            business_id=business_id, scope=LEAD_TIME_SCOPE_SUPPLIER, supplier_id=supplier_id
        ).first()
        if row:
            return row.lead_time_days
    return get_forecast_settings(business_id).default_lead_time_days


def _lead_time_maps(business_id: int) -> tuple[dict, dict]:
    rows = db.session.query(LeadTimeConfig).filter_by(business_id=business_id).all()
    by_product = {r.product_id: r.lead_time_days for r in rows if r.scope == LEAD_TIME_SCOPE_PRODUCT}
    by_supplier = {r.supplier_id: r.lead_time_days for r in rows if r.scope == LEAD_TIME_SCOPE_SUPPLIER}
    return by_product, by_supplier


def set_lead_time(ctx, *, scope: str, target_id: int, lead_time_days: int) -> LeadTimeConfig:
    """
    Create or replace a lead time override.

    Raises:
        PermissionDeniedError: missing CONFIGURE_FORECASTING
        ForecastValidationError: bad scope or non-positive days
        ForecastNotFoundError: target product/supplier not in the business
    """
    require_permission(ctx, "CONFIGURE_FORECASTING")
    if scope not in (LEAD_TIME_SCOPE_PRODUCT, LEAD_TIME_SCOPE_SUPPLIER):
        raise ForecastValidationError("scope must be 'product' or 'supplier'")
    try:
        lead_time_days = int(lead_time_days)
    except (TypeError, ValueError):
        raise ForecastValidationError("lead_time_days must be a whole number")
    if lead_time_days <= 0:
        raise ForecastValidationError("lead_time_days must be positive")

    if scope == LEAD_TIME_SCOPE_PRODUCT:
        target = db.session.query(Product).filter_by(id=target_id, business_id=ctx.business_id).first()
        lookup = {"product_id": target_id}
    else:
        target = db.session.query(Supplier).filter_by(id=target_id, business_id=ctx.business_id).first()
        lookup = {"supplier_id": target_id}
    if not target:
        raise ForecastNotFoundError(f"{scope.capitalize()} {target_id} not found")

    row = db.session.query(LeadTimeConfig).filter_by(
        business_id=ctx.business_id, scope=scope, **lookup
    ).first()
    if not row:
        row = LeadTimeConfig(business_id=ctx.business_id, scope=scope, **lookup)
        db.session.add(row)
    row.lead_time_days = lead_time_days
    row.updated_by_staff_id = ctx.staff_id
    db.session.commit()
    return row


def clear_lead_time(ctx, *, scope: str, target_id: int) -> bool:
    require_permission(ctx, "CONFIGURE_FORECASTING")
    key = "product_id" if scope == LEAD_TIME_SCOPE_PRODUCT else "supplier_id"
    deleted = db.session.query(LeadTimeConfig).filter_by(
        business_id=ctx.business_id, scope=scope, **{key: target_id}
    ).delete()
    db.session.commit()
    return bool(deleted)


# -- Forecasts over stored state --

def calculate_average_daily_sales(
    *,
    product_id: int,
    window_days: int,
    as_of: datetime | None = None,
) -> float:
    window_days = validate_window(window_days)
    return sales_service.units_sold(product_id=product_id, window_days=window_days, as_of=as_of) / window_days


def forecast_product(ctx, product_id: int, *, window_days: int | None = None, as_of: datetime | None = None) -> Forecast:
    require_permission(ctx, "VIEW_FORECASTS")
    product = db.session.query(Product).filter_by(id=product_id, business_id=ctx.business_id).first()
    if not product:
        raise ForecastNotFoundError(f"Product {product_id} not found")
    require_branch_access(ctx, product.branch_id)

    settings = get_forecast_settings(ctx.business_id)
    window_days = validate_window(window_days or settings.default_sales_period_days)
    return _forecast_for(
        product,
        sold=sales_service.units_sold(product_id=product.id, window_days=window_days, as_of=as_of),
        window_days=window_days,
        lead_time_days=resolve_lead_time_days(ctx.business_id, product.id, product.supplier_id),
        settings=settings,
    )


def _forecast_for(product: Product, *, sold: int, window_days: int, lead_time_days: int, settings: ForecastSettings) -> Forecast:
    return compute_forecast(
        current_stock=product.stock,
        units_sold=sold,
        window_days=window_days,
        lead_time_days=lead_time_days,
        reorder_cycle_days=settings.reorder_cycle_days,
        reorder_soon_multiplier=settings.reorder_soon_multiplier,
        unit_cost_cents=best_unit_cost_cents(
            product.cost_price_cents,
            product.wholesale_price_cents,
            product.retail_price_cents,
        ),
        product_id=product.id,
        product_name=product.name,
        sku=product.sku,
        branch_id=product.branch_id,
        supplier_id=product.supplier_id,
    )


def build_forecast_report(
    ctx,
    *,
    branch_id: int | None = None,
    window_days: int | None = None,
    top_n: int | None = None,
    as_of: datetime | None = None,
) -> ForecastReport:
    """
    Forecast every active inventory record the actor can see.

    Read-only: stock and sales are only queried.
    """
    require_permission(ctx, "VIEW_FORECASTS")
    settings = get_forecast_settings(ctx.business_id)
    window_days = validate_window(window_days or settings.default_sales_period_days)
    if top_n is None:
        top_n = current_app.config.get("FORECAST_TOP_N", 10)
    as_of = as_of or utcnow()

    branch_ids = resolve_branch_filter(ctx, branch_id)
    if not branch_ids:
        return summarize_forecasts([], window_days=window_days, top_n=top_n, generated_at=as_of)

    products = (
        db.session.query(Product)
        .filter(
            Product.business_id == ctx.business_id,
            Product.branch_id.in_(branch_ids),
            Product.is_active.is_(True),
        )
        .order_by(Product.branch_id.asc(), Product.name.asc())
        .all()
    )
    sold = sales_service.units_sold_by_product(
        business_id=ctx.business_id,
        branch_ids=branch_ids,
        window_days=window_days,
        as_of=as_of,
    )
    by_product, by_supplier = _lead_time_maps(ctx.business_id)

    forecasts = []
    for product in products:
        lead_time = by_product.get(product.id) or by_supplier.get(product.supplier_id) or settings.default_lead_time_days
        forecasts.append(_forecast_for(
            product,
            sold=sold.get(product.id, 0),
            window_days=window_days,
            lead_time_days=lead_time,
            settings=settings,
        ))

    return summarize_forecasts(
        forecasts,
        window_days=window_days,
        top_n=top_n,
        slow_moving_max_daily_sales=settings.slow_moving_max_daily_sales,
        slow_moving_min_stock=settings.slow_moving_min_stock,
        generated_at=as_of,
    )
