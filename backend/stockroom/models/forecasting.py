from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


LEAD_TIME_SCOPE_PRODUCT = "product"
LEAD_TIME_SCOPE_SUPPLIER = "supplier"


class LeadTimeConfig(db.Model):
    """
    Lead time override for one product record or one supplier.

    Exactly one of product_id / supplier_id is set, matching scope. NULLs are
    distinct in unique constraints, so each pair below only bites for its own
    scope.
    """
    __tablename__ = "lead_time_configs"
    __table_args__ = (
        db.UniqueConstraint("business_id", "product_id", name="uq_lead_time_business_product"),
        db.UniqueConstraint("business_id", "supplier_id", name="uq_lead_time_business_supplier"),
        db.CheckConstraint("lead_time_days > 0", name="ck_lead_time_positive"),
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    scope = db.Column(db.String(16), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True)
    lead_time_days = db.Column(db.Integer, nullable=False)

    updated_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        target = self.product_id if self.scope == LEAD_TIME_SCOPE_PRODUCT else self.supplier_id
        return f"<LeadTimeConfig {self.scope}={target} days={self.lead_time_days}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "scope": self.scope,
            "product_id": self.product_id,
            "supplier_id": self.supplier_id,
            "lead_time_days": self.lead_time_days,
            "updated_by_staff_id": self.updated_by_staff_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class ForecastingConfig(db.Model):
    """Per-business forecasting policy. Missing row means app defaults."""
    __tablename__ = "forecasting_configs"

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, unique=True)

    default_sales_period_days = db.Column(db.Integer, nullable=False)
    reorder_cycle_days = db.Column(db.Integer, nullable=False)
    default_lead_time_days = db.Column(db.Integer, nullable=False)
    reorder_soon_multiplier = db.Column(db.Float, nullable=False)
    slow_moving_max_daily_sales = db.Column(db.Float, nullable=False)
    slow_moving_min_stock = db.Column(db.Integer, nullable=False)

    updated_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "business_id": self.business_id,
            "default_sales_period_days": self.default_sales_period_days,
            "reorder_cycle_days": self.reorder_cycle_days,
            "default_lead_time_days": self.default_lead_time_days,
            "reorder_soon_multiplier": self.reorder_soon_multiplier,
            "slow_moving_max_daily_sales": self.slow_moving_max_daily_sales,
            "slow_moving_min_stock": self.slow_moving_min_stock,
            "updated_at": to_utc_z(self.updated_at),
        }
