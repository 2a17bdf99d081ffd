from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


class Sale(db.Model):
    """Completed sale. Sale history is the forecaster's demand signal."""
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("business_id", "sale_number", name="uq_sales_business_number"),
        db.Index("ix_sales_branch_time", "branch_id", "occurred_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    sale_number = db.Column(db.String(32), nullable=False)
    staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship("SaleLine", backref="sale", lazy=True, cascade="all, delete-orphan")

    def __repr__(self) -> str:
        return f"<Sale id={self.id} sale_number={self.sale_number!r} branch_id={self.branch_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "sale_number": self.sale_number,
            "staff_id": self.staff_id,
            "total_cents": self.total_cents,
            "occurred_at": to_utc_z(self.occurred_at),
            "lines": [line.to_dict() for line in self.lines],
        }


class SaleLine(db.Model):
    __tablename__ = "sale_lines"

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }
