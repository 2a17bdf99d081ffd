from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z, to_iso_date


class Expense(db.Model):
    """
    Business expense.

    System-generated expenses point back at their source document through
    (source_type, source_reference_id). The unique constraint means a source
    document can produce at most one expense.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.UniqueConstraint("source_type", "source_reference_id", name="uq_expenses_source"),
        db.Index("ix_expenses_business_date", "business_id", "expense_date"),
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True)

    title = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    expense_date = db.Column(db.Date, nullable=False)

    source_type = db.Column(db.String(32), nullable=True)
    source_reference_id = db.Column(db.Integer, nullable=True)
    source_reference_number = db.Column(db.String(64), nullable=True)
    is_system_generated = db.Column(db.Boolean, nullable=False, default=False)

    created_by_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Expense id={self.id} title={self.title!r} amount_cents={self.amount_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "title": self.title,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "expense_date": to_iso_date(self.expense_date),
            "source_type": self.source_type,
            "source_reference_id": self.source_reference_id,
            "source_reference_number": self.source_reference_number,
            "is_system_generated": self.is_system_generated,
            "created_by_staff_id": self.created_by_staff_id,
            "created_at": to_utc_z(self.created_at),
        }
