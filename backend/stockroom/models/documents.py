from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-business document sequences (PO-001, GRN-001, ...).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_id", "document_type", name="uq_doc_sequences_business_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }


class ProcurementEvent(db.Model):
    """
    Append-only audit of procurement lifecycle changes.

    Written in the same transaction as the change it records.
    occurred_at is business time; created_at is system time.
    """
    __tablename__ = "procurement_events"
    __table_args__ = (
        db.Index("ix_procurement_events_entity", "entity_type", "entity_id"),
        db.Index("ix_procurement_events_business_occurred", "business_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., purchase_order.approved
    entity_type = db.Column(db.String(64), nullable=False)  # e.g., purchase_order
    entity_id = db.Column(db.Integer, nullable=False)
    document_number = db.Column(db.String(64), nullable=True)

    actor_staff_id = db.Column(db.Integer, db.ForeignKey("staff.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    note = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "branch_id": self.branch_id,
            "event_type": self.event_type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "document_number": self.document_number,
            "actor_staff_id": self.actor_staff_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
        }
