# Overview: Service-layer operations for the procurement event ledger.

from __future__ import annotations

from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import ProcurementEvent
from stockroom.time_utils import utcnow
"""
Procurement ledger invariants

- Append-only audit log of lifecycle changes on procurement documents.
- No business logic in the ledger itself.
- Events are written inside the same DB transaction as the change they record.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_procurement_event(
    *,
    business_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    branch_id: int | None = None,
    document_number: str | None = None,
    actor_staff_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
) -> ProcurementEvent:
    """
    Append-only procurement event. Flushes, never commits.
    """
    ev = ProcurementEvent(
        business_id=business_id,
        branch_id=branch_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        document_number=document_number,
        actor_staff_id=actor_staff_id,
        occurred_at=occurred_at or utcnow(),
        note=(note[:255] if note else None),
    )
    db.session.add(ev)
    db.session.flush()
    return ev


def list_events_for_entity(entity_type: str, entity_id: int) -> list[ProcurementEvent]:
    return (
        db.session.query(ProcurementEvent)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(ProcurementEvent.occurred_at.asc(), ProcurementEvent.id.asc())
        .all()
    )
