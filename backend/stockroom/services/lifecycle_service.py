# Overview: Service-layer operations for document lifecycles; transition tables and guarded status changes.

"""
Stockroom Document Lifecycle Service

================================================================================
PURPOSE: One-way status machines for every procurement document
================================================================================

STATE MACHINES:
    Supplier request:  Requested -> Converted | Cancelled
    Purchase order:    Draft -> Sent -> Approved -> Delivered
                       Draft | Sent | Approved -> Cancelled
    Goods received:    Draft -> Confirmed
    Supplier invoice:  Draft -> Approved -> Paid

RULES:
1. Only listed transitions are allowed; same-state "transitions" are rejected.
2. Terminal states (Converted, Cancelled, Delivered, Confirmed, Paid) never move.
3. advance() is a compare-and-set: UPDATE ... WHERE id = ? AND status = <current>.
   When two actors race, exactly one UPDATE matches a row; the other gets a
   state error and none of its side effects run.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import update

from ..extensions import db
from ..errors import StateError


logger = logging.getLogger(__name__)


class LifecycleError(StateError):
    """
    Raised when an invalid lifecycle transition is attempted.

    Services catch nothing here; their own StateError subclasses are raised
    through advance(error_cls=...).
    """
    pass


@dataclass(frozen=True)
class Lifecycle:
    name: str
    statuses: frozenset
    transitions: frozenset
    status_field: str = "status"

    def validate_status(self, status: str) -> None:
        if status not in self.statuses:
            raise LifecycleError(
                f"Invalid {self.name} status '{status}'. "
                f"Must be one of: {', '.join(sorted(self.statuses))}"
            )

    def can_transition(self, from_status: str, to_status: str) -> bool:
        self.validate_status(from_status)
        self.validate_status(to_status)
        return (from_status, to_status) in self.transitions

    def next_statuses(self, from_status: str) -> list[str]:
        return sorted(to for (frm, to) in self.transitions if frm == from_status)

    def is_terminal(self, status: str) -> bool:
        return not self.next_statuses(status)


SUPPLIER_REQUEST_LIFECYCLE = Lifecycle(
    name="supplier request",
    statuses=frozenset({"Requested", "Converted", "Cancelled"}),
    transitions=frozenset({
        ("Requested", "Converted"),
        ("Requested", "Cancelled"),
    }),
    status_field="conversion_status",
)

PURCHASE_ORDER_LIFECYCLE = Lifecycle(
    name="purchase order",
    statuses=frozenset({"Draft", "Sent", "Approved", "Delivered", "Cancelled"}),
    transitions=frozenset({
        ("Draft", "Sent"),
        ("Sent", "Approved"),
        ("Approved", "Delivered"),
        ("Draft", "Cancelled"),
        ("Sent", "Cancelled"),
        ("Approved", "Cancelled"),
    }),
)

GOODS_RECEIVED_LIFECYCLE = Lifecycle(
    name="goods received note",
    statuses=frozenset({"Draft", "Confirmed"}),
    transitions=frozenset({
        ("Draft", "Confirmed"),
    }),
)

SUPPLIER_INVOICE_LIFECYCLE = Lifecycle(
    name="supplier invoice",
    statuses=frozenset({"Draft", "Approved", "Paid"}),
    transitions=frozenset({
        ("Draft", "Approved"),
        ("Approved", "Paid"),
    }),
)


def advance(entity, lifecycle: Lifecycle, to_status: str, *, error_cls=LifecycleError, **values):
    """
    Move entity from its current status to to_status.

    Pending changes are flushed first, then a guarded UPDATE is issued. If the
    row no longer holds the status this session read (another actor got there
    first), nothing is written and error_cls is raised. On success the entity
    is refreshed from the row. Never commits.
    """
    field = lifecycle.status_field
    from_status = getattr(entity, field)

    if from_status == to_status or not lifecycle.can_transition(from_status, to_status):
        raise error_cls(
            f"Cannot move {lifecycle.name} {entity.id} from {from_status} to {to_status}"
        )

    db.session.flush()

    model = type(entity)
    status_col = getattr(model, field)
    stmt = (
        update(model)
        .where(model.id == entity.id, status_col == from_status)
        .values({field: to_status, **values})
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise error_cls(
            f"{lifecycle.name.capitalize()} {entity.id} is no longer {from_status}"
        )

    db.session.refresh(entity)
    logger.info("%s %s: %s -> %s", lifecycle.name, entity.id, from_status, to_status)
    return entity
