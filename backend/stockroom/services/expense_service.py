# Overview: Service-layer operations for business expenses written by other documents.

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import CollaboratorError
from ..models import Expense
from .permission_service import require_permission


logger = logging.getLogger(__name__)

CATEGORY_INVENTORY_PROCUREMENT = "Inventory Procurement"
SOURCE_SUPPLIER_INVOICE = "SUPPLIER_INVOICE"


class ExpenseError(CollaboratorError):
    """Raised when an expense could not be written."""
    pass


def _create_system_expense_inner(
    *,
    business_id: int,
    branch_id: int | None,
    title: str,
    category: str,
    amount_cents: int,
    expense_date: date,
    source_type: str,
    source_reference_id: int,
    source_reference_number: str | None = None,
    description: str | None = None,
    created_by_staff_id: int | None = None,
) -> Expense:
    """
    Add a system-generated expense. Flushes, never commits.

    A second expense for the same (source_type, source_reference_id) violates
    the unique constraint and raises ExpenseError.
    """
    expense = Expense(
        business_id=business_id,
        branch_id=branch_id,
        title=title,
        category=category,
        description=description,
        amount_cents=int(amount_cents),
        expense_date=expense_date,
        source_type=source_type,
        source_reference_id=source_reference_id,
        source_reference_number=source_reference_number,
        is_system_generated=True,
        created_by_staff_id=created_by_staff_id,
    )
    try:
        db.session.add(expense)
        db.session.flush()
    except SQLAlchemyError as exc:
        logger.error("Failed to record expense for %s %s: %s", source_type, source_reference_id, exc)
        raise ExpenseError(f"Could not record expense for {source_type} {source_reference_id}") from exc
    return expense


def find_expense_for_source(source_type: str, source_reference_id: int) -> Expense | None:
    return db.session.query(Expense).filter_by(
        source_type=source_type,
        source_reference_id=source_reference_id,
    ).first()


def list_expenses(ctx, *, category: str | None = None, system_generated: bool | None = None) -> list[Expense]:
    require_permission(ctx, "VIEW_PAYABLES")
    query = db.session.query(Expense).filter(Expense.business_id == ctx.business_id)
    if category:
        query = query.filter(Expense.category == category)
    if system_generated is not None:
        query = query.filter(Expense.is_system_generated.is_(system_generated))
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
