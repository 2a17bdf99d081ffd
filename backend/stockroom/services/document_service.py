# Overview: Per-business running numbers for purchase orders, goods received notes and sales.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..errors import ValidationError
from ..models import DocumentSequence
from .concurrency import run_with_retry


DOC_PURCHASE_ORDER = "PURCHASE_ORDER"
DOC_GOODS_RECEIVED = "GOODS_RECEIVED"
DOC_SALE = "SALE"


class DocumentSequenceError(ValidationError):
    """Raised when a document number cannot be issued."""


def format_document_number(prefix: str, number: int, pad: int = 3) -> str:
    """("PO", 7) -> "PO-007". Widens past the pad: ("PO", 1000) -> "PO-1000"."""
    return f"{prefix}-{number:0{pad}d}"


def _claim(business_id: int, document_type: str) -> int | None:
    """Bump the stored counter and return the number it held, or None if no counter exists yet."""
    result = db.session.execute(
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )
    if not result.rowcount:
        return None
    issued_after = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(business_id=business_id, document_type=document_type)
        .scalar()
    )
    return issued_after - 1


def next_document_number(
    *,
    business_id: int,
    document_type: str,
    prefix: str,
    pad: int = 3,
) -> str:
    """
    Issue the next number in a business's sequence for one document type.

    The counter row is bumped with a single UPDATE, so two writers never
    receive the same number. The first number of a sequence seeds the row
    inside a savepoint; losing that insert race to another writer falls
    back to bumping the row the winner created without discarding objects
    the caller already added to the session.
    """
    if not business_id:
        raise DocumentSequenceError("business_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    def _op() -> str:
        number = _claim(business_id, document_type)
        if number is None:
            try:
                with db.session.begin_nested():
                    db.session.add(
                        DocumentSequence(business_id=business_id, document_type=document_type, next_number=2)
                    )
                number = 1
            except IntegrityError:
                number = _claim(business_id, document_type)
                if number is None:
                    raise DocumentSequenceError(
                        f"Could not start the {document_type} sequence for business {business_id}"
                    )
        return format_document_number(prefix, number, pad)

    return run_with_retry(_op)
