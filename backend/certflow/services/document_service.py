# Overview: Atomic document number allocation (INV-2025-001 style).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence
from certflow.time_utils import utcnow


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    year: int | None = None,
    pad: int = 3,
) -> str:
    """
    Allocate the next document number for a type within a calendar year.

    Counters restart at 1 every year. The increment is a single UPDATE so
    concurrent writers serialize on the sequence row. Runs inside the
    caller's transaction; the number is consumed only if that commits.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")
    if year is None:
        year = utcnow().year

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _current() -> int:
        db.session.flush()
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, year=year)
            .scalar()
        )
        return current - 1

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current()
    else:
        seq = DocumentSequence(document_type=document_type, year=year, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another writer created the row first
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current()

    return f"{prefix}-{year}-{next_num:0{pad}d}"
