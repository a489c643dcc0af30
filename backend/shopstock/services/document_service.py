# Overview: Service-layer operations for document numbers; encapsulates sequence allocation.

from __future__ import annotations

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import PersistenceFailure
from ..extensions import db
from ..models import DocumentSequence
from .concurrency import run_with_retry


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_next_number(document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 8,
) -> str:
    """
    Atomically allocate and commit the next number for a document type.

    Numbers look like SALE-00000042 / PO-00000007. The allocation commits on
    its own, so a document whose creation later fails leaves a gap rather than
    a duplicate.

    Storage failures that outlive the retries surface as PersistenceFailure,
    like every other stock write.
    """
    def _op() -> str:
        if not document_type:
            raise DocumentSequenceError("document_type is required")

        stmt = (
            update(DocumentSequence)
            .where(DocumentSequence.document_type == document_type)
            .values(next_number=DocumentSequence.next_number + 1)
        )

        result = db.session.execute(stmt)
        if result.rowcount:
            db.session.flush()
            next_num = _current_next_number(document_type) - 1
        else:
            seq = DocumentSequence(document_type=document_type, next_number=2)
            db.session.add(seq)
            try:
                db.session.flush()
                next_num = 1
            except IntegrityError:
                db.session.rollback()
                result = db.session.execute(stmt)
                if not result.rowcount:
                    raise
                db.session.flush()
                next_num = _current_next_number(document_type) - 1

        db.session.commit()
        return f"{prefix}-{next_num:0{pad}d}"

    try:
        return run_with_retry(_op)
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(
            "Document number allocation failed for %s", document_type, exc_info=True,
        )
        raise PersistenceFailure("Failed to allocate document number") from exc
