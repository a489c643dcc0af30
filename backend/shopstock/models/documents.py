from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Monotonic counter per document type (SALE, PO).

    WHY: Sale and purchase order numbers must never collide. A row-level
    increment gives a unique, gap-tolerant sequence without relying on clocks.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_doc_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False, index=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
