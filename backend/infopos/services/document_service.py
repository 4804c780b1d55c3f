# Overview: Per-tenant document numbering (invoice numbers).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when a document number cannot be allocated."""


def next_document_number(
    *,
    tenant_id: str,
    document_type: str,
    prefix: str,
    pad: int = 6,
) -> str:
    """
    Atomically allocate the next document number for a tenant/type.

    Uses a conditional increment on (tenant_id, document_type); the first
    allocation inserts the sequence row. Runs inside the caller's transaction;
    a rolled-back sale also rolls back its number.
    """
    if not tenant_id:
        raise DocumentSequenceError("tenant_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.tenant_id == tenant_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(tenant_id=tenant_id, document_type=document_type)
            .scalar()
        )
        next_num = current - 1
    else:
        seq = DocumentSequence(tenant_id=tenant_id, document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another writer created the row first; take the increment path
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise DocumentSequenceError("Failed to allocate document number")
            current = (
                db.session.query(DocumentSequence.next_number)
                .filter_by(tenant_id=tenant_id, document_type=document_type)
                .scalar()
            )
            next_num = current - 1

    return f"{prefix}-{str(next_num).zfill(pad)}"
