"""
Persistence gateway for routed documents.

The workflow engine depends only on the DocumentGateway protocol.
SqlDocumentGateway stores one row per document with approval steps, action
history and revision provenance as JSON, and enforces compare-and-set on
`version` so two scans racing on one document cannot both win.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from app.doctrack.modules.routing.authorizer import is_listed_for
from app.doctrack.modules.routing.domain import (
    Actor,
    ApprovalStep,
    AuditRecord,
    Document,
    Revision,
    Role,
    Workflow,
)
from app.doctrack.modules.routing.errors import DocumentNotFound, StaleDocument
from app.doctrack.modules.routing.models import DocumentRow
from app.doctrack.modules.routing.status import DualStatus, TrackingStatus, to_dual
from app.doctrack.utils import normalize_email

logger = logging.getLogger(__name__)


class DocumentGateway(Protocol):
    def create(self, document: Document) -> Document: ...

    def get(self, document_id: str) -> Document | None: ...

    def list_for_role(self, actor: Actor) -> list[Document]: ...

    def update(self, document: Document) -> Document: ...

    def delete(self, document_id: str) -> None: ...

    def list_revision_chain(self, root_id: str) -> list[Document]: ...


def _aware(dt: datetime | None) -> datetime | None:
    # sqlite drops tzinfo on the way back
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def row_to_document(row: DocumentRow) -> Document:
    if row.tracking_status:
        state = DualStatus.from_values(row.document_status, row.tracking_status)
    else:
        # Row predates the dual scheme.
        state = to_dual(row.status)
    return Document(
        id=row.id,
        title=row.title,
        doc_type=row.doc_type,
        description=row.description,
        workflow=Workflow(row.workflow),
        state=state,
        created_by=row.created_by,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
        recipient=row.recipient,
        rejection_reason=row.rejection_reason,
        approval_steps=tuple(ApprovalStep.from_dict(s) for s in row.approval_steps or []),
        current_step_index=row.current_step_index or 0,
        action_history=tuple(AuditRecord.from_dict(r) for r in row.action_history or []),
        revision=Revision.from_dict(row.revision_data) if row.revision_data else None,
        version=row.version,
    )


def document_values(document: Document) -> dict:
    return {
        "title": document.title,
        "doc_type": document.doc_type,
        "description": document.description,
        "workflow": document.workflow.value,
        "document_status": document.state.document.value if document.state.document else None,
        "tracking_status": document.state.tracking.value,
        "status": document.legacy_status,
        "created_by": document.created_by,
        "created_at": document.created_at,
        "updated_at": document.updated_at,
        "recipient": document.recipient,
        "rejection_reason": document.rejection_reason,
        "current_step_index": document.current_step_index,
        "approval_steps": [s.to_dict() for s in document.approval_steps],
        "action_history": [r.to_dict() for r in document.action_history],
        "revision_data": document.revision.to_dict() if document.revision else None,
        "chain_root_id": document.chain_root_id,
    }


class SqlDocumentGateway:
    """
    SQLAlchemy-backed gateway. The caller owns the session and its commit;
    this class only flushes.
    """

    def __init__(self, session: Session):
        self.s = session

    def create(self, document: Document) -> Document:
        row = DocumentRow(id=document.id, version=0, **document_values(document))
        self.s.add(row)
        self.s.flush()
        logger.info("Document stored: id=%s workflow=%s", document.id, document.workflow.value)
        return row_to_document(row)

    def get(self, document_id: str) -> Document | None:
        row = self.s.get(DocumentRow, document_id, populate_existing=True)
        return row_to_document(row) if row else None

    def list_for_role(self, actor: Actor) -> list[Document]:
        q = select(DocumentRow).order_by(DocumentRow.created_at.desc())
        email = normalize_email(actor.email)
        if actor.role == Role.ADMIN:
            q = q.where(DocumentRow.created_by == email)
        elif actor.role == Role.RECIPIENT:
            q = q.where(DocumentRow.workflow == Workflow.DROP.value, DocumentRow.recipient == email)
        else:
            # Finished and cancelled documents never await a courier or approver.
            q = q.where(
                or_(
                    DocumentRow.tracking_status.is_(None),
                    DocumentRow.tracking_status.notin_(
                        [TrackingStatus.COMPLETED.value, TrackingStatus.REJECTED.value]
                    ),
                )
            )
        docs = [row_to_document(r) for r in self.s.scalars(q).all()]
        return [d for d in docs if is_listed_for(d, actor)]

    def update(self, document: Document) -> Document:
        res = self.s.execute(
            update(DocumentRow)
            .where(DocumentRow.id == document.id, DocumentRow.version == document.version)
            .values(version=document.version + 1, **document_values(document))
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            if self.s.get(DocumentRow, document.id) is None:
                raise DocumentNotFound(f"Document {document.id} not found")
            raise StaleDocument(
                f"Document {document.id} was modified concurrently (expected version {document.version})"
            )
        self.s.flush()
        stored = self.get(document.id)
        if stored is None:
            raise DocumentNotFound(f"Document {document.id} was removed during update")
        return stored

    def delete(self, document_id: str) -> None:
        res = self.s.execute(delete(DocumentRow).where(DocumentRow.id == document_id))
        if res.rowcount != 1:
            raise DocumentNotFound(f"Document {document_id} not found")
        self.s.flush()

    def list_revision_chain(self, root_id: str) -> list[Document]:
        rows = self.s.scalars(select(DocumentRow).where(DocumentRow.chain_root_id == root_id)).all()
        return [row_to_document(r) for r in rows]
