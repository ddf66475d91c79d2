from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from app.doctrack.modules.routing.domain import Action, AuditRecord, Document
from app.doctrack.modules.routing.status import DualStatus
from app.doctrack.utils import new_record_id, utcnow


def record_action(
    document: Document,
    *,
    action: Action,
    performed_by: str,
    new_state: DualStatus | None = None,
    previous_state: DualStatus | None = None,
    comments: str | None = None,
    at: datetime | None = None,
    **changes,
) -> Document:
    """
    Append-only audit helper.

    Returns a copy of `document` with `changes` applied, `state` set to
    `new_state` (unchanged when omitted) and exactly one AuditRecord appended.
    The previous state defaults to the document's current state.
    """
    at = at or utcnow()
    before = previous_state if previous_state is not None else document.state
    after = new_state if new_state is not None else document.state
    rec = AuditRecord(
        id=new_record_id(),
        document_id=document.id,
        action=action,
        performed_by=performed_by,
        performed_at=at,
        previous_state=before,
        new_state=after,
        comments=comments,
    )
    return replace(
        document,
        state=after,
        updated_at=at,
        action_history=document.action_history + (rec,),
        **changes,
    )


def creation_record(document: Document, *, action: Action, performed_by: str, comments: str | None = None) -> Document:
    """First record of a new document: there is no previous state."""
    rec = AuditRecord(
        id=new_record_id(),
        document_id=document.id,
        action=action,
        performed_by=performed_by,
        performed_at=document.created_at,
        previous_state=None,
        new_state=document.state,
        comments=comments,
    )
    return replace(document, action_history=document.action_history + (rec,))
