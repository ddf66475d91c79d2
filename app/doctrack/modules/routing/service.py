"""
Routing service layer.

Caller submits (document id, action, actor); the authorizer decides, the
executor produces the next Document with one audit record, and the gateway
persists it. Revision requests go straight to the revision engine.

Callers must serialize scans per document id; the gateway's compare-and-set
turns a lost race into StaleDocument instead of a silent overwrite.
"""
from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import datetime

from app.doctrack.audit import creation_record
from app.doctrack.modules.routing import executor, revision
from app.doctrack.modules.routing.authorizer import Allow, Deny, Substitute, authorize
from app.doctrack.modules.routing.domain import (
    Action,
    Actor,
    ApprovalStep,
    Document,
    Role,
    ScanResult,
    Workflow,
)
from app.doctrack.modules.routing.errors import AuthorizationDenied, DocumentNotFound, ValidationError
from app.doctrack.modules.routing.gateway import DocumentGateway
from app.doctrack.modules.routing.qr import describe_next_step
from app.doctrack.modules.routing.status import DualStatus, TrackingStatus
from app.doctrack.utils import new_document_id, normalize_email, utcnow

logger = logging.getLogger(__name__)


def _require_role(actor: Actor, role: Role, what: str) -> None:
    if actor.role != role:
        raise AuthorizationDenied(f"Only {role.value} users can {what}.")


def _require_creator(document: Document, actor: Actor, what: str) -> None:
    _require_role(actor, Role.ADMIN, what)
    if normalize_email(document.created_by) != normalize_email(actor.email):
        raise AuthorizationDenied(f"You can only {what} documents you created.")


def get_document(gateway: DocumentGateway, document_id: str) -> Document:
    d = gateway.get((document_id or "").strip())
    if d is None:
        raise DocumentNotFound(f"Document {document_id} not found")
    return d


def create_document(
    gateway: DocumentGateway,
    *,
    actor: Actor,
    title: str,
    doc_type: str,
    workflow: Workflow,
    description: str | None = None,
    approvers: Sequence[str] = (),
    recipient: str | None = None,
    at: datetime | None = None,
) -> Document:
    """Create a document ready for its first courier pickup."""
    _require_role(actor, Role.ADMIN, "create documents")
    title = (title or "").strip()
    doc_type = (doc_type or "").strip()
    if not title or not doc_type:
        raise ValidationError("title and type are required.")

    cleaned = revision.validate_approvers(workflow, approvers)
    recipient = normalize_email(recipient) or None
    if workflow == Workflow.DROP and not recipient:
        raise ValidationError("A DROP document needs a recipient.")
    if workflow == Workflow.FLOW and recipient:
        raise ValidationError("A FLOW document is routed to approvers, not a recipient.")

    at = at or utcnow()
    doc = Document(
        id=new_document_id(),
        title=title,
        doc_type=doc_type,
        description=(description or "").strip() or None,
        workflow=workflow,
        state=DualStatus(None, TrackingStatus.READY_FOR_PICKUP),
        created_by=normalize_email(actor.email),
        created_at=at,
        updated_at=at,
        recipient=recipient,
        approval_steps=tuple(ApprovalStep(order=i, approver_email=e) for i, e in enumerate(cleaned, start=1)),
        current_step_index=0,
    )
    doc = creation_record(doc, action=Action.CREATED, performed_by=doc.created_by, comments="Document workflow initiated")
    stored = gateway.create(doc)
    logger.info("Document created: id=%s by=%s workflow=%s approvers=%d", stored.id, actor.email, workflow.value, len(cleaned))
    return stored


def process_scan(
    gateway: DocumentGateway,
    document_id: str,
    action: Action,
    actor: Actor,
    *,
    comments: str | None = None,
    auto_correct: bool = False,
    at: datetime | None = None,
) -> ScanResult:
    """
    Authorize and apply one scan.

    Deny raises AuthorizationDenied. Substitute is returned unapplied (so the
    caller can surface it) unless `auto_correct` is set, in which case the
    forced action is applied instead.
    """
    document = get_document(gateway, document_id)
    decision = authorize(document, action, actor, comments=comments)
    warnings: list[str] = []

    if isinstance(decision, Deny):
        logger.warning(
            "Scan denied: doc=%s action=%s actor=%s role=%s reason=%s",
            document.id,
            action.value,
            actor.email,
            actor.role.value,
            decision.reason,
        )
        raise AuthorizationDenied(decision.reason)

    if isinstance(decision, Substitute):
        if not auto_correct:
            next_step, _ = describe_next_step(document)
            return ScanResult(
                document=document,
                requested=action,
                applied=None,
                message=decision.reason,
                next_step=next_step,
                warnings=[f"suggested_action:{decision.action.value}"],
            )
        warnings.append(decision.reason)
        to_apply = decision.action
    elif isinstance(decision, Allow):
        to_apply = decision.action
    else:  # pragma: no cover
        raise TypeError(f"Unexpected decision {decision!r}")

    updated = executor.execute(document, to_apply, actor, comments=comments, at=at)
    stored = gateway.update(updated)
    next_step, _ = describe_next_step(stored)
    logger.info(
        "Scan applied: doc=%s action=%s actor=%s %s -> %s",
        stored.id,
        to_apply.value,
        actor.email,
        document.legacy_status,
        stored.legacy_status,
    )
    return ScanResult(
        document=stored,
        requested=action,
        applied=to_apply,
        message="Action completed successfully",
        next_step=next_step,
        warnings=warnings,
    )


def list_documents(gateway: DocumentGateway, actor: Actor) -> list[Document]:
    return gateway.list_for_role(actor)


def delete_document(gateway: DocumentGateway, document_id: str, actor: Actor) -> None:
    document = get_document(gateway, document_id)
    _require_creator(document, actor, "delete")
    gateway.delete(document.id)
    logger.info("Document deleted: id=%s by=%s", document.id, actor.email)


def _persist_revision(gateway: DocumentGateway, outcome: revision.RevisionOutcome) -> Document:
    stored = gateway.create(outcome.revised)
    gateway.update(outcome.original)
    return stored


def clone_document(
    gateway: DocumentGateway,
    document_id: str,
    actor: Actor,
    *,
    approvers: Sequence[str] | None,
    reset_all_approvals: bool,
    reason: str,
    title: str | None = None,
    description: str | None = None,
    doc_type: str | None = None,
) -> Document:
    """Clone with edits. The clone starts as a draft (NEW)."""
    original = get_document(gateway, document_id)
    _require_creator(original, actor, "revise")
    if approvers is None:
        approvers = [s.approver_email for s in original.approval_steps]
    outcome = revision.clone_with_edits(
        original,
        approvers,
        reset_all_approvals=reset_all_approvals,
        revised_by=actor,
        reason=reason,
        chain=gateway.list_revision_chain(original.chain_root_id),
        title=title,
        description=description,
        doc_type=doc_type,
    )
    stored = _persist_revision(gateway, outcome)
    logger.info(
        "Document cloned: %s -> %s revision=%s preserved=%d",
        original.id,
        stored.id,
        stored.revision_number,
        len(stored.revision.preserved_approvals) if stored.revision else 0,
    )
    return stored


def resubmit_document(
    gateway: DocumentGateway,
    document_id: str,
    actor: Actor,
    *,
    approvers: Sequence[str] | None,
    reset_all_approvals: bool,
    reason: str,
) -> Document:
    """Resubmit a rejected document; routing resumes past preserved approvals."""
    original = get_document(gateway, document_id)
    _require_creator(original, actor, "resubmit")
    if approvers is None:
        approvers = [s.approver_email for s in original.approval_steps]
    outcome = revision.resubmit_after_rejection(
        original,
        approvers,
        reset_all_approvals=reset_all_approvals,
        revised_by=actor,
        reason=reason,
        chain=gateway.list_revision_chain(original.chain_root_id),
    )
    stored = _persist_revision(gateway, outcome)
    logger.info(
        "Document resubmitted: %s -> %s revision=%s start_index=%s",
        original.id,
        stored.id,
        stored.revision_number,
        stored.current_step_index,
    )
    return stored
