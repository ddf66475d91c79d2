"""
Revision engine.

Derives a new Document from an existing one, optionally carrying over
approvals that were already granted. Two operations with different
post-conditions:

- clone_with_edits: always allowed; the copy starts at NEW so the originator
  can review it before release.
- resubmit_after_rejection: only for rejected documents; the copy goes
  straight back into routing and its current step index skips the preserved
  approvals.

Neither operation touches the original's state or steps. The original only
gains one `clone_created` audit record.
"""
from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from datetime import datetime

from app.doctrack.audit import creation_record, record_action
from app.doctrack.modules.routing.domain import (
    Action,
    Actor,
    ApprovalStep,
    Document,
    PreservedApproval,
    Revision,
    StepStatus,
    Workflow,
    first_open_step_index,
)
from app.doctrack.modules.routing.errors import AuthorizationDenied, ValidationError
from app.doctrack.modules.routing.status import DocumentStatus, DualStatus, TrackingStatus
from app.doctrack.utils import new_document_id, normalize_email, utcnow


@dataclass(frozen=True)
class RevisionOutcome:
    original: Document  # with the clone_created note appended
    revised: Document


def validate_approvers(workflow: Workflow, approvers: Sequence[str]) -> list[str]:
    """Normalize an approver list. FLOW needs at least one; emails must be unique."""
    cleaned = [normalize_email(a) for a in approvers or []]
    if any(not a for a in cleaned):
        raise ValidationError("Approver emails cannot be blank.")
    if workflow == Workflow.FLOW and not cleaned:
        raise ValidationError("A FLOW document needs at least one approver.")
    if workflow == Workflow.DROP and cleaned:
        raise ValidationError("A DROP document is delivered to one recipient and takes no approvers.")
    seen: set[str] = set()
    for a in cleaned:
        if a in seen:
            raise ValidationError(f"Approver {a} is listed more than once.")
        seen.add(a)
    return cleaned


def next_revision_number(original: Document, chain: Iterable[Document] = ()) -> int:
    """Max revision number over the original and its known chain, plus one."""
    numbers = [original.revision_number]
    numbers.extend(d.revision_number for d in chain)
    return max(numbers) + 1


def carry_over_steps(
    original: Document,
    approvers: Sequence[str],
    *,
    reset_all_approvals: bool,
) -> tuple[tuple[ApprovalStep, ...], tuple[PreservedApproval, ...]]:
    from_revision = original.revision_number
    steps: list[ApprovalStep] = []
    preserved: list[PreservedApproval] = []
    for order, email in enumerate(approvers, start=1):
        prior = original.step_for(email)
        if not reset_all_approvals and prior is not None and prior.status == StepStatus.APPROVED:
            note = f"preserved from revision {from_revision}"
            comments = f"{prior.comments} ({note})" if prior.comments else note
            steps.append(
                ApprovalStep(
                    order=order,
                    approver_email=prior.approver_email,
                    status=StepStatus.APPROVED,
                    timestamp=prior.timestamp,
                    comments=comments,
                )
            )
            preserved.append(
                PreservedApproval(
                    approver_email=prior.approver_email,
                    approved_at=prior.timestamp,
                    comments=prior.comments,
                    original_document_id=original.id,
                    preserved_from_revision=from_revision,
                )
            )
        else:
            steps.append(ApprovalStep(order=order, approver_email=email))
    return tuple(steps), tuple(preserved)


def _derive(
    original: Document,
    approvers: Sequence[str],
    *,
    reset_all_approvals: bool,
    revised_by: Actor,
    reason: str,
    chain: Iterable[Document],
    start_state: DualStatus,
    seed_step_index: bool,
    at: datetime | None,
    title: str | None = None,
    description: str | None = None,
    doc_type: str | None = None,
) -> RevisionOutcome:
    at = at or utcnow()
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A revision requires a reason.")
    cleaned = validate_approvers(original.workflow, approvers)
    steps, preserved = carry_over_steps(original, cleaned, reset_all_approvals=reset_all_approvals)
    number = next_revision_number(original, chain)

    new_title = (title or "").strip() or original.title
    revised = Document(
        id=new_document_id(),
        title=new_title,
        doc_type=(doc_type or "").strip() or original.doc_type,
        description=description if description is not None else original.description,
        workflow=original.workflow,
        state=start_state,
        created_by=original.created_by,
        created_at=at,
        updated_at=at,
        recipient=original.recipient,
        approval_steps=steps,
        current_step_index=first_open_step_index(steps) if seed_step_index else 0,
        revision=Revision(
            revision_number=number,
            original_document_id=original.chain_root_id,
            previous_revision_id=original.id,
            revision_reason=reason,
            revised_by=revised_by.email,
            revised_at=at,
            preserved_approvals=preserved,
        ),
    )
    revised = creation_record(
        revised,
        action=Action.CREATE_REVISION,
        performed_by=revised_by.email,
        comments=f"Revision {number} of {original.id}: {reason}",
    )
    annotated = record_action(
        original,
        action=Action.CLONE_CREATED,
        performed_by=revised_by.email,
        comments=f"Revision {number} created as {revised.id}",
        at=at,
    )
    # The original keeps its own updated_at; only its history grows.
    annotated = replace(annotated, updated_at=original.updated_at)
    return RevisionOutcome(original=annotated, revised=revised)


def clone_with_edits(
    original: Document,
    approvers: Sequence[str],
    *,
    reset_all_approvals: bool,
    revised_by: Actor,
    reason: str,
    chain: Iterable[Document] = (),
    title: str | None = None,
    description: str | None = None,
    doc_type: str | None = None,
    at: datetime | None = None,
) -> RevisionOutcome:
    return _derive(
        original,
        approvers,
        reset_all_approvals=reset_all_approvals,
        revised_by=revised_by,
        reason=reason,
        chain=chain,
        start_state=DualStatus(None, TrackingStatus.NEW),
        seed_step_index=False,
        at=at,
        title=title,
        description=description,
        doc_type=doc_type,
    )


def resubmit_after_rejection(
    original: Document,
    approvers: Sequence[str],
    *,
    reset_all_approvals: bool,
    revised_by: Actor,
    reason: str,
    chain: Iterable[Document] = (),
    at: datetime | None = None,
) -> RevisionOutcome:
    if original.state.document != DocumentStatus.REJECTED:
        raise AuthorizationDenied("Only rejected documents can be resubmitted; clone it instead.")
    return _derive(
        original,
        approvers,
        reset_all_approvals=reset_all_approvals,
        revised_by=revised_by,
        reason=reason,
        chain=chain,
        start_state=DualStatus(None, TrackingStatus.READY_FOR_PICKUP),
        seed_step_index=True,
        at=at,
    )
