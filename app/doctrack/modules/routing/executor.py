"""
Action executor.

Applies exactly one authorized action to a Document and appends exactly one
AuditRecord. The input Document is never modified; callers persist the
returned copy. Anything outside the transition table is a programming error
(the authorizer must have filtered it) and raises UnreachableTransition.
"""
from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime

from app.doctrack.audit import record_action
from app.doctrack.modules.routing.domain import (
    Action,
    Actor,
    ApprovalStep,
    Document,
    StepStatus,
    first_open_step_index,
)
from app.doctrack.modules.routing.errors import UnreachableTransition
from app.doctrack.modules.routing.status import DocumentStatus, DualStatus, TrackingStatus
from app.doctrack.utils import utcnow

logger = logging.getLogger(__name__)

# Tracking statuses each action may start from. Admin actions apply from any state.
# A verdict on a DELIVERED document implies the approver received it.
TRANSITIONS: dict[Action, frozenset[TrackingStatus]] = {
    Action.PICKUP: frozenset({TrackingStatus.NEW, TrackingStatus.READY_FOR_PICKUP}),
    Action.DELIVER: frozenset({TrackingStatus.PICKED_UP}),
    Action.RECEIVE: frozenset({TrackingStatus.DELIVERED}),
    Action.APPROVE: frozenset({TrackingStatus.DELIVERED, TrackingStatus.RECEIVED}),
    Action.REJECT: frozenset({TrackingStatus.DELIVERED, TrackingStatus.RECEIVED}),
    Action.CLOSE: frozenset(TrackingStatus),
    Action.CANCEL: frozenset(TrackingStatus),
}


def can_apply(tracking: TrackingStatus, action: Action) -> bool:
    return tracking in TRANSITIONS.get(action, frozenset())


def execute(
    document: Document,
    action: Action,
    actor: Actor,
    *,
    comments: str | None = None,
    at: datetime | None = None,
) -> Document:
    at = at or utcnow()
    tracking = document.state.tracking
    if not can_apply(tracking, action):
        raise UnreachableTransition(
            f"{action.value!r} cannot be applied to document {document.id} in tracking status {tracking.value!r}"
        )

    comments = (comments or "").strip() or None

    if action == Action.PICKUP:
        nxt = TrackingStatus.READY_FOR_PICKUP if tracking == TrackingStatus.NEW else TrackingStatus.PICKED_UP
        return _move(document, action, actor, DualStatus(document.state.document, nxt), comments, at)

    if action == Action.DELIVER:
        return _move(document, action, actor, DualStatus(document.state.document, TrackingStatus.DELIVERED), comments, at)

    if action == Action.RECEIVE:
        return _move(
            document, action, actor, DualStatus(DocumentStatus.PENDING, TrackingStatus.RECEIVED), comments, at
        )

    if action == Action.APPROVE:
        return _approve(document, actor, comments, at)

    if action == Action.REJECT:
        return _reject(document, actor, comments, at)

    if action == Action.CLOSE:
        return _move(document, action, actor, DualStatus(None, TrackingStatus.COMPLETED), comments, at)

    if action == Action.CANCEL:
        return _move(document, action, actor, DualStatus(None, TrackingStatus.REJECTED), comments, at)

    raise UnreachableTransition(f"No transition defined for action {action.value!r}")


def _move(
    document: Document,
    action: Action,
    actor: Actor,
    new_state: DualStatus,
    comments: str | None,
    at: datetime,
    **changes,
) -> Document:
    out = record_action(
        document,
        action=action,
        performed_by=actor.email,
        new_state=new_state,
        comments=comments,
        at=at,
        **changes,
    )
    logger.debug(
        "Transition doc=%s action=%s by=%s %s -> %s",
        document.id,
        action.value,
        actor.email,
        document.legacy_status,
        out.legacy_status,
    )
    return out


def _mark_step(document: Document, actor: Actor, status: StepStatus, comments: str | None, at: datetime) -> tuple[ApprovalStep, ...]:
    step = document.step_for(actor.email)
    if step is None or not step.is_pending:
        raise UnreachableTransition(
            f"{actor.email} has no pending step on document {document.id}"
        )
    updated = replace(step, status=status, timestamp=at, comments=comments)
    return tuple(updated if s is step else s for s in document.approval_steps)


def _approve(document: Document, actor: Actor, comments: str | None, at: datetime) -> Document:
    steps = _mark_step(document, actor, StepStatus.APPROVED, comments, at)
    # Flexible mode: completion depends on every step, not on list position.
    if all(s.status == StepStatus.APPROVED for s in steps):
        new_state = DualStatus(None, TrackingStatus.COMPLETED)
    else:
        new_state = DualStatus(DocumentStatus.ACCEPTED, TrackingStatus.READY_FOR_PICKUP)
    return _move(
        document,
        Action.APPROVE,
        actor,
        new_state,
        comments,
        at,
        approval_steps=steps,
        current_step_index=first_open_step_index(steps),
    )


def _reject(document: Document, actor: Actor, comments: str | None, at: datetime) -> Document:
    if not comments:
        raise UnreachableTransition(f"Reject on document {document.id} reached the executor without a reason")
    steps = _mark_step(document, actor, StepStatus.REJECTED, comments, at)
    return _move(
        document,
        Action.REJECT,
        actor,
        DualStatus(DocumentStatus.REJECTED, TrackingStatus.READY_FOR_PICKUP),
        comments,
        at,
        approval_steps=steps,
        current_step_index=first_open_step_index(steps),
        rejection_reason=comments,
    )
