"""
Role-based action authorizer.

authorize(document, action, actor) answers one of:

- Allow(action)             the request may go to the executor as-is
- Deny(reason)              role or state mismatch
- Substitute(action, reason) the courier asked for the wrong leg; `action`
                            is the legal one and callers may auto-apply it

Each role has one policy class. The POLICIES registry is checked against the
Role enum at import so that adding a role without a policy fails at startup.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Union

from app.doctrack.modules.routing.domain import (
    COURIER_ACTIONS,
    SCAN_ACTIONS,
    VERDICT_ACTIONS,
    Action,
    Actor,
    AuditRecord,
    Document,
    Role,
    StepStatus,
    Workflow,
)
from app.doctrack.modules.routing.errors import ValidationError
from app.doctrack.modules.routing.executor import can_apply
from app.doctrack.modules.routing.status import DocumentStatus, TrackingStatus
from app.doctrack.utils import normalize_email


@dataclass(frozen=True)
class Allow:
    action: Action


@dataclass(frozen=True)
class Deny:
    reason: str


@dataclass(frozen=True)
class Substitute:
    action: Action
    reason: str


Decision = Union[Allow, Deny, Substitute]


def validate_request(action: Action, comments: str | None) -> None:
    """Input checks that hold for every role. Raises ValidationError."""
    if action not in SCAN_ACTIONS:
        raise ValidationError(f"Action {action.value!r} cannot be requested by scan")
    if action == Action.REJECT and not (comments or "").strip():
        raise ValidationError("A rejection requires comments explaining the reason.")


# ---------------------------------------------------------------------------
# Courier history
# ---------------------------------------------------------------------------


def _is_transit_record(rec: AuditRecord) -> bool:
    if rec.action == Action.DELIVER:
        return True
    # A pickup that only released a NEW document does not put it in transit.
    return rec.action == Action.PICKUP and rec.new_state.tracking == TrackingStatus.PICKED_UP


def legal_courier_action(document: Document, courier_email: str) -> Action | None:
    """
    Next leg for this courier, derived from its own history on the document.

    None means the courier already delivered and no approver has acted since.
    """
    email = normalize_email(courier_email)
    last_leg: Action | None = None
    for rec in document.action_history:
        if rec.action in VERDICT_ACTIONS:
            last_leg = None
        elif _is_transit_record(rec) and normalize_email(rec.performed_by) == email:
            last_leg = rec.action

    if last_leg is None:
        return Action.PICKUP
    if last_leg == Action.PICKUP:
        return Action.DELIVER
    return None


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class RolePolicy:
    role: Role
    actions: frozenset[Action] = frozenset()
    label = ""

    def authorize(self, document: Document, action: Action, actor: Actor) -> Decision:
        if action not in self.actions:
            allowed = ", ".join(sorted(a.value for a in self.actions))
            return Deny(f"{self.label} can only {allowed} documents")
        return self.check(document, action, actor)

    def check(self, document: Document, action: Action, actor: Actor) -> Decision:
        raise NotImplementedError

    def is_listed(self, document: Document, actor: Actor) -> bool:
        raise NotImplementedError


class CourierPolicy(RolePolicy):
    role = Role.MAIL
    actions = COURIER_ACTIONS
    label = "Couriers"

    def check(self, document: Document, action: Action, actor: Actor) -> Decision:
        legal = legal_courier_action(document, actor.email)
        if legal is None:
            return Deny("Already delivered; awaiting approver action before the next pickup")
        if not can_apply(document.state.tracking, legal):
            return Deny(
                f"Document is not awaiting {legal.value} (tracking status: {document.state.tracking.value})"
            )
        if legal != action:
            return Substitute(legal, f"Next courier action for this document is {legal.value}, not {action.value}")
        return Allow(action)

    def is_listed(self, document: Document, actor: Actor) -> bool:
        legal = legal_courier_action(document, actor.email)
        return legal is not None and can_apply(document.state.tracking, legal)


class ApproverPolicy(RolePolicy):
    role = Role.APPROVER
    actions = frozenset({Action.RECEIVE, Action.APPROVE, Action.REJECT})
    label = "Approvers"

    def check(self, document: Document, action: Action, actor: Actor) -> Decision:
        if document.workflow != Workflow.FLOW:
            return Deny("Document has no approval chain")
        if document.state.document == DocumentStatus.REJECTED:
            return Deny("Document was rejected and is awaiting revision")
        step = document.step_for(actor.email)
        if step is None:
            return Deny("You are not in the approval list for this document")
        if step.status != StepStatus.PENDING:
            return Deny(f"You have already {step.status.value} this document")

        tracking = document.state.tracking
        if action == Action.RECEIVE and tracking != TrackingStatus.DELIVERED:
            return Deny("Document has not been delivered for review")
        if action in VERDICT_ACTIONS and tracking not in (TrackingStatus.DELIVERED, TrackingStatus.RECEIVED):
            return Deny("Document is not with the approver for review")
        return Allow(action)

    def is_listed(self, document: Document, actor: Actor) -> bool:
        if document.workflow != Workflow.FLOW:
            return False
        if document.state.document == DocumentStatus.REJECTED:
            return False
        step = document.step_for(actor.email)
        return (
            step is not None
            and step.is_pending
            and document.state.tracking in (TrackingStatus.DELIVERED, TrackingStatus.RECEIVED)
        )


class RecipientPolicy(RolePolicy):
    role = Role.RECIPIENT
    actions = frozenset({Action.RECEIVE})
    label = "Recipients"

    def check(self, document: Document, action: Action, actor: Actor) -> Decision:
        if document.workflow != Workflow.DROP:
            return Deny("Only direct-delivery documents can be received by a recipient")
        if normalize_email(document.recipient) != normalize_email(actor.email):
            return Deny("You are not the intended recipient of this document")
        if document.state.tracking != TrackingStatus.DELIVERED:
            return Deny("Document has not been delivered yet")
        return Allow(action)

    def is_listed(self, document: Document, actor: Actor) -> bool:
        return document.workflow == Workflow.DROP and normalize_email(document.recipient) == normalize_email(actor.email)


class OriginatorPolicy(RolePolicy):
    role = Role.ADMIN
    actions = frozenset({Action.CLOSE, Action.CANCEL})
    label = "Originators"

    def check(self, document: Document, action: Action, actor: Actor) -> Decision:
        if normalize_email(document.created_by) != normalize_email(actor.email):
            return Deny("You can only manage documents you created")
        if action == Action.CLOSE:
            if document.state.is_cancelled:
                return Deny("Document is cancelled")
            if not document.all_steps_approved:
                return Deny("Document can only be closed after all approvals are complete")
        return Allow(action)

    def is_listed(self, document: Document, actor: Actor) -> bool:
        return normalize_email(document.created_by) == normalize_email(actor.email)


POLICIES: dict[Role, RolePolicy] = {
    p.role: p for p in (CourierPolicy(), ApproverPolicy(), RecipientPolicy(), OriginatorPolicy())
}

_missing = set(Role) - set(POLICIES)
if _missing:
    raise RuntimeError(f"No authorization policy for roles: {sorted(r.value for r in _missing)}")


def authorize(document: Document, action: Action, actor: Actor, *, comments: str | None = None) -> Decision:
    validate_request(action, comments)
    return POLICIES[actor.role].authorize(document, action, actor)


def available_actions(document: Document, actor: Actor) -> list[Action]:
    """Scan actions this actor could perform right now (reject assumes a reason will be given)."""
    policy = POLICIES[actor.role]
    out = []
    for action in sorted(policy.actions, key=lambda a: a.value):
        if isinstance(policy.authorize(document, action, actor), Allow):
            out.append(action)
    return out


def is_listed_for(document: Document, actor: Actor) -> bool:
    return POLICIES[actor.role].is_listed(document, actor)
