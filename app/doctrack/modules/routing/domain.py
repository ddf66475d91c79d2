"""
Routing aggregate: Document and its value objects.

All types are frozen; the executor and the revision engine return new
instances instead of mutating. JSON helpers (to_dict/from_dict) are the
serialization boundary used by the persistence gateway and the HTTP API.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from app.doctrack.modules.routing.errors import ValidationError
from app.doctrack.modules.routing.status import DualStatus
from app.doctrack.utils import parse_iso, to_iso


class Workflow(str, Enum):
    FLOW = "flow"  # multi-approver chain
    DROP = "drop"  # single direct delivery


class Role(str, Enum):
    ADMIN = "admin"  # originator
    MAIL = "mail"  # courier
    APPROVER = "approver"
    RECIPIENT = "recipient"


class Action(str, Enum):
    CREATED = "created"
    PICKUP = "pickup"
    DELIVER = "deliver"
    RECEIVE = "receive"
    APPROVE = "approve"
    REJECT = "reject"
    CLOSE = "close"
    CANCEL = "cancel"
    CREATE_REVISION = "create_revision"
    CLONE_CREATED = "clone_created"


SCAN_ACTIONS = frozenset(
    {
        Action.PICKUP,
        Action.DELIVER,
        Action.RECEIVE,
        Action.APPROVE,
        Action.REJECT,
        Action.CLOSE,
        Action.CANCEL,
    }
)
COURIER_ACTIONS = frozenset({Action.PICKUP, Action.DELIVER})
VERDICT_ACTIONS = frozenset({Action.APPROVE, Action.REJECT})


class StepStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def parse_action(raw: str | None) -> Action:
    value = (raw or "").strip().lower()
    try:
        action = Action(value)
    except ValueError:
        raise ValidationError(f"Unknown action: {raw!r}") from None
    if action not in SCAN_ACTIONS:
        raise ValidationError(f"Action {action.value!r} cannot be requested by scan")
    return action


def parse_role(raw: str | None) -> Role:
    try:
        return Role((raw or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown role: {raw!r}") from None


def parse_workflow(raw: str | None) -> Workflow:
    try:
        return Workflow((raw or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown workflow: {raw!r}") from None


@dataclass(frozen=True)
class Actor:
    email: str
    role: Role


@dataclass(frozen=True)
class ApprovalStep:
    order: int  # 1-based
    approver_email: str
    status: StepStatus = StepStatus.PENDING
    timestamp: datetime | None = None
    comments: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == StepStatus.PENDING

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": self.order,
            "approverEmail": self.approver_email,
            "status": self.status.value,
            "timestamp": to_iso(self.timestamp),
            "comments": self.comments,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApprovalStep":
        return cls(
            order=int(data["order"]),
            approver_email=data["approverEmail"],
            status=StepStatus(data.get("status") or "pending"),
            timestamp=parse_iso(data.get("timestamp")),
            comments=data.get("comments"),
        )


@dataclass(frozen=True)
class AuditRecord:
    id: str
    document_id: str
    action: Action
    performed_by: str
    performed_at: datetime
    new_state: DualStatus
    previous_state: DualStatus | None = None
    comments: str | None = None

    @property
    def previous_status(self) -> str | None:
        return self.previous_state.legacy if self.previous_state else None

    @property
    def new_status(self) -> str:
        return self.new_state.legacy

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "documentId": self.document_id,
            "action": self.action.value,
            "performedBy": self.performed_by,
            "performedAt": to_iso(self.performed_at),
            "previousStatus": self.previous_status,
            "newStatus": self.new_status,
            "previousDualStatus": self.previous_state.to_dict() if self.previous_state else None,
            "newDualStatus": self.new_state.to_dict(),
            "comments": self.comments,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditRecord":
        prev = data.get("previousDualStatus")
        new = data["newDualStatus"]
        return cls(
            id=data["id"],
            document_id=data["documentId"],
            action=Action(data["action"]),
            performed_by=data["performedBy"],
            performed_at=parse_iso(data["performedAt"]),
            new_state=DualStatus.from_values(new.get("document_status"), new["tracking_status"]),
            previous_state=(
                DualStatus.from_values(prev.get("document_status"), prev["tracking_status"]) if prev else None
            ),
            comments=data.get("comments"),
        )


@dataclass(frozen=True)
class PreservedApproval:
    approver_email: str
    approved_at: datetime | None
    comments: str | None
    original_document_id: str
    preserved_from_revision: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "approverEmail": self.approver_email,
            "approvedAt": to_iso(self.approved_at),
            "comments": self.comments,
            "originalDocumentId": self.original_document_id,
            "preservedFromRevision": self.preserved_from_revision,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PreservedApproval":
        return cls(
            approver_email=data["approverEmail"],
            approved_at=parse_iso(data.get("approvedAt")),
            comments=data.get("comments"),
            original_document_id=data["originalDocumentId"],
            preserved_from_revision=int(data["preservedFromRevision"]),
        )


@dataclass(frozen=True)
class Revision:
    revision_number: int
    original_document_id: str
    previous_revision_id: str | None
    revision_reason: str
    revised_by: str
    revised_at: datetime
    preserved_approvals: tuple[PreservedApproval, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "revisionNumber": self.revision_number,
            "originalDocumentId": self.original_document_id,
            "previousRevisionId": self.previous_revision_id,
            "revisionReason": self.revision_reason,
            "revisedBy": self.revised_by,
            "revisedAt": to_iso(self.revised_at),
            "preservedApprovals": [p.to_dict() for p in self.preserved_approvals],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Revision":
        return cls(
            revision_number=int(data["revisionNumber"]),
            original_document_id=data["originalDocumentId"],
            previous_revision_id=data.get("previousRevisionId"),
            revision_reason=data.get("revisionReason") or "",
            revised_by=data["revisedBy"],
            revised_at=parse_iso(data["revisedAt"]),
            preserved_approvals=tuple(PreservedApproval.from_dict(p) for p in data.get("preservedApprovals") or []),
        )


@dataclass(frozen=True)
class Document:
    id: str
    title: str
    doc_type: str
    workflow: Workflow
    state: DualStatus
    created_by: str
    created_at: datetime
    description: str | None = None
    updated_at: datetime | None = None
    recipient: str | None = None
    rejection_reason: str | None = None
    approval_steps: tuple[ApprovalStep, ...] = ()
    current_step_index: int = 0
    action_history: tuple[AuditRecord, ...] = ()
    revision: Revision | None = None
    version: int = 0

    @property
    def legacy_status(self) -> str:
        return self.state.legacy

    @property
    def revision_number(self) -> int:
        """Position in its revision chain; documents never revised are revision 0."""
        return self.revision.revision_number if self.revision else 0

    @property
    def chain_root_id(self) -> str:
        return self.revision.original_document_id if self.revision else self.id

    @property
    def all_steps_approved(self) -> bool:
        return all(step.status == StepStatus.APPROVED for step in self.approval_steps)

    def step_for(self, email: str) -> ApprovalStep | None:
        key = (email or "").strip().lower()
        for step in self.approval_steps:
            if step.approver_email.lower() == key:
                return step
        return None

    @property
    def current_step(self) -> ApprovalStep | None:
        if 0 <= self.current_step_index < len(self.approval_steps):
            return self.approval_steps[self.current_step_index]
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.doc_type,
            "description": self.description,
            "workflow": self.workflow.value,
            "status": self.legacy_status,
            **self.state.to_dict(),
            "createdBy": self.created_by,
            "createdAt": to_iso(self.created_at),
            "updatedAt": to_iso(self.updated_at),
            "recipient": self.recipient,
            "rejectionReason": self.rejection_reason,
            "approvalSteps": [s.to_dict() for s in self.approval_steps],
            "currentStepIndex": self.current_step_index,
            "actionHistory": [r.to_dict() for r in self.action_history],
            "revision": self.revision.to_dict() if self.revision else None,
            "version": self.version,
        }


def first_open_step_index(steps: tuple[ApprovalStep, ...] | list[ApprovalStep]) -> int:
    """Index of the first step that is not approved, or len(steps) when all are."""
    for i, step in enumerate(steps):
        if step.status != StepStatus.APPROVED:
            return i
    return len(steps)


@dataclass
class ScanResult:
    document: Document
    requested: Action
    applied: Action | None
    message: str
    next_step: str
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": True,
            "applied": self.applied is not None,
            "requestedAction": self.requested.value,
            "appliedAction": self.applied.value if self.applied else None,
            "message": self.message,
            "nextStep": self.next_step,
            "warnings": list(self.warnings),
            "document": self.document.to_dict(),
        }
