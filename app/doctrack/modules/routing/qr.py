"""
QR payload carried on the printed cover sheet.

The core only ever reads `documentId` back from a scan; the other fields are
hints for whoever holds the paper.
"""
from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass

from app.doctrack.modules.routing.domain import Document, Role, Workflow
from app.doctrack.modules.routing.errors import ValidationError
from app.doctrack.modules.routing.status import DocumentStatus, TrackingStatus
from app.doctrack.utils import normalize_email, to_iso

DEFAULT_PAYLOAD_VERSION = "1.0"

_DOC_ID_RE = re.compile(r"^DOC-[A-Za-z0-9-]+$")
_DOC_URL_RE = re.compile(r"/document/([^/?#]+)")


@dataclass(frozen=True)
class QRPayload:
    document_id: str
    title: str
    workflow: Workflow
    current_step: str
    expected_role: Role
    created_at: str
    version: str

    def to_dict(self) -> dict[str, str]:
        return {
            "documentId": self.document_id,
            "title": self.title,
            "workflow": self.workflow.value,
            "currentStep": self.current_step,
            "expectedRole": self.expected_role.value,
            "createdAt": self.created_at,
            "version": self.version,
        }

    def to_text(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True)


def _destination(email: str | None, drop_offs: Mapping[str, str]) -> str:
    if not email:
        return "originator"
    where = drop_offs.get(normalize_email(email))
    return f"{email} ({where})" if where else email


def describe_next_step(document: Document, drop_offs: Mapping[str, str] | None = None) -> tuple[str, Role]:
    """
    Human-readable next step and the role expected to scan next.

    `drop_offs` maps a lowercased email to that person's drop-off location;
    known locations are added to the courier's delivery text.
    """
    drop_offs = drop_offs or {}
    state = document.state
    tracking = state.tracking
    is_flow = document.workflow == Workflow.FLOW
    returning = state.document == DocumentStatus.REJECTED

    if state.is_cancelled:
        return "Cancelled", Role.ADMIN
    if tracking == TrackingStatus.COMPLETED:
        if is_flow:
            return "All approvals complete. Pending return to originator", Role.ADMIN
        return "Document workflow completed", Role.ADMIN
    if tracking == TrackingStatus.NEW:
        return "Draft - pending originator review before release", Role.ADMIN
    if tracking == TrackingStatus.READY_FOR_PICKUP:
        if returning:
            return "Rejected. Pending pickup for return to originator", Role.MAIL
        if is_flow:
            pending = [_destination(s.approver_email, drop_offs) for s in document.approval_steps if s.is_pending]
            return f"Pending pickup for delivery to {', '.join(pending) or 'originator'}", Role.MAIL
        return f"Pending pickup for delivery to {_destination(document.recipient, drop_offs)}", Role.MAIL
    if tracking == TrackingStatus.PICKED_UP:
        if returning:
            return "Returning to originator", Role.ADMIN
        target = "approver" if is_flow else _destination(document.recipient, drop_offs)
        return f"In transit to {target}", Role.MAIL
    if tracking == TrackingStatus.DELIVERED:
        if returning:
            return "Returned to originator. Awaiting revision", Role.ADMIN
        if is_flow:
            return "Waiting for approver to receive and review", Role.APPROVER
        return "Waiting for recipient to confirm receipt", Role.RECIPIENT
    if tracking == TrackingStatus.RECEIVED:
        if is_flow:
            return "Review document and approve or reject", Role.APPROVER
        return "Received by recipient. Pending close by originator", Role.ADMIN
    return document.legacy_status, Role.ADMIN


def build_qr_payload(
    document: Document,
    *,
    version: str = DEFAULT_PAYLOAD_VERSION,
    drop_offs: Mapping[str, str] | None = None,
) -> QRPayload:
    current_step, expected_role = describe_next_step(document, drop_offs)
    return QRPayload(
        document_id=document.id,
        title=document.title,
        workflow=document.workflow,
        current_step=current_step,
        expected_role=expected_role,
        created_at=to_iso(document.created_at) or "",
        version=version,
    )


def parse_scanned_text(text: str | None) -> str:
    """
    Extract the document id from scanned text.

    Accepts the JSON payload, a bare `DOC-...` id, or a URL containing
    `/document/<id>`.
    """
    raw = (text or "").strip()
    if not raw:
        raise ValidationError("Scanned text is empty.")

    if raw.startswith("{"):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValidationError(f"QR payload is not valid JSON: {e}") from e
        doc_id = data.get("documentId") if isinstance(data, dict) else None
        if not isinstance(doc_id, str) or not doc_id.strip():
            raise ValidationError("QR payload has no documentId.")
        return doc_id.strip()

    if _DOC_ID_RE.match(raw):
        return raw

    m = _DOC_URL_RE.search(raw)
    if m:
        return m.group(1)

    raise ValidationError("This QR code is not from the document tracking system.")
