"""
Dual status model.

A routed document carries two orthogonal axes:

- document status: the approval verdict (None when no verdict applies)
- tracking status: the physical checkpoint

The pair is the single source of truth. The legacy single-string status is a
projection computed from the pair for display and for rows written before the
dual scheme existed; it is never stored as an input.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from app.doctrack.modules.routing.errors import UnknownStatus


class DocumentStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class TrackingStatus(str, Enum):
    NEW = "new"
    READY_FOR_PICKUP = "ready_for_pickup"
    PICKED_UP = "picked_up"
    DELIVERED = "delivered"
    RECEIVED = "received"
    COMPLETED = "completed"
    REJECTED = "rejected"


@dataclass(frozen=True)
class DualStatus:
    document: DocumentStatus | None
    tracking: TrackingStatus

    @property
    def legacy(self) -> str:
        return to_legacy(self)

    @property
    def is_cancelled(self) -> bool:
        return self.document is None and self.tracking == TrackingStatus.REJECTED

    @property
    def is_terminal(self) -> bool:
        return self.tracking in (TrackingStatus.COMPLETED, TrackingStatus.REJECTED)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "document_status": self.document.value if self.document else None,
            "tracking_status": self.tracking.value,
        }

    @classmethod
    def from_values(cls, document: str | None, tracking: str) -> "DualStatus":
        try:
            return cls(
                document=DocumentStatus(document) if document else None,
                tracking=TrackingStatus(tracking),
            )
        except ValueError as e:
            raise UnknownStatus(f"Unknown dual status ({document!r}, {tracking!r})") from e


# Legacy labels
DRAFT = "Draft"
READY_FOR_PICKUP = "Ready for Pickup"
IN_TRANSIT = "In Transit"
DELIVERED = "Delivered"
WITH_APPROVER = "With Approver for Review"
APPROVED_PENDING_PICKUP = "Approved by Approver. Pending pickup for next step"
APPROVAL_COMPLETE = "Approval Complete. Pending return to Originator"
COMPLETED_AND_ARCHIVED = "Completed and Archived"
REJECTED_AWAITING_REVISION = "Rejected. Awaiting Revision"
CANCELLED = "Cancelled"

LEGACY_TO_DUAL: dict[str, DualStatus] = {
    DRAFT: DualStatus(None, TrackingStatus.NEW),
    READY_FOR_PICKUP: DualStatus(None, TrackingStatus.READY_FOR_PICKUP),
    IN_TRANSIT: DualStatus(None, TrackingStatus.PICKED_UP),
    DELIVERED: DualStatus(None, TrackingStatus.DELIVERED),
    WITH_APPROVER: DualStatus(DocumentStatus.PENDING, TrackingStatus.RECEIVED),
    APPROVED_PENDING_PICKUP: DualStatus(DocumentStatus.ACCEPTED, TrackingStatus.READY_FOR_PICKUP),
    APPROVAL_COMPLETE: DualStatus(None, TrackingStatus.COMPLETED),
    COMPLETED_AND_ARCHIVED: DualStatus(None, TrackingStatus.COMPLETED),
    REJECTED_AWAITING_REVISION: DualStatus(DocumentStatus.REJECTED, TrackingStatus.READY_FOR_PICKUP),
    CANCELLED: DualStatus(None, TrackingStatus.REJECTED),
}

# Exact pairs that own a label. APPROVAL_COMPLETE is an inbound alias only.
_CANONICAL_LABELS: dict[DualStatus, str] = {
    dual: label for label, dual in LEGACY_TO_DUAL.items() if label != APPROVAL_COMPLETE
}

# Fallback projection for pairs without an exact label (e.g. ACCEPTED + PICKED_UP).
_TRACKING_LABELS: dict[TrackingStatus, str] = {
    TrackingStatus.NEW: DRAFT,
    TrackingStatus.READY_FOR_PICKUP: READY_FOR_PICKUP,
    TrackingStatus.PICKED_UP: IN_TRANSIT,
    TrackingStatus.DELIVERED: DELIVERED,
    TrackingStatus.RECEIVED: WITH_APPROVER,
    TrackingStatus.COMPLETED: COMPLETED_AND_ARCHIVED,
    TrackingStatus.REJECTED: CANCELLED,
}


def to_dual(legacy_status: str) -> DualStatus:
    """Resolve a legacy status string. Unrecognized strings are fatal."""
    key = (legacy_status or "").strip()
    try:
        return LEGACY_TO_DUAL[key]
    except KeyError:
        raise UnknownStatus(f"Unrecognized legacy status: {legacy_status!r}") from None


def to_legacy(dual: DualStatus) -> str:
    """Project a dual status onto the legacy vocabulary. Total over all pairs."""
    label = _CANONICAL_LABELS.get(dual)
    if label is not None:
        return label
    return _TRACKING_LABELS[dual.tracking]


def known_legacy_statuses() -> tuple[str, ...]:
    return tuple(LEGACY_TO_DUAL)
