from __future__ import annotations


class WorkflowError(Exception):
    """Base class for routing workflow failures."""

    kind = "workflow_error"
    http_status = 500


class ValidationError(WorkflowError):
    """Malformed input (empty approver list, empty rejection comment, ...)."""

    kind = "validation_error"
    http_status = 400


class AuthorizationDenied(WorkflowError):
    """Role or state mismatch. Retrying only helps with a different actor or state."""

    kind = "authorization_denied"
    http_status = 403


class DocumentNotFound(WorkflowError):
    kind = "not_found"
    http_status = 404


class StaleDocument(WorkflowError):
    """Compare-and-set on the stored version failed."""

    kind = "stale_document"
    http_status = 409


class UnknownStatus(WorkflowError):
    """A stored legacy status string has no dual-status mapping (data corruption)."""

    kind = "unknown_status"


class UnreachableTransition(WorkflowError):
    """An action reached the executor from a state it cannot apply to."""

    kind = "unreachable_transition"
