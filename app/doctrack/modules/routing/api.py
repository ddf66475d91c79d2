from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, g, jsonify, request

from app.doctrack.db import db_session
from app.doctrack.modules.routing import service
from app.doctrack.modules.routing.authorizer import available_actions
from app.doctrack.modules.routing.domain import Actor, Role, parse_action, parse_workflow
from app.doctrack.modules.routing.errors import ValidationError, WorkflowError
from app.doctrack.modules.routing.gateway import SqlDocumentGateway
from app.doctrack.modules.routing.qr import build_qr_payload, describe_next_step, parse_scanned_text
from app.doctrack.rbac import drop_off_locations, require_actor

bp = Blueprint("documents_api", __name__)


def _actor() -> Actor:
    a = getattr(g, "current_actor", None)
    if a is None:
        # require_actor should prevent this
        raise RuntimeError("No current actor")
    return a


def _gateway() -> SqlDocumentGateway:
    return SqlDocumentGateway(db_session())


def _payload() -> dict[str, Any]:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _str_field(payload: dict[str, Any], name: str) -> str | None:
    value = payload.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string.")
    return value


def _flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _email_list(value: Any) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        return [v for v in (p.strip() for p in value.split(",")) if v]
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return list(value)
    raise ValidationError("approvers must be a list of emails.")


def _drop_offs(doc) -> dict[str, str]:
    return drop_off_locations([doc.recipient, *(st.approver_email for st in doc.approval_steps)])


def _detail(doc) -> dict[str, Any]:
    next_step, expected_role = describe_next_step(doc, _drop_offs(doc))
    return {
        "ok": True,
        "document": doc.to_dict(),
        "nextStep": next_step,
        "expectedRole": expected_role.value,
        "availableActions": [a.value for a in available_actions(doc, _actor())],
    }


@bp.errorhandler(WorkflowError)
def _workflow_error(e: WorkflowError):
    db_session().rollback()
    rid = getattr(g, "request_id", None)
    if e.http_status >= 500:
        current_app.logger.exception("Workflow failure %s (request_id=%s)", e.kind, rid)
    else:
        current_app.logger.info("Workflow request refused: %s %s (request_id=%s)", e.kind, e, rid)
    return jsonify({"ok": False, "error": e.kind, "message": str(e)}), e.http_status


@bp.get("/")
@require_actor()
def list_documents():
    docs = service.list_documents(_gateway(), _actor())
    return jsonify({"ok": True, "documents": [d.to_dict() for d in docs]})


@bp.post("/")
@require_actor(Role.ADMIN)
def create_document():
    s = db_session()
    payload = _payload()
    d = service.create_document(
        SqlDocumentGateway(s),
        actor=_actor(),
        title=_str_field(payload, "title") or "",
        doc_type=_str_field(payload, "type") or "",
        workflow=parse_workflow(_str_field(payload, "workflow")),
        description=_str_field(payload, "description"),
        approvers=_email_list(payload.get("approvers")) or [],
        recipient=_str_field(payload, "recipient"),
    )
    s.commit()
    return jsonify({"ok": True, "document": d.to_dict()}), 201


@bp.get("/<document_id>")
@require_actor()
def document_detail(document_id: str):
    d = service.get_document(_gateway(), document_id)
    return jsonify(_detail(d))


@bp.delete("/<document_id>")
@require_actor(Role.ADMIN)
def delete_document(document_id: str):
    s = db_session()
    service.delete_document(SqlDocumentGateway(s), document_id, _actor())
    s.commit()
    return jsonify({"ok": True})


def _scan(document_id: str, payload: dict[str, Any]):
    s = db_session()
    result = service.process_scan(
        SqlDocumentGateway(s),
        document_id,
        parse_action(_str_field(payload, "action")),
        _actor(),
        comments=(_str_field(payload, "comments") or "").strip() or None,
        auto_correct=_flag(payload.get("auto_correct")),
    )
    if result.applied is not None:
        s.commit()
    return jsonify(result.to_dict())


@bp.post("/<document_id>/actions")
@require_actor()
def document_action(document_id: str):
    return _scan(document_id, _payload())


@bp.post("/scan")
@require_actor()
def scan():
    """Same as /<id>/actions, with the document named by raw scanned QR text."""
    payload = _payload()
    return _scan(parse_scanned_text(_str_field(payload, "qr")), payload)


@bp.get("/<document_id>/qr")
@require_actor()
def document_qr(document_id: str):
    d = service.get_document(_gateway(), document_id)
    qr = build_qr_payload(d, version=current_app.config["QR_PAYLOAD_VERSION"], drop_offs=_drop_offs(d))
    return jsonify({"ok": True, "payload": qr.to_dict(), "text": qr.to_text()})


@bp.post("/<document_id>/clone")
@require_actor(Role.ADMIN)
def clone_document(document_id: str):
    s = db_session()
    payload = _payload()
    d = service.clone_document(
        SqlDocumentGateway(s),
        document_id,
        _actor(),
        approvers=_email_list(payload.get("approvers")),
        reset_all_approvals=_flag(payload.get("reset_all_approvals")),
        reason=_str_field(payload, "reason") or "",
        title=_str_field(payload, "title"),
        description=_str_field(payload, "description"),
        doc_type=_str_field(payload, "type"),
    )
    s.commit()
    return jsonify({"ok": True, "document": d.to_dict()}), 201


@bp.post("/<document_id>/resubmit")
@require_actor(Role.ADMIN)
def resubmit_document(document_id: str):
    s = db_session()
    payload = _payload()
    d = service.resubmit_document(
        SqlDocumentGateway(s),
        document_id,
        _actor(),
        approvers=_email_list(payload.get("approvers")),
        reset_all_approvals=_flag(payload.get("reset_all_approvals")),
        reason=_str_field(payload, "reason") or "",
    )
    s.commit()
    return jsonify({"ok": True, "document": d.to_dict()}), 201
