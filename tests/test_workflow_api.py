import pytest
from sqlalchemy import select

from app.doctrack import create_app
from app.doctrack.db import session_scope
from app.doctrack.models import Base, User
from app.doctrack.modules.routing.models import DocumentRow

ADMIN = {"X-User-Email": "admin@company.com"}
OTHER_ADMIN = {"X-User-Email": "other-admin@company.com"}
MAIL = {"X-User-Email": "mail@company.com"}
MANAGER = {"X-User-Email": "manager@company.com"}
FINANCE = {"X-User-Email": "finance@company.com"}
RECIPIENT = {"X-User-Email": "recipient@company.com"}


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("QR_PAYLOAD_VERSION", "1.0")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    with session_scope(app) as s:
        for email, role in (
            ("admin@company.com", "admin"),
            ("other-admin@company.com", "admin"),
            ("mail@company.com", "mail"),
            ("manager@company.com", "approver"),
            ("finance@company.com", "approver"),
            ("recipient@company.com", "recipient"),
        ):
            s.add(User(email=email, role=role, is_active=True))

    return app.test_client()


def _create_flow(client, approvers=("manager@company.com", "finance@company.com")):
    r = client.post(
        "/api/documents/",
        json={"title": "Q3 budget", "type": "Budget", "workflow": "flow", "approvers": list(approvers)},
        headers=ADMIN,
    )
    assert r.status_code == 201, r.json
    return r.json["document"]


def _act(client, doc_id, action, headers, **extra):
    return client.post(f"/api/documents/{doc_id}/actions", json={"action": action, **extra}, headers=headers)


def _ok(client, doc_id, action, headers, **extra):
    r = _act(client, doc_id, action, headers, **extra)
    assert r.status_code == 200, r.json
    assert r.json["applied"] is True, r.json
    return r.json["document"]


def test_create_document(client):
    d = _create_flow(client)
    assert d["id"].startswith("DOC-")
    assert d["status"] == "Ready for Pickup"
    assert d["document_status"] is None
    assert d["tracking_status"] == "ready_for_pickup"
    assert [s["approverEmail"] for s in d["approvalSteps"]] == ["manager@company.com", "finance@company.com"]
    assert [h["action"] for h in d["actionHistory"]] == ["created"]
    assert d["actionHistory"][0]["previousStatus"] is None


def test_create_validation(client):
    r = client.post("/api/documents/", json={"title": "x", "type": "y", "workflow": "flow", "approvers": []}, headers=ADMIN)
    assert r.status_code == 400
    assert r.json["error"] == "validation_error"

    r = client.post("/api/documents/", json={"title": "x", "type": "y", "workflow": "sideways"}, headers=ADMIN)
    assert r.status_code == 400

    r = client.post("/api/documents/", json={"title": "x", "type": "y", "workflow": "drop"}, headers=MAIL)
    assert r.status_code == 403


def test_end_to_end_flow(client):
    doc_id = _create_flow(client)["id"]

    d = _ok(client, doc_id, "pickup", MAIL)
    assert d["tracking_status"] == "picked_up"
    d = _ok(client, doc_id, "deliver", MAIL)
    assert d["tracking_status"] == "delivered"

    # finance approves first although listed second
    d = _ok(client, doc_id, "approve", FINANCE, comments="OK from finance")
    assert d["document_status"] == "accepted"
    assert d["tracking_status"] == "ready_for_pickup"
    assert d["status"] == "Approved by Approver. Pending pickup for next step"
    assert d["approvalSteps"][1]["status"] == "approved"

    _ok(client, doc_id, "pickup", MAIL)
    _ok(client, doc_id, "deliver", MAIL)
    _ok(client, doc_id, "receive", MANAGER)
    d = _ok(client, doc_id, "approve", MANAGER)
    assert d["document_status"] is None
    assert d["tracking_status"] == "completed"
    assert d["status"] == "Completed and Archived"
    assert len(d["actionHistory"]) == 8

    d = _ok(client, doc_id, "close", ADMIN)
    assert d["tracking_status"] == "completed"


def test_courier_substitution(client):
    doc_id = _create_flow(client)["id"]

    r = _act(client, doc_id, "deliver", MAIL)
    assert r.status_code == 200
    assert r.json["applied"] is False
    assert r.json["appliedAction"] is None
    assert r.json["warnings"] == ["suggested_action:pickup"]
    assert r.json["document"]["tracking_status"] == "ready_for_pickup"

    r = _act(client, doc_id, "deliver", MAIL, auto_correct=True)
    assert r.json["applied"] is True
    assert r.json["appliedAction"] == "pickup"
    assert r.json["document"]["tracking_status"] == "picked_up"


def test_denials_and_validation(client):
    doc_id = _create_flow(client)["id"]
    _ok(client, doc_id, "pickup", MAIL)
    _ok(client, doc_id, "deliver", MAIL)

    r = _act(client, doc_id, "pickup", MAIL)
    assert r.status_code == 403
    assert r.json["error"] == "authorization_denied"

    r = _act(client, doc_id, "reject", MANAGER, comments="  ")
    assert r.status_code == 400
    assert r.json["error"] == "validation_error"

    r = _act(client, doc_id, "clone_created", ADMIN)
    assert r.status_code == 400

    r = _act(client, doc_id, "close", OTHER_ADMIN)
    assert r.status_code == 403

    r = _act(client, "DOC-0-missing", "pickup", MAIL)
    assert r.status_code == 404
    assert r.json["error"] == "not_found"


def test_listing_by_role(client):
    flow_id = _create_flow(client)["id"]
    r = client.post(
        "/api/documents/",
        json={"title": "Parcel", "type": "Delivery", "workflow": "drop", "recipient": "Recipient@Company.com"},
        headers=ADMIN,
    )
    drop_id = r.json["document"]["id"]

    def ids(headers):
        return {d["id"] for d in client.get("/api/documents/", headers=headers).json["documents"]}

    assert ids(ADMIN) == {flow_id, drop_id}
    assert ids(OTHER_ADMIN) == set()
    assert ids(MAIL) == {flow_id, drop_id}
    assert ids(MANAGER) == set()
    assert ids(RECIPIENT) == {drop_id}

    _ok(client, flow_id, "pickup", MAIL)
    _ok(client, flow_id, "deliver", MAIL)
    assert ids(MANAGER) == {flow_id}
    assert ids(MAIL) == {drop_id}

    _ok(client, drop_id, "pickup", MAIL)
    _ok(client, drop_id, "deliver", MAIL)
    d = _ok(client, drop_id, "receive", RECIPIENT)
    assert d["status"] == "With Approver for Review"
    d = _ok(client, drop_id, "close", ADMIN)
    assert d["status"] == "Completed and Archived"


def test_detail_and_qr_scan(client):
    doc_id = _create_flow(client)["id"]

    r = client.get(f"/api/documents/{doc_id}", headers=MAIL)
    assert r.status_code == 200
    assert r.json["availableActions"] == ["pickup"]
    assert r.json["expectedRole"] == "mail"

    r = client.get(f"/api/documents/{doc_id}/qr", headers=ADMIN)
    assert r.json["payload"]["documentId"] == doc_id
    assert r.json["payload"]["version"] == "1.0"
    qr_text = r.json["text"]

    r = client.post("/api/documents/scan", json={"qr": qr_text, "action": "pickup"}, headers=MAIL)
    assert r.status_code == 200
    assert r.json["document"]["tracking_status"] == "picked_up"

    r = client.post("/api/documents/scan", json={"qr": "not ours", "action": "pickup"}, headers=MAIL)
    assert r.status_code == 400


def test_reject_then_resubmit(client):
    doc_id = _create_flow(client)["id"]
    _ok(client, doc_id, "pickup", MAIL)
    _ok(client, doc_id, "deliver", MAIL)
    _ok(client, doc_id, "approve", MANAGER, comments="Fine")
    _ok(client, doc_id, "pickup", MAIL)
    _ok(client, doc_id, "deliver", MAIL)
    d = _ok(client, doc_id, "reject", FINANCE, comments="Travel line over budget")
    assert d["status"] == "Rejected. Awaiting Revision"
    assert d["rejectionReason"] == "Travel line over budget"

    r = client.post(f"/api/documents/{doc_id}/resubmit", json={"reason": "Trimmed travel"}, headers=OTHER_ADMIN)
    assert r.status_code == 403

    r = client.post(f"/api/documents/{doc_id}/resubmit", json={"reason": "Trimmed travel"}, headers=ADMIN)
    assert r.status_code == 201, r.json
    new = r.json["document"]
    assert new["id"] != doc_id
    assert new["status"] == "Ready for Pickup"
    assert new["currentStepIndex"] == 1
    assert new["approvalSteps"][0]["status"] == "approved"
    assert new["approvalSteps"][1]["status"] == "pending"
    assert new["revision"]["revisionNumber"] == 1
    assert new["revision"]["originalDocumentId"] == doc_id
    assert [p["approverEmail"] for p in new["revision"]["preservedApprovals"]] == ["manager@company.com"]

    original = client.get(f"/api/documents/{doc_id}", headers=ADMIN).json["document"]
    assert original["actionHistory"][-1]["action"] == "clone_created"
    assert original["status"] == "Rejected. Awaiting Revision"

    # only finance is still owed a review on the resubmitted copy
    _ok(client, new["id"], "pickup", MAIL)
    _ok(client, new["id"], "deliver", MAIL)
    d = _ok(client, new["id"], "approve", FINANCE)
    assert d["tracking_status"] == "completed"


def test_clone_and_resubmit_of_non_rejected(client):
    doc_id = _create_flow(client)["id"]

    r = client.post(f"/api/documents/{doc_id}/resubmit", json={"reason": "x"}, headers=ADMIN)
    assert r.status_code == 403

    r = client.post(
        f"/api/documents/{doc_id}/clone",
        json={"reason": "Add legal", "approvers": ["manager@company.com", "legal@company.com"], "title": "Q3 budget (rev)"},
        headers=ADMIN,
    )
    assert r.status_code == 201
    clone = r.json["document"]
    assert clone["status"] == "Draft"
    assert clone["title"] == "Q3 budget (rev)"
    assert [s["approverEmail"] for s in clone["approvalSteps"]] == ["manager@company.com", "legal@company.com"]

    r = client.post(f"/api/documents/{doc_id}/clone", json={"reason": ""}, headers=ADMIN)
    assert r.status_code == 400


def test_delete(client):
    doc_id = _create_flow(client)["id"]
    assert client.delete(f"/api/documents/{doc_id}", headers=OTHER_ADMIN).status_code == 403
    assert client.delete(f"/api/documents/{doc_id}", headers=ADMIN).status_code == 200
    assert client.get(f"/api/documents/{doc_id}", headers=ADMIN).status_code == 404

    app = client.application
    with session_scope(app) as s:
        assert s.get(DocumentRow, doc_id) is None


def test_non_string_fields_are_validation_errors(client):
    r = client.post("/api/documents/", json={"title": 42, "type": "Budget", "workflow": "flow", "approvers": ["manager@company.com"]}, headers=ADMIN)
    assert r.status_code == 400
    assert r.json["error"] == "validation_error"
    assert "title" in r.json["message"]

    doc_id = _create_flow(client)["id"]
    r = _act(client, doc_id, "pickup", MAIL, comments=5)
    assert r.status_code == 400
    assert r.json["error"] == "validation_error"

    r = _act(client, doc_id, ["pickup"], MAIL)
    assert r.status_code == 400

    r = client.post("/api/documents/scan", json={"qr": {"documentId": doc_id}, "action": "pickup"}, headers=MAIL)
    assert r.status_code == 400
    assert r.json["error"] == "validation_error"

    r = client.post(f"/api/documents/{doc_id}/clone", json={"reason": {"why": "x"}}, headers=ADMIN)
    assert r.status_code == 400

    # nothing was applied
    d = client.get(f"/api/documents/{doc_id}", headers=ADMIN).json["document"]
    assert d["tracking_status"] == "ready_for_pickup"


def test_qr_names_drop_off_location(client):
    with session_scope(client.application) as s:
        u = s.scalars(select(User).where(User.email == "manager@company.com")).one()
        u.drop_off_location = "Operations office, room 204"

    doc_id = _create_flow(client)["id"]
    r = client.get(f"/api/documents/{doc_id}/qr", headers=MAIL)
    assert r.status_code == 200
    assert r.json["payload"]["currentStep"] == (
        "Pending pickup for delivery to manager@company.com (Operations office, room 204), finance@company.com"
    )

    r = client.get(f"/api/documents/{doc_id}", headers=MAIL)
    assert "Operations office, room 204" in r.json["nextStep"]
