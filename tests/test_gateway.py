from datetime import datetime, timezone

import pytest

from app.doctrack import create_app
from app.doctrack.audit import creation_record
from app.doctrack.db import session_scope
from app.doctrack.models import Base
from app.doctrack.modules.routing.domain import Action, Actor, ApprovalStep, Document, Role, StepStatus, Workflow
from app.doctrack.modules.routing.errors import DocumentNotFound, StaleDocument
from app.doctrack.modules.routing.executor import execute
from app.doctrack.modules.routing.gateway import SqlDocumentGateway
from app.doctrack.modules.routing.models import DocumentRow
from app.doctrack.modules.routing.status import DocumentStatus, DualStatus, TrackingStatus

T0 = datetime(2026, 4, 1, 12, 0, tzinfo=timezone.utc)
ADMIN = Actor("admin@company.com", Role.ADMIN)
COURIER = Actor("mail@company.com", Role.MAIL)
MANAGER = Actor("manager@company.com", Role.APPROVER)
RECIPIENT = Actor("recipient@company.com", Role.RECIPIENT)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    return app


def _doc(doc_id="DOC-1775044800000-00000001", workflow=Workflow.FLOW, created_by=ADMIN.email):
    d = Document(
        id=doc_id,
        title="Vendor contract",
        doc_type="Contract",
        description="Annual renewal",
        workflow=workflow,
        state=DualStatus(None, TrackingStatus.READY_FOR_PICKUP),
        created_by=created_by,
        created_at=T0,
        updated_at=T0,
        recipient=RECIPIENT.email if workflow == Workflow.DROP else None,
        approval_steps=(ApprovalStep(order=1, approver_email=MANAGER.email),) if workflow == Workflow.FLOW else (),
    )
    return creation_record(d, action=Action.CREATED, performed_by=created_by, comments="Document workflow initiated")


def test_create_and_get_round_trip(app):
    with session_scope(app) as s:
        SqlDocumentGateway(s).create(_doc())

    with session_scope(app) as s:
        d = SqlDocumentGateway(s).get("DOC-1775044800000-00000001")
        assert d is not None
        assert d.state == DualStatus(None, TrackingStatus.READY_FOR_PICKUP)
        assert d.created_at == T0
        assert d.description == "Annual renewal"
        assert d.approval_steps == (ApprovalStep(order=1, approver_email=MANAGER.email),)
        assert d.action_history[0].action == Action.CREATED
        assert d.action_history[0].comments == "Document workflow initiated"
        assert d.version == 0

        row = s.get(DocumentRow, d.id)
        assert row.status == "Ready for Pickup"
        assert row.chain_root_id == d.id

    with session_scope(app) as s:
        assert SqlDocumentGateway(s).get("DOC-missing") is None


def test_update_is_compare_and_set(app):
    with session_scope(app) as s:
        gw = SqlDocumentGateway(s)
        d = gw.create(_doc())
        moved = execute(d, Action.PICKUP, COURIER)
        stored = gw.update(moved)
        assert stored.version == 1
        assert stored.state.tracking == TrackingStatus.PICKED_UP
        assert len(stored.action_history) == 2

        # a second writer still holding version 0 loses
        with pytest.raises(StaleDocument):
            gw.update(execute(d, Action.PICKUP, Actor("mail2@company.com", Role.MAIL)))

        with pytest.raises(DocumentNotFound):
            gw.update(_doc(doc_id="DOC-missing"))


def test_full_state_survives_persistence(app):
    with session_scope(app) as s:
        gw = SqlDocumentGateway(s)
        d = gw.create(_doc())
        for action, actor, comments in (
            (Action.PICKUP, COURIER, None),
            (Action.DELIVER, COURIER, None),
            (Action.RECEIVE, MANAGER, None),
            (Action.REJECT, MANAGER, "Clause 4 needs legal review"),
        ):
            d = gw.update(execute(d, action, actor, comments=comments))

    with session_scope(app) as s:
        d = SqlDocumentGateway(s).get("DOC-1775044800000-00000001")
        assert d.state == DualStatus(DocumentStatus.REJECTED, TrackingStatus.READY_FOR_PICKUP)
        assert d.rejection_reason == "Clause 4 needs legal review"
        assert d.approval_steps[0].status == StepStatus.REJECTED
        assert d.approval_steps[0].timestamp is not None
        assert [r.new_status for r in d.action_history] == [
            "Ready for Pickup",
            "In Transit",
            "Delivered",
            "With Approver for Review",
            "Rejected. Awaiting Revision",
        ]
        assert d.version == 4


def test_rows_without_dual_columns_are_normalized(app):
    with session_scope(app) as s:
        s.add(
            DocumentRow(
                id="DOC-legacy-1",
                title="Old memo",
                doc_type="Memo",
                workflow="flow",
                document_status=None,
                tracking_status=None,
                status="Delivered",
                created_by=ADMIN.email,
                created_at=T0,
                approval_steps=[{"order": 1, "approverEmail": MANAGER.email, "status": "pending"}],
                action_history=[],
                chain_root_id="DOC-legacy-1",
                version=0,
            )
        )

    with session_scope(app) as s:
        d = SqlDocumentGateway(s).get("DOC-legacy-1")
        assert d.state == DualStatus(None, TrackingStatus.DELIVERED)
        assert d.approval_steps[0].approver_email == MANAGER.email


def test_list_for_role(app):
    with session_scope(app) as s:
        gw = SqlDocumentGateway(s)
        flow = gw.create(_doc())
        gw.create(_doc(doc_id="DOC-2", workflow=Workflow.DROP))
        gw.create(_doc(doc_id="DOC-3", created_by="other@company.com"))
        gw.update(execute(execute(flow, Action.PICKUP, COURIER), Action.DELIVER, COURIER))

    with session_scope(app) as s:
        gw = SqlDocumentGateway(s)
        assert {d.id for d in gw.list_for_role(ADMIN)} == {"DOC-1775044800000-00000001", "DOC-2"}
        assert [d.id for d in gw.list_for_role(RECIPIENT)] == ["DOC-2"]
        assert [d.id for d in gw.list_for_role(MANAGER)] == ["DOC-1775044800000-00000001"]
        # delivered flow doc is out of this courier's hands until the approver acts
        assert {d.id for d in gw.list_for_role(COURIER)} == {"DOC-2", "DOC-3"}


def test_delete(app):
    with session_scope(app) as s:
        gw = SqlDocumentGateway(s)
        gw.create(_doc())
        gw.delete("DOC-1775044800000-00000001")
        assert gw.get("DOC-1775044800000-00000001") is None
        with pytest.raises(DocumentNotFound):
            gw.delete("DOC-1775044800000-00000001")


def test_stale_write_rolls_back_whole_scope(app, caplog):
    with session_scope(app) as s:
        d = SqlDocumentGateway(s).create(_doc())

    with pytest.raises(StaleDocument):
        with session_scope(app) as s:
            gw = SqlDocumentGateway(s)
            gw.create(_doc(doc_id="DOC-2", workflow=Workflow.DROP))
            gw.update(execute(d, Action.PICKUP, COURIER))
            gw.update(execute(d, Action.PICKUP, Actor("mail2@company.com", Role.MAIL)))
    assert "Rolled back scope" in caplog.text

    with session_scope(app) as s:
        gw = SqlDocumentGateway(s)
        assert gw.get("DOC-2") is None
        kept = gw.get(d.id)
        assert kept.version == 0
        assert kept.state == DualStatus(None, TrackingStatus.READY_FOR_PICKUP)


def test_update_reports_row_gone_before_reload(app, monkeypatch):
    with session_scope(app) as s:
        gw = SqlDocumentGateway(s)
        d = gw.create(_doc())
        monkeypatch.setattr(gw, "get", lambda _id: None)
        with pytest.raises(DocumentNotFound):
            gw.update(execute(d, Action.PICKUP, COURIER))
