"""End-to-end tests for the HTTP and WebSocket surface."""

import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import QueuePool
from starlette.websockets import WebSocketDisconnect

from inventory.api.deps import get_db, get_executor, get_publisher, get_session_factory
from inventory.api.main import app
from inventory.core.rbac.roles import MANAGER_PERMISSIONS, OPERATOR_PERMISSIONS, VIEWER_PERMISSIONS
from inventory.core.security import create_access_token, create_internal_token
from inventory.db.base import Base
from inventory.db.models import ApprovalRequest, Product
from inventory.messaging.events import ApprovalRequestCreated, ProductCreated
from inventory.services.realtime import (
    CONNECTION_ESTABLISHED,
    PENDING_NOTIFICATION,
    PENDING_NOTIFICATIONS_COMPLETE,
)

from tests.factories import (
    create_approval_request,
    create_category,
    create_department,
    create_notification,
    create_product,
    create_role,
    create_user,
)

pytestmark = [pytest.mark.db, pytest.mark.integration]


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def users(db_session):
    admin = create_user(db_session, role=create_role(db_session, name="Admin", permissions=["*"]), name="Ada Admin")
    manager = create_user(db_session, permissions=MANAGER_PERMISSIONS, name="Mona Manager")
    operator = create_user(db_session, permissions=OPERATOR_PERMISSIONS, name="Oscar Operator")
    viewer = create_user(db_session, permissions=VIEWER_PERMISSIONS, name="Vera Viewer")
    db_session.commit()
    return {"admin": admin, "manager": manager, "operator": operator, "viewer": viewer}


@pytest.fixture()
def catalog(db_session):
    category = create_category(db_session)
    department = create_department(db_session, name="IT")
    db_session.commit()
    return category, department


def _product_body(catalog, code=4321):
    category, department = catalog
    return {
        "product": {
            "inventory_code": code,
            "model": "T14",
            "vendor": "Lenovo",
            "category_id": category.id,
            "department_id": department.id,
        }
    }


def _internal_headers(user, permissions, approval_request_id=None):
    token = create_internal_token(
        user.id, user.name, approval_request_id=approval_request_id, permissions=permissions,
    )
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Gated mutations
# ---------------------------------------------------------------------------


class TestProductEndpoints:

    def test_requester_gets_202(self, client, db_session, publisher, users, catalog, auth_headers):
        response = client.post("/api/products", json=_product_body(catalog), headers=auth_headers(users["operator"]))

        assert response.status_code == 202
        body = response.json()
        assert body["status"] == "PendingApproval"
        assert body["message"] == "Your product create request has been submitted for approval"

        db_session.expire_all()
        request = db_session.get(ApprovalRequest, body["approval_request_id"])
        assert request.status == "pending"
        assert db_session.query(Product).count() == 0
        assert publisher.routing_keys == [ApprovalRequestCreated.routing_key]

    def test_direct_caller_gets_201(self, client, publisher, users, catalog, auth_headers):
        response = client.post("/api/products", json=_product_body(catalog), headers=auth_headers(users["manager"]))

        assert response.status_code == 201
        assert response.json()["inventory_code"] == 4321
        assert publisher.routing_keys == [ProductCreated.routing_key]

    def test_viewer_is_refused(self, client, users, catalog, auth_headers):
        response = client.post("/api/products", json=_product_body(catalog), headers=auth_headers(users["viewer"]))

        assert response.status_code == 403
        assert response.json()["detail"] == "Permission denied: requires product.create"

    def test_anonymous_is_refused(self, client, catalog):
        assert client.post("/api/products", json=_product_body(catalog)).status_code == 401

    def test_inventory_code_out_of_range(self, client, users, catalog, auth_headers):
        response = client.post("/api/products", json=_product_body(catalog, code=10000), headers=auth_headers(users["manager"]))
        assert response.status_code == 422

    def test_duplicate_code_is_409(self, client, db_session, users, catalog, auth_headers):
        create_product(db_session, inventory_code=4321, category=catalog[0], department=catalog[1])
        db_session.commit()

        response = client.post("/api/products", json=_product_body(catalog), headers=auth_headers(users["operator"]))
        assert response.status_code == 409

    def test_unknown_product_is_404(self, client, users, auth_headers):
        response = client.get("/api/products/999", headers=auth_headers(users["viewer"]))
        assert response.status_code == 404
        assert response.json()["detail"] == "Product 999 not found"

    def test_delete_request_with_reason(self, client, db_session, users, auth_headers):
        product = create_product(db_session)
        db_session.commit()

        response = client.delete(
            f"/api/products/{product.id}",
            params={"reason": "Broken"},
            headers=auth_headers(users["operator"]),
        )

        assert response.status_code == 202


class TestInternalEndpoints:

    def test_user_token_is_refused(self, client, users, catalog, auth_headers):
        response = client.post("/api/products/approved", json=_product_body(catalog), headers=auth_headers(users["admin"]))
        assert response.status_code == 403

    def test_credential_must_cover_the_action(self, client, users, catalog):
        headers = _internal_headers(users["admin"], ["product.update.direct"])
        response = client.post("/api/products/approved", json=_product_body(catalog), headers=headers)
        assert response.status_code == 403

    def test_replay_is_idempotent(self, client, db_session, users, catalog):
        headers = _internal_headers(users["admin"], ["product.create.direct"], approval_request_id=41)

        first = client.post("/api/products/approved", json=_product_body(catalog), headers=headers)
        second = client.post("/api/products/approved", json=_product_body(catalog), headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert first.json()["id"] == second.json()["id"]
        db_session.expire_all()
        assert db_session.query(Product).count() == 1

    def test_replayed_delete_of_missing_product(self, client, users):
        headers = _internal_headers(users["admin"], ["product.delete.direct"], approval_request_id=42)
        assert client.delete("/api/products/999/approved", headers=headers).status_code == 204


class TestRouteEndpoints:

    def test_transfer_and_complete(self, client, db_session, users, auth_headers):
        product = create_product(db_session)
        target = create_department(db_session, name="Finance")
        db_session.commit()
        headers = auth_headers(users["manager"])

        created = client.post(
            "/api/routes/transfer",
            json={"transfer": {"product_id": product.id, "to_department_id": target.id}},
            headers=headers,
        )
        assert created.status_code == 201
        route_id = created.json()["id"]

        completed = client.post(f"/api/routes/{route_id}/complete", headers=headers)
        assert completed.status_code == 200
        assert completed.json()["is_completed"] is True

        again = client.post(f"/api/routes/{route_id}/complete", headers=headers)
        assert again.status_code == 409

    def test_complete_requires_permission(self, client, db_session, users, auth_headers):
        product = create_product(db_session)
        target = create_department(db_session)
        db_session.commit()
        created = client.post(
            "/api/routes/transfer",
            json={"transfer": {"product_id": product.id, "to_department_id": target.id}},
            headers=auth_headers(users["manager"]),
        )

        response = client.post(f"/api/routes/{created.json()['id']}/complete", headers=auth_headers(users["operator"]))
        assert response.status_code == 403


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


class TestApprovalEndpoints:

    def _submit(self, client, users, catalog, auth_headers):
        response = client.post("/api/products", json=_product_body(catalog), headers=auth_headers(users["operator"]))
        return response.json()["approval_request_id"]

    def test_reviewer_sees_decoded_action(self, client, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)

        response = client.get(f"/api/approvals/{request_id}", headers=auth_headers(users["admin"]))

        assert response.status_code == 200
        body = response.json()
        assert body["request_type_label"] == "Product Create"
        assert body["action"]["product_data"]["inventory_code"] == 4321

    def test_requester_sees_own_request_only(self, client, db_session, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)
        other = create_user(db_session, permissions=OPERATOR_PERMISSIONS)
        db_session.commit()

        assert client.get(f"/api/approvals/{request_id}", headers=auth_headers(users["operator"])).status_code == 200
        assert client.get(f"/api/approvals/{request_id}", headers=auth_headers(other)).status_code == 403

    def test_pending_list_requires_view(self, client, users, catalog, auth_headers):
        self._submit(client, users, catalog, auth_headers)

        assert client.get("/api/approvals/pending", headers=auth_headers(users["operator"])).status_code == 403
        response = client.get("/api/approvals/pending", headers=auth_headers(users["admin"]))
        assert response.json()["total"] == 1

    def test_mine(self, client, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)

        response = client.get("/api/approvals/mine", headers=auth_headers(users["operator"]))

        assert [item["id"] for item in response.json()["items"]] == [request_id]

    def test_approve(self, client, executor, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)

        response = client.post(f"/api/approvals/{request_id}/approve", headers=auth_headers(users["admin"]))

        assert response.status_code == 200
        assert response.json()["status"] == "executed"
        assert executor.calls[0]["approver_name"] == "Ada Admin"

        history = client.get(f"/api/approvals/{request_id}/history", headers=auth_headers(users["admin"]))
        assert [h["to_state"] for h in history.json()] == ["pending", "approved", "executed"]

    def test_approve_twice_is_409(self, client, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)
        client.post(f"/api/approvals/{request_id}/approve", headers=auth_headers(users["admin"]))

        response = client.post(f"/api/approvals/{request_id}/approve", headers=auth_headers(users["admin"]))
        assert response.status_code == 409

    def test_manager_cannot_review(self, client, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)
        response = client.post(f"/api/approvals/{request_id}/approve", headers=auth_headers(users["manager"]))
        assert response.status_code == 403

    def test_reject_requires_reason(self, client, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)
        headers = auth_headers(users["admin"])

        assert client.post(f"/api/approvals/{request_id}/reject", json={"reason": ""}, headers=headers).status_code == 422

        response = client.post(f"/api/approvals/{request_id}/reject", json={"reason": "Duplicate"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["rejection_reason"] == "Duplicate"

    def test_cancel_hides_request(self, client, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)

        response = client.post(f"/api/approvals/{request_id}/cancel", headers=auth_headers(users["operator"]))

        assert response.status_code == 204
        assert client.get(f"/api/approvals/{request_id}", headers=auth_headers(users["admin"])).status_code == 404

    def test_cancel_by_someone_else(self, client, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)
        response = client.post(f"/api/approvals/{request_id}/cancel", headers=auth_headers(users["admin"]))
        assert response.status_code == 403

    def test_cancel_when_broker_is_down(self, client, publisher, users, catalog, auth_headers):
        request_id = self._submit(client, users, catalog, auth_headers)
        publisher.fail = True

        response = client.post(f"/api/approvals/{request_id}/cancel", headers=auth_headers(users["operator"]))

        assert response.status_code == 503
        detail = client.get(f"/api/approvals/{request_id}", headers=auth_headers(users["admin"]))
        assert detail.json()["status"] == "pending"

    def test_corrupt_payload_is_still_listed(self, client, db_session, users, auth_headers):
        request = create_approval_request(db_session, requested_by=users["operator"])
        request.action_data = "{not json"
        db_session.commit()

        response = client.get(f"/api/approvals/{request.id}", headers=auth_headers(users["admin"]))

        assert response.status_code == 200
        assert response.json()["action"] is None


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class TestNotificationEndpoints:

    def test_inbox(self, client, db_session, users, auth_headers):
        operator = users["operator"]
        create_notification(db_session, user=operator, title="First")
        create_notification(db_session, user=operator, title="Second")
        create_notification(db_session, user=users["admin"], title="Not mine")
        db_session.commit()
        headers = auth_headers(operator)

        assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 2}
        titles = [n["title"] for n in client.get("/api/notifications", headers=headers).json()]
        assert sorted(titles) == ["First", "Second"]

        assert client.post("/api/notifications/read-all", headers=headers).json() == {"marked": 2}
        assert client.get("/api/notifications/unread-count", headers=headers).json() == {"count": 0}
        assert client.get("/api/notifications", params={"unread_only": True}, headers=headers).json() == []

    def test_mark_read(self, client, db_session, users, auth_headers):
        notification = create_notification(db_session, user=users["operator"])
        db_session.commit()
        headers = auth_headers(users["operator"])

        first = client.post(f"/api/notifications/{notification.id}/read", headers=headers)
        second = client.post(f"/api/notifications/{notification.id}/read", headers=headers)

        assert first.json()["is_read"] is True
        assert second.status_code == 200

    def test_mark_someone_elses_notification(self, client, db_session, users, auth_headers):
        notification = create_notification(db_session, user=users["admin"])
        db_session.commit()

        response = client.post(f"/api/notifications/{notification.id}/read", headers=auth_headers(users["operator"]))
        assert response.status_code == 403


class TestNotificationSocket:

    def test_unread_notifications_are_replayed(self, client, db_session, users):
        operator = users["operator"]
        create_notification(db_session, user=operator, title="First")
        create_notification(db_session, user=operator, title="Second", is_read=False)
        create_notification(db_session, user=operator, title="Seen", is_read=True)
        db_session.commit()
        with client.websocket_connect(f"/ws/notifications?token={create_access_token(operator.id)}") as ws:
            assert ws.receive_json()["event"] == CONNECTION_ESTABLISHED
            replayed = [ws.receive_json(), ws.receive_json()]
            complete = ws.receive_json()

        assert [m["event"] for m in replayed] == [PENDING_NOTIFICATION, PENDING_NOTIFICATION]
        assert [m["data"]["title"] for m in replayed] == ["First", "Second"]
        assert complete == {"event": PENDING_NOTIFICATIONS_COMPLETE, "data": {"count": 2}}

    def test_bad_token_is_closed(self, client):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect("/ws/notifications?token=garbage") as ws:
                ws.receive_json()
        assert exc_info.value.code == 4401

    def test_idle_socket_holds_no_connection(self, tmp_path, publisher, executor):
        engine = create_engine(
            f"sqlite:///{tmp_path / 'sockets.db'}",
            connect_args={"check_same_thread": False},
            poolclass=QueuePool,
            pool_size=1,
            max_overflow=0,
            pool_timeout=5,
        )
        Base.metadata.create_all(engine)
        factory = sessionmaker(bind=engine, autoflush=False)

        setup = factory()
        viewer_id = create_user(setup, permissions=VIEWER_PERMISSIONS).id
        setup.commit()
        setup.close()

        def override_get_db():
            db = factory()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides.update({
            get_db: override_get_db,
            get_session_factory: lambda: factory,
            get_publisher: lambda: publisher,
            get_executor: lambda: executor,
        })
        token = create_access_token(viewer_id)
        try:
            with TestClient(app) as client:
                with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
                    assert ws.receive_json()["event"] == CONNECTION_ESTABLISHED
                    assert ws.receive_json()["event"] == PENDING_NOTIFICATIONS_COMPLETE

                    deadline = time.monotonic() + 2
                    while engine.pool.checkedout() and time.monotonic() < deadline:
                        time.sleep(0.01)
                    assert engine.pool.checkedout() == 0

                    response = client.get("/api/products", headers={"Authorization": f"Bearer {token}"})
                    assert response.status_code == 200
        finally:
            app.dependency_overrides.clear()
            engine.dispose()
