"""
Service status tests.

Verifies:
- Lazy creation in the running state
- stopped_at is kept on a repeated stop and cleared on resume
- Public endpoint only exposes the notice while stopped
- Toggling is recorded in the activity log
"""

from storefront.models import AdminActivity, DEFAULT_STOPPED_MESSAGE, SERVICE_STATUS_ID, ServiceStatus
from storefront.services import service_status_service


class TestServiceStatusService:
    def test_created_lazily_running(self, db_session):
        assert db_session.get(ServiceStatus, SERVICE_STATUS_ID) is None

        status = service_status_service.get_status()

        assert status.id == SERVICE_STATUS_ID
        assert status.is_stopped is False
        assert status.message == DEFAULT_STOPPED_MESSAGE
        assert db_session.query(ServiceStatus).count() == 1

    def test_stop_and_resume(self, db_session):
        stopped = service_status_service.set_status(True, message="Back tomorrow", updated_by=1)
        first_stop = stopped.stopped_at

        assert stopped.is_stopped is True
        assert first_stop is not None
        assert stopped.message == "Back tomorrow"
        assert stopped.updated_by == 1

        again = service_status_service.set_status(True, updated_by=1)
        assert again.stopped_at == first_stop
        assert again.message == "Back tomorrow"

        resumed = service_status_service.set_status(False, updated_by=1)
        assert resumed.is_stopped is False
        assert resumed.stopped_at is None

    def test_blank_message_keeps_notice(self, db_session):
        status = service_status_service.set_status(True, message="   ")
        assert status.message == DEFAULT_STOPPED_MESSAGE


class TestServiceStatusRoutes:
    def test_public_status(self, client, db_session):
        resp = client.get("/api/service-status")
        assert resp.status_code == 200
        assert resp.json == {"is_stopped": False, "message": None}

    def test_toggle_is_public_and_recorded(self, client, db_session, verified_admin_headers):
        resp = client.post(
            "/api/admin/service-status",
            json={"isStopped": True, "message": "Closed for Diwali"},
            headers=verified_admin_headers,
        )
        assert resp.status_code == 200

        public = client.get("/api/service-status").json
        assert public == {"is_stopped": True, "message": "Closed for Diwali"}

        client.post("/api/admin/service-status", json={"is_stopped": False}, headers=verified_admin_headers)
        assert client.get("/api/service-status").json["is_stopped"] is False

        db_session.expire_all()
        actions = [a.action for a in db_session.query(AdminActivity).all()]
        assert "SERVICES_STOPPED" in actions
        assert "SERVICES_RESUMED" in actions

    def test_rejects_non_boolean(self, client, verified_admin_headers):
        resp = client.post("/api/admin/service-status", json={"is_stopped": "yes"}, headers=verified_admin_headers)
        assert resp.status_code == 400

    def test_health(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["database"]["status"] == "healthy"
