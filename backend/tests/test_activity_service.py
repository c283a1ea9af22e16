"""
Admin activity log tests.

Verifies:
- Newest-first ordering with limit/offset windows
- Filtering by actor and time range
- Recorder failures are swallowed and logged
- Entries cannot be updated or deleted through the ORM
"""

from datetime import timedelta

import pytest

from storefront.extensions import db
from storefront.models import AdminActivity, ImmutableRecordError
from storefront.services import activity_service
from storefront.services.activity_service import ActivityAction, MAX_PAGE_LIMIT
from storefront.time_utils import utcnow


@pytest.fixture
def entries(db_session):
    """Five entries for user 1 and two for user 2, one second apart."""
    base = utcnow() - timedelta(minutes=10)
    rows = []
    for i in range(7):
        entry = AdminActivity(
            user_id=1 if i < 5 else 2,
            action=ActivityAction.LOGIN_SUCCESS.value,
            created_at=base + timedelta(seconds=i),
        )
        db_session.add(entry)
        rows.append(entry)
    db_session.commit()
    return rows


class TestQuery:
    def test_newest_first(self, entries):
        page = activity_service.query_activity()

        assert page.total == 7
        assert [e.id for e in page.entries] == [e.id for e in reversed(entries)]

    def test_limit_and_offset(self, entries):
        page = activity_service.query_activity(limit=2, offset=1)

        assert page.total == 7
        assert [e.id for e in page.entries] == [entries[5].id, entries[4].id]

    def test_filter_by_user(self, entries):
        page = activity_service.query_activity(user_id=2)
        assert page.total == 2
        assert {e.user_id for e in page.entries} == {2}

    def test_filter_by_time(self, entries):
        page = activity_service.query_activity(since=entries[2].created_at, until=entries[4].created_at)
        assert [e.id for e in page.entries] == [entries[3].id, entries[2].id]

    def test_limit_is_clamped(self, entries):
        assert activity_service.query_activity(limit=0).limit == 1
        assert activity_service.query_activity(limit=10_000).limit == MAX_PAGE_LIMIT
        assert activity_service.query_activity(offset=-5).offset == 0

    def test_default_page(self, entries):
        page = activity_service.query_activity()
        assert page.limit == 100
        assert page.offset == 0
        assert set(page.to_dict()) == {"activities", "total", "limit", "offset"}


class TestRecord:
    def test_record_fields(self, db_session):
        entry = activity_service.record_activity(
            7, ActivityAction.SERVICES_STOPPED,
            resource_type="ServiceStatus", resource_id="service-status",
            ip_address="203.0.113.5", user_agent="x" * 600,
            details={"message": "closed"},
        )

        assert entry.id is not None
        assert entry.action == "SERVICES_STOPPED"
        assert len(entry.user_agent) == 512
        assert entry.details == {"message": "closed"}

    def test_login_helpers_are_distinguishable(self, db_session):
        ok = activity_service.record_successful_login(3, "198.51.100.1", "ua")
        failed = activity_service.record_failed_login(3, "198.51.100.1")
        assert ok.action != failed.action

    def test_failure_is_swallowed_and_logged(self, db_session, monkeypatch, caplog):
        def broken(entry):
            raise RuntimeError("disk full")

        monkeypatch.setattr(activity_service, "_persist", broken)

        assert activity_service.record_activity(1, ActivityAction.LOGIN_SUCCESS) is None
        assert "Failed to record admin activity" in caplog.text

    def test_privileged_action_survives_recorder_failure(self, client, verified_admin_headers, monkeypatch):
        def broken(entry):
            raise RuntimeError("disk full")

        monkeypatch.setattr(activity_service, "_persist", broken)

        resp = client.post("/api/admin/service-status", json={"is_stopped": True}, headers=verified_admin_headers)
        assert resp.status_code == 200
        assert resp.json["is_stopped"] is True


class TestImmutability:
    def test_update_is_refused(self, db_session):
        entry = activity_service.record_activity(1, ActivityAction.LOGIN_SUCCESS)
        entry.action = "TAMPERED"

        with pytest.raises(ImmutableRecordError):
            db.session.commit()
        db.session.rollback()

    def test_delete_is_refused(self, db_session):
        entry = activity_service.record_activity(1, ActivityAction.LOGIN_SUCCESS)
        db.session.delete(entry)

        with pytest.raises(ImmutableRecordError):
            db.session.commit()
        db.session.rollback()


class TestActivityRoute:
    def test_activity_endpoint(self, client, admin_user, verified_admin_headers):
        resp = client.get(f"/api/admin/activity?userId={admin_user.id}&limit=2", headers=verified_admin_headers)

        assert resp.status_code == 200
        assert resp.json["limit"] == 2
        assert len(resp.json["activities"]) == 2
        created = [a["created_at"] for a in resp.json["activities"]]
        assert created == sorted(created, reverse=True)

    def test_viewing_is_recorded(self, client, verified_admin_headers):
        client.get("/api/admin/activity", headers=verified_admin_headers)
        resp = client.get("/api/admin/activity?limit=1", headers=verified_admin_headers)

        assert resp.json["activities"][0]["action"] == "VIEW_ACTIVITY_LOGS"

    def test_bad_query_params(self, client, verified_admin_headers):
        resp = client.get("/api/admin/activity?limit=abc", headers=verified_admin_headers)
        assert resp.status_code == 400
