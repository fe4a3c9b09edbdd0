"""
Integration tests for the triage API using SQLite.
"""
from datetime import timedelta

import pytest

from carewatch.main import app
from carewatch.models.reviewer import ReviewerRole
from carewatch.routers.triage import get_stores
from carewatch.services.stores import InterventionStore, LogStore, PatientDirectory, Stores

from conftest import (
    OTHER_CENTER_ID,
    FailingInterventionStore,
    FailingLogStore,
    add_event,
    add_intervention,
    add_patient,
    add_reviewer,
    today,
)


def _headers(reviewer):
    return {"X-Reviewer-Id": str(reviewer.id)}


@pytest.fixture()
def admin(db):
    return add_reviewer(db)


@pytest.fixture()
def failing_stores(db):
    """Install stores whose writes fail; yields a setter choosing which one."""
    def install(log_fails=False, insert_fails=False):
        log_store = FailingLogStore(db) if log_fails else None
        iv_store = FailingInterventionStore(db) if insert_fails else InterventionStore(db)

        def _stores():
            return Stores(
                logs=log_store or LogStore(db),
                interventions=iv_store,
                patients=PatientDirectory(db),
            )
        app.dependency_overrides[get_stores] = _stores
    yield install
    app.dependency_overrides.pop(get_stores, None)


class TestHealth:
    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestInbox:
    def test_requires_reviewer(self, client):
        r = client.get("/triage/inbox")
        assert r.status_code == 401
        assert r.json()["code"] == "REVIEWER_REQUIRED"

    def test_unknown_reviewer(self, client):
        r = client.get("/triage/inbox", headers={"X-Reviewer-Id": "999"})
        assert r.status_code == 401

    def test_reviewer_without_center(self, client, db):
        loner = add_reviewer(db, center_id=None)
        r = client.get("/triage/inbox", headers=_headers(loner))
        assert r.status_code == 403
        assert r.json()["code"] == "CENTER_ACCESS_DENIED"

    def test_empty_inbox(self, client, admin):
        r = client.get("/triage/inbox", headers=_headers(admin))
        assert r.status_code == 200
        body = r.json()
        assert body["items"] == []
        assert body["summary"] == {
            "total": 0,
            "unreviewed_count": 0,
            "needs_intervention_count": 0,
            "emergency_count": 0,
        }

    def test_ranked_items_and_summary(self, client, db, admin):
        kim = add_patient(db, name="Kim Minji")
        lee = add_patient(db, name="Lee Seojun")
        add_event(db, kim, intensity=9)
        add_event(db, lee, intensity=3, is_emergency=True, keywords=["self-harm"])
        add_event(db, lee, log_date=today() - timedelta(days=1), intensity=4)

        r = client.get("/triage/inbox", headers=_headers(admin))
        assert r.status_code == 200
        body = r.json()
        scores = [i["priority_score"] for i in body["items"]]
        assert scores == [145, 65]

        top = body["items"][0]
        assert top["patient"]["name"] == "Lee Seojun"
        assert top["reasons"] == ["EMERGENCY", "KEYWORDS"]
        assert top["log_event"]["detected_keywords"] == ["self-harm"]
        assert top["lifecycle_state"] == "open"
        assert top["suggested_risk_level"] == "HIGH"
        assert top["latest_intervention"] is None

        assert body["summary"] == {
            "total": 2,
            "unreviewed_count": 2,
            "needs_intervention_count": 2,
            "emergency_count": 1,
        }

    def test_search_filter(self, client, db, admin):
        add_event(db, add_patient(db, name="Kim Minji"), intensity=9)
        add_event(db, add_patient(db, name="Lee Seojun"), intensity=9)
        r = client.get("/triage/inbox?q=SEO", headers=_headers(admin))
        names = [i["patient"]["name"] for i in r.json()["items"]]
        assert names == ["Lee Seojun"]
        assert r.json()["search"] == "SEO"

    def test_other_center_patients_hidden(self, client, db, admin):
        add_event(db, add_patient(db, center_id=OTHER_CENTER_ID), intensity=10)
        r = client.get("/triage/inbox", headers=_headers(admin))
        assert r.json()["items"] == []

    def test_counselor_sees_own_caseload(self, client, db):
        counselor = add_reviewer(db, name="Counselor Choi", role=ReviewerRole.counselor)
        mine = add_patient(db, name="Kim Minji", counselor_id=counselor.id)
        theirs = add_patient(db, name="Lee Seojun", counselor_id=counselor.id + 100)
        add_event(db, mine, intensity=9)
        add_event(db, theirs, intensity=9)
        r = client.get("/triage/inbox", headers=_headers(counselor))
        assert [i["patient"]["name"] for i in r.json()["items"]] == ["Kim Minji"]

    def test_deviation_toggle(self, client, db, admin):
        kim = add_patient(db)
        for offset, intensity in enumerate([6, 2, 2, 2]):
            add_event(db, kim, log_date=today() - timedelta(days=offset), intensity=intensity)

        off = client.get("/triage/inbox?deviation=false", headers=_headers(admin)).json()
        on = client.get("/triage/inbox?deviation=true", headers=_headers(admin)).json()
        assert off["items"] == []
        assert [i["reasons"] for i in on["items"]] == [["DEVIATION"]]

    def test_days_window(self, client, db, admin):
        kim = add_patient(db)
        add_event(db, kim, log_date=today() - timedelta(days=10), intensity=9)
        short = client.get("/triage/inbox?days=7", headers=_headers(admin)).json()
        long = client.get("/triage/inbox?days=14", headers=_headers(admin)).json()
        assert short["summary"]["total"] == 0
        assert long["summary"]["total"] == 1

    @pytest.mark.parametrize("days", [0, 91])
    def test_invalid_days(self, client, admin, days):
        r = client.get(f"/triage/inbox?days={days}", headers=_headers(admin))
        assert r.status_code == 422
        assert r.json()["code"] == "VALIDATION_ERROR"


class TestReview:
    def test_mark_reviewed_idempotent(self, client, db, admin):
        event = add_event(db, add_patient(db), intensity=9)
        for _ in range(2):
            r = client.post(f"/triage/events/{event.id}/review", headers=_headers(admin))
            assert r.status_code == 200
            assert r.json() == {"event_id": event.id, "is_reviewed": True}

        item = client.get("/triage/inbox", headers=_headers(admin)).json()["items"][0]
        assert item["priority_score"] == 50
        assert item["lifecycle_state"] == "reviewed"

    def test_unknown_event(self, client, admin):
        r = client.post("/triage/events/12345/review", headers=_headers(admin))
        assert r.status_code == 404
        assert r.json()["code"] == "LOG_EVENT_NOT_FOUND"

    def test_write_failure(self, client, db, admin, failing_stores):
        event = add_event(db, add_patient(db), intensity=9)
        failing_stores(log_fails=True)
        r = client.post(f"/triage/events/{event.id}/review", headers=_headers(admin))
        assert r.status_code == 503
        body = r.json()
        assert body["code"] == "WRITE_FAILURE"
        assert body["details"]["retryable"] is True

        app.dependency_overrides.pop(get_stores)
        item = client.get("/triage/inbox", headers=_headers(admin)).json()["items"][0]
        assert item["log_event"]["is_reviewed"] is False


class TestInterventions:
    def _post(self, client, reviewer, event, **overrides):
        payload = {
            "patient_id": event.patient_id,
            "risk_level": "HIGH",
            "actions_taken": [{"code": "CONTACT_ATTEMPT"}, {"code": "SAFETY_PLAN"}],
            "note": "  Reached by phone.  ",
        }
        payload.update(overrides)
        return client.post(
            f"/triage/events/{event.id}/interventions",
            json=payload,
            headers=_headers(reviewer),
        )

    def test_create_cascades(self, client, db, admin):
        event = add_event(db, add_patient(db), intensity=3, is_emergency=True, keywords=["self-harm"])
        r = self._post(client, admin, event)
        assert r.status_code == 201
        body = r.json()
        assert body["is_reviewed"] is True
        assert body["intervention"]["related_log_event_id"] == event.id
        assert body["intervention"]["note"] == "Reached by phone."
        assert [a["code"] for a in body["intervention"]["actions_taken"]] == [
            "CONTACT_ATTEMPT", "SAFETY_PLAN",
        ]

        inbox = client.get("/triage/inbox", headers=_headers(admin)).json()
        item = inbox["items"][0]
        assert item["priority_score"] == 120
        assert item["lifecycle_state"] == "addressed"
        assert item["latest_intervention"]["risk_level"] == "HIGH"
        assert inbox["summary"]["needs_intervention_count"] == 0

    def test_invalid_action_code(self, client, db, admin):
        event = add_event(db, add_patient(db), intensity=9)
        r = self._post(client, admin, event, actions_taken=[{"code": "PRAY"}])
        assert r.status_code == 422
        fields = [e["field"] for e in r.json()["details"]["errors"]]
        assert any("actions_taken" in f for f in fields)

    def test_invalid_risk_level(self, client, db, admin):
        event = add_event(db, add_patient(db), intensity=9)
        r = self._post(client, admin, event, risk_level="SEVERE")
        assert r.status_code == 422

    def test_patient_mismatch(self, client, db, admin):
        event = add_event(db, add_patient(db), intensity=9)
        other = add_patient(db, name="Lee Seojun")
        r = self._post(client, admin, event, patient_id=other.id)
        assert r.status_code == 422
        assert r.json()["code"] == "INTERVENTION_TARGET_MISMATCH"

    def test_insert_failure_is_retryable(self, client, db, admin, failing_stores):
        event = add_event(db, add_patient(db), intensity=9)
        failing_stores(insert_fails=True)
        r = self._post(client, admin, event)
        assert r.status_code == 503
        assert r.json()["details"]["operation"] == "insert_intervention"

        app.dependency_overrides.pop(get_stores)
        r = client.get(f"/triage/events/{event.id}/interventions", headers=_headers(admin))
        assert r.json()["total"] == 0

    def test_partial_cascade(self, client, db, admin, failing_stores):
        event = add_event(db, add_patient(db), intensity=9)
        failing_stores(log_fails=True)
        r = self._post(client, admin, event)
        assert r.status_code == 502
        body = r.json()
        assert body["code"] == "PARTIAL_CASCADE_FAILURE"
        assert body["details"]["intervention_saved"] is True
        assert body["details"]["reviewed"] is False

        app.dependency_overrides.pop(get_stores)
        item = client.get("/triage/inbox", headers=_headers(admin)).json()["items"][0]
        assert item["lifecycle_state"] == "cascade_pending"
        assert item["log_event"]["is_reviewed"] is False
        # reviewed bonus still applies, intervention bonus does not
        assert item["priority_score"] == 55

        r = self._post(client, admin, event)
        assert r.status_code == 201
        history = client.get(f"/triage/events/{event.id}/interventions", headers=_headers(admin))
        assert history.json()["total"] == 2

    def test_history_newest_first(self, client, db, admin):
        event = add_event(db, add_patient(db), intensity=9)
        self._post(client, admin, event, risk_level="LOW")
        self._post(client, admin, event, risk_level="IMMINENT")
        r = client.get(f"/triage/events/{event.id}/interventions", headers=_headers(admin))
        assert r.status_code == 200
        levels = [i["risk_level"] for i in r.json()["items"]]
        assert levels == ["IMMINENT", "LOW"]

        item = client.get("/triage/inbox", headers=_headers(admin)).json()["items"][0]
        assert item["latest_intervention"]["risk_level"] == "IMMINENT"
        assert item["intervention_count"] == 2

    def test_history_other_center_hidden(self, client, db, admin):
        event = add_event(db, add_patient(db, center_id=OTHER_CENTER_ID), intensity=9)
        add_intervention(db, event, center_id=OTHER_CENTER_ID)
        r = client.get(f"/triage/events/{event.id}/interventions", headers=_headers(admin))
        assert r.status_code == 404

    def test_reviewer_without_center_cannot_record(self, client, db):
        loner = add_reviewer(db, center_id=None)
        event = add_event(db, add_patient(db), intensity=9)
        r = self._post(client, loner, event)
        assert r.status_code == 409
        assert r.json()["code"] == "CENTER_REQUIRED"


class TestCaseloadScope:
    @pytest.fixture()
    def counselor(self, db):
        return add_reviewer(db, name="Counselor Choi", role=ReviewerRole.counselor)

    @pytest.fixture()
    def foreign_event(self, db, counselor):
        patient = add_patient(db, name="Lee Seojun", counselor_id=counselor.id + 100)
        return add_event(db, patient, intensity=9)

    def test_review_of_other_caseload_is_hidden(self, client, db, counselor, foreign_event):
        inbox = client.get("/triage/inbox", headers=_headers(counselor)).json()
        assert inbox["summary"]["total"] == 0

        r = client.post(f"/triage/events/{foreign_event.id}/review", headers=_headers(counselor))
        assert r.status_code == 404
        assert r.json()["code"] == "LOG_EVENT_NOT_FOUND"

        db.expire_all()
        assert LogStore(db).get_event(foreign_event.id).is_reviewed is False

    def test_intervention_on_other_caseload_is_hidden(self, client, db, counselor, foreign_event):
        r = client.post(
            f"/triage/events/{foreign_event.id}/interventions",
            json={"patient_id": foreign_event.patient_id, "risk_level": "HIGH"},
            headers=_headers(counselor),
        )
        assert r.status_code == 404

        admin = add_reviewer(db)
        history = client.get(f"/triage/events/{foreign_event.id}/interventions", headers=_headers(admin))
        assert history.json()["total"] == 0

    def test_history_of_other_caseload_is_hidden(self, client, db, counselor, foreign_event):
        add_intervention(db, foreign_event)
        r = client.get(f"/triage/events/{foreign_event.id}/interventions", headers=_headers(counselor))
        assert r.status_code == 404

    def test_own_caseload_is_writable(self, client, db, counselor):
        event = add_event(db, add_patient(db, counselor_id=counselor.id), intensity=9)
        r = client.post(f"/triage/events/{event.id}/review", headers=_headers(counselor))
        assert r.status_code == 200
        r = client.post(
            f"/triage/events/{event.id}/interventions",
            json={"patient_id": event.patient_id, "risk_level": "MODERATE"},
            headers=_headers(counselor),
        )
        assert r.status_code == 201
        r = client.get(f"/triage/events/{event.id}/interventions", headers=_headers(counselor))
        assert r.json()["total"] == 1


class TestActionPresets:
    def test_catalogue(self, client):
        r = client.get("/triage/action-presets")
        assert r.status_code == 200
        codes = [p["code"] for p in r.json()]
        assert "EMERGENCY_REFERRAL" in codes
        assert "NO_ACTION" in codes
        assert all(p["label"] for p in r.json())
