import logging
from datetime import date

import pytest
from fastapi.testclient import TestClient

from app.config import HCP_SYNC_RATE_LIMIT
from app.database import get_db
from app.domain.jobs.router import get_job_orchestrator, get_job_sync_service
from app.domain.jobs.sync import JobSyncService
from app.domain.scheduling.lifecycle import SuggestionBridge
from app.domain.scheduling.router import get_suggestion_service
from app.domain.scheduling.service import SuggestionService
from app.domain.scheduling.sessions import SuggestionSessionStore
from app.main import app
from app.models import Organization, TechnicianProfile, TechnicianSkill
from app.rate_limiter import reset_rate_limits
from app.services.mapbox_service import MapboxService

HEADERS = {"X-Organization-Id": "org-1"}


@pytest.fixture
def client(db, orchestrator):
    reset_rate_limits()
    store = SuggestionSessionStore()

    def service_override():
        return SuggestionService(
            db,
            mapbox=MapboxService(access_token=None),
            store=store,
            bridge=SuggestionBridge(orchestrator, jobs_in_flight=set()),
            today=date(2024, 5, 31),
        )

    def db_override():
        yield db

    app.dependency_overrides[get_db] = db_override
    app.dependency_overrides[get_job_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_suggestion_service] = service_override
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
        reset_rate_limits()


@pytest.fixture
def jane(db, organization):
    profile = TechnicianProfile(
        organization_id=organization.id,
        first_name="Jane",
        last_name="Smith",
        hcp_employee_id="emp_jane",
        home_lat=40.05,
        home_lng=-75.0,
    )
    profile.skills.append(TechnicianSkill(service_type="carpet_cleaning", skill_level="preferred"))
    db.add(profile)
    db.commit()
    return profile


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/health/redis").json()["status"] == "disabled"


def test_update_job_requires_organization_header(client):
    response = client.post("/jobs/update", json={"organizationId": "org-1", "remoteJobId": "job_1"})
    assert response.status_code == 401


def test_update_job_rejects_other_organization(client, mirrored_job):
    response = client.post(
        "/jobs/update",
        json={"organizationId": "org-2", "remoteJobId": "job_1", "status": "completed"},
        headers=HEADERS,
    )
    assert response.status_code == 403


def test_update_job_success(client, hcp, mirrored_job):
    response = client.post(
        "/jobs/update",
        json={
            "organizationId": "org-1",
            "remoteJobId": "job_1",
            "scheduledDate": "2024-06-01",
            "scheduledTime": "09:00",
            "status": "cancelled",
        },
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "error": None}
    assert hcp.calls[0][2]["work_status"] == "canceled"


def test_update_job_reports_load_bearing_failure(client, hcp, mirrored_job):
    hcp.fail("PUT", "/jobs/job_1", 404)

    response = client.post(
        "/jobs/update",
        json={"organizationId": "org-1", "remoteJobId": "job_1", "status": "completed"},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is False
    assert "404" in body["error"]


def test_update_job_without_credential_is_400(client, db):
    db.add(Organization(id="org-1", name="No Key Co"))
    db.commit()

    response = client.post(
        "/jobs/update",
        json={"organizationId": "org-1", "remoteJobId": "job_1", "status": "completed"},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert "not configured" in response.json()["detail"]


def test_update_job_validation_error(client):
    response = client.post(
        "/jobs/update",
        json={"organizationId": "org-1", "remoteJobId": "job_1", "scheduledDate": "2024-06-01"},
        headers=HEADERS,
    )
    assert response.status_code == 422


def _create_session(client):
    response = client.post(
        "/scheduling/suggestions",
        json={
            "remoteJobId": "job_1",
            "serviceType": "Carpet Cleaning",
            "customerName": "Pat Doe",
            "lat": 40.0,
            "lng": -75.0,
            "candidateDates": ["2024-06-01"],
            "preferredTimeStart": "09:00",
        },
        headers=HEADERS,
    )
    assert response.status_code == 200
    return response.json()


def test_suggestion_review_flow(client, hcp, mirrored_job, jane):
    session = _create_session(client)

    assert len(session["suggestions"]) == 1
    suggestion = session["suggestions"][0]
    assert suggestion["technicianName"] == "Jane Smith"
    assert suggestion["scheduledTime"] == "09:00"
    assert suggestion["confidence"] == "high"
    assert suggestion["skillMatch"] == "preferred"
    assert suggestion["status"] == "pending"
    assert suggestion["reasoning"]
    assert "lastRequest" not in suggestion

    base = f"/scheduling/suggestions/{session['sessionId']}/{suggestion['id']}"

    patched = client.patch(base, json={"scheduledTime": "10:00"}, headers=HEADERS)
    assert patched.status_code == 200
    assert patched.json()["scheduledTime"] == "10:00"

    confirmed = client.post(f"{base}/confirm", headers=HEADERS)
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "created"
    assert confirmed.json()["createdJobUrl"].endswith("/pro/jobs/job_1")
    assert hcp.calls_to("PUT", "/jobs/job_1")[0][2]["schedule"]["scheduled_start"] == "2024-06-01T10:00:00"

    again = client.post(f"{base}/confirm", headers=HEADERS)
    assert again.status_code == 409

    fetched = client.get(f"/scheduling/suggestions/{session['sessionId']}", headers=HEADERS)
    assert fetched.json()["suggestions"][0]["status"] == "created"


def test_failed_confirm_can_be_retried(client, hcp, mirrored_job, jane):
    session = _create_session(client)
    base = f"/scheduling/suggestions/{session['sessionId']}/{session['suggestions'][0]['id']}"
    hcp.fail("PUT", "/jobs/job_1", 503)

    failed = client.post(f"{base}/confirm", headers=HEADERS)
    assert failed.json()["status"] == "error"
    assert failed.json()["error"].startswith("HCP update failed")

    assert client.patch(base, json={"notes": "x"}, headers=HEADERS).status_code == 409

    del hcp.failures[("PUT", "/jobs/job_1")]
    retried = client.post(f"{base}/retry", headers=HEADERS)
    assert retried.json()["status"] == "created"
    puts = hcp.calls_to("PUT", "/jobs/job_1")
    assert puts[0][2] == puts[1][2]


def test_session_is_scoped_to_organization(client, mirrored_job, jane):
    session = _create_session(client)

    response = client.get(
        f"/scheduling/suggestions/{session['sessionId']}", headers={"X-Organization-Id": "org-2"}
    )
    assert response.status_code == 404
    assert client.get("/scheduling/suggestions/unknown", headers=HEADERS).status_code == 404


def test_suggestions_are_rate_limited(client, mirrored_job, jane):
    from app.domain.scheduling import router as scheduling_router
    from app.rate_limiter import create_rate_limiter

    app.dependency_overrides[scheduling_router.suggestion_rate_limit] = create_rate_limiter(
        limit=2, window_seconds=60, key_prefix="suggestions-test"
    )

    _create_session(client)
    _create_session(client)
    response = client.post(
        "/scheduling/suggestions",
        json={"serviceType": "Carpet Cleaning", "candidateDates": ["2024-06-01"]},
        headers=HEADERS,
    )
    assert response.status_code == 429


def test_requests_are_logged_with_status_and_duration(client, caplog):
    with caplog.at_level(logging.INFO, logger="app.main"):
        client.get("/health")

    lines = [r.getMessage() for r in caplog.records if r.name == "app.main"]
    assert any(line.startswith("GET /health - 200 (") and line.endswith("ms)") for line in lines)


@pytest.fixture
def sync_client(client, db, hcp, pacer):
    app.dependency_overrides[get_job_sync_service] = lambda: JobSyncService(
        db, client_factory=hcp.client_factory, pacer=pacer, today=date(2024, 6, 1)
    )
    return client


def test_sync_route_pulls_jobs(sync_client, hcp, organization):
    hcp.jobs = [{"id": "job_20", "work_status": "scheduled",
                 "schedule": {"scheduled_start": "2024-06-02T10:00:00-04:00"}}]

    response = sync_client.post("/jobs/sync", json={"days": 7}, headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["synced"]["jobs"] == 1
    assert hcp.job_queries[0]["scheduled_start_max"] == "2024-06-08"


def test_sync_route_works_without_body(sync_client, hcp, organization):
    response = sync_client.post("/jobs/sync", headers=HEADERS)

    assert response.status_code == 200
    assert hcp.job_queries[0]["scheduled_start_max"] == "2024-07-01"


def test_sync_route_rejects_unconfigured_organization(sync_client, db):
    db.add(Organization(id="org-1", name="No key yet"))
    db.commit()

    response = sync_client.post("/jobs/sync", headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"] == "HouseCall Pro API not configured"


def test_sync_route_validates_window(sync_client, organization):
    response = sync_client.post("/jobs/sync", json={"days": 0}, headers=HEADERS)
    assert response.status_code == 422


def test_connection_test_route(sync_client, hcp, organization):
    hcp.fail("GET", "/company", status=401)

    response = sync_client.post("/jobs/connection-test", json={"apiKey": "typo-key"}, headers=HEADERS)

    assert response.status_code == 200
    assert response.json() == {
        "success": False,
        "companyName": None,
        "error": "Invalid API key. Please check your credentials.",
    }


def test_sync_route_is_rate_limited_per_organization(sync_client, organization):
    statuses = [sync_client.post("/jobs/sync", headers=HEADERS).status_code for _ in range(HCP_SYNC_RATE_LIMIT + 1)]

    assert statuses[:-1] == [200] * HCP_SYNC_RATE_LIMIT
    assert statuses[-1] == 429
