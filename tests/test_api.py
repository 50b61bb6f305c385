from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from fastapi.testclient import TestClient

from app.api.errors import to_exception
from app.core.errors import ClockErrorCode, fail
from app.main import create_app
from tests.conftest import NYC_LAT, NYC_LON, auth_headers, make_token

PREFIX = "/api/v1/attendance"


def now_iso(delta: timedelta = timedelta(0)) -> str:
    return (datetime.now(timezone.utc) + delta).isoformat()


def clock_in_body(**overrides):
    body = {
        "rotation_id": "rot-er",
        "location": {"latitude": NYC_LAT, "longitude": NYC_LON, "accuracy_m": 8},
        "timestamp": now_iso(),
    }
    body.update(overrides)
    return body


@pytest.fixture
def client(settings, seeded_sync):
    with TestClient(create_app(settings)) as client:
        yield client


@pytest.fixture
def student():
    return auth_headers("student-1")


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_clock_in_requires_token(client):
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body())
    assert resp.status_code == 401


def test_clock_in_rejects_bad_signature(client):
    token = jwt.encode({"sub": "student-1", "role": "student"}, "wrong-secret", algorithm="HS256")
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401


def test_clock_in_rejects_expired_token(client):
    token = make_token("student-1", expires_in=-60)
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 401
    assert resp.json()["message"] == "Token has expired"


def test_clock_in_success(client, student):
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers=student)

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["data"]["ar_status"] == "ACTIVE"
    assert body["data"]["site"]["si_id"] == "site-nyc"
    assert body["data"]["ar_location_source"] == "gps"


def test_second_clock_in_conflicts(client, student):
    client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers=student)
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers=student)

    assert resp.status_code == 409
    assert resp.json()["details"]["code"] == "ALREADY_CLOCKED_IN"


def test_clock_in_outside_geofence(client, student):
    far = {"latitude": 40.7580, "longitude": -73.9855, "accuracy_m": 8}
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(location=far), headers=student)

    assert resp.status_code == 403
    body = resp.json()
    assert body["success"] is False
    assert body["details"]["code"] == "LOCATION_TOO_FAR"
    assert body["details"]["distance_m"] > 5000


def test_clock_in_future_timestamp(client, student):
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(timestamp=now_iso(timedelta(minutes=5))), headers=student)
    assert resp.status_code == 400
    assert resp.json()["details"]["code"] == "FUTURE_TIMESTAMP"


def test_clock_in_coarse_location(client, student):
    coarse = {"latitude": NYC_LAT, "longitude": NYC_LON, "accuracy_m": 1000}
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(location=coarse), headers=student)
    assert resp.status_code == 400
    assert resp.json()["details"]["code"] == "LOCATION_ACCURACY_TOO_LOW"


def test_malformed_body_is_a_validation_error(client, student):
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(rotation_id=None), headers=student)

    assert resp.status_code == 400
    body = resp.json()
    assert body["details"]["code"] == "VALIDATION_ERROR"
    assert "rotation_id or site_id" in body["message"]


def test_student_cannot_clock_in_for_someone_else(client, student):
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(student_id="student-2"), headers=student)
    assert resp.status_code == 403


def test_preceptor_can_clock_in_for_student(client):
    headers = auth_headers("preceptor-1", role="preceptor")
    resp = client.post(f"{PREFIX}/clock-in", json=clock_in_body(student_id="student-2"), headers=headers)
    assert resp.status_code == 201

    status_resp = client.get(f"{PREFIX}/status/student-2", headers=headers)
    assert status_resp.json()["data"]["is_active"] is True


def test_full_shift(client, student):
    started = datetime.now(timezone.utc) - timedelta(hours=2)
    client.post(f"{PREFIX}/clock-in", json=clock_in_body(timestamp=started.isoformat()), headers=student)

    status_resp = client.get(f"{PREFIX}/status", headers=student)
    assert status_resp.status_code == 200
    assert status_resp.json()["data"]["is_active"] is True
    assert status_resp.json()["data"]["current_duration_seconds"] >= 7200
    assert status_resp.json()["data"]["si_name"] == "NYC General Hospital"

    resp = client.post(
        f"{PREFIX}/clock-out",
        json={"timestamp": (started + timedelta(hours=2)).isoformat()},
        headers=student,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["ar_status"] == "COMPLETED"
    assert Decimal(str(data["ar_total_hours"])) == Decimal("2.00")

    status_resp = client.get(f"{PREFIX}/status", headers=student)
    assert status_resp.json()["data"]["is_active"] is False


def test_clock_out_too_short(client, student):
    client.post(f"{PREFIX}/clock-in", json=clock_in_body(timestamp=now_iso(-timedelta(minutes=2))), headers=student)
    resp = client.post(f"{PREFIX}/clock-out", json={"timestamp": now_iso()}, headers=student)

    assert resp.status_code == 422
    assert resp.json()["details"]["code"] == "SESSION_TOO_SHORT"


def test_clock_out_without_session(client, student):
    resp = client.post(f"{PREFIX}/clock-out", json={"timestamp": now_iso()}, headers=student)
    assert resp.status_code == 404
    assert resp.json()["details"]["code"] == "NO_ACTIVE_SESSION"


def test_student_cannot_read_other_status(client, student):
    resp = client.get(f"{PREFIX}/status/student-2", headers=student)
    assert resp.status_code == 403


def test_maintenance_requires_admin(client, student):
    resp = client.get("/api/v1/maintenance/circuit-breakers", headers=student)
    assert resp.status_code == 403


def test_circuit_breaker_stats(client, student):
    client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers=student)

    resp = client.get("/api/v1/maintenance/circuit-breakers", headers=auth_headers("admin-1", "school_admin"))

    assert resp.status_code == 200
    breakers = {b["name"]: b for b in resp.json()["data"]}
    assert breakers["clockIn"]["state"] == "CLOSED"
    assert breakers["clockIn"]["total_requests"] == 1
    assert breakers["siteLookup"]["state"] == "CLOSED"


def test_site_cache_invalidation(client, student):
    client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers=student)
    admin = auth_headers("admin-1", "super_admin")

    resp = client.post("/api/v1/maintenance/site-cache/invalidate", json={"si_id": "site-nyc"}, headers=admin)
    assert resp.status_code == 200
    assert resp.json()["data"]["invalidated_count"] == 1

    resp = client.post("/api/v1/maintenance/site-cache/invalidate", json={}, headers=admin)
    assert resp.json()["data"]["invalidated_count"] == 0


def test_circuit_breaker_reset(client, student):
    client.post(f"{PREFIX}/clock-in", json=clock_in_body(), headers=student)
    admin = auth_headers("admin-1", "school_admin")

    resp = client.post("/api/v1/maintenance/circuit-breakers/clockIn/reset", headers=admin)
    assert resp.status_code == 200
    assert resp.json()["data"]["state"] == "CLOSED"
    assert resp.json()["data"]["failure_count"] == 0

    resp = client.post("/api/v1/maintenance/circuit-breakers/payroll/reset", headers=admin)
    assert resp.status_code == 404
    assert resp.json()["success"] is False

    resp = client.post("/api/v1/maintenance/circuit-breakers/clockIn/reset", headers=student)
    assert resp.status_code == 403


@pytest.mark.parametrize("code,status_code", [
    (ClockErrorCode.VALIDATION_ERROR, 400),
    (ClockErrorCode.LOCATION_TOO_FAR, 403),
    (ClockErrorCode.NO_ACTIVE_SESSION, 404),
    (ClockErrorCode.ALREADY_CLOCKED_IN, 409),
    (ClockErrorCode.SESSION_TOO_SHORT, 422),
    (ClockErrorCode.DATABASE_ERROR, 500),
    (ClockErrorCode.SERVICE_UNAVAILABLE, 503),
])
def test_error_codes_map_to_app_exceptions(code, status_code):
    exc = to_exception(fail(code, "Rejected", retry_in_seconds=30))
    assert exc.status_code == status_code
    assert exc.message == "Rejected"
    assert exc.details == {"code": code.value, "retry_in_seconds": 30}
