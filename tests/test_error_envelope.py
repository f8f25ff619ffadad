from fastapi.testclient import TestClient

from marketstall.main import app


def test_error_responses_include_request_id_in_body_and_header():
    client = TestClient(app)

    r = client.get("/this-route-does-not-exist")
    assert r.status_code == 404

    payload = r.json()
    assert "request_id" in payload
    assert payload["request_id"], payload

    assert r.headers.get("x-request-id") == payload["request_id"]


def test_caller_request_id_is_echoed_on_domain_errors():
    client = TestClient(app)

    r = client.get(
        "/api/v1/sessions/00000000-0000-0000-0000-000000000000",
        headers={"X-Request-ID": "req-abc-123"},
    )
    assert r.status_code == 404

    payload = r.json()
    assert payload["code"] == "not_found"
    assert payload["request_id"] == "req-abc-123"
    assert r.headers.get("x-request-id") == "req-abc-123"


def test_persistence_failure_hides_cause(monkeypatch):
    from sqlalchemy.exc import OperationalError

    from marketstall.crud import applicant as applicant_crud
    from tests._db import intake_payload

    async def _fail(*args, **kwargs):
        raise OperationalError("INSERT INTO applicants", {}, Exception("password=hunter2"))

    monkeypatch.setattr(applicant_crud, "insert_applicant", _fail)
    client = TestClient(app)

    r = client.post("/api/v1/applicants", json=intake_payload(email="hidden@example.com"))
    assert r.status_code == 500

    payload = r.json()
    assert payload["code"] == "persistence_failure"
    assert "hunter2" not in r.text


def test_invalid_branch_header_is_422():
    client = TestClient(app)

    r = client.post(
        "/api/v1/sessions",
        json={"stall_id": 1, "mode": "raffle", "duration_hours": 1},
        headers={"X-Branch-Id": "north"},
    )
    assert r.status_code == 422
