import httpx
import pytest

from conftest import DOCTOR, HOSPITAL, NOW, PATIENT, RESPONDER
from medaccess import database
from medaccess.api.deps import get_clock
from medaccess.config import settings
from medaccess.main import app

PREFIX = settings.api_prefix


def _as(actor: str) -> dict[str, str]:
    return {"X-Actor-Id": actor}


@pytest.fixture()
async def client(session_maker, monkeypatch):
    monkeypatch.setattr(database, "async_session_maker", session_maker)
    app.dependency_overrides[get_clock] = lambda: (lambda: NOW)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture()
async def alice(client):
    response = await client.post(
        f"{PREFIX}/patients",
        json={"name": "Alice", "date_of_birth": "1985-06-15"},
        headers=_as(PATIENT),
    )
    assert response.status_code == 201
    response = await client.post(
        f"{PREFIX}/patients/{PATIENT}/records",
        json={
            "record_id": "rx-001",
            "record_type": "prescription",
            "data_hash": "a" * 64,
            "metadata": "Amoxicillin 500mg",
        },
        headers=_as(PATIENT),
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.anyio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "service": "medaccess-api"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert "X-Request-Id" in response.headers


@pytest.mark.anyio
async def test_database_health(client):
    response = await client.get("/health/db")
    assert response.json() == {"ok": True, "database": "reachable"}


@pytest.mark.anyio
async def test_missing_actor_is_rejected(client):
    response = await client.get(f"{PREFIX}/patients/me")
    assert response.status_code == 401
    assert response.json()["error"]["type"] == "http_error"


@pytest.mark.anyio
async def test_api_key_enforced_when_configured(client, monkeypatch):
    monkeypatch.setattr(settings, "api_key", "s3cret")
    response = await client.get(f"{PREFIX}/patients/me", headers=_as(PATIENT))
    assert response.status_code == 401

    response = await client.get(
        f"{PREFIX}/patients/me", headers={**_as(PATIENT), "X-API-Key": "s3cret"}
    )
    assert response.status_code == 404


@pytest.mark.anyio
async def test_unknown_patient_error_envelope(client):
    response = await client.get(
        f"{PREFIX}/patients/me", headers={**_as(PATIENT), "X-Request-Id": "req-42"}
    )
    assert response.status_code == 404
    error = response.json()["error"]
    assert error["code"] == "patient_not_found"
    assert error["category"] == "not_found"
    assert error["type"] == "domain_error"
    assert error["request_id"] == "req-42"


@pytest.mark.anyio
async def test_request_body_validation(client):
    response = await client.post(
        f"{PREFIX}/patients", json={"name": "Alice"}, headers=_as(PATIENT)
    )
    assert response.status_code == 422
    error = response.json()["error"]
    assert error["type"] == "validation_error"
    assert error["details"][0]["loc"] == ["body", "date_of_birth"]


@pytest.mark.anyio
async def test_patient_lifecycle(client, alice):
    response = await client.get(f"{PREFIX}/patients/me", headers=_as(PATIENT))
    body = response.json()
    assert body["record_count"] == 1
    assert body["is_active"] is True

    response = await client.post(f"{PREFIX}/patients/me/deactivate", headers=_as(PATIENT))
    assert response.json()["is_active"] is False

    response = await client.post(
        f"{PREFIX}/patients/{PATIENT}/access-requests",
        json={"role": "doctor"},
        headers=_as(DOCTOR),
    )
    assert response.status_code == 409
    assert response.json()["error"]["code"] == "patient_inactive"

    response = await client.post(f"{PREFIX}/patients/me/reactivate", headers=_as(PATIENT))
    assert response.json()["is_active"] is True


@pytest.mark.anyio
async def test_consent_flow_over_http(client, alice):
    response = await client.post(
        f"{PREFIX}/patients/{PATIENT}/access-requests",
        json={"role": "doctor", "reason": "follow-up"},
        headers=_as(DOCTOR),
    )
    assert response.status_code == 201
    assert response.json()["status"] == "pending"

    response = await client.get(
        f"{PREFIX}/patients/me/access-requests",
        params={"status": "pending"},
        headers=_as(PATIENT),
    )
    assert [r["requester"] for r in response.json()] == [DOCTOR]

    response = await client.post(
        f"{PREFIX}/patients/me/access-requests/{DOCTOR}/approve",
        json={"allowed_record_types": ["prescription"], "can_view": True},
        headers=_as(PATIENT),
    )
    assert response.status_code == 200
    grant = response.json()
    assert grant["role"] == "doctor"
    assert grant["record_types"] == ["prescription"]

    response = await client.get(
        f"{PREFIX}/patients/{PATIENT}/records/rx-001", headers=_as(DOCTOR)
    )
    assert response.status_code == 200
    body = response.json()
    assert body["role"] == "doctor"
    assert body["record"]["access_count"] == 1
    assert body["record"]["metadata"] == "Amoxicillin 500mg"

    response = await client.delete(f"{PREFIX}/patients/me/grants/{DOCTOR}", headers=_as(PATIENT))
    assert response.json()["is_active"] is False

    response = await client.get(
        f"{PREFIX}/patients/{PATIENT}/records/rx-001", headers=_as(DOCTOR)
    )
    assert response.status_code == 403
    error = response.json()["error"]
    assert error["code"] == "access_denied"
    assert error["category"] == "access_denied"


@pytest.mark.anyio
async def test_denied_view_is_audited(client, alice):
    response = await client.get(
        f"{PREFIX}/patients/{PATIENT}/records/rx-001",
        params={"client_info": "web"},
        headers=_as(HOSPITAL),
    )
    assert response.status_code == 403

    response = await client.get(
        f"{PREFIX}/patients/me/audit",
        params={"success": "false"},
        headers=_as(PATIENT),
    )
    page = response.json()
    assert page["total"] == 1
    (entry,) = page["items"]
    assert entry["accessor"] == HOSPITAL
    assert entry["action"] == "view"
    assert entry["client_info"] == "web"
    assert entry["failure_reason"] == "No access grant found"


@pytest.mark.anyio
async def test_expired_request_maps_to_gone(client, alice, session_maker):
    await client.post(
        f"{PREFIX}/patients/{PATIENT}/access-requests",
        json={"role": "doctor"},
        headers=_as(DOCTOR),
    )
    later = NOW.replace(month=4)
    app.dependency_overrides[get_clock] = lambda: (lambda: later)

    response = await client.post(
        f"{PREFIX}/patients/me/access-requests/{DOCTOR}/deny",
        json={"reason": "too late"},
        headers=_as(PATIENT),
    )
    assert response.status_code == 410
    assert response.json()["error"]["code"] == "request_expired"

    response = await client.get(f"{PREFIX}/patients/me/access-requests", headers=_as(PATIENT))
    assert response.json()[0]["status"] == "expired"


@pytest.mark.anyio
async def test_batch_grant_limits(client, alice):
    providers = [f"provider-{i}" for i in range(11)]
    response = await client.post(
        f"{PREFIX}/patients/me/grants/batch",
        json={
            "providers": providers,
            "roles": ["doctor"] * 11,
            "allowed_record_types": ["imaging"],
        },
        headers=_as(PATIENT),
    )
    assert response.status_code == 413
    assert response.json()["error"]["code"] == "too_many_providers"

    response = await client.post(
        f"{PREFIX}/patients/me/grants/batch",
        json={
            "providers": [DOCTOR, HOSPITAL],
            "roles": ["doctor", "hospital"],
            "allowed_record_types": ["imaging"],
            "can_view": True,
        },
        headers=_as(PATIENT),
    )
    assert response.status_code == 201
    assert [g["provider"] for g in response.json()] == [DOCTOR, HOSPITAL]

    response = await client.get(
        f"{PREFIX}/patients/me/grants", params={"active_only": "true"}, headers=_as(PATIENT)
    )
    assert len(response.json()) == 2


@pytest.mark.anyio
async def test_self_grant_is_bad_request(client, alice):
    response = await client.post(
        f"{PREFIX}/patients/me/grants",
        json={"provider": PATIENT, "role": "doctor", "allowed_record_types": ["imaging"]},
        headers=_as(PATIENT),
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "cannot_grant_access_to_self"


@pytest.mark.anyio
async def test_record_listing_is_owner_only(client, alice):
    response = await client.get(f"{PREFIX}/patients/{PATIENT}/records", headers=_as(DOCTOR))
    assert response.status_code == 403
    assert response.json()["error"]["code"] == "unauthorized"

    response = await client.delete(
        f"{PREFIX}/patients/{PATIENT}/records/rx-001",
        params={"reason": "duplicate entry"},
        headers=_as(PATIENT),
    )
    assert response.json()["is_active"] is False

    response = await client.get(f"{PREFIX}/patients/{PATIENT}/records", headers=_as(PATIENT))
    assert response.json() == []
    response = await client.get(
        f"{PREFIX}/patients/{PATIENT}/records",
        params={"include_inactive": "true"},
        headers=_as(PATIENT),
    )
    assert [r["record_id"] for r in response.json()] == ["rx-001"]


@pytest.mark.anyio
async def test_emergency_access_and_summary(client, alice):
    response = await client.post(
        f"{PREFIX}/patients/{PATIENT}/records/rx-001/emergency-access",
        json={"justification": "cardiac arrest"},
        headers=_as(RESPONDER),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["is_emergency"] is True
    assert body["role"] == "emergency_responder"

    response = await client.get(f"{PREFIX}/patients/me/audit/summary", headers=_as(PATIENT))
    summary = response.json()
    assert summary["emergency_events"] == 1
    assert summary["action_breakdown"] == {"create": 1, "emergency_access": 1}


@pytest.mark.anyio
async def test_audit_requires_patient_account(client):
    response = await client.get(f"{PREFIX}/patients/me/audit", headers=_as(DOCTOR))
    assert response.status_code == 404


async def _request_access(client, requester: str, role: str = "doctor") -> None:
    response = await client.post(
        f"{PREFIX}/patients/{PATIENT}/access-requests",
        json={"role": role, "reason": "follow-up"},
        headers=_as(requester),
    )
    assert response.status_code == 201


@pytest.mark.anyio
async def test_single_request_and_outgoing_requests(client, alice):
    await _request_access(client, DOCTOR)

    response = await client.get(
        f"{PREFIX}/patients/me/access-requests/{DOCTOR}", headers=_as(PATIENT)
    )
    assert response.status_code == 200
    assert response.json()["status"] == "pending"

    response = await client.get(
        f"{PREFIX}/patients/me/access-requests/{HOSPITAL}", headers=_as(PATIENT)
    )
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "access_request_not_found"

    response = await client.get(f"{PREFIX}/patients/access-requests/outgoing", headers=_as(DOCTOR))
    assert [r["patient_owner"] for r in response.json()] == [PATIENT]
    response = await client.get(
        f"{PREFIX}/patients/access-requests/outgoing",
        params={"status": "approved"},
        headers=_as(DOCTOR),
    )
    assert response.json() == []


@pytest.mark.anyio
async def test_single_grant_lookup(client, alice):
    response = await client.post(
        f"{PREFIX}/patients/me/grants",
        json={"provider": DOCTOR, "role": "doctor", "allowed_record_types": ["imaging"]},
        headers=_as(PATIENT),
    )
    assert response.status_code == 201

    response = await client.get(f"{PREFIX}/patients/me/grants/{DOCTOR}", headers=_as(PATIENT))
    assert response.status_code == 200
    assert response.json()["record_types"] == ["imaging"]

    response = await client.get(f"{PREFIX}/patients/me/grants/{HOSPITAL}", headers=_as(PATIENT))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "access_grant_not_found"


@pytest.mark.anyio
async def test_batch_approve_reports_each_requester(client, alice):
    await _request_access(client, DOCTOR)
    await _request_access(client, HOSPITAL, role="hospital")

    response = await client.post(
        f"{PREFIX}/patients/me/access-requests/batch/approve",
        json={
            "requesters": [DOCTOR, HOSPITAL, RESPONDER],
            "allowed_record_types": ["prescription"],
            "can_view": True,
        },
        headers=_as(PATIENT),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["approved"] == 2
    assert body["failed"] == 1
    doctor, hospital, responder = body["results"]
    assert doctor["approved"] is True
    assert doctor["grant"]["role"] == "doctor"
    assert hospital["grant"]["role"] == "hospital"
    assert responder["approved"] is False
    assert responder["grant"] is None
    assert responder["error_code"] == "access_request_not_found"

    response = await client.get(
        f"{PREFIX}/patients/{PATIENT}/records/rx-001", headers=_as(HOSPITAL)
    )
    assert response.status_code == 200


@pytest.mark.anyio
async def test_batch_approve_rejects_empty_batch(client, alice):
    response = await client.post(
        f"{PREFIX}/patients/me/access-requests/batch/approve",
        json={"requesters": [], "allowed_record_types": ["prescription"]},
        headers=_as(PATIENT),
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "no_requests_specified"


@pytest.mark.anyio
async def test_audit_timeline_exports_and_compliance(client, alice):
    response = await client.get(
        f"{PREFIX}/patients/{PATIENT}/records/rx-001", headers=_as(HOSPITAL)
    )
    assert response.status_code == 403

    response = await client.get(
        f"{PREFIX}/patients/me/audit/timeline",
        params={"interval": "hour"},
        headers=_as(PATIENT),
    )
    (bucket,) = response.json()
    assert bucket["period"] == "2026-03-01T12:00:00"
    assert bucket["total"] == 2
    assert bucket["failed"] == 1
    assert bucket["actions"] == {"create": 1, "view": 1}

    response = await client.get(
        f"{PREFIX}/patients/me/audit/timeline",
        params={"interval": "week"},
        headers=_as(PATIENT),
    )
    assert response.status_code == 422

    response = await client.get(f"{PREFIX}/patients/me/audit/export/csv", headers=_as(PATIENT))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment; filename=audit_patient-alice_" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("timestamp,patient,accessor,accessor_role,action,success")
    assert len(lines) == 3

    response = await client.get(f"{PREFIX}/patients/me/audit/export/json", headers=_as(PATIENT))
    export = response.json()
    assert export["patient"] == PATIENT
    assert export["total_records"] == 2
    assert [e["action"] for e in export["items"]] == ["create", "view"]

    entry_id = export["items"][1]["id"]
    response = await client.get(f"{PREFIX}/patients/me/audit/{entry_id}", headers=_as(PATIENT))
    assert response.json()["accessor"] == HOSPITAL

    response = await client.get(f"{PREFIX}/patients/me/audit/compliance", headers=_as(PATIENT))
    report = response.json()
    assert report["total_access_events"] == 1
    assert report["unauthorized_attempts"] == 1
    assert report["data_modifications"] == 1
    assert report["access_grants_issued"] == 0


@pytest.mark.anyio
async def test_audit_entry_of_other_patient_is_not_found(client, alice):
    response = await client.post(
        f"{PREFIX}/patients",
        json={"name": "Dan", "date_of_birth": "1990-01-01"},
        headers=_as(DOCTOR),
    )
    assert response.status_code == 201
    response = await client.get(f"{PREFIX}/patients/me/audit", headers=_as(PATIENT))
    entry_id = response.json()["items"][0]["id"]

    response = await client.get(f"{PREFIX}/patients/me/audit/{entry_id}", headers=_as(DOCTOR))
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "audit_entry_not_found"
