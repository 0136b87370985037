from __future__ import annotations

from unittest.mock import MagicMock

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from parlay_oracle.db import get_db
from parlay_oracle.main import app, get_oracle

PARLAY_PAYLOAD = {
    "parameters": [
        {
            "dataType": "hashrate",
            "threshold": 2_000_000_000_000_000,
            "range": 1_000_000_000_000_000,
            "isAboveThreshold": True,
            "transformation": "quadratic",
        }
    ],
    "combinationMethod": "multiply",
    "maxNormalizedValue": 1000,
    "eventMaturityEpoch": 1_700_000_000,
}


@pytest.fixture
def client(oracle, session_factory):
    """Test client wired to a temporary database; overrides are cleared afterwards."""

    def temporary_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_oracle] = lambda: oracle
    app.dependency_overrides[get_db] = temporary_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_healthcheck(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_readiness_checks_database(client):
    response = client.get("/readyz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": "ok"}


def test_readiness_reports_database_outage():
    session = MagicMock()
    session.execute.side_effect = OperationalError("SELECT 1", {}, Exception("unable to open database file"))
    app.dependency_overrides[get_db] = lambda: session
    try:
        response = TestClient(app).get("/readyz")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 503


def test_info_reports_oracle_key(client, signer):
    response = client.get("/info")
    assert response.status_code == 200
    body = response.json()
    assert body["public_key"] == signer.public_key.hex()
    assert body["public_key_xonly"] == signer.public_key[1:].hex()
    assert body["digit_base"] == 2


def test_available_events(client):
    response = client.get("/available-events")
    assert response.json() == ["hashrate", "feeRate", "blockFees", "difficulty"]


def test_create_parlay_and_attest_flow(client):
    response = client.post("/parlay", json=PARLAY_PAYLOAD)
    assert response.status_code == 201
    created = response.json()
    event_id = created["event"]["event_id"]
    assert created["event"]["status"] == "announced"
    assert created["event"]["announcement"]["eventId"] == event_id
    assert created["contract"]["parameters"][0]["dataType"] == "hashrate"
    assert created["contract"]["parameters"][0]["transformation"] == "quadratic"

    contract = client.get(f"/parlay/{event_id}")
    assert contract.status_code == 200
    assert contract.json()["combination_method"] == "multiply"

    assert client.get(f"/events/{event_id}/outcome").status_code == 404
    assert client.get(f"/events/{event_id}/attestation").status_code == 404

    attested = client.post(
        f"/events/{event_id}/attest", json={"observations": {"hashrate": 2520332473552123}}
    )
    assert attested.status_code == 200
    assert attested.json()["attested_value"] == 270

    outcome = client.get(f"/events/{event_id}/outcome").json()
    assert outcome["data_outcomes"][0]["data_type"] == "hashrate"
    attestation = client.get(f"/events/{event_id}/attestation").json()
    assert "".join(attestation["outcomes"]) == format(270, "010b")

    again = client.post(f"/events/{event_id}/attest", json={"observations": {"hashrate": 1}})
    assert again.status_code == 409


def test_create_single_event_and_list(client):
    response = client.post("/events", json={"eventType": "block-fees", "maturity": 10})
    assert response.status_code == 201
    event = response.json()
    assert event["kind"] == "single"
    assert event["unit"] == "blockFees"
    assert len(event["nonces"]) == event["nb_digits"]

    listing = client.get("/events", params={"kind": "single"}).json()
    assert listing["total"] == 1
    assert listing["items"][0]["event_id"] == event["event_id"]


def test_validation_errors_return_422(client):
    bad_type = dict(PARLAY_PAYLOAD, parameters=[dict(PARLAY_PAYLOAD["parameters"][0], dataType="price")])
    assert client.post("/parlay", json=bad_type).status_code == 422
    bad_range = dict(PARLAY_PAYLOAD, parameters=[dict(PARLAY_PAYLOAD["parameters"][0], range=0)])
    assert client.post("/parlay", json=bad_range).status_code == 422
    assert client.post("/parlay", json=dict(PARLAY_PAYLOAD, parameters=[])).status_code == 422


def test_missing_resources_return_404(client):
    assert client.get("/events/missing").status_code == 404
    assert client.get("/parlay/missing").status_code == 404
    assert client.post("/events/missing/attest").status_code == 404


def test_missing_observation_returns_422(client):
    event_id = client.post("/parlay", json=PARLAY_PAYLOAD).json()["event"]["event_id"]
    response = client.post(f"/events/{event_id}/attest", json={"observations": {"difficulty": 1.0}})
    assert response.status_code == 422


def test_feed_outage_returns_502():
    oracle = MagicMock()
    oracle.attest_event.side_effect = httpx.ConnectError("down")
    app.dependency_overrides[get_oracle] = lambda: oracle
    try:
        response = TestClient(app).post("/events/evt/attest")
    finally:
        app.dependency_overrides.clear()
    assert response.status_code == 502


def test_overflowing_observation_returns_422(client):
    event_id = client.post("/events", json={"eventType": "hashrate", "maturity": 10}).json()["event_id"]

    response = client.post(
        f"/events/{event_id}/attest",
        content='{"observations": {"hashrate": 1e309}}',
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 422
    assert client.get(f"/events/{event_id}").json()["status"] == "announced"


def test_event_listing_total_counts_every_match(client):
    for maturity in (10, 20, 30):
        client.post("/events", json={"eventType": "difficulty", "maturity": maturity})
    client.post("/parlay", json=PARLAY_PAYLOAD)

    page = client.get("/events", params={"kind": "single", "limit": 2}).json()

    assert page["total"] == 3
    assert len(page["items"]) == 2
    assert client.get("/events", params={"limit": 1}).json()["total"] == 4
