from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from icelandauth.app.main import app

from icelandauth.tests.fixtures.assertion_factory import (
    AUDIENCE,
    CLIENT_IP,
    ISSUER_ID,
    ISSUER_NAME,
    SIGNER_ID,
    build_token,
)


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setenv("ICELANDAUTH_EXPECTED_AUDIENCE", AUDIENCE)
    monkeypatch.setenv("ICELANDAUTH_ALLOWED_AUTHENTICATION_METHODS", "eID")
    monkeypatch.setenv("ICELANDAUTH_TRUSTED_ISSUER_NAME", ISSUER_NAME)
    monkeypatch.setenv("ICELANDAUTH_TRUSTED_ISSUER_ID", ISSUER_ID)
    monkeypatch.setenv("ICELANDAUTH_TRUSTED_SIGNER_ID", SIGNER_ID)
    monkeypatch.setenv("ICELANDAUTH_MAX_TOKEN_BYTES", "16384")
    monkeypatch.delenv("ICELANDAUTH_EXPECTED_DESTINATION", raising=False)
    monkeypatch.delenv("ICELANDAUTH_EXPECTED_DESTINATION_ID", raising=False)
    monkeypatch.delenv("ICELANDAUTH_VERIFY_IP_ADDRESS", raising=False)

    with TestClient(app) as test_client:
        yield test_client


def _current_token(**kwargs):
    start = datetime.now(timezone.utc) - timedelta(minutes=1)
    return build_token(
        not_before=start,
        not_on_or_after=start + timedelta(minutes=10),
        **kwargs,
    )


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "service": "icelandauth"}


def test_verify_valid_token(client):
    response = client.post(
        "/verify",
        json={"token": _current_token(), "ip_address": CLIENT_IP},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is True
    assert body["subject_id"] == "0101302989"
    assert body["findings"] == []


def test_verify_defaults_ip_to_calling_client(client):
    response = client.post("/verify", json={"token": _current_token()})

    body = response.json()
    assert body["ip_ok"] is False
    assert body["valid"] is False


def test_verify_malformed_token_is_a_result_not_an_error(client):
    response = client.post(
        "/verify", json={"token": "not base64!", "ip_address": CLIENT_IP}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["valid"] is False
    assert body["signature_ok"] is False
    assert body["findings"][0]["finding_id"] == "TOK-002"


def test_blank_token_is_a_bad_request(client):
    response = client.post("/verify", json={"token": "   "})

    assert response.status_code == 400


def test_oversized_token_is_rejected(client):
    response = client.post("/verify", json={"token": "A" * 20000})

    assert response.status_code == 413


def test_missing_token_is_a_validation_error(client):
    response = client.post("/verify", json={})

    assert response.status_code == 422
