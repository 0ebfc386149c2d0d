import json
import os
import sys
from urllib.parse import parse_qs, urlparse

from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_KEY", "test-db-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///./data/ledgerlink.db")
os.environ.setdefault("SECRET_KEY", "0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef")

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from ledgerlink.api import deps
from ledgerlink.api import xero as xero_api
from ledgerlink.api.credentials import router as credentials_router
from ledgerlink.api.handlers import register_exception_handlers
from ledgerlink.database import Base
from ledgerlink.services import llm_client
from ledgerlink.services.xero_auth import decode_state_token


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.payload = payload
        self.ok = 200 <= status_code < 300
        self.text = json.dumps(payload)
        self.content = self.text.encode()

    def json(self):
        return self.payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responses.pop(0)


TOKEN_RESPONSE = FakeResponse(200, {"access_token": "a1", "refresh_token": "r1", "expires_in": 1800})
CONNECTIONS_RESPONSE = FakeResponse(200, [
    {"tenantId": "tenant-1", "tenantName": "Acme Pty Ltd", "tenantType": "ORGANISATION"},
])


def _build_test_client(http=None):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    app = FastAPI()
    app.include_router(credentials_router, prefix="/api")
    app.include_router(xero_api.router, prefix="/api")
    app.include_router(xero_api.callback_router, prefix="/api")
    register_exception_handlers(app)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[deps.get_db] = override_get_db
    app.dependency_overrides[deps.get_http_session] = lambda: http or FakeSession()
    return TestClient(app)


def _create(client, company_id=1):
    return client.post(
        f"/api/companies/{company_id}/credentials",
        json={"client_id": "client-id", "client_secret": "client-secret", "company_name": "Acme"},
    )


def test_create_and_read_credentials_without_secrets():
    client = _build_test_client()

    created = _create(client)
    assert created.status_code == 201
    data = created.json()
    assert data["client_id"] == "client-id"
    assert data["has_client_secret"] is True
    assert data["connected"] is False
    assert "offline_access" in data["scope"]
    assert "client_secret" not in data
    assert "access_token" not in data

    read = client.get("/api/companies/1/credentials")
    assert read.status_code == 200
    assert read.json()["id"] == data["id"]


def test_duplicate_credentials_rejected():
    client = _build_test_client()
    _create(client)

    assert _create(client).status_code == 400


def test_missing_credentials_is_404():
    client = _build_test_client()

    assert client.get("/api/companies/5/credentials").status_code == 404
    assert client.get("/api/companies/5/xero/authorize").status_code == 404


def test_patch_applies_only_sent_fields():
    client = _build_test_client()
    _create(client)

    renamed = client.patch("/api/companies/1/credentials", json={"tenant_name": "Renamed"})
    assert renamed.status_code == 200
    assert renamed.json()["tenant_name"] == "Renamed"
    assert renamed.json()["client_id"] == "client-id"
    assert renamed.json()["has_client_secret"] is True

    cleared = client.patch("/api/companies/1/credentials", json={"client_secret": None})
    assert cleared.json()["has_client_secret"] is False
    assert cleared.json()["tenant_name"] == "Renamed"


def test_patch_normalizes_expiry_to_utc():
    client = _build_test_client()
    _create(client)

    response = client.patch("/api/companies/1/credentials", json={"expires_at": "2026-03-02T10:00:00+01:00"})

    assert response.json()["expires_at"] == "2026-03-02T09:00:00"


def test_authorize_url_state_names_the_company():
    client = _build_test_client()
    _create(client, company_id=7)

    response = client.get("/api/companies/7/xero/authorize")

    assert response.status_code == 200
    query = parse_qs(urlparse(response.json()["authorization_url"]).query)
    assert query["client_id"] == ["client-id"]
    assert query["response_type"] == ["code"]
    assert decode_state_token(query["state"][0]) == 7


def test_callback_connects_company_and_redirects():
    http = FakeSession(TOKEN_RESPONSE, CONNECTIONS_RESPONSE)
    client = _build_test_client(http)
    _create(client)
    state = parse_qs(urlparse(client.get("/api/companies/1/xero/authorize").json()["authorization_url"]).query)["state"][0]

    response = client.get(
        "/api/xero/callback",
        params={"code": "auth-code", "state": state},
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == f"{xero_api.settings.frontend_url.rstrip('/')}/xero?success=connected"
    status = client.get("/api/companies/1/credentials").json()
    assert status["connected"] is True
    assert status["tenant_name"] == "Acme Pty Ltd"


def test_callback_rejects_missing_or_invalid_state():
    client = _build_test_client()
    _create(client)

    missing = client.get("/api/xero/callback", params={"code": "auth-code"}, follow_redirects=False)
    invalid = client.get(
        "/api/xero/callback",
        params={"code": "auth-code", "state": "not-a-token"},
        follow_redirects=False,
    )

    assert missing.headers["location"].endswith("/xero?error=missing_params")
    assert invalid.headers["location"].endswith("/xero?error=invalid_state")


def test_callback_token_failure_redirects_with_error():
    client = _build_test_client(FakeSession(FakeResponse(400, {"error": "invalid_grant"})))
    _create(client)
    state = parse_qs(urlparse(client.get("/api/companies/1/xero/authorize").json()["authorization_url"]).query)["state"][0]

    response = client.get("/api/xero/callback", params={"code": "bad", "state": state}, follow_redirects=False)

    assert response.headers["location"].endswith("/xero?error=callback_failed")
    assert client.get("/api/companies/1/credentials").json()["connected"] is False


def test_disconnect_clears_connection_but_keeps_app_credentials():
    client = _build_test_client()
    _create(client)
    client.patch(
        "/api/companies/1/credentials",
        json={"access_token": "a1", "refresh_token": "r1", "tenant_id": "tenant-1"},
    )
    assert client.get("/api/companies/1/credentials").json()["connected"] is True

    response = client.post("/api/companies/1/xero/disconnect")

    assert response.status_code == 200
    status = client.get("/api/companies/1/credentials").json()
    assert status["connected"] is False
    assert status["tenant_id"] is None
    assert status["client_id"] == "client-id"
    assert status["has_client_secret"] is True


def test_connections_without_tokens_is_not_connected():
    client = _build_test_client()
    _create(client)

    response = client.get("/api/companies/1/xero/connections")

    assert response.status_code == 401
    assert response.json() == {"detail": "Not connected to Xero", "needs_reconnect": False}


def test_suggest_without_llm_key_is_unavailable(monkeypatch):
    settings = llm_client.get_settings().model_copy(update={"llm_api_key": None})
    monkeypatch.setattr(llm_client, "get_settings", lambda: settings)
    client = _build_test_client()

    response = client.post(
        "/api/companies/1/xero/reconcile/suggest",
        json={
            "statement_line": {"date": "2024-07-01", "description": "DODO", "amount": -89.0},
            "existing_transactions": [],
        },
    )

    assert response.status_code == 503


def test_suggest_returns_model_choice(monkeypatch):
    settings = llm_client.get_settings().model_copy(update={"llm_api_key": "sk-test"})
    monkeypatch.setattr(llm_client, "get_settings", lambda: settings)
    content = json.dumps({"bestMatchIndex": 1, "confidence": "high", "reason": "Same amount and payee"})
    http = FakeSession(FakeResponse(200, {"choices": [{"message": {"content": content}}]}))
    client = _build_test_client(http)

    response = client.post(
        "/api/companies/1/xero/reconcile/suggest",
        json={
            "statement_line": {"date": "2024-07-01", "description": "DODO", "amount": -89.0},
            "existing_transactions": [{
                "transaction_id": "bt-1",
                "date": "2024-07-01T00:00:00Z",
                "bank_account": {"account_id": "acc-1"},
                "contact": {"name": "DODO"},
                "total": 89.0,
            }],
        },
    )

    assert response.status_code == 200
    assert response.json()["suggestion"]["best_match_index"] == 1
    assert response.json()["suggestion"]["confidence"] == "high"
    method, _, kwargs = http.calls[0]
    assert method == "POST"
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"
    assert "bt-1" in kwargs["json"]["messages"][1]["content"]


def test_suggest_with_non_object_reply_is_bad_gateway(monkeypatch):
    settings = llm_client.get_settings().model_copy(update={"llm_api_key": "sk-test"})
    monkeypatch.setattr(llm_client, "get_settings", lambda: settings)
    http = FakeSession(FakeResponse(200, {"choices": [{"message": {"content": "[1, 2]"}}]}))
    client = _build_test_client(http)

    response = client.post(
        "/api/companies/1/xero/reconcile/suggest",
        json={
            "statement_line": {"date": "2024-07-01", "description": "DODO", "amount": -89.0},
            "existing_transactions": [],
        },
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "Model did not return a JSON object"
