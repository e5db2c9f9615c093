"""Unit tests for TenantContextMiddleware

Tests cover:
- Tenant id extracted from a valid bearer token
- Missing, malformed and invalid tokens leave no tenant in scope
- Claim coercion to the tenant key type
- Tenant context reset after the request
- Request id propagation to audit records
- Secret and claim defaults from settings
"""

import uuid

import jwt
import pytest
from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from tenantguard.audit.service import MemoryAuditSink
from tenantguard.config import Settings
from tenantguard.observability import get_request_id
from tenantguard.tenancy import ConfigurationError, TenancyViolation, check_tenancy_access, get_current_tenant_id
from tenantguard.tenancy.middleware import TenantContextMiddleware, get_tenant_id_from_request


pytestmark = pytest.mark.unit

SECRET = "test-jwt-secret-key-256-bits-minimum-length-required-for-security"


def make_app(key_type=str, **middleware_options) -> FastAPI:
    app = FastAPI()
    app.state.audit_sink = MemoryAuditSink()
    middleware_options.setdefault("secret", SECRET)
    app.add_middleware(TenantContextMiddleware, key_type=key_type, **middleware_options)

    @app.get("/whoami")
    async def whoami(request: Request):
        current = get_current_tenant_id()
        return {
            "context": None if current is None else str(current),
            "context_type": type(current).__name__,
            "state": None if get_tenant_id_from_request(request) is None else str(get_tenant_id_from_request(request)),
        }

    @app.get("/foreign")
    async def touch_foreign_row(request: Request):
        sink = request.app.state.audit_sink
        try:
            check_tenancy_access(get_current_tenant_id(), "tenant-b", sink, entity_type="Invoice")
        except TenancyViolation:
            pass
        return {"audit_request_id": sink.records[-1].request_id, "request_id": get_request_id()}

    return app


def bearer(claims: dict, secret: str = SECRET) -> dict:
    return {"Authorization": f"Bearer {jwt.encode(claims, secret, algorithm='HS256')}"}


class TestTenantExtraction:

    def test_valid_token_sets_tenant(self):
        client = TestClient(make_app())

        response = client.get("/whoami", headers=bearer({"sub": "u1", "tenant_id": "tenant-a"}))

        assert response.status_code == 200
        assert response.json() == {"context": "tenant-a", "context_type": "str", "state": "tenant-a"}

    def test_claim_coerced_to_key_type(self):
        tenant = uuid.uuid4()
        client = TestClient(make_app(key_type=uuid.UUID))

        response = client.get("/whoami", headers=bearer({"tenant_id": str(tenant)}))

        assert response.json()["context"] == str(tenant)
        assert response.json()["context_type"] == "UUID"

    def test_uncoercible_claim_ignored(self):
        client = TestClient(make_app(key_type=int))

        response = client.get("/whoami", headers=bearer({"tenant_id": "not-a-number"}))

        assert response.json()["context"] is None

    @pytest.mark.parametrize("headers", [
        {},
        {"Authorization": "Basic dXNlcjpwYXNz"},
        {"Authorization": "Bearer"},
        {"Authorization": "Bearer not.a.jwt"},
    ])
    def test_missing_or_malformed_token(self, headers):
        client = TestClient(make_app())

        response = client.get("/whoami", headers=headers)

        assert response.status_code == 200
        assert response.json()["context"] is None

    def test_token_signed_with_other_key_ignored(self):
        client = TestClient(make_app())

        response = client.get("/whoami", headers=bearer({"tenant_id": "tenant-a"}, secret="other-secret-key-that-is-also-long-enough"))

        assert response.json()["context"] is None

    def test_token_without_claim(self):
        client = TestClient(make_app())

        response = client.get("/whoami", headers=bearer({"sub": "u1"}))

        assert response.json()["context"] is None

    def test_context_reset_after_request(self):
        client = TestClient(make_app())

        client.get("/whoami", headers=bearer({"tenant_id": "tenant-a"}))

        assert get_current_tenant_id() is None


class TestRequestID:

    def test_header_request_id_on_audit_record(self):
        client = TestClient(make_app())

        response = client.get(
            "/foreign",
            headers={**bearer({"tenant_id": "tenant-a"}), "X-Request-ID": "req-123"},
        )

        assert response.json() == {"audit_request_id": "req-123", "request_id": "req-123"}
        assert response.headers["X-Request-ID"] == "req-123"

    def test_request_id_generated_when_missing(self):
        client = TestClient(make_app())

        response = client.get("/foreign", headers=bearer({"tenant_id": "tenant-a"}))

        request_id = response.json()["audit_request_id"]
        assert request_id != "no-request-id"
        assert response.headers["X-Request-ID"] == request_id

    def test_request_id_reset_after_request(self):
        client = TestClient(make_app())

        client.get("/whoami", headers={"X-Request-ID": "req-123"})

        assert get_request_id() == "no-request-id"


class TestSettingsDefaults:

    def test_secret_and_claim_from_settings(self):
        settings = Settings(_env_file=None, JWT_SECRET="settings-secret-key-long-enough-for-hs256", TENANT_CLAIM="org")
        client = TestClient(make_app(secret=None, settings=settings))

        token = {"org": "tenant-a", "tenant_id": "tenant-b"}
        response = client.get("/whoami", headers=bearer(token, secret="settings-secret-key-long-enough-for-hs256"))

        assert response.json()["context"] == "tenant-a"

    def test_missing_secret_rejected(self):
        settings = Settings(_env_file=None, JWT_SECRET=None)

        with pytest.raises(ConfigurationError, match="JWT_SECRET"):
            TenantContextMiddleware(FastAPI(), settings=settings)
