import asyncio
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from homeledger.config import Settings
from homeledger.core import rate_limit
from homeledger.core.errors import (
    ExpiredError,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    register_exception_handlers,
)
from homeledger.core.logging import configure_logging
from homeledger.core.rate_limit import RateLimiter
from homeledger.core.request_context import RequestIdMiddleware
from homeledger.main import create_app
from homeledger.services.email import EmailService, _mask_email
from homeledger.services.storage import StorageService


def _error_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RequestIdMiddleware)
    register_exception_handlers(app)

    @app.get("/missing")
    def missing():
        raise NotFoundError("Widget not found")

    @app.get("/conflict")
    def conflict():
        raise InvalidStateError()

    @app.get("/gone")
    def gone():
        raise ExpiredError()

    @app.get("/private")
    def private():
        raise UnauthorizedError()

    return app


def test_health_endpoint_and_security_headers(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "env": "test"}
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Request-ID"]


def test_error_payload_shape_and_request_id():
    client = TestClient(_error_app())
    response = client.get("/missing", headers={"X-Request-ID": "req-123"})
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "Widget not found"
    assert body["path"].endswith("/missing")
    assert body["request_id"] == "req-123"
    assert response.headers["X-Request-ID"] == "req-123"

    assert client.get("/conflict").status_code == 409
    assert client.get("/gone").status_code == 410
    private = client.get("/private")
    assert private.status_code == 401
    assert private.json()["error"] == "Unauthorized"


def test_request_validation_errors_are_400(client, create_user, auth_headers):
    owner = create_user(email="owner@example.com")
    response = client.post("/homes/", json={"address": "1 Main"}, headers=auth_headers(owner))
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Validation failed."
    assert {tuple(error["loc"])[-1] for error in body["errors"]} >= {"city", "state", "zip"}


@pytest.mark.parametrize(
    "missing, env_name",
    [("s3_bucket", "S3_BUCKET"), ("aws_region", "AWS_REGION"), ("public_s3_url_prefix", "PUBLIC_S3_URL_PREFIX")],
)
def test_storage_requires_configuration(settings, missing, env_name):
    broken = settings.model_copy(update={missing: None})
    with pytest.raises(RuntimeError, match=env_name):
        StorageService(broken)
    with pytest.raises(RuntimeError, match=env_name):
        create_app(broken)


def test_boto3_presign_uses_bucket_and_content_type(settings):
    storage = StorageService(settings)
    upload = storage.presign_put("homes/1/records/2/invoice.pdf", "application/pdf")
    assert upload.key == "homes/1/records/2/invoice.pdf"
    assert "test-bucket" in upload.url
    assert "homes/1/records/2/invoice.pdf" in upload.url
    assert upload.public_url == "https://cdn.example.com/homes/1/records/2/invoice.pdf"


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("INVITATION_EXPIRY_DAYS", "3")
    monkeypatch.setenv("CORS_ORIGINS", '["https://app.example.com"]')
    configured = Settings(_env_file=None)
    assert configured.is_production
    assert configured.invitation_expiry_days == 3
    assert configured.cors_origins == ["https://app.example.com"]


def test_local_email_backend_writes_file(settings, tmp_path):
    service = EmailService(settings)
    result = service.send("Hello there", "Body text", ["a@example.com", "A@example.com", ""])
    assert result.ok
    assert result.backend == "local"
    files = list((tmp_path / "emails").glob("*.txt"))
    assert len(files) == 1
    assert "Recipients: a@example.com" in files[0].read_text()

    skipped = service.send("Nobody", "Body", [])
    assert not skipped.ok


def test_sendgrid_without_key_reports_failure(settings):
    service = EmailService(settings.model_copy(update={"email_backend": "sendgrid", "sendgrid_api_key": None}))
    result = service.send("Hi", "Body", ["someone@example.com"])
    assert not result.ok
    assert "SENDGRID_API_KEY" in result.error


def test_mask_email():
    assert _mask_email("jane.doe@example.com") == "j***e@example.com"
    assert _mask_email("jo@example.com") == "j***@example.com"
    assert _mask_email("nope") == "***"


def test_json_logging_configuration(capsys):
    configure_logging("INFO", "json")
    logging.getLogger("homeledger.test").info("structured line", extra={"home_id": 7})
    captured = capsys.readouterr()
    assert '"message": "structured line"' in captured.err
    assert '"home_id": 7' in captured.err


def test_login_is_rate_limited_per_client(app, client):
    app.state.settings = app.state.settings.model_copy(update={"login_rate_limit": 2})
    credentials = {"username": "nobody@example.com", "password": "wrong"}

    assert client.post("/auth/login", data=credentials).status_code == 401
    assert client.post("/auth/login", data=credentials).status_code == 401
    throttled = client.post("/auth/login", data=credentials)
    assert throttled.status_code == 429
    assert throttled.json()["error"] == "Too many requests."
    assert int(throttled.headers["Retry-After"]) > 0


def test_rate_limiter_drops_idle_buckets(monkeypatch):
    clock = {"now": 1000.0}
    monkeypatch.setattr(rate_limit.time, "monotonic", lambda: clock["now"])
    limiter = RateLimiter()

    async def scenario():
        await limiter.hit("login:10.0.0.1", 5, 60)
        await limiter.hit("invite:10.0.0.2", 5, 600)
        clock["now"] += 61
        allowed, _ = await limiter.hit("login:10.0.0.3", 5, 60)
        return allowed

    assert asyncio.run(scenario())
    assert set(limiter._hits) == {"invite:10.0.0.2", "login:10.0.0.3"}
