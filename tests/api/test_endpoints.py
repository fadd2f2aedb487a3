"""Tests for the pull-style HTTP endpoints: domain check, HTTP-01 and internal API."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest
from conftest import INTERNAL_SECRET

from domainssl.app import create_app
from domainssl.core.secret import Secret
from domainssl.core.types import ChallengeType, SslMode


@pytest.fixture
def app(config, container):
    return create_app(config, container=container)


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def issued(container, verified_domain, completion_executor):
    service = container.certificate_service
    result = service.issue_certificate(verified_domain.id, ChallengeType.HTTP01)
    completion_executor.run_all()
    return service.get_certificate(result.cert_id)


def _bearer(secret=INTERNAL_SECRET):
    return {"Authorization": f"Bearer {secret}"}


class TestDomainCheck:
    def test_missing_parameter(self, client):
        assert client.get("/domain-check").status_code == 400  # noqa: PLR2004
        assert client.get("/domain-check?domain=%20").status_code == 400  # noqa: PLR2004

    def test_eligible(self, client, container, verified_domain):
        container.domain_registry.set_ssl_mode("example.com", SslMode.LETS_ENCRYPT)
        resp = client.get("/domain-check?domain=Example.com")
        assert resp.status_code == 200  # noqa: PLR2004
        assert resp.data == b"OK"

    def test_not_eligible(self, client, verified_domain):
        assert client.get("/domain-check?domain=example.com").status_code == 403  # noqa: PLR2004
        assert client.get("/domain-check?domain=unknown.com").status_code == 403  # noqa: PLR2004


class TestAcmeChallenge:
    def test_bad_token_format(self, client):
        assert client.get("/.well-known/acme-challenge/short").status_code == 400  # noqa: PLR2004
        assert client.get("/.well-known/acme-challenge/" + "a" * 19 + "$").status_code == 400  # noqa: PLR2004

    def test_unknown_token(self, client):
        resp = client.get("/.well-known/acme-challenge/" + "a" * 43, headers={"Host": "example.com"})
        assert resp.status_code == 404  # noqa: PLR2004

    def test_serves_key_authorization(self, client, container, verified_domain):
        result = container.certificate_service.issue_certificate(verified_domain.id, ChallengeType.HTTP01)
        cert = container.certificate_service.get_certificate(result.cert_id)

        resp = client.get(
            f"/.well-known/acme-challenge/{cert.challenge_token}",
            headers={"Host": "Example.com:80"},
        )
        assert resp.status_code == 200  # noqa: PLR2004
        assert resp.data.decode() == cert.challenge_key_auth
        assert resp.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert resp.headers["Cache-Control"] == "no-store"

    def test_token_bound_to_host(self, client, container, verified_domain):
        result = container.certificate_service.issue_certificate(verified_domain.id, ChallengeType.HTTP01)
        cert = container.certificate_service.get_certificate(result.cert_id)
        resp = client.get(
            f"/.well-known/acme-challenge/{cert.challenge_token}",
            headers={"Host": "www.example.com"},
        )
        assert resp.status_code == 404  # noqa: PLR2004


class TestInternalCertificate:
    def test_secret_required(self, client, issued):
        assert client.get("/internal/cert/example.com").status_code == 401  # noqa: PLR2004
        resp = client.get("/internal/cert/example.com", headers={"X-Internal-Secret": "wrong"})
        assert resp.status_code == 401  # noqa: PLR2004

    def test_unconfigured_secret(self, app, client, settings, issued):
        app.config["DOMAINSSL_SETTINGS"] = replace(
            settings, internal_api=replace(settings.internal_api, secret=Secret(""))
        )
        resp = client.get("/internal/cert/example.com", headers={"X-Internal-Secret": ""})
        assert resp.status_code == 503  # noqa: PLR2004

    def test_bundle(self, client, issued):
        resp = client.get("/internal/cert/example.com", headers={"X-Internal-Secret": INTERNAL_SECRET})
        assert resp.status_code == 200  # noqa: PLR2004
        body = resp.get_json()
        assert set(body) == {"privateKey", "certificate", "fullChain", "expiresAt"}
        assert body["certificate"] == issued.certificate_pem
        assert "PRIVATE KEY" in body["privateKey"]
        assert datetime.fromisoformat(body["expiresAt"]) == issued.expires_at

    def test_no_certificate(self, client, verified_domain):
        resp = client.get("/internal/cert/example.com", headers={"X-Internal-Secret": INTERNAL_SECRET})
        assert resp.status_code == 404  # noqa: PLR2004
        assert resp.get_json()["type"] == "not_found"


class TestInternalRenewal:
    def test_bearer_required(self, client):
        assert client.post("/internal/renewal").status_code == 401  # noqa: PLR2004
        assert client.post("/internal/renewal", headers=_bearer("nope")).status_code == 401  # noqa: PLR2004
        resp = client.post("/internal/renewal", headers={"Authorization": INTERNAL_SECRET})
        assert resp.status_code == 401  # noqa: PLR2004

    def test_health_action(self, client, issued):
        resp = client.get("/internal/renewal?action=health", headers=_bearer())
        assert resp.status_code == 200  # noqa: PLR2004
        body = resp.get_json()
        assert body["success"] is True
        assert body["health"]["issued"] == 1

    def test_get_does_not_sweep(self, client, container, issued):
        container.certificates.update_fields(
            issued.id, {"expires_at": datetime.now(UTC) + timedelta(days=2)}
        )
        resp = client.get("/internal/renewal", headers=_bearer())
        assert resp.status_code == 405  # noqa: PLR2004
        assert resp.headers["Allow"] == "POST"
        assert resp.get_json()["type"] == "method_not_allowed"
        assert container.certificates.find_by_id(issued.id).renewal_attempts == 0

    def test_sweep(self, client, container, issued):
        container.certificates.update_fields(
            issued.id, {"expires_at": datetime.now(UTC) + timedelta(days=2)}
        )
        resp = client.post("/internal/renewal", headers=_bearer())
        assert resp.status_code == 200  # noqa: PLR2004
        body = resp.get_json()
        assert body["message"] == "Processed 1 expiring certificates"
        assert body["result"]["renewed"] == 1
