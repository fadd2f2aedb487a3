"""End-to-end issuance through the HTTP surface and the sandbox CA."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from conftest import INTERNAL_SECRET, WEBHOOK_SECRET

from domainssl.app import create_app
from domainssl.core.types import CertificateStatus, ChallengeType
from domainssl.notify.webhook import sign


@pytest.fixture
def config_data(config_data):
    config_data["webhook"] = {"url": "https://agent.test", "secret": WEBHOOK_SECRET}
    return config_data


@pytest.fixture
def client(config, container):
    return create_app(config, container=container).test_client()


def _deliver_all(webhook_executor):
    """Run queued deliveries against a recording urlopen; return the requests."""
    response = MagicMock(status=200)
    response.__enter__.return_value = response
    with patch("domainssl.notify.webhook.urllib.request.urlopen", return_value=response) as urlopen:
        webhook_executor.run_all()
    return [call.args[0] for call in urlopen.call_args_list]


def test_http01_issuance_flow(container, client, verified_domain, completion_executor, webhook_executor):
    registry = container.domain_registry
    service = container.certificate_service

    result = service.issue_certificate(verified_domain.id, ChallengeType.HTTP01)
    pending = service.get_certificate(result.cert_id)
    assert pending.status is CertificateStatus.PENDING_HTTP01

    # the CA fetches the key authorization over plain HTTP
    resp = client.get(
        f"/.well-known/acme-challenge/{pending.challenge_token}",
        headers={"Host": "example.com"},
    )
    assert resp.data.decode() == pending.challenge_key_auth

    completion_executor.run_all()
    assert service.get_certificate(result.cert_id).status is CertificateStatus.ISSUED

    # the reverse proxy may now obtain the certificate on demand
    assert registry.is_eligible("example.com")
    assert client.get("/domain-check?domain=example.com").status_code == 200  # noqa: PLR2004
    bundle = client.get("/internal/cert/example.com", headers={"X-Internal-Secret": INTERNAL_SECRET})
    assert bundle.status_code == 200  # noqa: PLR2004

    requests = _deliver_all(webhook_executor)
    bodies = [json.loads(r.data) for r in requests]
    assert [b["event"] for b in bodies] == ["domain.added", "cert.issued"]
    issued_event = bodies[1]
    assert issued_event == {
        "event": "cert.issued",
        "domain": "example.com",
        "certId": result.cert_id,
        "mode": "sandbox",
    }
    assert requests[1].full_url == "https://agent.test/webhook"
    assert requests[1].get_header("X-signature") == sign(requests[1].data, WEBHOOK_SECRET)
    assert container.notifier.error_count == 0


def test_dns01_issuance_flow(container, dns_resolver, webhook_executor):
    registry = container.domain_registry
    service = container.certificate_service
    registry.register_domain("example.org", "project-2")
    domain = registry.set_verified("example.org")

    result = service.issue_certificate(domain.id, ChallengeType.DNS01)
    assert result.txt_name == "_acme-challenge.example.org"

    early = service.complete_dns01(result.cert_id)
    assert early.retry
    assert service.get_certificate(result.cert_id).status is CertificateStatus.PENDING_DNS01

    dns_resolver.records[("_acme-challenge.example.org", "TXT")] = [result.txt_value]
    done = service.complete_dns01(result.cert_id)
    assert done.status is CertificateStatus.ISSUED
    assert ("_acme-challenge.example.org", "TXT") in dns_resolver.queries

    events = [json.loads(args[1])["event"] for _fn, args, _kw in webhook_executor.calls]
    assert events.count("cert.issued") == 1
    assert registry.is_eligible("example.org")
