"""Tests for DomainRegistry: registration, SSL mode, throttle and browser rules."""

from __future__ import annotations

import json

import pytest
from conftest import WEBHOOK_SECRET

from domainssl.core.errors import Conflict, InvalidState, NotFound, ValidationError
from domainssl.core.types import BrowserRuleType, SslMode
from domainssl.services.domain import normalize_domain, validate_hostname


@pytest.fixture
def config_data(config_data):
    config_data["webhook"] = {"url": "https://agent.test", "secret": WEBHOOK_SECRET}
    config_data["domains"] = {"max_per_project": 2}
    return config_data


@pytest.fixture
def registry(container):
    return container.domain_registry


def _events(webhook_executor):
    return [json.loads(args[1]) for _fn, args, _kw in webhook_executor.calls]


class TestHostnames:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("Example.COM", "example.com"), (" www.example.com. ", "www.example.com")],
    )
    def test_normalize(self, raw, expected):
        assert normalize_domain(raw) == expected
        assert validate_hostname(raw) == expected

    @pytest.mark.parametrize("raw", ["", "localhost", "-bad.com", "exa mple.com", "a..com", "x.123"])
    def test_invalid(self, raw):
        with pytest.raises(ValidationError):
            validate_hostname(raw)


class TestRegistration:
    def test_register(self, registry):
        domain = registry.register_domain("Example.com", "project-1")
        assert domain.domain == "example.com"
        assert not domain.verified
        assert domain.ssl_mode is SslMode.NONE
        assert len(domain.verification_token) >= 24  # noqa: PLR2004
        assert registry.get_domain("EXAMPLE.com") == domain

    def test_duplicate(self, registry):
        registry.register_domain("example.com", "project-1")
        with pytest.raises(Conflict):
            registry.register_domain("example.com", "project-2")

    def test_project_limit(self, registry):
        registry.register_domain("a.example.com", "project-1")
        registry.register_domain("b.example.com", "project-1")
        with pytest.raises(Conflict):
            registry.register_domain("c.example.com", "project-1")
        registry.register_domain("c.example.com", "project-2")

    def test_list(self, registry):
        a = registry.register_domain("a.example.com", "project-1")
        b = registry.register_domain("b.example.com", "project-2")
        assert registry.list_domains("project-2") == [b]
        assert {d.id for d in registry.list_domains()} == {a.id, b.id}

    def test_unknown(self, registry):
        with pytest.raises(NotFound):
            registry.get_domain("missing.com")


class TestVerification:
    def test_verify_notifies_once(self, registry, webhook_executor):
        registry.register_domain("example.com", "project-1")
        assert registry.set_verified("example.com").verified
        registry.set_verified("example.com")
        assert _events(webhook_executor) == [{"event": "domain.added", "domain": "example.com"}]

    def test_unverify(self, registry):
        registry.register_domain("example.com", "project-1")
        registry.set_verified("example.com")
        domain = registry.set_verified("example.com", verified=False)
        assert not domain.verified
        assert domain.verified_at is None

    def test_remove_notifies(self, registry, webhook_executor):
        registry.register_domain("example.com", "project-1")
        registry.remove_domain("example.com")
        assert _events(webhook_executor)[-1] == {"event": "domain.removed", "domain": "example.com"}
        with pytest.raises(NotFound):
            registry.get_domain("example.com")


class TestSslMode:
    def test_eligibility(self, registry, verified_domain):
        assert not registry.is_eligible("example.com")
        registry.set_ssl_mode("example.com", "LETS_ENCRYPT")
        assert registry.is_eligible("EXAMPLE.com")
        assert not registry.is_eligible("other.com")

    def test_unverified_not_eligible(self, registry):
        registry.register_domain("example.com", "project-1")
        registry.set_ssl_mode("example.com", SslMode.LETS_ENCRYPT)
        assert not registry.is_eligible("example.com")

    def test_invalid_mode(self, registry, verified_domain):
        with pytest.raises(ValidationError):
            registry.set_ssl_mode("example.com", "SELF_SIGNED")

    def test_force_https_needs_lets_encrypt(self, registry, verified_domain):
        with pytest.raises(InvalidState):
            registry.set_force_https("example.com", True)
        registry.set_ssl_mode("example.com", SslMode.LETS_ENCRYPT)
        assert registry.set_force_https("example.com", True).force_https

    def test_leaving_lets_encrypt_clears_force_https(self, registry, verified_domain):
        registry.set_ssl_mode("example.com", SslMode.LETS_ENCRYPT)
        registry.set_force_https("example.com", True)
        domain = registry.set_ssl_mode("example.com", SslMode.EXTERNAL)
        assert domain.ssl_mode is SslMode.EXTERNAL
        assert not domain.force_https


class TestThrottle:
    def test_create_then_update(self, registry, verified_domain):
        created = registry.upsert_throttle("example.com", True, 10, 5)
        assert (created.enabled, created.requests_per_second, created.burst_size) == (True, 10, 5)
        updated = registry.upsert_throttle("example.com", True, 20, 8)
        assert updated.id == created.id
        assert (updated.requests_per_second, updated.burst_size) == (20, 8)

    def test_disable_keeps_rates(self, registry, verified_domain):
        registry.upsert_throttle("example.com", True, 10, 5)
        disabled = registry.upsert_throttle("example.com", False)
        assert not disabled.enabled
        assert (disabled.requests_per_second, disabled.burst_size) == (10, 5)

    def test_disabled_default_rates(self, registry, verified_domain):
        config = registry.upsert_throttle("example.com", False)
        assert (config.requests_per_second, config.burst_size) == (60, 20)
        assert registry.get_throttle("example.com") == config

    @pytest.mark.parametrize(("rps", "burst"), [(0, 5), (10, 0), (None, 5)])
    def test_enable_requires_rates(self, registry, verified_domain, rps, burst):
        with pytest.raises(ValidationError):
            registry.upsert_throttle("example.com", True, rps, burst)


class TestBrowserRules:
    def test_rules_ordered_by_position(self, registry, verified_domain):
        first = registry.add_browser_rule("example.com", "curl/.*", "BLOCK")
        second = registry.add_browser_rule("example.com", "Mozilla", BrowserRuleType.ALLOW)
        assert (first.position, second.position) == (0, 1)
        assert [r.id for r in registry.list_browser_rules("example.com")] == [first.id, second.id]

    @pytest.mark.parametrize(
        ("pattern", "rule_type"),
        [("", "BLOCK"), ("  ", "ALLOW"), ("bot", "DENY"), ("(unclosed", "BLOCK")],
    )
    def test_invalid_rules(self, registry, verified_domain, pattern, rule_type):
        with pytest.raises(ValidationError):
            registry.add_browser_rule("example.com", pattern, rule_type)

    def test_toggle_and_delete(self, registry, verified_domain):
        rule = registry.add_browser_rule("example.com", "bot", "BLOCK")
        assert not registry.set_browser_rule_enabled("example.com", rule.id, False).is_enabled
        registry.delete_browser_rule("example.com", rule.id)
        assert registry.list_browser_rules("example.com") == []

    def test_rule_of_other_domain(self, registry, verified_domain):
        registry.register_domain("other.com", "project-2")
        rule = registry.add_browser_rule("other.com", "bot", "BLOCK")
        with pytest.raises(NotFound):
            registry.delete_browser_rule("example.com", rule.id)
