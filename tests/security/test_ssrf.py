"""Tests for domainssl.security.ssrf: the outbound pre-flight guard."""

from __future__ import annotations

import dns.exception
import dns.resolver
import pytest
from conftest import FakeResolver

from domainssl.core.errors import SsrfRejected
from domainssl.security.ssrf import SsrfGuard, is_blocked_address


@pytest.mark.parametrize(
    "address",
    [
        "127.0.0.1",
        "127.8.9.10",
        "0.0.0.0",
        "10.0.0.1",
        "169.254.169.254",
        "172.16.0.1",
        "172.20.1.1",
        "172.31.255.255",
        "192.168.0.1",
        "::1",
        "fd00::1",
        "fc00::abcd",
        "::ffff:10.0.0.1",
    ],
)
def test_blocked_addresses(address):
    assert is_blocked_address(address)


@pytest.mark.parametrize(
    "address",
    ["8.8.8.8", "93.184.216.34", "172.32.0.1", "172.15.255.255", "2606:4700::1111", "not-an-ip"],
)
def test_allowed_addresses(address):
    assert not is_blocked_address(address)


class TestGuard:
    def test_public_passes(self):
        guard = SsrfGuard(FakeResolver({("example.com", "A"): ["8.8.8.8"]}))
        guard.assert_not_internal("example.com")

    @pytest.mark.parametrize(
        ("rdtype", "address"),
        [
            ("A", "127.0.0.1"),
            ("A", "10.0.0.1"),
            ("A", "172.20.1.1"),
            ("A", "192.168.0.1"),
            ("AAAA", "::1"),
            ("AAAA", "fd00::1"),
        ],
    )
    def test_internal_rejected(self, rdtype, address):
        guard = SsrfGuard(FakeResolver({("evil.test", rdtype): [address]}))
        with pytest.raises(SsrfRejected, match=address):
            guard.assert_not_internal("evil.test")

    def test_any_internal_address_rejects(self):
        guard = SsrfGuard(
            FakeResolver(
                {
                    ("mixed.test", "A"): ["8.8.8.8"],
                    ("mixed.test", "AAAA"): ["fd00::2"],
                },
            ),
        )
        with pytest.raises(SsrfRejected):
            guard.assert_not_internal("mixed.test")

    def test_no_records_passes(self):
        SsrfGuard(FakeResolver()).assert_not_internal("nothing.test")

    def test_resolution_errors_fail_open(self):
        resolver = FakeResolver(
            {
                ("flaky.test", "A"): dns.exception.Timeout(),
                ("flaky.test", "AAAA"): dns.resolver.NoAnswer(),
            },
        )
        SsrfGuard(resolver).assert_not_internal("flaky.test")

    def test_one_family_failing_still_checks_other(self):
        resolver = FakeResolver(
            {
                ("half.test", "A"): dns.resolver.NoNameservers(),
                ("half.test", "AAAA"): ["::1"],
            },
        )
        with pytest.raises(SsrfRejected):
            SsrfGuard(resolver).assert_not_internal("half.test")

    def test_queries_both_families(self):
        resolver = FakeResolver()
        SsrfGuard(resolver).resolve_addresses("example.com")
        assert resolver.queries == [("example.com", "A"), ("example.com", "AAAA")]

