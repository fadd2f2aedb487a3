"""Tests for domainssl.acme.challenges: HTTP-01 and DNS-01 strategies."""

from __future__ import annotations

import dns.exception
import dns.resolver
import pytest
from conftest import FakeResolver

from domainssl.acme.challenges import (
    DNS01_PREFIX,
    ChallengeError,
    Dns01Strategy,
    Http01Strategy,
    build_strategies,
)
from domainssl.acme.jws import dns_txt_value
from domainssl.config.settings import Dns01Settings
from domainssl.core.types import ChallengeType

NAME = "_acme-challenge.example.org"


def test_http01_prepare():
    fields = Http01Strategy().prepare("example.com", "tok", "tok.thumb")
    assert fields == {"challenge_token": "tok", "challenge_key_auth": "tok.thumb"}


def test_dns01_prepare():
    fields = Dns01Strategy(FakeResolver()).prepare("example.org", "tok", "tok.thumb")
    assert fields == {"challenge_token": "tok", "dns_txt_value": dns_txt_value("tok.thumb")}


def test_record_name():
    assert Dns01Strategy.record_name("example.org") == NAME
    assert DNS01_PREFIX == "_acme-challenge."


def test_http01_check_ready_is_noop():
    Http01Strategy().check_ready("example.com", None)


class TestDnsPrecheck:
    def test_not_published_is_retryable(self):
        strategy = Dns01Strategy(FakeResolver())
        with pytest.raises(ChallengeError, match="not found or not propagated") as exc_info:
            strategy.check_ready("example.org", "expected")
        assert exc_info.value.retryable

    def test_mismatch_is_retryable(self):
        strategy = Dns01Strategy(FakeResolver({(NAME, "TXT"): ["old-value"]}))
        with pytest.raises(ChallengeError, match="does not match") as exc_info:
            strategy.check_ready("example.org", "expected")
        assert exc_info.value.retryable

    def test_match_among_several(self):
        strategy = Dns01Strategy(FakeResolver({(NAME, "TXT"): ["other", "expected"]}))
        strategy.check_ready("example.org", "expected")

    def test_no_answer_counts_as_missing(self):
        strategy = Dns01Strategy(FakeResolver({(NAME, "TXT"): dns.resolver.NoAnswer()}))
        with pytest.raises(ChallengeError, match="not found"):
            strategy.check_ready("example.org", "expected")

    @pytest.mark.parametrize(
        "error",
        [dns.exception.Timeout(), dns.resolver.NoNameservers(), dns.exception.DNSException("boom")],
    )
    def test_resolver_errors_are_retryable(self, error):
        strategy = Dns01Strategy(FakeResolver({(NAME, "TXT"): error}))
        with pytest.raises(ChallengeError) as exc_info:
            strategy.check_ready("example.org", "expected")
        assert exc_info.value.retryable

    def test_precheck_disabled(self):
        resolver = FakeResolver()
        settings = Dns01Settings(precheck=False, resolvers=(), timeout_seconds=5)
        Dns01Strategy(resolver, settings).check_ready("example.org", "expected")
        assert resolver.queries == []


def test_build_strategies():
    strategies = build_strategies(FakeResolver())
    assert isinstance(strategies[ChallengeType.HTTP01], Http01Strategy)
    assert isinstance(strategies[ChallengeType.DNS01], Dns01Strategy)
