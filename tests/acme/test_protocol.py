"""Tests for domainssl.acme.protocol: RFC 8555 over a patched urlopen."""

from __future__ import annotations

import io
import json
import urllib.error
from unittest.mock import MagicMock, patch

import pytest

from domainssl.acme.account import StoredAccount
from domainssl.acme.jws import b64url_decode, generate_private_key
from domainssl.acme.protocol import AcmeProtocol, AcmeServerProblem
from domainssl.config.settings import AcmeSettings
from domainssl.core.errors import ProviderError

DIRECTORY = "https://ca.test/directory"


def _settings(email="ops@example.com"):
    return AcmeSettings(
        directory_url=DIRECTORY,
        staging=False,
        sandbox=False,
        email=email,
        timeout_seconds=5,
        poll_attempts=2,
        poll_interval_seconds=0,
        rate_limit_per_week=45,
        completion_workers=1,
    )


class _Response:
    def __init__(self, status=200, body=b"", headers=None):
        self.status = status
        self._body = body
        self.headers = headers or {}

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


def _http_error(url, code, problem, nonce="nonce-err"):
    return urllib.error.HTTPError(
        url,
        code,
        "error",
        {"Replay-Nonce": nonce},
        io.BytesIO(json.dumps(problem).encode()),
    )


class FakeCa:
    """Routes requests by URL and records every JWS it receives."""

    def __init__(self):
        self.posts: list[tuple[str, dict, dict]] = []
        self.handlers: dict = {}
        self.nonce_counter = 0

    def urlopen(self, req, timeout=None):
        url = req.full_url
        if url == DIRECTORY:
            return _Response(
                body=json.dumps(
                    {
                        "newNonce": "https://ca.test/new-nonce",
                        "newAccount": "https://ca.test/new-acct",
                        "newOrder": "https://ca.test/new-order",
                        "revokeCert": "https://ca.test/revoke",
                    },
                ).encode(),
            )
        if url == "https://ca.test/new-nonce":
            self.nonce_counter += 1
            return _Response(headers={"Replay-Nonce": f"nonce-{self.nonce_counter}"})
        jws = json.loads(req.data.decode())
        protected = json.loads(b64url_decode(jws["protected"]))
        payload = json.loads(b64url_decode(jws["payload"])) if jws["payload"] else None
        self.posts.append((url, protected, payload))
        handler = self.handlers[url]
        result = handler(protected, payload) if callable(handler) else handler
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def ca():
    return FakeCa()


@pytest.fixture
def accounts():
    store = MagicMock()
    store.load.return_value = StoredAccount(key=generate_private_key(), account_url="https://ca.test/acct/1")
    return store


@pytest.fixture
def protocol(ca, accounts):
    with patch("domainssl.acme.protocol.urllib.request.urlopen", side_effect=ca.urlopen):
        yield AcmeProtocol(_settings(), accounts)


def _order_body(status="pending"):
    return {
        "status": status,
        "finalize": "https://ca.test/order/1/finalize",
        "authorizations": ["https://ca.test/authz/1"],
    }


class TestOrders:
    def test_new_order(self, protocol, ca):
        ca.handlers["https://ca.test/new-order"] = _Response(
            201,
            json.dumps(_order_body()).encode(),
            {"Location": "https://ca.test/order/1", "Replay-Nonce": "nonce-next"},
        )
        order = protocol.new_order("example.com")
        assert order.url == "https://ca.test/order/1"
        assert order.status == "pending"
        assert order.authorizations == ("https://ca.test/authz/1",)

        url, protected, payload = ca.posts[0]
        assert payload == {"identifiers": [{"type": "dns", "value": "example.com"}]}
        assert protected["kid"] == "https://ca.test/acct/1"
        assert protected["nonce"] == "nonce-1"
        assert protected["url"] == url

    def test_nonce_from_previous_response_is_reused(self, protocol, ca):
        ca.handlers["https://ca.test/order/1"] = _Response(
            200,
            json.dumps(_order_body("ready")).encode(),
            {"Replay-Nonce": "from-response"},
        )
        protocol.get_order("https://ca.test/order/1")
        protocol.get_order("https://ca.test/order/1")
        assert ca.posts[1][1]["nonce"] == "from-response"
        # post-as-get has an empty payload
        assert ca.posts[0][2] is None

    def test_missing_location(self, protocol, ca):
        ca.handlers["https://ca.test/new-order"] = _Response(201, json.dumps(_order_body()).encode())
        with pytest.raises(ProviderError, match="no Location"):
            protocol.new_order("example.com")

    def test_challenges(self, protocol, ca):
        ca.handlers["https://ca.test/authz/1"] = _Response(
            200,
            json.dumps(
                {
                    "challenges": [
                        {"type": "http-01", "url": "https://ca.test/chall/1", "token": "tok", "status": "pending"},
                        {"type": "dns-01", "url": "https://ca.test/chall/2", "token": "tok", "status": "pending"},
                    ],
                },
            ).encode(),
        )
        challenges = protocol.get_challenges("https://ca.test/authz/1")
        assert [c.type for c in challenges] == ["http-01", "dns-01"]

    def test_answer_challenge_posts_empty_object(self, protocol, ca):
        ca.handlers["https://ca.test/chall/1"] = _Response(
            200,
            json.dumps({"type": "http-01", "token": "tok", "status": "processing"}).encode(),
        )
        challenge = protocol.answer_challenge("https://ca.test/chall/1")
        assert challenge.status == "processing"
        assert challenge.url == "https://ca.test/chall/1"
        assert ca.posts[0][2] == {}


class TestProblems:
    def test_bad_nonce_retried_once(self, protocol, ca):
        calls = []

        def handler(protected, payload):
            calls.append(protected["nonce"])
            if len(calls) == 1:
                return _http_error(
                    "https://ca.test/order/1",
                    400,
                    {"type": "urn:ietf:params:acme:error:badNonce", "detail": "stale"},
                    nonce="fresh-nonce",
                )
            return _Response(200, json.dumps(_order_body()).encode())

        ca.handlers["https://ca.test/order/1"] = handler
        protocol.get_order("https://ca.test/order/1")
        assert calls == ["nonce-1", "fresh-nonce"]

    def test_problem_detail_passed_through(self, protocol, ca):
        ca.handlers["https://ca.test/new-order"] = _http_error(
            "https://ca.test/new-order",
            400,
            {"type": "urn:ietf:params:acme:error:rejectedIdentifier", "detail": "Policy forbids"},
        )
        with pytest.raises(AcmeServerProblem, match="Policy forbids") as exc_info:
            protocol.new_order("example.com")
        assert exc_info.value.retryable is False
        assert exc_info.value.problem_type.endswith("rejectedIdentifier")

    @pytest.mark.parametrize(
        ("code", "problem_type"),
        [
            (503, "urn:ietf:params:acme:error:serverInternal"),
            (429, "urn:ietf:params:acme:error:rateLimited"),
        ],
    )
    def test_transient_problems_are_retryable(self, protocol, ca, code, problem_type):
        ca.handlers["https://ca.test/new-order"] = _http_error(
            "https://ca.test/new-order",
            code,
            {"type": problem_type, "detail": "later"},
        )
        with pytest.raises(ProviderError) as exc_info:
            protocol.new_order("example.com")
        assert exc_info.value.retryable

    @pytest.mark.parametrize("problem", [[], "x", 42, None])
    def test_non_object_problem_body(self, protocol, ca, problem):
        ca.handlers["https://ca.test/new-order"] = _http_error("https://ca.test/new-order", 502, problem)
        with pytest.raises(AcmeServerProblem, match="HTTP 502") as exc_info:
            protocol.new_order("example.com")
        assert exc_info.value.problem_type == ""
        assert exc_info.value.retryable

    def test_network_error_is_retryable(self, accounts):
        with patch(
            "domainssl.acme.protocol.urllib.request.urlopen",
            side_effect=urllib.error.URLError("connection refused"),
        ):
            protocol = AcmeProtocol(_settings(), accounts)
            with pytest.raises(ProviderError, match="unreachable") as exc_info:
                protocol.new_order("example.com")
        assert exc_info.value.retryable


class TestAccount:
    def test_registers_when_none_stored(self, ca):
        store = MagicMock()
        store.load.return_value = None
        ca.handlers["https://ca.test/new-acct"] = _Response(
            201,
            b"{}",
            {"Location": "https://ca.test/acct/9"},
        )
        ca.handlers["https://ca.test/new-order"] = _Response(
            201,
            json.dumps(_order_body()).encode(),
            {"Location": "https://ca.test/order/1"},
        )
        with patch("domainssl.acme.protocol.urllib.request.urlopen", side_effect=ca.urlopen):
            protocol = AcmeProtocol(_settings(), store)
            protocol.new_order("example.com")

        url, protected, payload = ca.posts[0]
        assert url == "https://ca.test/new-acct"
        assert "jwk" in protected
        assert "kid" not in protected
        assert payload == {"termsOfServiceAgreed": True, "contact": ["mailto:ops@example.com"]}
        store.save.assert_called_once()
        assert store.save.call_args.args[1] == "https://ca.test/acct/9"
        assert ca.posts[1][1]["kid"] == "https://ca.test/acct/9"

    def test_email_required(self, ca):
        store = MagicMock()
        store.load.return_value = None
        with patch("domainssl.acme.protocol.urllib.request.urlopen", side_effect=ca.urlopen):
            protocol = AcmeProtocol(_settings(email=""), store)
            with pytest.raises(ProviderError, match="acme.email"):
                protocol.new_order("example.com")
        assert ca.posts == []
