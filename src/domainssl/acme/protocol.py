"""RFC 8555 ACME transport over ``urllib``.

Every state-changing request is a JWS signed with the global account
key (ES256).  Nonces are taken from the previous response when
available and fetched from ``newNonce`` otherwise; a ``badNonce``
rejection is retried exactly once with the fresh nonce the server
returned.

The account is loaded from (or registered and saved to) the
:class:`~domainssl.acme.account.AccountStore` on first use.
"""

from __future__ import annotations

import json
import logging
import threading
import urllib.error
import urllib.request
from typing import TYPE_CHECKING, Any

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

from domainssl.acme.base import AcmeChallenge, AcmeOrder, AcmeTransport
from domainssl.acme.jws import (
    b64url_encode,
    csr_pem_to_der_b64url,
    generate_private_key,
    public_jwk,
    sign_request,
)
from domainssl.core.errors import ProviderError

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric import ec

    from domainssl.acme.account import AccountStore
    from domainssl.config.settings import AcmeSettings

log = logging.getLogger(__name__)

_BAD_NONCE = "urn:ietf:params:acme:error:badNonce"
_RATE_LIMITED = "urn:ietf:params:acme:error:rateLimited"
_JOSE = "application/jose+json"
_PEM_CHAIN = "application/pem-certificate-chain"


class AcmeProtocol(AcmeTransport):
    """Talk to a real ACME directory (Let's Encrypt production or staging).

    Parameters
    ----------
    settings:
        The ``acme`` configuration section.
    accounts:
        Persistence for the global account key and URL.

    """

    mode = "live"

    def __init__(self, settings: AcmeSettings, accounts: AccountStore) -> None:
        self._settings = settings
        self._accounts = accounts
        self._timeout = settings.timeout_seconds
        self._directory: dict[str, Any] | None = None
        self._key: ec.EllipticCurvePrivateKey | None = None
        self._kid: str | None = None
        self._nonce: str | None = None
        self._lock = threading.RLock()

    @property
    def directory_url(self) -> str:
        return self._settings.effective_directory_url

    # -- Low-level HTTP -----------------------------------------------------

    def _open(self, req: urllib.request.Request):
        try:
            return urllib.request.urlopen(req, timeout=self._timeout)  # noqa: S310
        except urllib.error.HTTPError:
            raise
        except (urllib.error.URLError, OSError) as exc:
            msg = f"ACME server unreachable ({req.full_url}): {exc}"
            raise ProviderError(msg, retryable=True) from exc

    def _get_directory(self) -> dict[str, Any]:
        if self._directory is None:
            req = urllib.request.Request(self.directory_url, method="GET")
            try:
                with self._open(req) as resp:
                    self._directory = json.loads(resp.read().decode("utf-8"))
            except urllib.error.HTTPError as exc:
                raise _problem_from_http_error(exc) from exc
        return self._directory

    def _endpoint(self, name: str) -> str:
        url = self._get_directory().get(name)
        if not url:
            msg = f"ACME directory has no '{name}' endpoint"
            raise ProviderError(msg)
        return url

    def _fresh_nonce(self) -> str:
        if self._nonce:
            nonce, self._nonce = self._nonce, None
            return nonce
        req = urllib.request.Request(self._endpoint("newNonce"), method="HEAD")
        try:
            with self._open(req) as resp:
                nonce = resp.headers.get("Replay-Nonce")
        except urllib.error.HTTPError as exc:
            raise _problem_from_http_error(exc) from exc
        if not nonce:
            msg = "ACME server did not return a Replay-Nonce"
            raise ProviderError(msg, retryable=True)
        return nonce

    def _post(
        self,
        url: str,
        payload: dict[str, Any] | None,
        *,
        use_kid: bool = True,
        accept: str | None = None,
    ) -> tuple[int, Any, bytes]:
        """POST a signed request; returns ``(status, headers, body)``."""
        with self._lock:
            key, kid = self._account() if use_kid else (self._require_key(), None)
            for attempt in (1, 2):
                body = sign_request(key, url, self._fresh_nonce(), payload, kid=kid)
                req = urllib.request.Request(
                    url,
                    data=json.dumps(body).encode("utf-8"),
                    headers={"Content-Type": _JOSE},
                    method="POST",
                )
                if accept:
                    req.add_header("Accept", accept)
                try:
                    with self._open(req) as resp:
                        self._nonce = resp.headers.get("Replay-Nonce")
                        return resp.status, resp.headers, resp.read()
                except urllib.error.HTTPError as exc:
                    self._nonce = exc.headers.get("Replay-Nonce") if exc.headers else None
                    problem = _problem_from_http_error(exc)
                    if attempt == 1 and getattr(problem, "problem_type", "") == _BAD_NONCE:
                        log.debug("ACME badNonce on %s, retrying once", url)
                        continue
                    raise problem from exc
        msg = f"ACME request to {url} kept failing with badNonce"
        raise ProviderError(msg, retryable=True)

    def _post_json(self, url: str, payload: dict[str, Any] | None) -> tuple[Any, dict[str, Any]]:
        _status, headers, body = self._post(url, payload)
        return headers, json.loads(body.decode("utf-8")) if body else {}

    # -- Account ------------------------------------------------------------

    def _require_key(self) -> ec.EllipticCurvePrivateKey:
        if self._key is None:
            self._key = generate_private_key()
        return self._key

    def _account(self) -> tuple[ec.EllipticCurvePrivateKey, str]:
        if self._kid is not None and self._key is not None:
            return self._key, self._kid
        stored = self._accounts.load()
        if stored is not None:
            self._key, self._kid = stored.key, stored.account_url
            return self._key, self._kid
        self._register()
        return self._key, self._kid  # type: ignore[return-value]

    def _register(self) -> None:
        email = self._settings.email
        if not email:
            msg = "acme.email is required for certificate issuance"
            raise ProviderError(msg)
        key = self._require_key()
        status, headers, _body = self._post(
            self._endpoint("newAccount"),
            {"termsOfServiceAgreed": True, "contact": [f"mailto:{email}"]},
            use_kid=False,
        )
        account_url = headers.get("Location")
        if not account_url:
            msg = f"ACME newAccount returned no Location header (HTTP {status})"
            raise ProviderError(msg)
        self._accounts.save(key, account_url, email=email, directory_url=self.directory_url)
        self._kid = account_url
        log.info("Registered ACME account %s", account_url)

    @property
    def account_jwk(self) -> dict[str, str]:
        with self._lock:
            key, _kid = self._account()
        return public_jwk(key)

    # -- Orders & challenges ------------------------------------------------

    def new_order(self, hostname: str) -> AcmeOrder:
        headers, body = self._post_json(
            self._endpoint("newOrder"),
            {"identifiers": [{"type": "dns", "value": hostname}]},
        )
        order_url = headers.get("Location")
        if not order_url:
            msg = "ACME newOrder returned no Location header"
            raise ProviderError(msg)
        log.info("Created ACME order %s for %s", order_url, hostname)
        return _order_from(order_url, body)

    def get_order(self, order_url: str) -> AcmeOrder:
        _headers, body = self._post_json(order_url, None)
        return _order_from(order_url, body)

    def get_challenges(self, authorization_url: str) -> list[AcmeChallenge]:
        _headers, body = self._post_json(authorization_url, None)
        return [_challenge_from(c) for c in body.get("challenges", [])]

    def get_challenge(self, challenge_url: str) -> AcmeChallenge:
        _headers, body = self._post_json(challenge_url, None)
        return _challenge_from(body, challenge_url)

    def answer_challenge(self, challenge_url: str) -> AcmeChallenge:
        _headers, body = self._post_json(challenge_url, {})
        return _challenge_from(body, challenge_url)

    def finalize(self, order: AcmeOrder, csr_pem: str) -> AcmeOrder:
        _headers, body = self._post_json(
            order.finalize_url,
            {"csr": csr_pem_to_der_b64url(csr_pem)},
        )
        return _order_from(order.url, body)

    def download(self, certificate_url: str) -> str:
        _status, _headers, body = self._post(certificate_url, None, accept=_PEM_CHAIN)
        return body.decode("ascii")

    def revoke(self, certificate_pem: str) -> None:
        cert = x509.load_pem_x509_certificate(certificate_pem.encode("ascii"))
        self._post(
            self._endpoint("revokeCert"),
            {"certificate": b64url_encode(cert.public_bytes(Encoding.DER))},
        )
        log.info("Revoked certificate serial %x with the CA", cert.serial_number)


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class AcmeServerProblem(ProviderError):
    """A problem document returned by the ACME server."""

    def __init__(self, detail: str, *, problem_type: str, retryable: bool) -> None:
        self.problem_type = problem_type
        super().__init__(detail, retryable=retryable)


def _problem_from_http_error(exc: urllib.error.HTTPError) -> AcmeServerProblem:
    try:
        problem = json.loads(exc.read().decode("utf-8"))
    except (ValueError, OSError):
        problem = {}
    if not isinstance(problem, dict):
        problem = {}
    problem_type = problem.get("type", "")
    detail = problem.get("detail") or f"ACME server returned HTTP {exc.code}"
    retryable = exc.code >= 500 or exc.code == 429 or problem_type in (_BAD_NONCE, _RATE_LIMITED)
    return AcmeServerProblem(detail, problem_type=problem_type, retryable=retryable)


def _order_from(url: str, body: dict[str, Any]) -> AcmeOrder:
    return AcmeOrder(
        url=url,
        status=body.get("status", "pending"),
        finalize_url=body.get("finalize", ""),
        authorizations=tuple(body.get("authorizations", ())),
        certificate_url=body.get("certificate"),
        error=body.get("error"),
    )


def _challenge_from(body: dict[str, Any], url: str | None = None) -> AcmeChallenge:
    return AcmeChallenge(
        url=body.get("url") or url or "",
        type=body.get("type", ""),
        token=body.get("token", ""),
        status=body.get("status", "pending"),
        error=body.get("error"),
    )
