"""Simulated certificate authority for sandbox mode.

Runs the complete order/challenge/finalize/download flow in process
without contacting a real CA: challenges validate as soon as they are
answered and finalize signs the CSR with an ephemeral sandbox issuer.
Useful for exercising the proxy-fleet integration without burning
real CA rate limits.

Order state lives in memory, but every URL carries the order id and
hostname and challenge tokens are derived from the order id, so an order
opened by another process (the CLI, a restarted server) is rebuilt on
first use as already validated.
"""

from __future__ import annotations

import hashlib
import logging
import threading
import uuid
from dataclasses import replace
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.x509.oid import NameOID

from domainssl.acme.base import AcmeChallenge, AcmeOrder, AcmeTransport
from domainssl.acme.jws import b64url_encode, generate_private_key, public_jwk
from domainssl.core.errors import ProviderError

log = logging.getLogger(__name__)

SANDBOX_VALIDITY_DAYS = 90
_CHALLENGE_TYPES = ("http-01", "dns-01")
_SCHEME = "sandbox://"


def _token(order_id: str, challenge_type: str) -> str:
    return b64url_encode(hashlib.sha256(f"{order_id}:{challenge_type}".encode()).digest())


def _parse(url: str, kind: str) -> list[str]:
    """Split ``sandbox://<kind>/<order_id>/<hostname>[/...]`` into its parts."""
    prefix = f"{_SCHEME}{kind}/"
    if not url.startswith(prefix):
        msg = f"Unknown sandbox {kind} {url}"
        raise ProviderError(msg)
    parts = url[len(prefix) :].split("/")
    if len(parts) < 2 or not all(parts[:2]):  # noqa: PLR2004
        msg = f"Unknown sandbox {kind} {url}"
        raise ProviderError(msg)
    return parts


class SandboxTransport(AcmeTransport):
    """In-memory ACME server stand-in."""

    mode = "sandbox"

    def __init__(self, validity_days: int = SANDBOX_VALIDITY_DAYS) -> None:
        self._validity = timedelta(days=validity_days)
        self._account_key = generate_private_key()
        self._issuer_key = generate_private_key()
        self._issuer_cert = self._build_issuer()
        self._orders: dict[str, AcmeOrder] = {}
        self._challenges: dict[str, AcmeChallenge] = {}
        self._certificates: dict[str, str] = {}
        self._lock = threading.Lock()

    def _build_issuer(self) -> x509.Certificate:
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "domainssl Sandbox CA")])
        now = datetime.now(UTC)
        return (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self._issuer_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=3650))
            .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
            .sign(self._issuer_key, hashes.SHA256())
        )

    @property
    def account_jwk(self) -> dict[str, str]:
        return public_jwk(self._account_key)

    # -- orders ---------------------------------------------------------------

    def _register(self, order_id: str, hostname: str, *, validated: bool) -> AcmeOrder:
        """Create (or rebuild) order and challenge records.  Caller holds the lock."""
        base = f"{order_id}/{hostname}"
        order = AcmeOrder(
            url=f"{_SCHEME}order/{base}",
            status="ready" if validated else "pending",
            finalize_url=f"{_SCHEME}order/{base}/finalize",
            authorizations=(f"{_SCHEME}authz/{base}",),
        )
        self._orders[order.url] = order
        for ctype in _CHALLENGE_TYPES:
            url = f"{_SCHEME}challenge/{base}/{ctype}"
            self._challenges[url] = AcmeChallenge(
                url=url,
                type=ctype,
                token=_token(order_id, ctype),
                status="valid" if validated else "pending",
            )
        return order

    def _order(self, order_id: str, hostname: str) -> AcmeOrder:
        """Look up an order, rebuilding it if it was opened elsewhere.  Caller holds the lock."""
        url = f"{_SCHEME}order/{order_id}/{hostname}"
        order = self._orders.get(url)
        if order is None:
            log.info("Sandbox order %s not in memory; treating it as validated", url)
            order = self._register(order_id, hostname, validated=True)
        return order

    def new_order(self, hostname: str) -> AcmeOrder:
        with self._lock:
            order = self._register(uuid.uuid4().hex, hostname, validated=False)
        log.info("Sandbox order %s created for %s", order.url, hostname)
        return order

    def get_order(self, order_url: str) -> AcmeOrder:
        order_id, hostname = _parse(order_url, "order")[:2]
        with self._lock:
            return self._order(order_id, hostname)

    def get_challenges(self, authorization_url: str) -> list[AcmeChallenge]:
        order_id, hostname = _parse(authorization_url, "authz")[:2]
        with self._lock:
            self._order(order_id, hostname)
            return [
                self._challenges[f"{_SCHEME}challenge/{order_id}/{hostname}/{ctype}"]
                for ctype in _CHALLENGE_TYPES
            ]

    def get_challenge(self, challenge_url: str) -> AcmeChallenge:
        order_id, hostname = _parse(challenge_url, "challenge")[:2]
        with self._lock:
            self._order(order_id, hostname)
            return self._lookup(self._challenges, challenge_url, "challenge")

    def answer_challenge(self, challenge_url: str) -> AcmeChallenge:
        order_id, hostname = _parse(challenge_url, "challenge")[:2]
        with self._lock:
            order = self._order(order_id, hostname)
            challenge = replace(
                self._lookup(self._challenges, challenge_url, "challenge"),
                status="valid",
            )
            self._challenges[challenge_url] = challenge
            if order.status == "pending":
                self._orders[order.url] = replace(order, status="ready")
        return challenge

    def finalize(self, order: AcmeOrder, csr_pem: str) -> AcmeOrder:
        order_id, hostname = _parse(order.url, "order")[:2]
        with self._lock:
            current = self._order(order_id, hostname)
            if current.status != "ready":
                msg = f"Order is not ready for finalization (status {current.status})"
                raise ProviderError(msg)
        chain = self._sign(csr_pem, hostname)
        cert_url = f"{_SCHEME}cert/{order_id}/{hostname}"
        with self._lock:
            self._certificates[cert_url] = chain
            finalized = replace(current, status="valid", certificate_url=cert_url)
            self._orders[current.url] = finalized
        return finalized

    def download(self, certificate_url: str) -> str:
        with self._lock:
            return self._lookup(self._certificates, certificate_url, "certificate")

    def revoke(self, certificate_pem: str) -> None:
        log.info("Sandbox revoke requested; nothing to do")

    # -- helpers --------------------------------------------------------------

    @staticmethod
    def _lookup(store: dict, url: str, kind: str):
        try:
            return store[url]
        except KeyError:
            msg = f"Unknown sandbox {kind} {url}"
            raise ProviderError(msg) from None

    def _sign(self, csr_pem: str, hostname: str) -> str:
        csr = x509.load_pem_x509_csr(csr_pem.encode("ascii"))
        now = datetime.now(UTC)
        leaf = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, hostname)]))
            .issuer_name(self._issuer_cert.subject)
            .public_key(csr.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now)
            .not_valid_after(now + self._validity)
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(hostname)]), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(self._issuer_key, hashes.SHA256())
        )
        return "".join(
            c.public_bytes(serialization.Encoding.PEM).decode("ascii")
            for c in (leaf, self._issuer_cert)
        )
