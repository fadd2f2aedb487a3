"""ACME challenge-fulfillment client.

Drives an :class:`~domainssl.acme.base.AcmeTransport` through
create order -> select challenge -> prepare -> answer -> poll ->
finalize -> download.  Every step that talks to the CA for a new
hostname is preceded by the SSRF guard.

The client holds no per-certificate state: everything needed to resume
an order (order URL, challenge token, CSR) lives on the certificate
row, so completion can be re-driven from any thread or process.
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509 import load_pem_x509_certificate

from domainssl.acme.challenges import ChallengeError, build_strategies
from domainssl.acme.jws import (
    build_csr,
    csr_to_pem,
    generate_private_key,
    key_authorization,
    private_key_to_pem,
)
from domainssl.core.errors import ProviderError
from domainssl.core.secret import Secret

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from domainssl.acme.base import AcmeChallenge, AcmeOrder, AcmeTransport
    from domainssl.acme.challenges import ChallengeStrategy
    from domainssl.core.types import ChallengeType
    from domainssl.security.ssrf import SsrfGuard

log = logging.getLogger(__name__)

_CERT_BOUNDARY = "-----BEGIN CERTIFICATE-----"


@dataclass(frozen=True)
class PreparedChallenge:
    """Everything persisted when an order is opened.

    Attributes
    ----------
    order_url:
        ACME order URL.
    private_key:
        Fresh per-certificate key PEM, wrapped so it cannot be logged.
    csr_pem:
        CSR for the hostname.
    fields:
        Challenge-specific certificate columns (token, key authorization
        or DNS TXT value).

    """

    order_url: str
    private_key: Secret
    csr_pem: str
    fields: dict[str, str | None]


@dataclass(frozen=True)
class IssuedChain:
    """A downloaded certificate chain and its leaf metadata."""

    leaf_pem: str
    full_chain_pem: str
    not_before: datetime
    not_after: datetime
    serial_number: str
    fingerprint: str


def split_chain(pem_chain: str) -> IssuedChain:
    """Split a PEM chain into leaf and full chain and read the leaf's validity."""
    blocks = [
        _CERT_BOUNDARY + part
        for part in pem_chain.split(_CERT_BOUNDARY)
        if part.strip()
    ]
    if not blocks:
        msg = "CA returned an empty certificate chain"
        raise ProviderError(msg)
    leaf_pem = blocks[0]
    leaf = load_pem_x509_certificate(leaf_pem.encode("ascii"))
    return IssuedChain(
        leaf_pem=leaf_pem,
        full_chain_pem=pem_chain,
        not_before=leaf.not_valid_before_utc,
        not_after=leaf.not_valid_after_utc,
        serial_number=format(leaf.serial_number, "x"),
        fingerprint=hashlib.sha256(leaf.public_bytes(Encoding.DER)).hexdigest(),
    )


class AcmeChallengeClient:
    """Open, fulfil, finalize and revoke ACME orders.

    Parameters
    ----------
    transport:
        The CA transport (real protocol or sandbox).
    ssrf_guard:
        Checked before any order is created for a hostname.
    strategies:
        Map of :class:`ChallengeType` to :class:`ChallengeStrategy`.
    poll_attempts, poll_interval:
        Bound on CA status polling within one call.
    sleep:
        Injected for tests.

    """

    def __init__(
        self,
        transport: AcmeTransport,
        ssrf_guard: SsrfGuard,
        strategies: dict[ChallengeType, ChallengeStrategy] | None = None,
        *,
        poll_attempts: int = 10,
        poll_interval: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._transport = transport
        self._guard = ssrf_guard
        self._strategies = strategies if strategies is not None else build_strategies()
        self._poll_attempts = max(1, poll_attempts)
        self._poll_interval = poll_interval
        self._sleep = sleep

    @property
    def mode(self) -> str:
        return self._transport.mode

    @property
    def is_sandbox(self) -> bool:
        return self._transport.mode == "sandbox"

    def strategy(self, challenge_type: ChallengeType) -> ChallengeStrategy:
        return self._strategies[challenge_type]

    # -- opening --------------------------------------------------------------

    def begin_order(
        self,
        hostname: str,
        challenge_type: ChallengeType,
        *,
        before_order: Callable[[], None] | None = None,
    ) -> PreparedChallenge:
        """Create an order and prepare its challenge; nothing is answered yet.

        *before_order* runs after the SSRF guard and before the CA is
        contacted (the issuance rate limit hooks in here).
        """
        self._guard.assert_not_internal(hostname)
        if before_order is not None:
            before_order()

        order = self._transport.new_order(hostname)
        challenge = self._select_challenge(order, challenge_type)
        key_authz = key_authorization(challenge.token, self._transport.account_jwk)

        key = generate_private_key()
        csr_pem = csr_to_pem(build_csr(key, hostname))
        fields = self.strategy(challenge_type).prepare(hostname, challenge.token, key_authz)

        log.info(
            "Prepared %s challenge for %s (order %s)",
            challenge_type.acme_name,
            hostname,
            order.url,
        )
        return PreparedChallenge(
            order_url=order.url,
            private_key=Secret(private_key_to_pem(key)),
            csr_pem=csr_pem,
            fields=fields,
        )

    def _select_challenge(self, order: AcmeOrder, challenge_type: ChallengeType) -> AcmeChallenge:
        if not order.authorizations:
            msg = f"ACME order {order.url} has no authorizations"
            raise ProviderError(msg)
        wanted = challenge_type.acme_name
        for challenge in self._transport.get_challenges(order.authorizations[0]):
            if challenge.type == wanted:
                return challenge
        msg = f"{wanted} challenge not available for this domain"
        if wanted == "http-01":
            msg += "; try DNS-01 instead"
        raise ProviderError(msg)

    # -- completion -----------------------------------------------------------

    def check_ready(self, hostname: str, challenge_type: ChallengeType, expected: str | None) -> None:
        """Raise a retryable :class:`ChallengeError` if the response is not visible yet."""
        self.strategy(challenge_type).check_ready(hostname, expected)

    def validate(self, order_url: str, challenge_type: ChallengeType) -> None:
        """Answer the challenge if needed and poll until the CA marks it valid.

        Raises
        ------
        ChallengeError
            (retryable) if the CA is still validating after the poll budget.
        ProviderError
            If the CA marks the challenge invalid.

        """
        order = self._transport.get_order(order_url)
        if order.status in ("ready", "processing", "valid"):
            return
        if order.status == "invalid":
            raise ProviderError(_problem_detail(order.error, "Order became invalid"))
        challenge = self._select_challenge(order, challenge_type)
        if challenge.status == "pending":
            challenge = self._transport.answer_challenge(challenge.url)
            log.info("Answered %s challenge %s", challenge.type, challenge.url)

        for attempt in range(self._poll_attempts):
            if challenge.status == "valid":
                return
            if challenge.status == "invalid":
                raise ProviderError(_problem_detail(challenge.error, "Challenge validation failed"))
            if attempt + 1 < self._poll_attempts:
                self._sleep(self._poll_interval)
                challenge = self._transport.get_challenge(challenge.url)
        msg = "The certificate authority is still validating the challenge"
        raise ChallengeError(msg, retryable=True)

    def finalize(self, order_url: str, csr_pem: str) -> IssuedChain:
        """Finalize a validated order and download the chain.

        Raises
        ------
        ChallengeError
            (retryable) if the order is not ``valid`` within the poll budget.
        ProviderError
            If the order becomes invalid.

        """
        order = self._transport.get_order(order_url)
        for attempt in range(self._poll_attempts):
            if order.status == "ready":
                order = self._transport.finalize(order, csr_pem)
            if order.status == "valid" and order.certificate_url:
                break
            if order.status == "invalid":
                raise ProviderError(_problem_detail(order.error, "Order became invalid"))
            if attempt + 1 < self._poll_attempts:
                self._sleep(self._poll_interval)
                order = self._transport.get_order(order_url)
        else:
            msg = "The certificate authority is still processing the order"
            raise ChallengeError(msg, retryable=True)
        chain = split_chain(self._transport.download(order.certificate_url))
        log.info("Downloaded certificate serial %s (expires %s)", chain.serial_number, chain.not_after)
        return chain

    def complete(self, order_url: str, csr_pem: str, challenge_type: ChallengeType) -> IssuedChain:
        """Validate then finalize; the challenge response must already be reachable."""
        self.validate(order_url, challenge_type)
        return self.finalize(order_url, csr_pem)

    # -- revocation -----------------------------------------------------------

    def revoke(self, certificate_pem: str) -> None:
        self._transport.revoke(certificate_pem)


def _problem_detail(error: dict | None, fallback: str) -> str:
    if error and error.get("detail"):
        return str(error["detail"])
    return fallback
