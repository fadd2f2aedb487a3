"""Abstract ACME transport and the value objects it exchanges.

A transport speaks to one certificate authority: the real RFC 8555
protocol (:class:`~domainssl.acme.protocol.AcmeProtocol`) or the local
simulation (:class:`~domainssl.acme.sandbox.SandboxTransport`).  The
challenge client drives either one through this interface.

Transport failures are raised as
:class:`~domainssl.core.errors.ProviderError`.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class AcmeOrder:
    """An ACME order resource (RFC 8555 §7.1.3).

    Attributes
    ----------
    url:
        Order URL, persisted so a later call can re-drive the order.
    status:
        ``pending``, ``ready``, ``processing``, ``valid`` or ``invalid``.
    finalize_url:
        Where the CSR is submitted.
    authorizations:
        Authorization URLs (one per identifier; this system uses one).
    certificate_url:
        Set once the order is ``valid``.
    error:
        Problem document attached to an invalid order, if any.

    """

    url: str
    status: str
    finalize_url: str
    authorizations: tuple[str, ...] = ()
    certificate_url: str | None = None
    error: dict[str, Any] | None = None


@dataclass(frozen=True)
class AcmeChallenge:
    """A single challenge inside an authorization."""

    url: str
    type: str
    token: str
    status: str
    error: dict[str, Any] | None = field(default=None)


class AcmeTransport(abc.ABC):
    """Base class for certificate-authority transports."""

    #: ``"sandbox"`` for simulated issuance, ``"live"`` otherwise.
    mode: str = "live"

    @property
    @abc.abstractmethod
    def account_jwk(self) -> dict[str, str]:
        """Public JWK of the account key; used for key authorizations."""

    @abc.abstractmethod
    def new_order(self, hostname: str) -> AcmeOrder:
        """Create an order for a single DNS identifier."""

    @abc.abstractmethod
    def get_order(self, order_url: str) -> AcmeOrder:
        """Fetch the current state of an order."""

    @abc.abstractmethod
    def get_challenges(self, authorization_url: str) -> list[AcmeChallenge]:
        """Fetch every challenge offered by an authorization."""

    @abc.abstractmethod
    def get_challenge(self, challenge_url: str) -> AcmeChallenge:
        """Fetch the current state of one challenge."""

    @abc.abstractmethod
    def answer_challenge(self, challenge_url: str) -> AcmeChallenge:
        """Tell the CA the challenge response is in place."""

    @abc.abstractmethod
    def finalize(self, order: AcmeOrder, csr_pem: str) -> AcmeOrder:
        """Submit the CSR for a ``ready`` order."""

    @abc.abstractmethod
    def download(self, certificate_url: str) -> str:
        """Download the PEM chain (leaf first)."""

    @abc.abstractmethod
    def revoke(self, certificate_pem: str) -> None:
        """Revoke a previously issued certificate."""
