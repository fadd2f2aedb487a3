"""Challenge strategies: how each challenge type is fulfilled.

* HTTP-01: the key authorization is persisted and served at
  ``/.well-known/acme-challenge/<token>`` by the web layer.
* DNS-01: the domain owner publishes ``_acme-challenge.<host>`` TXT with
  ``base64url(sha256(key_authorization))``.  Before asking the CA to
  validate, the record is looked up locally so an unpropagated record
  is reported as "try again later" rather than burning a CA attempt.
"""

from __future__ import annotations

import abc
import logging
from typing import TYPE_CHECKING, ClassVar

import dns.exception
import dns.resolver

from domainssl.acme.jws import dns_txt_value
from domainssl.core.types import ChallengeType

if TYPE_CHECKING:
    from domainssl.config.settings import Dns01Settings

log = logging.getLogger(__name__)

DNS01_PREFIX = "_acme-challenge."


class ChallengeError(Exception):
    """Raised when a challenge is not (yet) satisfied.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the caller should try again later.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class ChallengeStrategy(abc.ABC):
    """Base class for challenge fulfillment strategies."""

    challenge_type: ClassVar[ChallengeType]

    @abc.abstractmethod
    def prepare(self, hostname: str, token: str, key_authz: str) -> dict[str, str | None]:
        """Return the certificate columns that describe the prepared challenge."""

    def check_ready(self, hostname: str, expected: str | None) -> None:  # noqa: B027
        """Raise :class:`ChallengeError` if the response is not in place yet."""


class Http01Strategy(ChallengeStrategy):
    challenge_type = ChallengeType.HTTP01

    def prepare(self, hostname: str, token: str, key_authz: str) -> dict[str, str | None]:
        return {"challenge_token": token, "challenge_key_auth": key_authz}


class Dns01Strategy(ChallengeStrategy):
    """DNS-01 with a local propagation pre-check.

    Parameters
    ----------
    resolver:
        Object with a dnspython-style ``resolve(name, rdtype)`` method.
        Built from *settings* when omitted.
    settings:
        Optional :class:`Dns01Settings` (resolvers, timeout, precheck).

    """

    challenge_type = ChallengeType.DNS01

    def __init__(self, resolver=None, settings: Dns01Settings | None = None) -> None:
        self._precheck = getattr(settings, "precheck", True)
        if resolver is None:
            nameservers = getattr(settings, "resolvers", ())
            resolver = dns.resolver.Resolver(configure=not nameservers)
            if nameservers:
                resolver.nameservers = list(nameservers)
            resolver.lifetime = getattr(settings, "timeout_seconds", 10)
        self._resolver = resolver

    @staticmethod
    def record_name(hostname: str) -> str:
        return f"{DNS01_PREFIX}{hostname}"

    def prepare(self, hostname: str, token: str, key_authz: str) -> dict[str, str | None]:
        return {"challenge_token": token, "dns_txt_value": dns_txt_value(key_authz)}

    def lookup(self, hostname: str) -> list[str]:
        """Return every TXT value at the challenge name (empty if none)."""
        query_name = self.record_name(hostname)
        try:
            answer = self._resolver.resolve(query_name, "TXT")
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return []
        except dns.resolver.NoNameservers as exc:
            msg = f"No nameservers available for {query_name} (SERVFAIL or all refused)"
            raise ChallengeError(msg, retryable=True) from exc
        except dns.exception.Timeout as exc:
            msg = f"DNS query for {query_name} timed out"
            raise ChallengeError(msg, retryable=True) from exc
        except dns.exception.DNSException as exc:
            msg = f"DNS error querying {query_name}: {exc}"
            raise ChallengeError(msg, retryable=True) from exc
        return [b"".join(rdata.strings).decode("utf-8", errors="replace") for rdata in answer]

    def check_ready(self, hostname: str, expected: str | None) -> None:
        if not self._precheck:
            return
        query_name = self.record_name(hostname)
        values = self.lookup(hostname)
        if not values:
            msg = (
                f"TXT record {query_name} not found or not propagated yet; "
                "wait a few minutes and try again"
            )
            raise ChallengeError(msg, retryable=True)
        if expected not in values:
            log.debug("TXT %s has %d value(s), none matching", query_name, len(values))
            msg = f"TXT record {query_name} found but its value does not match yet"
            raise ChallengeError(msg, retryable=True)
        log.debug("TXT record %s is visible", query_name)


def build_strategies(resolver=None, dns01_settings: Dns01Settings | None = None) -> dict:
    return {
        ChallengeType.HTTP01: Http01Strategy(),
        ChallengeType.DNS01: Dns01Strategy(resolver, dns01_settings),
    }
