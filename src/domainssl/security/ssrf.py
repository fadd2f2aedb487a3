"""Outbound-request pre-flight guard against internal-network probing.

Before the ACME client asks a CA to contact a customer hostname, the
hostname is resolved (A and AAAA) and rejected when any address falls
inside private, loopback, link-local or unique-local space.

Resolution failures pass: a name that does not resolve cannot be used to
reach an internal address, and the CA will fail the challenge anyway.
"""

from __future__ import annotations

import ipaddress
import logging
from typing import TYPE_CHECKING

import dns.exception
import dns.resolver

from domainssl.core.errors import SsrfRejected

if TYPE_CHECKING:
    from domainssl.config.settings import SsrfSettings

log = logging.getLogger(__name__)

BLOCKED_NETWORKS: tuple[ipaddress.IPv4Network | ipaddress.IPv6Network, ...] = (
    ipaddress.ip_network("127.0.0.0/8"),
    ipaddress.ip_network("0.0.0.0/8"),
    ipaddress.ip_network("10.0.0.0/8"),
    ipaddress.ip_network("169.254.0.0/16"),
    ipaddress.ip_network("192.168.0.0/16"),
    ipaddress.ip_network("172.16.0.0/12"),
    ipaddress.ip_network("::1/128"),
    ipaddress.ip_network("fc00::/7"),
)


def is_blocked_address(address: str) -> bool:
    """Return ``True`` if *address* lies in a disallowed network."""
    try:
        ip = ipaddress.ip_address(address)
    except ValueError:
        return False
    # IPv4-mapped IPv6 (::ffff:10.0.0.1) is checked as its IPv4 form
    mapped = getattr(ip, "ipv4_mapped", None)
    if mapped is not None:
        ip = mapped
    return any(ip.version == net.version and ip in net for net in BLOCKED_NETWORKS)


def build_resolver(settings: SsrfSettings | None = None) -> dns.resolver.Resolver:
    nameservers = getattr(settings, "resolvers", ())
    # configured nameservers replace /etc/resolv.conf entirely
    resolver = dns.resolver.Resolver(configure=not nameservers)
    if nameservers:
        resolver.nameservers = list(nameservers)
    resolver.lifetime = getattr(settings, "timeout_seconds", 5)
    return resolver


class SsrfGuard:
    """Reject hostnames that resolve into internal address space.

    Parameters
    ----------
    resolver:
        Object with a dnspython-style ``resolve(name, rdtype)`` method.
        A configured :class:`dns.resolver.Resolver` is built when omitted.
    settings:
        Optional :class:`SsrfSettings` (resolvers, timeout) used to build
        the default resolver.

    """

    def __init__(self, resolver=None, settings: SsrfSettings | None = None) -> None:
        self._resolver = resolver if resolver is not None else build_resolver(settings)

    def resolve_addresses(self, hostname: str) -> list[str]:
        """Resolve A and AAAA independently; a failing family contributes nothing."""
        addresses: list[str] = []
        for rdtype in ("A", "AAAA"):
            try:
                answer = self._resolver.resolve(hostname, rdtype)
            except (dns.exception.DNSException, OSError) as exc:
                log.debug("SSRF guard: %s lookup for %s failed: %s", rdtype, hostname, exc)
                continue
            addresses.extend(rdata.address for rdata in answer)
        return addresses

    def assert_not_internal(self, hostname: str) -> None:
        """Raise :class:`SsrfRejected` if *hostname* resolves to a blocked address."""
        for address in self.resolve_addresses(hostname):
            if is_blocked_address(address):
                log.warning(
                    "SSRF guard rejected %s: resolves to internal address %s",
                    hostname,
                    address,
                    extra={"event": "ssrf_rejected", "domain": hostname},
                )
                msg = f"Domain {hostname} resolves to a disallowed address ({address})"
                raise SsrfRejected(msg)
