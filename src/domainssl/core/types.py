"""Enumerated types for the domainssl persistence layer.

All enums inherit from :class:`enum.StrEnum` so their ``.value`` is a
plain string that sqlite stores as TEXT and JSON round-trips naturally.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Certificate
# ---------------------------------------------------------------------------


class CertificateStatus(StrEnum):
    PENDING_HTTP01 = "PENDING_HTTP01"
    PENDING_DNS01 = "PENDING_DNS01"
    ISSUED = "ISSUED"
    EXPIRED = "EXPIRED"
    FAILED = "FAILED"
    REVOKED = "REVOKED"


# A domain may hold at most one certificate in any of these states.
ACTIVE_STATUSES: frozenset[CertificateStatus] = frozenset(
    {
        CertificateStatus.PENDING_HTTP01,
        CertificateStatus.PENDING_DNS01,
        CertificateStatus.ISSUED,
    }
)

PENDING_STATUSES: frozenset[CertificateStatus] = frozenset(
    {
        CertificateStatus.PENDING_HTTP01,
        CertificateStatus.PENDING_DNS01,
    }
)


# ---------------------------------------------------------------------------
# Challenge types
# ---------------------------------------------------------------------------


class ChallengeType(StrEnum):
    HTTP01 = "HTTP01"
    DNS01 = "DNS01"

    @property
    def acme_name(self) -> str:
        """The RFC 8555 challenge type string (``http-01`` / ``dns-01``)."""
        return "http-01" if self is ChallengeType.HTTP01 else "dns-01"

    @property
    def pending_status(self) -> CertificateStatus:
        if self is ChallengeType.HTTP01:
            return CertificateStatus.PENDING_HTTP01
        return CertificateStatus.PENDING_DNS01


# ---------------------------------------------------------------------------
# Domain
# ---------------------------------------------------------------------------


class SslMode(StrEnum):
    NONE = "NONE"
    LETS_ENCRYPT = "LETS_ENCRYPT"
    EXTERNAL = "EXTERNAL"


class BrowserRuleType(StrEnum):
    ALLOW = "ALLOW"
    BLOCK = "BLOCK"


# ---------------------------------------------------------------------------
# Webhook events
# ---------------------------------------------------------------------------


class WebhookEvent(StrEnum):
    CERT_ISSUED = "cert.issued"
    CERT_RENEWED = "cert.renewed"
    CERT_REVOKED = "cert.revoked"
    DOMAIN_ADDED = "domain.added"
    DOMAIN_REMOVED = "domain.removed"


# Events that carry the issuance mode (live / sandbox) in their payload.
MODE_EVENTS: frozenset[WebhookEvent] = frozenset(
    {WebhookEvent.CERT_ISSUED, WebhookEvent.CERT_RENEWED}
)
