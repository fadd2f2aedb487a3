"""Certificate lifecycle state machine.

Defines the valid status transitions for :class:`DomainCertificate`
rows.  Every write site enforces them via :func:`assert_transition`.

Usage::

    from domainssl.core.state import CERTIFICATE_TRANSITIONS, assert_transition
    from domainssl.core.types import CertificateStatus

    assert_transition(
        CertificateStatus.PENDING_DNS01, CertificateStatus.ISSUED,
        CERTIFICATE_TRANSITIONS,
    )
"""

from __future__ import annotations

import logging

from domainssl.core.types import CertificateStatus

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# pending → issued/failed, issued → issued (renew)/revoked/expired/failed.
# expired, failed & revoked are terminal.
# ---------------------------------------------------------------------------

CERTIFICATE_TRANSITIONS: dict[CertificateStatus, frozenset[CertificateStatus]] = {
    CertificateStatus.PENDING_HTTP01: frozenset(
        {CertificateStatus.ISSUED, CertificateStatus.FAILED}
    ),
    CertificateStatus.PENDING_DNS01: frozenset(
        {
            CertificateStatus.PENDING_DNS01,  # TXT not yet visible
            CertificateStatus.ISSUED,
            CertificateStatus.FAILED,
        }
    ),
    CertificateStatus.ISSUED: frozenset(
        {
            CertificateStatus.ISSUED,  # renewal
            CertificateStatus.REVOKED,
            CertificateStatus.EXPIRED,
            CertificateStatus.FAILED,
        }
    ),
    CertificateStatus.EXPIRED: frozenset(),
    CertificateStatus.FAILED: frozenset(),
    CertificateStatus.REVOKED: frozenset(),
}


def assert_transition(
    current: CertificateStatus,
    target: CertificateStatus,
    table: dict = CERTIFICATE_TRANSITIONS,
) -> None:
    """Raise :class:`ValueError` if *current* → *target* is not allowed.

    Parameters
    ----------
    current:
        The current status of the certificate.
    target:
        The desired new status.
    table:
        Transition table, :data:`CERTIFICATE_TRANSITIONS` by default.

    """
    allowed = table.get(current)
    if allowed is None:
        msg = f"Unknown status {current!r}"
        raise ValueError(msg)
    if target not in allowed:
        msg = (
            f"Invalid transition {current.value!r} -> {target.value!r}; "
            f"allowed targets: {sorted(s.value for s in allowed) or '(terminal)'}"
        )
        raise ValueError(msg)


def log_transition(
    resource_id,
    from_status,
    to_status,
    *,
    reason: str | None = None,
) -> None:
    """Emit a structured log entry for a certificate state transition."""
    extra = {
        "event": "state_transition",
        "resource_type": "certificate",
        "resource_id": str(resource_id),
        "from_status": from_status.value if hasattr(from_status, "value") else str(from_status),
        "to_status": to_status.value if hasattr(to_status, "value") else str(to_status),
    }
    if reason:
        extra["reason"] = reason
    log.info(
        "certificate %s: %s -> %s%s",
        resource_id,
        extra["from_status"],
        extra["to_status"],
        f" ({reason})" if reason else "",
        extra=extra,
    )
