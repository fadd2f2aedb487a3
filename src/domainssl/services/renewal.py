"""Automatic renewal sweep for certificates nearing expiry.

One :meth:`RenewalSweeper.run` call is one pass: it is triggered by the
``renew-due`` CLI command or the internal cron endpoint, never by a
background thread.  Certificates are processed soonest-expiry first, at
most ``renewal.batch_size`` per pass.  A certificate whose previous
attempt failed waits ``backoff_base_hours * 2**(attempts - 1)`` hours
before the next one, and drops out of the sweep after
``renewal.max_attempts``.

Usage::

    sweeper = RenewalSweeper(cert_service, cert_repo, domain_repo, settings.renewal)
    summary = sweeper.run()
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from domainssl.core.errors import DomainSslError, ManualRenewalRequired

if TYPE_CHECKING:
    from collections.abc import Callable

    from domainssl.config.settings import RenewalSettings
    from domainssl.models.certificate import DomainCertificate
    from domainssl.repositories.certificate import CertificateRepository
    from domainssl.repositories.domain import DomainRepository
    from domainssl.services.certificate import CertificateService

log = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


def next_attempt_at(cert: DomainCertificate, backoff_base_hours: float) -> datetime | None:
    """Earliest time the next renewal attempt may run, ``None`` if not throttled."""
    if cert.renewal_attempts <= 0 or cert.last_attempt_at is None:
        return None
    delay = timedelta(hours=backoff_base_hours * 2 ** (cert.renewal_attempts - 1))
    return cert.last_attempt_at + delay


class RenewalSweeper:
    """Renew ISSUED certificates that expire within the threshold."""

    def __init__(
        self,
        certificate_service: CertificateService,
        certificate_repo: CertificateRepository,
        domain_repo: DomainRepository,
        settings: RenewalSettings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._service = certificate_service
        self._certs = certificate_repo
        self._domains = domain_repo
        self._settings = settings
        self._clock = clock

    def run(self) -> dict[str, Any]:
        """Run one pass and return ``{checked, renewed, failed, skipped, errors}``."""
        now = self._clock()
        cutoff = now + timedelta(days=self._settings.threshold_days)
        due = self._certs.find_due_for_renewal(
            cutoff,
            max_attempts=self._settings.max_attempts,
            limit=self._settings.batch_size,
        )
        log.info(
            "Renewal sweep: %d certificate(s) expire before %s",
            len(due),
            cutoff.isoformat(),
        )

        renewed = failed = skipped = 0
        errors: list[dict[str, str]] = []
        for cert in due:
            domain = self._domains.find_by_id(cert.domain_id)
            name = domain.domain if domain is not None else cert.domain_id

            not_before = next_attempt_at(cert, self._settings.backoff_base_hours)
            if not_before is not None and now < not_before:
                log.debug("Renewal of %s backed off until %s", name, not_before.isoformat())
                skipped += 1
                continue

            try:
                self._service.renew(cert.id)
            except ManualRenewalRequired:
                log.info("Certificate for %s needs manual DNS-01 renewal", name)
                skipped += 1
            except DomainSslError as exc:
                failed += 1
                errors.append({"domain": name, "error": exc.detail})
                log.warning("Auto-renewal failed for %s: %s", name, exc.detail)
            else:
                renewed += 1
                log.info("Renewed certificate for %s", name)

        summary = {
            "checked": len(due),
            "renewed": renewed,
            "failed": failed,
            "skipped": skipped,
            "errors": errors,
        }
        log.info(
            "Renewal sweep done: checked=%d renewed=%d failed=%d skipped=%d",
            summary["checked"],
            renewed,
            failed,
            skipped,
            extra={"event": "renewal_sweep"},
        )
        return summary
