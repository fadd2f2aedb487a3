"""Certificate lifecycle service -- issue, complete, renew, revoke.

Owns every write to ``domain_certificates``.  Each status change is
checked against :data:`~domainssl.core.state.CERTIFICATE_TRANSITIONS`,
applied as a compare-and-set on the current status and logged with
:func:`~domainssl.core.state.log_transition`.  Webhook notifications and
HTTP-01 completion are submitted to executors only after the owning
transaction has committed.
"""

from __future__ import annotations

import logging
import sqlite3
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from domainssl.acme.challenges import DNS01_PREFIX, ChallengeError
from domainssl.core.errors import (
    Conflict,
    DomainSslError,
    InvalidState,
    ManualRenewalRequired,
    MissingData,
    NotFound,
    PreconditionFailed,
    ProviderError,
    RateLimited,
    ValidationError,
)
from domainssl.core.state import assert_transition, log_transition
from domainssl.core.types import (
    PENDING_STATUSES,
    CertificateStatus,
    ChallengeType,
    SslMode,
    WebhookEvent,
)
from domainssl.models.certificate import (
    CertificateBundle,
    CompletionResult,
    DomainCertificate,
    IssuanceResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Executor

    from domainssl.acme.client import AcmeChallengeClient, IssuedChain
    from domainssl.config.settings import RenewalSettings
    from domainssl.crypto.envelope import EnvelopeCipher
    from domainssl.db.database import Database
    from domainssl.models.domain import CustomDomain
    from domainssl.notify.webhook import WebhookNotifier
    from domainssl.repositories.certificate import CertificateRepository
    from domainssl.repositories.domain import DomainRepository
    from domainssl.services.rate_limit import IssuanceRateLimiter

log = logging.getLogger(__name__)

CANCELLED_REASON = "Certificate issuance cancelled by user"
REVOKED_REASON = "Certificate revoked by user"
MANUAL_RENEWAL_REASON = "DNS-01 certificate requires manual renewal via domain settings."


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CertificateService:
    """Drive custom-domain certificates through their lifecycle.

    Parameters
    ----------
    db:
        Database handle; multi-row writes share one transaction.
    certificate_repo, domain_repo:
        Table access.
    acme_client:
        Opens and completes ACME orders (live or sandbox).
    cipher:
        Encrypts per-certificate private keys at rest.
    notifier:
        Webhook notifier for ``cert.*`` events.
    renewal_settings:
        Threshold and attempt ceiling used by :meth:`renew` and
        :meth:`health`.
    rate_limiter:
        Optional weekly issuance budget; not applied in sandbox mode.
    executor:
        Runs HTTP-01 completion in the background.  A private pool is
        created when omitted.
    clock:
        Returns the current aware UTC time.

    """

    def __init__(  # noqa: PLR0913
        self,
        db: Database,
        certificate_repo: CertificateRepository,
        domain_repo: DomainRepository,
        acme_client: AcmeChallengeClient,
        cipher: EnvelopeCipher,
        notifier: WebhookNotifier,
        renewal_settings: RenewalSettings,
        *,
        rate_limiter: IssuanceRateLimiter | None = None,
        executor: Executor | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._certs = certificate_repo
        self._domains = domain_repo
        self._acme = acme_client
        self._cipher = cipher
        self._notifier = notifier
        self._renewal = renewal_settings
        self._rate_limiter = rate_limiter
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=4,
            thread_name_prefix="acme-complete",
        )
        self._clock = clock

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_certificate(self, cert_id: str) -> DomainCertificate:
        cert = self._certs.find_by_id(cert_id)
        if cert is None:
            msg = f"Certificate {cert_id} not found"
            raise NotFound(msg)
        return cert

    def list_for_domain(self, domain_id: str) -> list[DomainCertificate]:
        return self._certs.find_by_domain(domain_id)

    def _get_domain(self, domain_id: str) -> CustomDomain:
        domain = self._domains.find_by_id(domain_id)
        if domain is None:
            msg = f"Domain {domain_id} not found"
            raise NotFound(msg)
        return domain

    def get_active_bundle(self, hostname: str) -> CertificateBundle | None:
        """Return decrypted key and chain for the proxy agent, or ``None``.

        Only domains in ``LETS_ENCRYPT`` mode with an issued certificate
        have a bundle.  A tampered key raises
        :class:`~domainssl.core.errors.CryptoTamperError`.
        """
        domain = self._domains.find_by_domain(hostname.strip().lower())
        if domain is None or domain.ssl_mode is not SslMode.LETS_ENCRYPT:
            return None
        cert = self._certs.find_latest_issued(domain.id)
        if cert is None or cert.expires_at is None:
            return None
        return CertificateBundle(
            private_key=self._cipher.decrypt_secret(cert.private_key_enc),
            certificate=cert.certificate_pem,
            full_chain=cert.full_chain_pem or cert.certificate_pem,
            expires_at=cert.expires_at,
        )

    def challenge_response(self, hostname: str, token: str) -> str | None:
        """Key authorization to serve for an HTTP-01 *token* on *hostname*."""
        cert = self._certs.find_http01_challenge(hostname.strip().lower(), token)
        if cert is None:
            return None
        return cert.challenge_key_auth

    def health(self) -> dict[str, Any]:
        """Counts per status plus issued certificates inside the renewal window."""
        counts = self._certs.count_by_status()
        cutoff = self._clock() + timedelta(days=self._renewal.threshold_days)
        return {
            "total": sum(counts.values()),
            "issued": counts[CertificateStatus.ISSUED],
            "expiring_soon": self._certs.count_expiring(cutoff),
            "expired": counts[CertificateStatus.EXPIRED],
            "pending": sum(counts[s] for s in PENDING_STATUSES),
            "failed": counts[CertificateStatus.FAILED],
            "revoked": counts[CertificateStatus.REVOKED],
        }

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_certificate(
        self,
        domain_id: str,
        challenge_type: ChallengeType | str,
    ) -> IssuanceResult:
        """Open an ACME order and persist a pending certificate.

        HTTP-01 completion is queued on the background executor.  DNS-01
        returns the TXT record the domain owner must publish.

        Raises
        ------
        NotFound
            Unknown domain.
        PreconditionFailed
            Domain not verified.
        Conflict
            An active or pending certificate already exists.
        ValidationError
            Unknown challenge type.
        SsrfRejected, RateLimited, ProviderError
            Raised before anything is persisted.

        """
        domain = self._get_domain(domain_id)
        if not domain.verified:
            msg = f"Domain {domain.domain} must be verified before requesting a certificate"
            raise PreconditionFailed(msg)
        if self._certs.find_active_for_domain(domain.id) is not None:
            msg = f"An active or pending certificate already exists for {domain.domain}"
            raise Conflict(msg)
        challenge_type = _parse_challenge_type(challenge_type)

        prepared = self._acme.begin_order(
            domain.domain,
            challenge_type,
            before_order=self._budget_check(domain.domain),
        )

        now = self._clock()
        status = challenge_type.pending_status
        cert = DomainCertificate(
            id=str(uuid4()),
            domain_id=domain.id,
            status=status,
            challenge_type=challenge_type,
            private_key_enc=self._cipher.encrypt(prepared.private_key.reveal()),
            csr_pem=prepared.csr_pem,
            acme_order_url=prepared.order_url,
            challenge_token=prepared.fields.get("challenge_token"),
            challenge_key_auth=prepared.fields.get("challenge_key_auth"),
            dns_txt_value=prepared.fields.get("dns_txt_value"),
            created_at=now,
            updated_at=now,
        )
        try:
            self._certs.create(cert)
        except sqlite3.IntegrityError as exc:
            msg = f"An active or pending certificate already exists for {domain.domain}"
            raise Conflict(msg) from exc
        log_transition(cert.id, "none", status, reason=f"issue {challenge_type.acme_name}")

        if challenge_type is ChallengeType.HTTP01:
            self._submit_completion(cert.id)
            return IssuanceResult(cert_id=cert.id, status=status)
        return IssuanceResult(
            cert_id=cert.id,
            status=status,
            txt_name=DNS01_PREFIX + domain.domain,
            txt_value=cert.dns_txt_value,
        )

    def _budget_check(self, hostname: str) -> Callable[[], None] | None:
        if self._rate_limiter is None or self._acme.is_sandbox:
            return None
        limiter = self._rate_limiter
        return lambda: limiter.check(hostname)

    def _submit_completion(self, cert_id: str) -> None:
        try:
            self._executor.submit(self._complete_in_background, cert_id)
        except RuntimeError:
            log.warning("Completion executor shut down; %s left pending", cert_id)

    def _complete_in_background(self, cert_id: str) -> None:
        try:
            result = self.complete_http01(cert_id)
        except DomainSslError as exc:
            log.warning("Background completion of %s failed: %s", cert_id, exc.detail)
            return
        except Exception:
            log.exception("Background completion of %s crashed", cert_id)
            return
        if result.retry:
            log.info("Certificate %s still pending: %s", cert_id, result.message)

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def complete_http01(self, cert_id: str) -> CompletionResult:
        """Poll the CA for a pending HTTP-01 certificate and finalize it."""
        cert = self.get_certificate(cert_id)
        if cert.status is not CertificateStatus.PENDING_HTTP01:
            msg = f"Certificate is not awaiting HTTP-01 validation (status {cert.status})"
            raise InvalidState(msg)
        return self._complete(cert)

    def complete_dns01(self, cert_id: str) -> CompletionResult:
        """Verify a published DNS-01 TXT record and finalize the certificate.

        Returns a retryable :class:`CompletionResult` while the record is
        not visible or the CA is still working; the status stays
        ``PENDING_DNS01``.
        """
        cert = self.get_certificate(cert_id)
        if cert.status is not CertificateStatus.PENDING_DNS01:
            msg = f"Certificate is not awaiting DNS-01 validation (status {cert.status})"
            raise InvalidState(msg)
        return self._complete(cert)

    def _complete(self, cert: DomainCertificate) -> CompletionResult:
        domain = self._get_domain(cert.domain_id)
        if not cert.acme_order_url:
            msg = f"Certificate {cert.id} has no ACME order to complete"
            raise MissingData(msg)
        try:
            self._acme.check_ready(domain.domain, cert.challenge_type, cert.dns_txt_value)
            chain = self._acme.complete(cert.acme_order_url, cert.csr_pem, cert.challenge_type)
        except ChallengeError as exc:
            if exc.retryable:
                log.info("Challenge for %s not ready: %s", domain.domain, exc.detail)
                return CompletionResult(cert.id, cert.status, retry=True, message=exc.detail)
            self._mark_failed(cert, exc.detail)
            raise ProviderError(exc.detail) from exc
        except ProviderError as exc:
            if not exc.retryable:
                self._mark_failed(cert, exc.detail)
            raise

        issued = self._mark_issued(cert, domain, chain)
        return CompletionResult(issued.id, issued.status)

    def _mark_issued(
        self,
        cert: DomainCertificate,
        domain: CustomDomain,
        chain: IssuedChain,
    ) -> DomainCertificate:
        assert_transition(cert.status, CertificateStatus.ISSUED)
        with self._db.transaction():
            updated = self._certs.update_if_status(
                cert.id,
                cert.status,
                {
                    "status": CertificateStatus.ISSUED,
                    "certificate_pem": chain.leaf_pem,
                    "full_chain_pem": chain.full_chain_pem,
                    "issued_at": self._clock(),
                    "expires_at": chain.not_after,
                    "acme_order_url": None,
                    "challenge_token": None,
                    "challenge_key_auth": None,
                    "dns_txt_value": None,
                    "last_error": None,
                },
            )
            if updated is None:
                msg = f"Certificate {cert.id} changed state while it was being completed"
                raise InvalidState(msg)
            self._domains.touch_fields(domain.id, {"ssl_mode": SslMode.LETS_ENCRYPT.value})
        log_transition(cert.id, cert.status, CertificateStatus.ISSUED, reason=f"serial {chain.serial_number}")
        self._notifier.notify(WebhookEvent.CERT_ISSUED, domain.domain, cert.id)
        return updated

    def _mark_failed(self, cert: DomainCertificate, reason: str) -> DomainCertificate | None:
        assert_transition(cert.status, CertificateStatus.FAILED)
        updated = self._certs.update_if_status(
            cert.id,
            cert.status,
            {
                "status": CertificateStatus.FAILED,
                "last_error": reason,
                "challenge_token": None,
                "challenge_key_auth": None,
                "dns_txt_value": None,
            },
        )
        if updated is not None:
            log_transition(cert.id, cert.status, CertificateStatus.FAILED, reason=reason)
        return updated

    # ------------------------------------------------------------------
    # Cancel / revoke / delete
    # ------------------------------------------------------------------

    def cancel(self, cert_id: str) -> DomainCertificate:
        cert = self.get_certificate(cert_id)
        if cert.status not in PENDING_STATUSES:
            msg = f"Only pending certificates can be cancelled (status {cert.status})"
            raise InvalidState(msg)
        updated = self._mark_failed(cert, CANCELLED_REASON)
        if updated is None:
            msg = f"Certificate {cert_id} is no longer pending"
            raise InvalidState(msg)
        return updated

    def revoke(self, cert_id: str) -> DomainCertificate:
        """Revoke an issued certificate with the CA and mark it ``REVOKED``.

        The CA call is skipped in sandbox mode.  A CA failure leaves the
        certificate untouched.
        """
        cert = self.get_certificate(cert_id)
        if cert.status is not CertificateStatus.ISSUED:
            msg = f"Can only revoke issued certificates (status {cert.status})"
            raise InvalidState(msg)
        if not cert.certificate_pem:
            msg = f"Certificate {cert_id} has no certificate data to revoke"
            raise MissingData(msg)
        domain = self._get_domain(cert.domain_id)

        if not self._acme.is_sandbox:
            self._acme.revoke(cert.certificate_pem)

        assert_transition(cert.status, CertificateStatus.REVOKED)
        updated = self._certs.update_if_status(
            cert.id,
            CertificateStatus.ISSUED,
            {"status": CertificateStatus.REVOKED, "last_error": REVOKED_REASON},
        )
        if updated is None:
            msg = f"Certificate {cert_id} changed state during revocation"
            raise InvalidState(msg)
        log_transition(cert.id, cert.status, CertificateStatus.REVOKED, reason=REVOKED_REASON)
        self._notifier.notify(WebhookEvent.CERT_REVOKED, domain.domain, cert.id)
        return updated

    def delete_all_for_domain(self, domain_id: str) -> int:
        """Remove every certificate row of a domain so a fresh one can be issued."""
        domain = self._get_domain(domain_id)
        count = self._certs.delete_for_domain(domain.id)
        log.info("Deleted %d certificate(s) for %s", count, domain.domain)
        return count

    # ------------------------------------------------------------------
    # Renewal
    # ------------------------------------------------------------------

    def renew(self, cert_id: str) -> DomainCertificate:
        """Re-issue an ISSUED HTTP-01 certificate in place.

        The attempt is counted before anything else and survives a
        failure.  On failure the certificate stays ``ISSUED`` (still
        served) with ``last_error`` set, unless the error is permanent or
        the attempt ceiling is reached, in which case it moves to
        ``FAILED`` so a fresh issuance becomes possible.

        Raises
        ------
        InvalidState
            Not ``ISSUED``.
        ManualRenewalRequired
            DNS-01 certificates need the owner to publish a new record.
        ProviderError, SsrfRejected, RateLimited
            The renewal order failed.

        """
        cert = self.get_certificate(cert_id)
        if cert.status is not CertificateStatus.ISSUED:
            msg = f"Only issued certificates can be renewed (status {cert.status})"
            raise InvalidState(msg)
        domain = self._get_domain(cert.domain_id)

        counted = self._certs.record_renewal_attempt(cert.id, self._clock())
        if counted is None:
            msg = f"Certificate {cert_id} changed state before renewal"
            raise InvalidState(msg)
        cert = counted

        if cert.challenge_type is ChallengeType.DNS01:
            self._certs.update_if_status(
                cert.id,
                CertificateStatus.ISSUED,
                {"last_error": MANUAL_RENEWAL_REASON},
            )
            log.info("Renewal of %s skipped: DNS-01 needs manual renewal", domain.domain)
            raise ManualRenewalRequired(MANUAL_RENEWAL_REASON)

        try:
            prepared = self._acme.begin_order(
                domain.domain,
                ChallengeType.HTTP01,
                before_order=self._budget_check(domain.domain),
            )
            # the challenge route serves tokens of issued rows too
            self._certs.update_if_status(
                cert.id,
                CertificateStatus.ISSUED,
                {
                    "challenge_token": prepared.fields.get("challenge_token"),
                    "challenge_key_auth": prepared.fields.get("challenge_key_auth"),
                },
            )
            chain = self._acme.complete(prepared.order_url, prepared.csr_pem, ChallengeType.HTTP01)
        except ChallengeError as exc:
            self._record_renewal_failure(cert, exc.detail, retryable=exc.retryable)
            raise ProviderError(exc.detail, retryable=exc.retryable) from exc
        except ProviderError as exc:
            self._record_renewal_failure(cert, exc.detail, retryable=exc.retryable)
            raise
        except RateLimited as exc:
            self._record_renewal_failure(cert, exc.detail, retryable=True)
            raise
        except DomainSslError as exc:
            self._record_renewal_failure(cert, exc.detail, retryable=False)
            raise

        assert_transition(cert.status, CertificateStatus.ISSUED)
        updated = self._certs.update_if_status(
            cert.id,
            CertificateStatus.ISSUED,
            {
                "private_key_enc": self._cipher.encrypt(prepared.private_key.reveal()),
                "csr_pem": prepared.csr_pem,
                "certificate_pem": chain.leaf_pem,
                "full_chain_pem": chain.full_chain_pem,
                "issued_at": self._clock(),
                "expires_at": chain.not_after,
                "renewal_attempts": 0,
                "last_error": None,
                "challenge_token": None,
                "challenge_key_auth": None,
                "acme_order_url": None,
            },
        )
        if updated is None:
            msg = f"Certificate {cert_id} changed state during renewal"
            raise InvalidState(msg)
        log_transition(cert.id, cert.status, CertificateStatus.ISSUED, reason="renewed")
        self._notifier.notify(WebhookEvent.CERT_RENEWED, domain.domain, cert.id)
        return updated

    def _record_renewal_failure(
        self,
        cert: DomainCertificate,
        detail: str,
        *,
        retryable: bool,
    ) -> None:
        reason = f"Renewal failed: {detail}"
        fields: dict[str, Any] = {
            "last_error": reason,
            "challenge_token": None,
            "challenge_key_auth": None,
        }
        give_up = not retryable or cert.renewal_attempts >= self._renewal.max_attempts
        if give_up:
            assert_transition(cert.status, CertificateStatus.FAILED)
            fields["status"] = CertificateStatus.FAILED
        updated = self._certs.update_if_status(cert.id, CertificateStatus.ISSUED, fields)
        if updated is not None and give_up:
            log_transition(cert.id, cert.status, CertificateStatus.FAILED, reason=reason)
        else:
            log.warning(
                "Renewal attempt %d for certificate %s failed: %s",
                cert.renewal_attempts,
                cert.id,
                detail,
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


def _parse_challenge_type(value: ChallengeType | str) -> ChallengeType:
    if isinstance(value, ChallengeType):
        return value
    try:
        return ChallengeType(str(value).upper())
    except ValueError:
        msg = f"Invalid challenge type {value!r}; expected HTTP01 or DNS01"
        raise ValidationError(msg) from None
