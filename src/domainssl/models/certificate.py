"""DomainCertificate entity and the results returned by lifecycle operations."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from domainssl.core.secret import Secret
    from domainssl.core.types import CertificateStatus, ChallengeType

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class DomainCertificate:
    id: str
    domain_id: str
    status: CertificateStatus
    challenge_type: ChallengeType
    private_key_enc: str
    csr_pem: str
    certificate_pem: str | None = None
    full_chain_pem: str | None = None
    acme_order_url: str | None = None
    challenge_token: str | None = None
    challenge_key_auth: str | None = None
    dns_txt_value: str | None = None
    issued_at: datetime | None = None
    expires_at: datetime | None = None
    last_error: str | None = None
    renewal_attempts: int = 0
    last_attempt_at: datetime | None = None
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH


@dataclass(frozen=True)
class IssuanceResult:
    """Returned by ``issue_certificate``.

    ``txt_name``/``txt_value`` are set for DNS-01 only: the record the
    domain owner must publish before calling ``complete_dns01``.
    """

    cert_id: str
    status: CertificateStatus
    txt_name: str | None = None
    txt_value: str | None = None


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of a completion attempt.

    ``retry=True`` means the challenge is not yet satisfied and the
    caller should try again later; the certificate status is unchanged.
    """

    cert_id: str
    status: CertificateStatus
    retry: bool = False
    message: str | None = None

    @property
    def status_code(self) -> int:
        return 202 if self.retry else 200


@dataclass(frozen=True)
class CertificateBundle:
    """Decrypted material for the reverse-proxy agent."""

    private_key: Secret
    certificate: str
    full_chain: str
    expires_at: datetime
