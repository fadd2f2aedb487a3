"""Repository layer: one class per table."""

from domainssl.repositories.acme_account import AcmeAccountRepository
from domainssl.repositories.certificate import CertificateRepository
from domainssl.repositories.domain import (
    BrowserRuleRepository,
    DomainRepository,
    ThrottleRepository,
)

__all__ = [
    "AcmeAccountRepository",
    "BrowserRuleRepository",
    "CertificateRepository",
    "DomainRepository",
    "ThrottleRepository",
]
