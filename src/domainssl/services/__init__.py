"""Service layer.

Each service encapsulates the business rules for one concern and
delegates persistence to the repository layer.
"""

from domainssl.services.certificate import CertificateService
from domainssl.services.domain import DomainRegistry
from domainssl.services.rate_limit import IssuanceRateLimiter
from domainssl.services.renewal import RenewalSweeper

__all__ = [
    "CertificateService",
    "DomainRegistry",
    "IssuanceRateLimiter",
    "RenewalSweeper",
]
