"""Entity models for the domainssl persistence layer.

All models are frozen dataclasses.  Use :func:`dataclasses.replace`
for modifications (copy-on-write).
"""

from domainssl.models.acme_account import AcmeAccountRecord
from domainssl.models.certificate import (
    CertificateBundle,
    CompletionResult,
    DomainCertificate,
    IssuanceResult,
)
from domainssl.models.domain import BrowserRule, CustomDomain, ThrottleConfig

__all__ = [
    "AcmeAccountRecord",
    "BrowserRule",
    "CertificateBundle",
    "CompletionResult",
    "CustomDomain",
    "DomainCertificate",
    "IssuanceResult",
    "ThrottleConfig",
]
