"""Error taxonomy for certificate lifecycle and domain registry operations.

Every error carries a short ``error_type`` tag and the HTTP status the
web layer renders it with.  Callers catch :class:`DomainSslError` to
handle the whole family.

Usage::

    raise Conflict("An active or pending certificate already exists")
"""

from __future__ import annotations

from typing import Any


class DomainSslError(Exception):
    """Base class for all domainssl operation errors.

    Parameters
    ----------
    detail:
        Human-readable explanation of the problem.

    """

    error_type = "internal"
    status = 500

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the JSON error body."""
        return {"error": self.detail, "type": self.error_type}


class ValidationError(DomainSslError):
    """Malformed input: invalid enum value, hostname or regex."""

    error_type = "validation"
    status = 400


class NotFound(DomainSslError):
    error_type = "not_found"
    status = 404


class Conflict(DomainSslError):
    error_type = "conflict"
    status = 409


class PreconditionFailed(DomainSslError):
    """The domain has not completed ownership verification."""

    error_type = "precondition_failed"
    status = 400


class InvalidState(DomainSslError):
    """The operation is not valid for the resource's current status."""

    error_type = "invalid_state"
    status = 400


class ManualRenewalRequired(InvalidState):
    """DNS-01 certificates cannot be renewed without operator action."""

    error_type = "manual_renewal_required"


class MissingData(DomainSslError):
    error_type = "missing_data"
    status = 400


class SsrfRejected(DomainSslError):
    """The hostname resolves to a private, loopback or link-local address."""

    error_type = "ssrf_rejected"
    status = 400


class RateLimited(DomainSslError):
    error_type = "rate_limited"
    status = 429


class ProviderError(DomainSslError):
    """The certificate authority rejected a request.

    Parameters
    ----------
    detail:
        The CA's message, passed through verbatim.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    error_type = "provider_error"
    status = 502

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.retryable = retryable
        super().__init__(detail)


class CryptoTamperError(DomainSslError):
    """Ciphertext failed authentication or is malformed.  Never recoverable."""

    error_type = "crypto_tamper"
    status = 500
