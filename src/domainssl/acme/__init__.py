"""ACME (RFC 8555) challenge-fulfillment client and transports.

Public API::

    from domainssl.acme import AcmeChallengeClient, AcmeProtocol, SandboxTransport
"""

from domainssl.acme.base import AcmeChallenge, AcmeOrder, AcmeTransport
from domainssl.acme.challenges import ChallengeError, Dns01Strategy, Http01Strategy
from domainssl.acme.client import AcmeChallengeClient, IssuedChain, PreparedChallenge
from domainssl.acme.protocol import AcmeProtocol
from domainssl.acme.sandbox import SandboxTransport

__all__ = [
    "AcmeChallenge",
    "AcmeChallengeClient",
    "AcmeOrder",
    "AcmeProtocol",
    "AcmeTransport",
    "ChallengeError",
    "Dns01Strategy",
    "Http01Strategy",
    "IssuedChain",
    "PreparedChallenge",
    "SandboxTransport",
]
