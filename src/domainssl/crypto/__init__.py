"""At-rest encryption of secrets (private keys, account keys)."""

from domainssl.crypto.envelope import EnvelopeCipher

__all__ = ["EnvelopeCipher"]
