"""AES-256-GCM envelope encryption for secrets at rest.

Storage format::

    <nonce-b64>:<tag-b64>:<ciphertext-b64>

* ``nonce``  12 random bytes, fresh per encryption
* ``tag``    16-byte GCM authentication tag
* ``ciphertext`` same length as the plaintext

All three parts are standard (padded) base64.  Any malformed value or
tag mismatch raises :class:`~domainssl.core.errors.CryptoTamperError`;
partial plaintext is never returned.
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from domainssl.core.errors import CryptoTamperError
from domainssl.core.secret import Secret

log = logging.getLogger(__name__)

KEY_LENGTH = 32
NONCE_LENGTH = 12
TAG_LENGTH = 16


def decode_key(encoded: str) -> Secret:
    """Decode a base64 configuration value into a 32-byte key.

    Raises
    ------
    ValueError
        If the value is not valid base64 or does not decode to 32 bytes.

    """
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        msg = "Encryption key is not valid base64"
        raise ValueError(msg) from exc
    if len(raw) != KEY_LENGTH:
        msg = f"Encryption key must decode to {KEY_LENGTH} bytes, got {len(raw)}"
        raise ValueError(msg)
    return Secret(raw)


def _decode_part(part: str) -> bytes:
    """Decode one stored segment, accepting only its canonical encoding."""
    try:
        raw = base64.b64decode(part, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CryptoTamperError("Encrypted value is not valid base64") from exc
    # unused trailing bits must be zero, so each value has exactly one spelling
    if base64.b64encode(raw).decode("ascii") != part:
        raise CryptoTamperError("Encrypted value is not canonical base64")
    return raw


class EnvelopeCipher:
    """Authenticated encryption of UTF-8 strings with a single static key.

    Parameters
    ----------
    key:
        A :class:`Secret` wrapping exactly 32 raw key bytes.

    """

    def __init__(self, key: Secret) -> None:
        raw = key.reveal()
        if not isinstance(raw, bytes) or len(raw) != KEY_LENGTH:
            msg = f"Encryption key must be {KEY_LENGTH} bytes"
            raise ValueError(msg)
        self._aead = AESGCM(raw)

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_LENGTH)
        # AESGCM appends the tag to the ciphertext
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_LENGTH], sealed[-TAG_LENGTH:]
        return ":".join(
            base64.b64encode(part).decode("ascii") for part in (nonce, tag, ciphertext)
        )

    def decrypt(self, stored: str) -> str:
        if not isinstance(stored, str):
            raise CryptoTamperError("Encrypted value is not a string")
        parts = stored.split(":")
        if len(parts) != 3:
            raise CryptoTamperError("Encrypted value must have three parts")
        nonce, tag, ciphertext = (_decode_part(p) for p in parts)
        if len(nonce) != NONCE_LENGTH or len(tag) != TAG_LENGTH:
            raise CryptoTamperError("Encrypted value has wrong nonce or tag length")
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            log.error("Authenticated decryption failed; ciphertext was tampered with")
            raise CryptoTamperError("Authentication tag mismatch") from exc
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CryptoTamperError("Decrypted value is not UTF-8") from exc

    def decrypt_secret(self, stored: str) -> Secret:
        """Decrypt into a :class:`Secret` so the plaintext cannot leak via repr."""
        return Secret(self.decrypt(stored))
