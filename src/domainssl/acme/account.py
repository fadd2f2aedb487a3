"""Persistence of the global ACME account.

One account serves every certificate.  Its private key is stored
envelope-encrypted; the account URL doubles as the JWS ``kid``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from domainssl.acme.jws import load_private_key, private_key_to_pem
from domainssl.models.acme_account import AcmeAccountRecord

if TYPE_CHECKING:
    from cryptography.hazmat.primitives.asymmetric import ec

    from domainssl.crypto.envelope import EnvelopeCipher
    from domainssl.repositories.acme_account import AcmeAccountRepository

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredAccount:
    key: ec.EllipticCurvePrivateKey
    account_url: str


class AccountStore:
    """Load and save the account key, decrypting on the way out.

    An account registered against a different directory (staging vs
    production) is ignored so switching directories registers afresh.
    """

    def __init__(
        self,
        repository: AcmeAccountRepository,
        cipher: EnvelopeCipher,
        directory_url: str,
    ) -> None:
        self._repo = repository
        self._cipher = cipher
        self._directory_url = directory_url

    def load(self) -> StoredAccount | None:
        record = self._repo.get_global()
        if record is None:
            return None
        if record.directory_url != self._directory_url:
            log.warning(
                "Stored ACME account belongs to %s, not %s; a new account will be registered",
                record.directory_url,
                self._directory_url,
            )
            return None
        key_pem = self._cipher.decrypt(record.account_key_enc)
        return StoredAccount(key=load_private_key(key_pem), account_url=record.account_url)

    def save(
        self,
        key: ec.EllipticCurvePrivateKey,
        account_url: str,
        *,
        email: str,
        directory_url: str,
    ) -> None:
        record = AcmeAccountRecord(
            account_key_enc=self._cipher.encrypt(private_key_to_pem(key)),
            account_url=account_url,
            email=email,
            directory_url=directory_url,
            created_at=datetime.now(UTC),
        )
        with self._repo.db.transaction():
            self._repo.delete(record.id)
            self._repo.create(record)
        log.info("Saved ACME account %s", account_url)
