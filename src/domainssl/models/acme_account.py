"""Persisted global ACME account."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

GLOBAL_ACCOUNT_ID = "global"


@dataclass(frozen=True)
class AcmeAccountRecord:
    account_key_enc: str
    account_url: str
    email: str
    directory_url: str
    id: str = GLOBAL_ACCOUNT_ID
    created_at: datetime = _EPOCH
