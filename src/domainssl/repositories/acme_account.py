"""Repository for the single global ACME account row."""

from __future__ import annotations

from typing import Any

from domainssl.models.acme_account import GLOBAL_ACCOUNT_ID, AcmeAccountRecord
from domainssl.repositories.base import BaseRepository


class AcmeAccountRepository(BaseRepository[AcmeAccountRecord]):
    table_name = "acme_account"

    def _row_to_entity(self, row: dict[str, Any]) -> AcmeAccountRecord:
        return AcmeAccountRecord(
            id=row["id"],
            account_key_enc=row["account_key_enc"],
            account_url=row["account_url"],
            email=row["email"],
            directory_url=row["directory_url"],
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: AcmeAccountRecord) -> dict[str, Any]:
        return {
            "id": entity.id,
            "account_key_enc": entity.account_key_enc,
            "account_url": entity.account_url,
            "email": entity.email,
            "directory_url": entity.directory_url,
            "created_at": entity.created_at,
        }

    def get_global(self) -> AcmeAccountRecord | None:
        return self.find_by_id(GLOBAL_ACCOUNT_ID)
