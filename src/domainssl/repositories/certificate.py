"""DomainCertificate repository."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from domainssl.core.types import ACTIVE_STATUSES, CertificateStatus, ChallengeType
from domainssl.models.certificate import DomainCertificate
from domainssl.repositories.base import BaseRepository

if TYPE_CHECKING:
    from collections.abc import Iterable


def _in_clause(statuses: Iterable[CertificateStatus]) -> tuple[str, list[str]]:
    values = sorted(s.value for s in statuses)
    return ", ".join("?" for _ in values), values


class CertificateRepository(BaseRepository[DomainCertificate]):
    table_name = "domain_certificates"

    def _row_to_entity(self, row: dict[str, Any]) -> DomainCertificate:
        return DomainCertificate(
            id=row["id"],
            domain_id=row["domain_id"],
            status=CertificateStatus(row["status"]),
            challenge_type=ChallengeType(row["challenge_type"]),
            private_key_enc=row["private_key_enc"],
            csr_pem=row["csr_pem"],
            certificate_pem=row.get("certificate_pem"),
            full_chain_pem=row.get("full_chain_pem"),
            acme_order_url=row.get("acme_order_url"),
            challenge_token=row.get("challenge_token"),
            challenge_key_auth=row.get("challenge_key_auth"),
            dns_txt_value=row.get("dns_txt_value"),
            issued_at=row.get("issued_at"),
            expires_at=row.get("expires_at"),
            last_error=row.get("last_error"),
            renewal_attempts=row.get("renewal_attempts") or 0,
            last_attempt_at=row.get("last_attempt_at"),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: DomainCertificate) -> dict[str, Any]:
        return {
            "id": entity.id,
            "domain_id": entity.domain_id,
            "status": entity.status.value,
            "challenge_type": entity.challenge_type.value,
            "private_key_enc": entity.private_key_enc,
            "csr_pem": entity.csr_pem,
            "certificate_pem": entity.certificate_pem,
            "full_chain_pem": entity.full_chain_pem,
            "acme_order_url": entity.acme_order_url,
            "challenge_token": entity.challenge_token,
            "challenge_key_auth": entity.challenge_key_auth,
            "dns_txt_value": entity.dns_txt_value,
            "issued_at": entity.issued_at,
            "expires_at": entity.expires_at,
            "last_error": entity.last_error,
            "renewal_attempts": entity.renewal_attempts,
            "last_attempt_at": entity.last_attempt_at,
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
        }

    def find_by_domain(self, domain_id: str) -> list[DomainCertificate]:
        return self.find_by({"domain_id": domain_id}, order_by="created_at DESC")

    def find_active_for_domain(self, domain_id: str) -> DomainCertificate | None:
        """Return the pending or issued certificate for a domain, if any."""
        placeholders, values = _in_clause(ACTIVE_STATUSES)
        row = self.db.fetchone(
            f"SELECT * FROM {self.table_name} "
            f"WHERE domain_id = ? AND status IN ({placeholders}) LIMIT 1",
            [domain_id, *values],
        )
        return self._row_to_entity(row) if row is not None else None

    def find_latest_issued(self, domain_id: str) -> DomainCertificate | None:
        row = self.db.fetchone(
            f"SELECT * FROM {self.table_name} "
            "WHERE domain_id = ? AND status = ? AND certificate_pem IS NOT NULL "
            "ORDER BY issued_at DESC LIMIT 1",
            (domain_id, CertificateStatus.ISSUED.value),
        )
        return self._row_to_entity(row) if row is not None else None

    def find_http01_challenge(self, hostname: str, token: str) -> DomainCertificate | None:
        """Find the certificate answering HTTP-01 *token* on *hostname*.

        Pending issuances match, as do issued certificates whose renewal
        order is in flight.
        """
        row = self.db.fetchone(
            f"SELECT c.* FROM {self.table_name} c "
            "JOIN custom_domains d ON d.id = c.domain_id "
            "WHERE c.challenge_token = ? AND c.challenge_type = ? "
            "AND c.status IN (?, ?) AND d.domain = ? LIMIT 1",
            (
                token,
                ChallengeType.HTTP01.value,
                CertificateStatus.PENDING_HTTP01.value,
                CertificateStatus.ISSUED.value,
                hostname,
            ),
        )
        return self._row_to_entity(row) if row is not None else None

    def find_due_for_renewal(
        self,
        expiring_before: datetime,
        *,
        max_attempts: int,
        limit: int,
    ) -> list[DomainCertificate]:
        """ISSUED certificates expiring before the cutoff, soonest first."""
        rows = self.db.fetchall(
            f"SELECT * FROM {self.table_name} "
            "WHERE status = ? AND expires_at IS NOT NULL AND expires_at <= ? "
            "AND renewal_attempts < ? "
            "ORDER BY expires_at ASC LIMIT ?",
            (CertificateStatus.ISSUED.value, expiring_before, max_attempts, limit),
        )
        return [self._row_to_entity(r) for r in rows]

    def update_if_status(
        self,
        cert_id: str,
        expected: CertificateStatus,
        fields: dict[str, Any],
    ) -> DomainCertificate | None:
        """Compare-and-set update; returns ``None`` if the status moved on."""
        fields = {**fields, "updated_at": datetime.now(UTC)}
        assignments = ", ".join(f"{col} = ?" for col in fields)
        values = [v.value if isinstance(v, CertificateStatus) else v for v in fields.values()]
        with self.db.transaction() as conn:
            cur = conn.execute(
                f"UPDATE {self.table_name} SET {assignments} WHERE id = ? AND status = ?",
                [*values, cert_id, expected.value],
            )
            if cur.rowcount == 0:
                return None
            return self.find_by_id(cert_id)

    def record_renewal_attempt(self, cert_id: str, at: datetime) -> DomainCertificate | None:
        """Atomically bump ``renewal_attempts`` on an ISSUED certificate."""
        with self.db.transaction() as conn:
            cur = conn.execute(
                f"UPDATE {self.table_name} "
                "SET renewal_attempts = renewal_attempts + 1, last_attempt_at = ?, updated_at = ? "
                "WHERE id = ? AND status = ?",
                (at, datetime.now(UTC), cert_id, CertificateStatus.ISSUED.value),
            )
            if cur.rowcount == 0:
                return None
            return self.find_by_id(cert_id)

    def delete_for_domain(self, domain_id: str) -> int:
        with self.db.transaction() as conn:
            cur = conn.execute(
                f"DELETE FROM {self.table_name} WHERE domain_id = ?",
                (domain_id,),
            )
        return cur.rowcount

    def count_by_status(self) -> dict[CertificateStatus, int]:
        rows = self.db.fetchall(
            f"SELECT status, COUNT(*) AS n FROM {self.table_name} GROUP BY status"
        )
        counts = {status: 0 for status in CertificateStatus}
        for row in rows:
            counts[CertificateStatus(row["status"])] = int(row["n"])
        return counts

    def count_expiring(self, expiring_before: datetime) -> int:
        row = self.db.fetchone(
            f"SELECT COUNT(*) AS n FROM {self.table_name} "
            "WHERE status = ? AND expires_at IS NOT NULL AND expires_at <= ?",
            (CertificateStatus.ISSUED.value, expiring_before),
        )
        return int(row["n"]) if row else 0
