"""Repositories for custom domains and their per-domain settings."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from domainssl.core.types import BrowserRuleType, SslMode
from domainssl.models.domain import BrowserRule, CustomDomain, ThrottleConfig
from domainssl.repositories.base import BaseRepository


class DomainRepository(BaseRepository[CustomDomain]):
    table_name = "custom_domains"

    def _row_to_entity(self, row: dict[str, Any]) -> CustomDomain:
        return CustomDomain(
            id=row["id"],
            domain=row["domain"],
            project_id=row["project_id"],
            verification_token=row["verification_token"],
            verified=bool(row["verified"]),
            verified_at=row["verified_at"],
            ssl_mode=SslMode(row["ssl_mode"]),
            force_https=bool(row["force_https"]),
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: CustomDomain) -> dict[str, Any]:
        return {
            "id": entity.id,
            "domain": entity.domain,
            "project_id": entity.project_id,
            "verification_token": entity.verification_token,
            "verified": int(entity.verified),
            "verified_at": entity.verified_at,
            "ssl_mode": entity.ssl_mode.value,
            "force_https": int(entity.force_https),
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
        }

    def find_by_domain(self, domain: str) -> CustomDomain | None:
        return self.find_one_by({"domain": domain})

    def find_by_project(self, project_id: str) -> list[CustomDomain]:
        return self.find_by({"project_id": project_id}, order_by="created_at")

    def touch_fields(self, domain_id: str, fields: dict[str, Any]) -> CustomDomain | None:
        """Update *fields* and stamp ``updated_at``."""
        return self.update_fields(domain_id, {**fields, "updated_at": datetime.now(UTC)})


class BrowserRuleRepository(BaseRepository[BrowserRule]):
    table_name = "domain_browser_rules"

    def _row_to_entity(self, row: dict[str, Any]) -> BrowserRule:
        return BrowserRule(
            id=row["id"],
            domain_id=row["domain_id"],
            user_agent_pattern=row["user_agent_pattern"],
            rule_type=BrowserRuleType(row["rule_type"]),
            is_enabled=bool(row["is_enabled"]),
            position=row["position"],
            created_at=row["created_at"],
        )

    def _entity_to_row(self, entity: BrowserRule) -> dict[str, Any]:
        return {
            "id": entity.id,
            "domain_id": entity.domain_id,
            "user_agent_pattern": entity.user_agent_pattern,
            "rule_type": entity.rule_type.value,
            "is_enabled": int(entity.is_enabled),
            "position": entity.position,
            "created_at": entity.created_at,
        }

    def find_by_domain(self, domain_id: str) -> list[BrowserRule]:
        return self.find_by({"domain_id": domain_id}, order_by="position, created_at")

    def next_position(self, domain_id: str) -> int:
        row = self.db.fetchone(
            f"SELECT COALESCE(MAX(position), -1) + 1 AS pos FROM {self.table_name} "
            "WHERE domain_id = ?",
            (domain_id,),
        )
        return int(row["pos"]) if row else 0


class ThrottleRepository(BaseRepository[ThrottleConfig]):
    table_name = "domain_throttle_configs"

    def _row_to_entity(self, row: dict[str, Any]) -> ThrottleConfig:
        return ThrottleConfig(
            id=row["id"],
            domain_id=row["domain_id"],
            enabled=bool(row["enabled"]),
            requests_per_second=row["requests_per_second"],
            burst_size=row["burst_size"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    def _entity_to_row(self, entity: ThrottleConfig) -> dict[str, Any]:
        return {
            "id": entity.id,
            "domain_id": entity.domain_id,
            "enabled": int(entity.enabled),
            "requests_per_second": entity.requests_per_second,
            "burst_size": entity.burst_size,
            "created_at": entity.created_at,
            "updated_at": entity.updated_at,
        }

    def find_by_domain(self, domain_id: str) -> ThrottleConfig | None:
        return self.find_one_by({"domain_id": domain_id})
