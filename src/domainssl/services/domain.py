"""Custom-domain registry: ownership, SSL mode and per-domain proxy settings.

The registry owns ``custom_domains`` and its child tables (browser rules,
throttle configuration).  Certificates are managed by
:class:`~domainssl.services.certificate.CertificateService`; the only
certificate-related decision made here is :meth:`DomainRegistry.is_eligible`,
which backs the reverse proxy's on-demand TLS check.
"""

from __future__ import annotations

import logging
import re
import secrets
import sqlite3
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from uuid import uuid4

from domainssl.core.errors import Conflict, InvalidState, NotFound, ValidationError
from domainssl.core.types import BrowserRuleType, SslMode, WebhookEvent
from domainssl.models.domain import (
    DEFAULT_BURST_SIZE,
    DEFAULT_REQUESTS_PER_SECOND,
    BrowserRule,
    CustomDomain,
    ThrottleConfig,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from domainssl.config.settings import DomainSettings
    from domainssl.db.database import Database
    from domainssl.notify.webhook import WebhookNotifier
    from domainssl.repositories.domain import (
        BrowserRuleRepository,
        DomainRepository,
        ThrottleRepository,
    )

log = logging.getLogger(__name__)

_HOSTNAME_RE = re.compile(
    r"^(?=.{1,253}$)(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z][a-z0-9-]{0,61}[a-z0-9]$"
)


def normalize_domain(domain: str) -> str:
    return domain.strip().lower().rstrip(".")


def validate_hostname(domain: str) -> str:
    """Normalize *domain* and raise :class:`ValidationError` if it is not a hostname."""
    name = normalize_domain(domain)
    if not _HOSTNAME_RE.match(name):
        msg = f"Invalid domain name {domain!r}"
        raise ValidationError(msg)
    return name


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DomainRegistry:
    """Manage custom domains and their settings.

    Parameters
    ----------
    db:
        Database handle.
    domain_repo, rule_repo, throttle_repo:
        Table access.
    notifier:
        Emits ``domain.added`` / ``domain.removed``.
    settings:
        The ``domains`` configuration section (per-project limit).
    clock:
        Returns the current aware UTC time.

    """

    def __init__(  # noqa: PLR0913
        self,
        db: Database,
        domain_repo: DomainRepository,
        rule_repo: BrowserRuleRepository,
        throttle_repo: ThrottleRepository,
        notifier: WebhookNotifier,
        settings: DomainSettings,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._db = db
        self._domains = domain_repo
        self._rules = rule_repo
        self._throttles = throttle_repo
        self._notifier = notifier
        self._settings = settings
        self._clock = clock

    # ------------------------------------------------------------------
    # Domains
    # ------------------------------------------------------------------

    def get_domain(self, domain: str) -> CustomDomain:
        found = self._domains.find_by_domain(normalize_domain(domain))
        if found is None:
            msg = f"Domain {domain} not found"
            raise NotFound(msg)
        return found

    def list_domains(self, project_id: str | None = None) -> list[CustomDomain]:
        if project_id is None:
            return self._domains.find_by({}, order_by="created_at")
        return self._domains.find_by_project(project_id)

    def register_domain(self, domain: str, project_id: str) -> CustomDomain:
        """Add an unverified domain to a project.

        Raises
        ------
        ValidationError
            Not a valid hostname.
        Conflict
            The domain is already registered or the project is full.

        """
        name = validate_hostname(domain)
        now = self._clock()
        entity = CustomDomain(
            id=str(uuid4()),
            domain=name,
            project_id=project_id,
            verification_token=secrets.token_urlsafe(24),
            created_at=now,
            updated_at=now,
        )
        with self._db.transaction():
            if self._domains.find_by_domain(name) is not None:
                msg = f"Domain {name} is already registered"
                raise Conflict(msg)
            limit = self._settings.max_per_project
            if self._domains.count_by({"project_id": project_id}) >= limit:
                msg = f"Project {project_id} already has the maximum of {limit} custom domains"
                raise Conflict(msg)
            try:
                self._domains.create(entity)
            except sqlite3.IntegrityError as exc:
                msg = f"Domain {name} is already registered"
                raise Conflict(msg) from exc
        log.info("Registered custom domain %s for project %s", name, project_id)
        return entity

    def set_verified(self, domain: str, verified: bool = True) -> CustomDomain:
        current = self.get_domain(domain)
        updated = self._domains.touch_fields(
            current.id,
            {
                "verified": int(verified),
                "verified_at": self._clock() if verified else None,
            },
        )
        if verified and not current.verified:
            log.info("Domain %s verified", current.domain)
            self._notifier.notify(WebhookEvent.DOMAIN_ADDED, current.domain)
        return updated

    def remove_domain(self, domain: str) -> None:
        """Delete a domain together with its certificates, rules and throttle."""
        current = self.get_domain(domain)
        self._domains.delete(current.id)
        log.info("Removed custom domain %s", current.domain)
        self._notifier.notify(WebhookEvent.DOMAIN_REMOVED, current.domain)

    def set_ssl_mode(self, domain: str, mode: SslMode | str) -> CustomDomain:
        """Change the SSL mode; leaving ``LETS_ENCRYPT`` turns off force-HTTPS."""
        try:
            ssl_mode = SslMode(mode)
        except ValueError:
            msg = "Invalid SSL mode. Must be LETS_ENCRYPT, EXTERNAL, or NONE"
            raise ValidationError(msg) from None
        current = self.get_domain(domain)
        force_https = current.force_https if ssl_mode is SslMode.LETS_ENCRYPT else False
        return self._domains.touch_fields(
            current.id,
            {"ssl_mode": ssl_mode.value, "force_https": int(force_https)},
        )

    def set_force_https(self, domain: str, enabled: bool) -> CustomDomain:
        current = self.get_domain(domain)
        if enabled and current.ssl_mode is not SslMode.LETS_ENCRYPT:
            msg = "SSL certificate required to enable force HTTPS"
            raise InvalidState(msg)
        return self._domains.touch_fields(current.id, {"force_https": int(enabled)})

    def is_eligible(self, domain: str) -> bool:
        """True iff the domain is known, verified and in ``LETS_ENCRYPT`` mode."""
        found = self._domains.find_by_domain(normalize_domain(domain))
        return bool(found and found.verified and found.ssl_mode is SslMode.LETS_ENCRYPT)

    # ------------------------------------------------------------------
    # Throttle
    # ------------------------------------------------------------------

    def upsert_throttle(
        self,
        domain: str,
        enabled: bool,
        requests_per_second: int | None = None,
        burst_size: int | None = None,
    ) -> ThrottleConfig:
        """Create or update the domain's throttle configuration as a unit.

        Enabling requires both rates to be at least 1.  Disabling keeps
        whatever rates were stored before.
        """
        if enabled:
            if not requests_per_second or requests_per_second < 1:
                msg = "requests_per_second must be at least 1"
                raise ValidationError(msg)
            if not burst_size or burst_size < 1:
                msg = "burst_size must be at least 1"
                raise ValidationError(msg)
        current = self.get_domain(domain)
        now = self._clock()
        with self._db.transaction():
            existing = self._throttles.find_by_domain(current.id)
            if existing is None:
                config = ThrottleConfig(
                    id=str(uuid4()),
                    domain_id=current.id,
                    enabled=enabled,
                    requests_per_second=requests_per_second if enabled else DEFAULT_REQUESTS_PER_SECOND,
                    burst_size=burst_size if enabled else DEFAULT_BURST_SIZE,
                    created_at=now,
                    updated_at=now,
                )
                return self._throttles.create(config)
            fields: dict[str, object] = {"enabled": int(enabled), "updated_at": now}
            if enabled:
                fields["requests_per_second"] = requests_per_second
                fields["burst_size"] = burst_size
            return self._throttles.update_fields(existing.id, fields)

    def get_throttle(self, domain: str) -> ThrottleConfig | None:
        return self._throttles.find_by_domain(self.get_domain(domain).id)

    # ------------------------------------------------------------------
    # Browser rules
    # ------------------------------------------------------------------

    def list_browser_rules(self, domain: str) -> list[BrowserRule]:
        return self._rules.find_by_domain(self.get_domain(domain).id)

    def add_browser_rule(
        self,
        domain: str,
        pattern: str,
        rule_type: BrowserRuleType | str,
    ) -> BrowserRule:
        if not pattern or not pattern.strip():
            msg = "User agent pattern is required"
            raise ValidationError(msg)
        try:
            kind = BrowserRuleType(rule_type)
        except ValueError:
            msg = "Invalid rule type. Must be BLOCK or ALLOW"
            raise ValidationError(msg) from None
        try:
            re.compile(pattern)
        except re.error as exc:
            msg = f"Invalid regex pattern: {exc}"
            raise ValidationError(msg) from None

        current = self.get_domain(domain)
        with self._db.transaction():
            rule = BrowserRule(
                id=str(uuid4()),
                domain_id=current.id,
                user_agent_pattern=pattern,
                rule_type=kind,
                is_enabled=True,
                position=self._rules.next_position(current.id),
                created_at=self._clock(),
            )
            self._rules.create(rule)
        return rule

    def _get_rule(self, domain: str, rule_id: str) -> BrowserRule:
        current = self.get_domain(domain)
        rule = self._rules.find_by_id(rule_id)
        if rule is None or rule.domain_id != current.id:
            msg = f"Browser rule {rule_id} not found for {current.domain}"
            raise NotFound(msg)
        return rule

    def set_browser_rule_enabled(self, domain: str, rule_id: str, enabled: bool) -> BrowserRule:
        rule = self._get_rule(domain, rule_id)
        return self._rules.update_fields(rule.id, {"is_enabled": int(enabled)})

    def delete_browser_rule(self, domain: str, rule_id: str) -> None:
        rule = self._get_rule(domain, rule_id)
        self._rules.delete(rule.id)
