"""Dependency injection container for domainssl.

Created once during startup (by the CLI or :func:`create_app`) and
stored on the Flask app via ``app.extensions["container"]``.  Accessible
from any request context with :func:`get_container`.

Usage::

    from domainssl.app.context import get_container

    c = get_container()
    bundle = c.certificate_service.get_active_bundle("example.com")
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from flask import current_app

from domainssl.acme.account import AccountStore
from domainssl.acme.challenges import build_strategies
from domainssl.acme.client import AcmeChallengeClient
from domainssl.acme.protocol import AcmeProtocol
from domainssl.acme.sandbox import SandboxTransport
from domainssl.crypto.envelope import EnvelopeCipher, decode_key
from domainssl.notify.webhook import WebhookNotifier
from domainssl.repositories import (
    AcmeAccountRepository,
    BrowserRuleRepository,
    CertificateRepository,
    DomainRepository,
    ThrottleRepository,
)
from domainssl.security.ssrf import SsrfGuard
from domainssl.services import (
    CertificateService,
    DomainRegistry,
    IssuanceRateLimiter,
    RenewalSweeper,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from concurrent.futures import Executor

    from domainssl.acme.base import AcmeTransport
    from domainssl.config.settings import DomainSslSettings
    from domainssl.db.database import Database

log = logging.getLogger(__name__)


def build_transport(
    settings: DomainSslSettings,
    account_repo: AcmeAccountRepository,
    cipher: EnvelopeCipher,
) -> AcmeTransport:
    """Select the sandbox CA or the real ACME directory from configuration."""
    acme = settings.acme
    if acme.sandbox:
        log.warning("ACME sandbox mode: certificates are self-signed and not publicly trusted")
        return SandboxTransport()
    accounts = AccountStore(account_repo, cipher, acme.effective_directory_url)
    log.info("ACME directory: %s", acme.effective_directory_url)
    return AcmeProtocol(acme, accounts)


class Container:
    """Application-wide dependency container.

    Parameters
    ----------
    db:
        Opened database.
    settings:
        The fully built settings tree.
    transport:
        Overrides the CA transport chosen from ``acme.sandbox``.
    ssrf_resolver, dns_resolver:
        dnspython-style resolvers for the SSRF guard and the DNS-01
        pre-check; built from configuration when omitted.
    completion_executor, webhook_executor:
        Executors for HTTP-01 completion and webhook delivery.
    sleep:
        Used between CA status polls.

    """

    def __init__(  # noqa: PLR0913
        self,
        db: Database,
        settings: DomainSslSettings,
        *,
        transport: AcmeTransport | None = None,
        ssrf_resolver=None,
        dns_resolver=None,
        completion_executor: Executor | None = None,
        webhook_executor: Executor | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.db = db
        self.settings = settings

        # Repositories
        self.domains = DomainRepository(db)
        self.browser_rules = BrowserRuleRepository(db)
        self.throttles = ThrottleRepository(db)
        self.certificates = CertificateRepository(db)
        self.acme_accounts = AcmeAccountRepository(db)

        # Core utilities
        self.cipher = EnvelopeCipher(decode_key(settings.encryption.key.reveal()))
        self.ssrf_guard = SsrfGuard(ssrf_resolver, settings.ssrf)
        self.transport = transport or build_transport(settings, self.acme_accounts, self.cipher)
        self.acme_client = AcmeChallengeClient(
            self.transport,
            self.ssrf_guard,
            build_strategies(dns_resolver, settings.challenges.dns01),
            poll_attempts=settings.acme.poll_attempts,
            poll_interval=settings.acme.poll_interval_seconds,
            sleep=sleep,
        )
        self.notifier = WebhookNotifier(
            settings.webhook,
            mode=self.transport.mode,
            executor=webhook_executor,
        )
        self.rate_limiter = IssuanceRateLimiter(settings.acme.rate_limit_per_week)

        self._owns_completion_executor = completion_executor is None
        self.completion_executor = completion_executor or ThreadPoolExecutor(
            max_workers=settings.acme.completion_workers,
            thread_name_prefix="acme-complete",
        )

        # Services
        self.certificate_service = CertificateService(
            db,
            self.certificates,
            self.domains,
            self.acme_client,
            self.cipher,
            self.notifier,
            settings.renewal,
            rate_limiter=self.rate_limiter,
            executor=self.completion_executor,
        )
        self.domain_registry = DomainRegistry(
            db,
            self.domains,
            self.browser_rules,
            self.throttles,
            self.notifier,
            settings.domains,
        )
        self.renewal_sweeper = RenewalSweeper(
            self.certificate_service,
            self.certificates,
            self.domains,
            settings.renewal,
        )

    def shutdown(self, wait: bool = True) -> None:
        """Drain executors; pending completions finish before webhooks stop."""
        if self._owns_completion_executor:
            self.completion_executor.shutdown(wait=wait)
        self.notifier.shutdown(wait=wait)


def get_container() -> Container:
    """Return the :class:`Container` for the current Flask app."""
    return current_app.extensions["container"]
