"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation; these builders
are what the application actually reads.

Access pattern::

    config = DomainSslConfig(config_file="config.yaml")
    acme = config.settings.acme
    print(acme.effective_directory_url, acme.sandbox)
"""

from __future__ import annotations

from dataclasses import dataclass

from domainssl.core.secret import Secret

LETSENCRYPT_PRODUCTION = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING = "https://acme-staging-v02.api.letsencrypt.org/directory"

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerSettings:
    """HTTP server configuration (bind address, gunicorn workers, timeouts).

    Issuance budgets and sandbox orders are held per process, so the
    default is a single worker serving requests on threads.
    """

    bind: str
    port: int
    workers: int
    threads: int
    timeout: int
    graceful_timeout: int


def _build_server(data: dict | None) -> ServerSettings:
    d = data or {}
    return ServerSettings(
        bind=d.get("bind", "127.0.0.1"),
        port=d.get("port", 8080),
        workers=d.get("workers", 1),
        threads=d.get("threads", 8),
        timeout=d.get("timeout", 120),
        graceful_timeout=d.get("graceful_timeout", 30),
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DatabaseSettings:
    """SQLite file location and setup behaviour."""

    path: str
    auto_setup: bool
    busy_timeout_seconds: float


def _build_database(data: dict | None) -> DatabaseSettings:
    d = data or {}
    return DatabaseSettings(
        path=d.get("path", "domainssl.db"),
        auto_setup=d.get("auto_setup", True),
        busy_timeout_seconds=d.get("busy_timeout_seconds", 30.0),
    )


# ---------------------------------------------------------------------------
# Encryption
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EncryptionSettings:
    """Base64-encoded 32-byte AES key, kept opaque."""

    key: Secret


def _build_encryption(data: dict | None) -> EncryptionSettings:
    d = data or {}
    return EncryptionSettings(key=Secret(d.get("key", "")))


# ---------------------------------------------------------------------------
# ACME
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcmeSettings:
    """Certificate authority selection and polling bounds.

    ``directory_url`` overrides the Let's Encrypt production/staging
    switch when set.  ``sandbox`` replaces the CA with the in-process
    simulation.
    """

    directory_url: str | None
    staging: bool
    sandbox: bool
    email: str
    timeout_seconds: int
    poll_attempts: int
    poll_interval_seconds: float
    rate_limit_per_week: int
    completion_workers: int

    @property
    def effective_directory_url(self) -> str:
        if self.directory_url:
            return self.directory_url
        return LETSENCRYPT_STAGING if self.staging else LETSENCRYPT_PRODUCTION


def _build_acme(data: dict | None) -> AcmeSettings:
    d = data or {}
    return AcmeSettings(
        directory_url=d.get("directory_url"),
        staging=d.get("staging", False),
        sandbox=d.get("sandbox", False),
        email=d.get("email", ""),
        timeout_seconds=d.get("timeout_seconds", 30),
        poll_attempts=d.get("poll_attempts", 10),
        poll_interval_seconds=d.get("poll_interval_seconds", 2.0),
        rate_limit_per_week=d.get("rate_limit_per_week", 45),
        completion_workers=d.get("completion_workers", 4),
    )


# ---------------------------------------------------------------------------
# Challenges / DNS
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Dns01Settings:
    precheck: bool
    resolvers: tuple[str, ...]
    timeout_seconds: int


@dataclass(frozen=True)
class ChallengeSettings:
    dns01: Dns01Settings


def _build_challenges(data: dict | None) -> ChallengeSettings:
    d = data or {}
    dns = d.get("dns01") or {}
    return ChallengeSettings(
        dns01=Dns01Settings(
            precheck=dns.get("precheck", True),
            resolvers=tuple(dns.get("resolvers", ())),
            timeout_seconds=dns.get("timeout_seconds", 10),
        ),
    )


@dataclass(frozen=True)
class SsrfSettings:
    """Resolvers used by the outbound pre-flight guard."""

    resolvers: tuple[str, ...]
    timeout_seconds: int


def _build_ssrf(data: dict | None) -> SsrfSettings:
    d = data or {}
    return SsrfSettings(
        resolvers=tuple(d.get("resolvers", ())),
        timeout_seconds=d.get("timeout_seconds", 5),
    )


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class WebhookSettings:
    """Proxy-fleet agent endpoint; empty URL or secret disables delivery."""

    url: str
    secret: Secret
    timeout_seconds: int
    signature_header: str
    max_workers: int


def _build_webhook(data: dict | None) -> WebhookSettings:
    d = data or {}
    return WebhookSettings(
        url=d.get("url") or "",
        secret=Secret(d.get("secret") or ""),
        timeout_seconds=d.get("timeout_seconds", 8),
        signature_header=d.get("signature_header", "X-Signature"),
        max_workers=d.get("max_workers", 4),
    )


# ---------------------------------------------------------------------------
# Renewal
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RenewalSettings:
    threshold_days: int
    batch_size: int
    max_attempts: int
    backoff_base_hours: float


def _build_renewal(data: dict | None) -> RenewalSettings:
    d = data or {}
    return RenewalSettings(
        threshold_days=d.get("threshold_days", 30),
        batch_size=d.get("batch_size", 10),
        max_attempts=d.get("max_attempts", 5),
        backoff_base_hours=d.get("backoff_base_hours", 6.0),
    )


# ---------------------------------------------------------------------------
# Domains / internal API
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainSettings:
    max_per_project: int


def _build_domains(data: dict | None) -> DomainSettings:
    d = data or {}
    return DomainSettings(max_per_project=d.get("max_per_project", 5))


@dataclass(frozen=True)
class InternalApiSettings:
    """Shared secret for agent-facing endpoints; empty disables them."""

    secret: Secret


def _build_internal_api(data: dict | None) -> InternalApiSettings:
    d = data or {}
    return InternalApiSettings(secret=Secret(d.get("secret") or ""))


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    format: str


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
    )


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DomainSslSettings:
    server: ServerSettings
    database: DatabaseSettings
    encryption: EncryptionSettings
    acme: AcmeSettings
    challenges: ChallengeSettings
    ssrf: SsrfSettings
    webhook: WebhookSettings
    renewal: RenewalSettings
    domains: DomainSettings
    internal_api: InternalApiSettings
    logging: LoggingSettings


def build_settings(data: dict) -> DomainSslSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`DomainSslConfig` initialization after
    schema validation and environment-variable resolution.
    """
    return DomainSslSettings(
        server=_build_server(data.get("server")),
        database=_build_database(data.get("database")),
        encryption=_build_encryption(data.get("encryption")),
        acme=_build_acme(data.get("acme")),
        challenges=_build_challenges(data.get("challenges")),
        ssrf=_build_ssrf(data.get("ssrf")),
        webhook=_build_webhook(data.get("webhook")),
        renewal=_build_renewal(data.get("renewal")),
        domains=_build_domains(data.get("domains")),
        internal_api=_build_internal_api(data.get("internal_api")),
        logging=_build_logging(data.get("logging")),
    )
