"""Configuration subsystem for domainssl.

Public API::

    from domainssl.config import DomainSslConfig

    config = DomainSslConfig(config_file="config.yaml")
    port = config.settings.server.port
"""

from domainssl.config.domainssl_config import ConfigValidationError, DomainSslConfig
from domainssl.config.settings import (
    AcmeSettings,
    ChallengeSettings,
    DatabaseSettings,
    Dns01Settings,
    DomainSettings,
    DomainSslSettings,
    EncryptionSettings,
    InternalApiSettings,
    LoggingSettings,
    RenewalSettings,
    ServerSettings,
    SsrfSettings,
    WebhookSettings,
    build_settings,
)

__all__ = [
    "AcmeSettings",
    "ChallengeSettings",
    "ConfigValidationError",
    "DatabaseSettings",
    "Dns01Settings",
    "DomainSettings",
    "DomainSslConfig",
    "DomainSslSettings",
    "EncryptionSettings",
    "InternalApiSettings",
    "LoggingSettings",
    "RenewalSettings",
    "ServerSettings",
    "SsrfSettings",
    "WebhookSettings",
    "build_settings",
]
