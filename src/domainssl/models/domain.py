"""CustomDomain entity and its per-domain settings."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

from domainssl.core.types import BrowserRuleType, SslMode

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

DEFAULT_REQUESTS_PER_SECOND = 60
DEFAULT_BURST_SIZE = 20


@dataclass(frozen=True)
class CustomDomain:
    id: str
    domain: str
    project_id: str
    verification_token: str
    verified: bool = False
    verified_at: datetime | None = None
    ssl_mode: SslMode = SslMode.NONE
    force_https: bool = False
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH


@dataclass(frozen=True)
class BrowserRule:
    """A user-agent allow/block rule, evaluated in ascending ``position``."""

    id: str
    domain_id: str
    user_agent_pattern: str
    rule_type: BrowserRuleType
    is_enabled: bool = True
    position: int = 0
    created_at: datetime = _EPOCH


@dataclass(frozen=True)
class ThrottleConfig:
    id: str
    domain_id: str
    enabled: bool = False
    requests_per_second: int = DEFAULT_REQUESTS_PER_SECOND
    burst_size: int = DEFAULT_BURST_SIZE
    created_at: datetime = _EPOCH
    updated_at: datetime = _EPOCH
