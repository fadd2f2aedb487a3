"""Root conftest for the domainssl test suite."""

from __future__ import annotations

import base64
import sys
from concurrent.futures import Future
from pathlib import Path
from types import SimpleNamespace

import dns.resolver
import pytest
import yaml

# ---------------------------------------------------------------------------
# Make ``src/`` importable without installing the package
# ---------------------------------------------------------------------------
_SRC = str(Path(__file__).resolve().parent.parent / "src")
if _SRC not in sys.path:
    sys.path.insert(0, _SRC)

TEST_KEY_B64 = base64.b64encode(bytes(range(32))).decode("ascii")
INTERNAL_SECRET = "internal-secret-0123456789"
WEBHOOK_SECRET = "webhook-secret-0123456789"


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


class InlineExecutor:
    """Runs submitted callables immediately on the calling thread."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []

    def submit(self, fn, *args, **kwargs) -> Future:
        self.calls.append((fn, args, kwargs))
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:  # noqa: BLE001
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True) -> None:
        pass


class DeferredExecutor:
    """Records submissions; :meth:`run_all` executes them later."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.is_shut_down = False

    def submit(self, fn, *args, **kwargs) -> Future:
        if self.is_shut_down:
            msg = "cannot schedule new futures after shutdown"
            raise RuntimeError(msg)
        self.calls.append((fn, args, kwargs))
        return Future()

    def run_all(self) -> list:
        calls, self.calls = self.calls, []
        return [fn(*args, **kwargs) for fn, args, kwargs in calls]

    def shutdown(self, wait: bool = True) -> None:
        self.is_shut_down = True


# ---------------------------------------------------------------------------
# DNS
# ---------------------------------------------------------------------------


class FakeResolver:
    """dnspython-style resolver answering from a ``{(name, rdtype): values}`` map.

    Values are address strings for A/AAAA and text strings for TXT.  An
    exception instance as the value is raised instead.  Unknown names
    raise :class:`dns.resolver.NXDOMAIN`.
    """

    def __init__(self, records: dict | None = None) -> None:
        self.records: dict = dict(records or {})
        self.queries: list[tuple[str, str]] = []

    def resolve(self, name: str, rdtype: str):
        self.queries.append((name, rdtype))
        value = self.records.get((name, rdtype))
        if value is None:
            raise dns.resolver.NXDOMAIN
        if isinstance(value, BaseException):
            raise value
        if rdtype == "TXT":
            return [SimpleNamespace(strings=(v.encode("utf-8"),)) for v in value]
        return [SimpleNamespace(address=v) for v in value]


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@pytest.fixture()
def config_data(tmp_path: Path) -> dict:
    """Minimal sandbox configuration backed by a temp SQLite file."""
    return {
        "database": {"path": str(tmp_path / "domainssl.db")},
        "encryption": {"key": TEST_KEY_B64},
        "acme": {"sandbox": True, "poll_attempts": 2, "poll_interval_seconds": 0},
        "internal_api": {"secret": INTERNAL_SECRET},
        "logging": {"level": "DEBUG", "format": "text"},
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, config_data: dict) -> Path:
    cfg = tmp_path / "config.yaml"
    cfg.write_text(
        yaml.safe_dump(config_data, default_flow_style=False, sort_keys=False),
        encoding="utf-8",
    )
    return cfg


@pytest.fixture()
def config(config_data: dict):
    from domainssl.config import DomainSslConfig

    return DomainSslConfig(data=config_data)


@pytest.fixture()
def settings(config):
    return config.settings


# ---------------------------------------------------------------------------
# Database and container
# ---------------------------------------------------------------------------


@pytest.fixture()
def db(settings):
    from domainssl.db import init_database

    database = init_database(settings.database)
    yield database
    database.close()


@pytest.fixture()
def public_resolver() -> FakeResolver:
    """Resolves every name used in tests to a public address."""
    return FakeResolver(
        {
            ("example.com", "A"): ["93.184.216.34"],
            ("example.org", "A"): ["93.184.216.34"],
            ("www.example.com", "A"): ["93.184.216.34"],
        },
    )


@pytest.fixture()
def dns_resolver() -> FakeResolver:
    """TXT lookups for the DNS-01 pre-check; empty until a test publishes."""
    return FakeResolver()


@pytest.fixture()
def completion_executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture()
def webhook_executor() -> DeferredExecutor:
    return DeferredExecutor()


@pytest.fixture()
def container(db, settings, public_resolver, dns_resolver, completion_executor, webhook_executor):
    from domainssl.acme.sandbox import SandboxTransport
    from domainssl.app.context import Container

    c = Container(
        db,
        settings,
        transport=SandboxTransport(),
        ssrf_resolver=public_resolver,
        dns_resolver=dns_resolver,
        completion_executor=completion_executor,
        webhook_executor=webhook_executor,
        sleep=lambda _seconds: None,
    )
    yield c
    c.shutdown(wait=False)


@pytest.fixture()
def verified_domain(container):
    """``example.com`` registered and verified."""
    registry = container.domain_registry
    registry.register_domain("example.com", "project-1")
    return registry.set_verified("example.com")


# ---------------------------------------------------------------------------
# Logging cleanup: configure_logging() detaches the package logger
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_package_logger():
    import logging

    yield
    root = logging.getLogger("domainssl")
    root.handlers.clear()
    root.propagate = True
    root.setLevel(logging.NOTSET)
