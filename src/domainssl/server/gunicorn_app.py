"""Programmatic gunicorn runner for domainssl.

Starts gunicorn with settings derived from the domainssl config rather
than requiring a separate gunicorn config file.

Usage::

    from domainssl.server.gunicorn_app import run_gunicorn

    run_gunicorn(flask_app, settings.server)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from gunicorn.app.base import BaseApplication

if TYPE_CHECKING:
    from flask import Flask

    from domainssl.config.settings import ServerSettings

log = logging.getLogger(__name__)


class DomainSslApplication(BaseApplication):
    """Gunicorn application wrapping an already-built Flask app."""

    def __init__(self, flask_app: Flask, server: ServerSettings) -> None:
        self.application = flask_app
        self._server = server
        super().__init__()

    def load_config(self) -> None:
        s = self._server
        self.cfg.set("bind", f"{s.bind}:{s.port}")
        self.cfg.set("workers", s.workers)
        self.cfg.set("threads", s.threads)
        self.cfg.set("worker_class", "gthread")
        self.cfg.set("timeout", s.timeout)
        self.cfg.set("graceful_timeout", s.graceful_timeout)
        # Access logging is done by the request hooks
        self.cfg.set("accesslog", None)

    def load(self) -> Flask:
        return self.application


def run_gunicorn(app: Flask, settings: ServerSettings) -> None:
    """Start a gunicorn server from :class:`ServerSettings`; blocks."""
    log.info(
        "Starting gunicorn on %s:%s (%d worker(s) x %d threads)",
        settings.bind,
        settings.port,
        settings.workers,
        settings.threads,
    )
    DomainSslApplication(app, settings).run()
