"""Flask application factory for domainssl.

Usage::

    from domainssl.app import create_app
    from domainssl.config import DomainSslConfig
    from domainssl.db import init_database

    config = DomainSslConfig(config_file="config.yaml")
    db = init_database(config.settings.database)
    app = create_app(config, database=db)
"""

from __future__ import annotations

import atexit
import logging
import sqlite3
from typing import TYPE_CHECKING

from flask import Flask, jsonify

if TYPE_CHECKING:
    from flask.typing import ResponseReturnValue

    from domainssl.app.context import Container
    from domainssl.config.domainssl_config import DomainSslConfig
    from domainssl.db.database import Database

log = logging.getLogger(__name__)


def create_app(
    config: DomainSslConfig,
    database: Database | None = None,
    *,
    container: Container | None = None,
) -> Flask:
    """Create and configure the domainssl Flask application.

    Parameters
    ----------
    config:
        Loaded :class:`DomainSslConfig`.
    database:
        Opened :class:`Database`.  When provided (or when *container* is
        given) the dependency container and all routes are wired up.
        Without either the app still starts with only the liveness
        probe, which is what ``--validate-only`` needs.
    container:
        Pre-built container, e.g. with a sandbox transport and fake
        resolvers in tests.

    Returns
    -------
    Flask
        Fully configured WSGI application.

    """
    settings = config.settings

    app = Flask("domainssl")
    app.config["DOMAINSSL_SETTINGS"] = settings
    app.config["DOMAINSSL_CONFIG"] = config

    # -- Error handlers -----------------------------------------------------
    from domainssl.app.errors import register_error_handlers  # noqa: PLC0415

    register_error_handlers(app)

    # -- Request lifecycle hooks --------------------------------------------
    from domainssl.app.middleware import register_request_hooks  # noqa: PLC0415

    register_request_hooks(app)

    # -- Infrastructure endpoints -------------------------------------------
    _register_health(app)

    # -- Dependency container -----------------------------------------------
    if container is None and database is not None:
        from domainssl.app.context import Container  # noqa: PLC0415

        container = Container(database, settings)
        atexit.register(container.shutdown)

    if container is not None:
        app.extensions["container"] = container

        from domainssl.api import register_blueprints  # noqa: PLC0415

        register_blueprints(app)

    log.info(
        "Flask application created (mode=%s)",
        container.transport.mode if container is not None else "unwired",
    )
    return app


# ---------------------------------------------------------------------------
# Infrastructure endpoints
# ---------------------------------------------------------------------------


def _register_health(app: Flask) -> None:
    """Register ``/livez`` and ``/healthz`` probes."""
    from domainssl import __version__  # noqa: PLC0415

    @app.route("/livez")
    def livez() -> ResponseReturnValue:
        return jsonify({"alive": True, "version": __version__}), 200

    @app.route("/healthz")
    def healthz() -> ResponseReturnValue:
        """Database connectivity and issuance mode."""
        result: dict = {"status": "ok", "version": __version__}
        container = app.extensions.get("container")
        if container is None:
            return jsonify({**result, "status": "degraded", "reason": "not wired"}), 503
        result["mode"] = container.transport.mode
        try:
            container.db.fetchone("SELECT 1 AS ok")
            result["database"] = "connected"
        except sqlite3.Error:
            log.warning("Health check: database unavailable", exc_info=True)
            result["database"] = "disconnected"
            result["status"] = "degraded"
        code = 200 if result["status"] == "ok" else 503
        return jsonify(result), code
