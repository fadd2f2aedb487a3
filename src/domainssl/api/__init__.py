"""HTTP surface: Flask blueprint registration.

Call :func:`register_blueprints` during application startup to wire the
pull-style endpoints used by the reverse proxy, the ACME CA and the
proxy-fleet agent.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Flask

log = logging.getLogger(__name__)


def register_blueprints(app: Flask) -> None:
    from domainssl.api.challenge import challenge_bp  # noqa: PLC0415
    from domainssl.api.domain_check import domain_check_bp  # noqa: PLC0415
    from domainssl.api.internal import internal_bp  # noqa: PLC0415

    app.register_blueprint(challenge_bp)
    app.register_blueprint(domain_check_bp)
    app.register_blueprint(internal_bp, url_prefix="/internal")
    log.debug("Registered blueprints: %s", ", ".join(app.blueprints))
