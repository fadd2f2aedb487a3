"""JSON error rendering for the domainssl HTTP surface.

Errors from :mod:`domainssl.core.errors` render as ``{"error", "type"}``
with the status code they carry.  Werkzeug HTTP errors use the same
shape; anything else is logged and rendered as a generic 500.
"""

from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from domainssl.core.errors import DomainSslError

log = logging.getLogger(__name__)


def error_response(detail: str, status: int, error_type: str = "http"):
    response = jsonify({"error": detail, "type": error_type})
    response.status_code = status
    return response


def register_error_handlers(app: Flask) -> None:
    """Attach handlers that produce JSON responses for all errors."""

    @app.errorhandler(DomainSslError)
    def _handle_domainssl_error(exc: DomainSslError):
        if exc.status >= 500:  # noqa: PLR2004
            log.error("%s: %s", type(exc).__name__, exc.detail)
        response = jsonify(exc.to_dict())
        response.status_code = exc.status
        return response

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        return error_response(exc.description or "An error occurred", exc.code or 500)

    @app.errorhandler(Exception)
    def _handle_unhandled(exc: Exception):
        # HTTPException subclasses are already caught above
        log.exception("Unhandled exception during request")
        return error_response("An unexpected internal error occurred", 500, "internal")
