"""HTTP-01 challenge responses (RFC 8555 S8.3).

``GET /.well-known/acme-challenge/<token>`` serves the key authorization
of the pending challenge for the request's Host, as plain text with no
caching.
"""

from __future__ import annotations

import logging
import re

from flask import Blueprint, Response, request

from domainssl.app.context import get_container

log = logging.getLogger(__name__)

challenge_bp = Blueprint("acme_challenge", __name__)

TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]{20,128}$")


def request_hostname() -> str:
    """The request's Host header without the port, lower-cased."""
    return request.host.split(":", 1)[0].strip().lower()


@challenge_bp.route("/.well-known/acme-challenge/<token>", methods=["GET"])
def acme_challenge(token: str):
    if not TOKEN_RE.match(token):
        return Response("Invalid token format", status=400, mimetype="text/plain")

    hostname = request_hostname()
    key_authz = get_container().certificate_service.challenge_response(hostname, token)
    if key_authz is None:
        log.info("Challenge not found for %s (token %s)", hostname, token)
        return Response("Challenge not found", status=404, mimetype="text/plain")

    log.info("Serving HTTP-01 challenge for %s", hostname)
    response = Response(key_authz, status=200)
    response.headers["Content-Type"] = "text/plain; charset=utf-8"
    response.headers["Cache-Control"] = "no-store"
    return response
