"""On-demand TLS eligibility check for the reverse proxy.

``GET /domain-check?domain=<name>`` answers 200 ``OK`` when the proxy may
obtain a certificate for the name, 403 otherwise.
"""

from __future__ import annotations

from flask import Blueprint, Response, request

from domainssl.app.context import get_container

domain_check_bp = Blueprint("domain_check", __name__)


@domain_check_bp.route("/domain-check", methods=["GET"])
def domain_check():
    domain = request.args.get("domain", "").strip()
    if not domain:
        return Response("Missing domain parameter", status=400, mimetype="text/plain")
    if get_container().domain_registry.is_eligible(domain):
        return Response("OK", status=200, mimetype="text/plain")
    return Response("Domain not eligible for automatic SSL", status=403, mimetype="text/plain")
