"""Agent-facing internal endpoints, authenticated by a shared secret.

``GET /internal/cert/<domain>``
    Decrypted certificate bundle for the proxy-fleet agent.  The secret
    is sent in ``X-Internal-Secret``.

``POST /internal/renewal``
    Cron trigger for one renewal sweep.  With ``?action=health``
    (``GET`` or ``POST``) only status counts are returned.  The secret
    is sent as ``Authorization: Bearer <secret>``.

Both answer 503 while ``internal_api.secret`` is unset.
"""

from __future__ import annotations

import hmac
import logging

from flask import Blueprint, current_app, jsonify, request

from domainssl.app.context import get_container
from domainssl.app.errors import error_response

log = logging.getLogger(__name__)

internal_bp = Blueprint("internal", __name__)


def _check_secret(provided: str | None):
    """Return an error response, or ``None`` when *provided* matches."""
    secret = current_app.config["DOMAINSSL_SETTINGS"].internal_api.secret
    if not secret:
        return error_response("Internal API secret not configured", 503, "unavailable")
    if provided is None or not hmac.compare_digest(
        provided.encode("utf-8"),
        secret.reveal().encode("utf-8"),
    ):
        log.warning("Rejected internal API call with a bad secret")
        return error_response("Unauthorized", 401, "unauthorized")
    return None


@internal_bp.route("/cert/<domain>", methods=["GET"])
def certificate_bundle(domain: str):
    denied = _check_secret(request.headers.get("X-Internal-Secret"))
    if denied is not None:
        return denied

    bundle = get_container().certificate_service.get_active_bundle(domain)
    if bundle is None:
        return error_response("No active certificate found for this domain", 404, "not_found")

    log.info("Served certificate bundle for %s", domain)
    return jsonify(
        {
            "privateKey": bundle.private_key.reveal(),
            "certificate": bundle.certificate,
            "fullChain": bundle.full_chain,
            "expiresAt": bundle.expires_at.isoformat(),
        }
    )


@internal_bp.route("/renewal", methods=["GET", "POST"])
def renewal():
    auth = request.headers.get("Authorization", "")
    token = auth[len("Bearer ") :] if auth.startswith("Bearer ") else None
    denied = _check_secret(token)
    if denied is not None:
        return denied

    container = get_container()
    if request.args.get("action") == "health":
        return jsonify({"success": True, "health": container.certificate_service.health()})
    if request.method != "POST":
        response = error_response("Renewal sweeps must be triggered with POST", 405, "method_not_allowed")
        response.headers["Allow"] = "POST"
        return response

    result = container.renewal_sweeper.run()
    return jsonify(
        {
            "success": True,
            "message": f"Processed {result['checked']} expiring certificates",
            "result": result,
        }
    )
