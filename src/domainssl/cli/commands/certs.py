"""Certificate subcommands: issue, complete, cancel, renew, revoke, inspect."""

from __future__ import annotations

import logging
import sys

from domainssl.cli.commands import emit, fail, open_container
from domainssl.core.errors import DomainSslError

log = logging.getLogger(__name__)

_RETRY_EXIT_CODE = 2


def certificate_view(cert) -> dict:
    """Public fields of a certificate; key material and CSR are omitted."""
    return {
        "id": cert.id,
        "domain_id": cert.domain_id,
        "status": cert.status,
        "challenge_type": cert.challenge_type,
        "dns_txt_value": cert.dns_txt_value,
        "issued_at": cert.issued_at,
        "expires_at": cert.expires_at,
        "last_error": cert.last_error,
        "renewal_attempts": cert.renewal_attempts,
        "last_attempt_at": cert.last_attempt_at,
        "created_at": cert.created_at,
        "updated_at": cert.updated_at,
    }


def run_certificate_command(config, args) -> None:
    """Dispatch one certificate subcommand against a fresh container."""
    with open_container(config) as c:
        svc = c.certificate_service
        try:
            code = _dispatch(c, svc, args)
        except DomainSslError as exc:
            if args.debug:
                log.exception("Command %s failed", args.command)
            fail(f"{exc.detail} ({exc.error_type})")
    if code:
        sys.exit(code)


def _dispatch(c, svc, args) -> int:  # noqa: PLR0911
    command = args.command
    if command == "health":
        emit(svc.health())
        return 0
    if command == "renew-due":
        emit(c.renewal_sweeper.run())
        return 0
    if command == "issue":
        domain = c.domain_registry.get_domain(args.domain)
        result = svc.issue_certificate(domain.id, args.challenge)
        payload = {"cert_id": result.cert_id, "status": result.status}
        if result.txt_name is not None:
            payload["txt_name"] = result.txt_name
            payload["txt_value"] = result.txt_value
        emit(payload)
        return 0
    if command in ("verify-dns", "complete-http"):
        if command == "verify-dns":
            result = svc.complete_dns01(args.cert_id)
        else:
            result = svc.complete_http01(args.cert_id)
        emit(
            {
                "cert_id": result.cert_id,
                "status": result.status,
                "retry": result.retry,
                "message": result.message,
            },
        )
        return _RETRY_EXIT_CODE if result.retry else 0
    if command == "cancel":
        emit(certificate_view(svc.cancel(args.cert_id)))
        return 0
    if command == "renew":
        emit(certificate_view(svc.renew(args.cert_id)))
        return 0
    if command == "revoke":
        emit(certificate_view(svc.revoke(args.cert_id)))
        return 0
    if command == "show":
        emit(certificate_view(svc.get_certificate(args.cert_id)))
        return 0
    if command == "delete-certs":
        domain = c.domain_registry.get_domain(args.domain)
        emit({"domain": domain.domain, "deleted": svc.delete_all_for_domain(domain.id)})
        return 0
    fail(f"unknown command: {command}")
    return 1
