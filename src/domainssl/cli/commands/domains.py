"""Domain subcommands: register, verify, remove, SSL mode and listing."""

from __future__ import annotations

from domainssl.cli.commands import emit, fail, open_container
from domainssl.core.errors import DomainSslError


def domain_view(domain) -> dict:
    return {
        "id": domain.id,
        "domain": domain.domain,
        "project_id": domain.project_id,
        "verified": domain.verified,
        "verified_at": domain.verified_at,
        "ssl_mode": domain.ssl_mode,
        "force_https": domain.force_https,
        "created_at": domain.created_at,
    }


def run_domain(config, args) -> None:
    """Dispatch one ``domain`` subcommand."""
    if args.domain_command is None:
        fail("domain requires a subcommand (add, verify, remove, ssl-mode, force-https, list)")

    with open_container(config) as c:
        registry = c.domain_registry
        try:
            if args.domain_command == "add":
                domain = registry.register_domain(args.domain, args.project_id)
                view = domain_view(domain)
                view["verification_token"] = domain.verification_token
                emit(view)
            elif args.domain_command == "verify":
                emit(domain_view(registry.set_verified(args.domain, not args.unset)))
            elif args.domain_command == "remove":
                registry.remove_domain(args.domain)
                emit({"domain": args.domain, "removed": True})
            elif args.domain_command == "ssl-mode":
                emit(domain_view(registry.set_ssl_mode(args.domain, args.mode)))
            elif args.domain_command == "force-https":
                emit(domain_view(registry.set_force_https(args.domain, args.state == "on")))
            elif args.domain_command == "list":
                emit([domain_view(d) for d in registry.list_domains(args.project_id)])
        except DomainSslError as exc:
            fail(f"{exc.detail} ({exc.error_type})")
