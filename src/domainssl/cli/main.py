"""domainssl command-line entry point.

Usage::

    domainssl -c config.yaml --validate-only
    domainssl -c config.yaml serve [--dev]
    domainssl -c config.yaml init-db
    domainssl -c config.yaml domain add example.com --project p1
    domainssl -c config.yaml domain verify example.com
    domainssl -c config.yaml issue example.com --challenge DNS01
    domainssl -c config.yaml verify-dns <cert_id>
    domainssl -c config.yaml renew-due
    python -m domainssl -c config.yaml health
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from domainssl import __version__  # noqa: PLC0415

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="domainssl",
        description="domainssl: certificate lifecycle manager for custom domains",
    )
    parser.add_argument(
        "-c",
        "--config",
        required=True,
        metavar="PATH",
        help="Path to the YAML configuration file.",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP endpoints")
    serve_parser.add_argument(
        "--dev",
        action="store_true",
        default=False,
        help="Use Flask's development server instead of gunicorn.",
    )

    subparsers.add_parser("init-db", help="Create the database schema")
    subparsers.add_parser("health", help="Print certificate counts per status")
    subparsers.add_parser("renew-due", help="Run one automatic renewal sweep")

    issue = subparsers.add_parser("issue", help="Start certificate issuance for a domain")
    issue.add_argument("domain")
    issue.add_argument(
        "--challenge",
        choices=("HTTP01", "DNS01"),
        default="HTTP01",
        type=str.upper,
    )

    for name, help_text in (
        ("verify-dns", "Complete a pending DNS-01 certificate"),
        ("complete-http", "Re-drive a pending HTTP-01 certificate"),
        ("cancel", "Cancel a pending certificate"),
        ("renew", "Renew an issued certificate now"),
        ("revoke", "Revoke an issued certificate"),
        ("show", "Show a certificate"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("cert_id")

    delete_certs = subparsers.add_parser(
        "delete-certs",
        help="Delete every certificate of a domain",
    )
    delete_certs.add_argument("domain")

    domain = subparsers.add_parser("domain", help="Custom domain management")
    domain_sub = domain.add_subparsers(dest="domain_command")
    add = domain_sub.add_parser("add", help="Register a domain")
    add.add_argument("domain")
    add.add_argument("--project", required=True, dest="project_id")
    verify = domain_sub.add_parser("verify", help="Mark a domain as verified")
    verify.add_argument("domain")
    verify.add_argument("--unset", action="store_true", default=False)
    remove = domain_sub.add_parser("remove", help="Remove a domain and its certificates")
    remove.add_argument("domain")
    mode = domain_sub.add_parser("ssl-mode", help="Set the SSL mode")
    mode.add_argument("domain")
    mode.add_argument("mode", type=str.upper)
    https = domain_sub.add_parser("force-https", help="Toggle force-HTTPS")
    https.add_argument("domain")
    https.add_argument("state", choices=("on", "off"))
    listing = domain_sub.add_parser("list", help="List domains")
    listing.add_argument("--project", dest="project_id", default=None)

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    sys.stderr.write(f"domainssl: error: {message}\n")


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    from domainssl.config import ConfigValidationError, DomainSslConfig  # noqa: PLC0415

    try:
        config = DomainSslConfig(config_file=config_path)
    except ConfigValidationError as exc:
        if args.debug:
            raise
        _print_error(str(exc))
        sys.exit(1)

    from domainssl.logging import configure_logging  # noqa: PLC0415

    configure_logging(config.settings.logging)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command or "serve"
    if command == "serve":
        from domainssl.cli.commands.serve import run_serve  # noqa: PLC0415

        run_serve(config, args)
    elif command == "init-db":
        from domainssl.cli.commands.db import run_init_db  # noqa: PLC0415

        run_init_db(config, args)
    elif command == "domain":
        from domainssl.cli.commands.domains import run_domain  # noqa: PLC0415

        run_domain(config, args)
    else:
        from domainssl.cli.commands.certs import run_certificate_command  # noqa: PLC0415

        run_certificate_command(config, args)


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    if s.acme.sandbox:
        ca = "sandbox"
    else:
        ca = s.acme.effective_directory_url
    lines = [
        "configuration OK",
        f"  server:    {s.server.bind}:{s.server.port}",
        f"  database:  {s.database.path}",
        f"  ca:        {ca}",
        f"  webhook:   {s.webhook.url or '(disabled)'}",
        f"  renewal:   {s.renewal.threshold_days} days before expiry, "
        f"{s.renewal.batch_size} per sweep",
        f"  internal:  {'enabled' if s.internal_api.secret else 'disabled'}",
    ]
    sys.stdout.write("\n".join(lines) + "\n")
