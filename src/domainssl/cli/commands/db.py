"""Database subcommand: create the schema."""

from __future__ import annotations

import logging
import sqlite3
import sys

log = logging.getLogger(__name__)


def run_init_db(config, args) -> None:
    """Open the database and apply the schema, regardless of ``auto_setup``."""
    from domainssl.db import Database, apply_schema  # noqa: PLC0415

    settings = config.settings.database
    try:
        db = Database(settings.path, busy_timeout=settings.busy_timeout_seconds)
        apply_schema(db)
    except sqlite3.Error as exc:
        if args.debug:
            raise
        sys.stderr.write(f"domainssl: error: schema setup failed: {exc}\n")
        sys.exit(1)
    db.close()
    log.info("Schema applied to %s", settings.path)
    sys.stdout.write(f"Database ready: {settings.path}\n")
