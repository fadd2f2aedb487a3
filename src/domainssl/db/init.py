"""Database initialisation from domainssl configuration.

Usage::

    from domainssl.db.init import init_database

    db = init_database(settings.database)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from domainssl.db.database import Database

if TYPE_CHECKING:
    from domainssl.config.settings import DatabaseSettings

_SCHEMA_PATH = Path(__file__).parent / "schema.sql"

log = logging.getLogger(__name__)


def apply_schema(db: Database) -> None:
    """Create all tables and indexes (idempotent)."""
    db.executescript(_SCHEMA_PATH.read_text(encoding="utf-8"))


def init_database(settings: DatabaseSettings) -> Database:
    """Open the database and, when ``auto_setup`` is set, apply the schema.

    Parameters
    ----------
    settings:
        The ``database`` section from :class:`DomainSslSettings`.

    """
    log.info("Opening database %s", settings.path)
    db = Database(settings.path, busy_timeout=settings.busy_timeout_seconds)
    if settings.auto_setup:
        apply_schema(db)
        log.info("Database schema applied")
    return db
