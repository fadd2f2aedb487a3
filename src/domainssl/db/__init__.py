"""Database subsystem for domainssl.

Public API::

    from domainssl.db import Database, init_database
"""

from domainssl.db.database import Database
from domainssl.db.init import apply_schema, init_database

__all__ = [
    "Database",
    "apply_schema",
    "init_database",
]
