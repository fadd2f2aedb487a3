"""CLI subcommand implementations.

Shared helpers for commands that need the full service graph.
"""

from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from datetime import datetime
from enum import Enum


@contextmanager
def open_container(config):
    """Yield a :class:`Container` and drain its executors on exit."""
    from domainssl.app.context import Container  # noqa: PLC0415
    from domainssl.db import init_database  # noqa: PLC0415

    db = init_database(config.settings.database)
    container = Container(db, config.settings)
    try:
        yield container
    finally:
        container.shutdown(wait=True)
        db.close()


def _default(value):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return str(value)


def emit(payload) -> None:
    """Write *payload* to stdout as indented JSON."""
    sys.stdout.write(json.dumps(payload, indent=2, default=_default) + "\n")


def fail(message: str, code: int = 1) -> None:
    sys.stderr.write(f"domainssl: error: {message}\n")
    sys.exit(code)
