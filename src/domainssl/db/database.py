"""SQLite connection handling and transactions.

Each thread gets its own connection (``sqlite3`` connections must not
be shared across threads mid-transaction).  Writes go through
:meth:`Database.transaction`, which nests: an inner block joins the
outer transaction and only the outermost block commits or rolls back.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


def _adapt_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        msg = "Naive datetime not allowed in SQLite"
        raise ValueError(msg)
    # fixed width so stored values compare correctly as text
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def _convert_datetime(value: bytes) -> datetime:
    dt = datetime.fromisoformat(value.decode("utf-8"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


# sqlite3 adapter/converter registration is process-global
sqlite3.register_adapter(datetime, _adapt_datetime)
sqlite3.register_converter("timestamp", _convert_datetime)


class Database:
    """Thread-aware SQLite database handle.

    Parameters
    ----------
    path:
        Database file.  Parent directories are created on first connect.
    busy_timeout:
        Seconds to wait on a locked database before failing.

    """

    def __init__(self, path: str | Path, *, busy_timeout: float = 30.0) -> None:
        self.path = Path(path)
        self._busy_timeout = busy_timeout
        self._local = threading.local()
        self._all: set[sqlite3.Connection] = set()
        self._all_lock = threading.Lock()

    def connection(self) -> sqlite3.Connection:
        conn = getattr(self._local, "conn", None)
        if conn is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.path),
                detect_types=sqlite3.PARSE_DECLTYPES,
                check_same_thread=False,
                timeout=self._busy_timeout,
                isolation_level=None,  # explicit BEGIN/COMMIT only
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn = conn
            with self._all_lock:
                self._all.add(conn)
        return conn

    @contextmanager
    def transaction(self, *, immediate: bool = True):
        """Yield a connection inside a transaction; commit or roll back on exit."""
        conn = self.connection()
        started = False
        if not conn.in_transaction:
            conn.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            started = True
        try:
            yield conn
            if started:
                conn.execute("COMMIT")
        except BaseException:
            if started and conn.in_transaction:
                conn.execute("ROLLBACK")
            raise

    def execute(self, sql: str, params: tuple | list | dict = ()) -> sqlite3.Cursor:
        return self.connection().execute(sql, params)

    def fetchone(self, sql: str, params: tuple | list | dict = ()) -> dict[str, Any] | None:
        row = self.execute(sql, params).fetchone()
        return dict(row) if row is not None else None

    def fetchall(self, sql: str, params: tuple | list | dict = ()) -> list[dict[str, Any]]:
        return [dict(r) for r in self.execute(sql, params).fetchall()]

    def executescript(self, script: str) -> None:
        self.connection().executescript(script)

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._all_lock:
            conns = list(self._all)
            self._all.clear()
        for conn in conns:
            conn.close()
        self._local = threading.local()
