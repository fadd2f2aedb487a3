"""Generic table repository over :class:`~domainssl.db.Database`.

Subclasses set :attr:`table_name` and implement the row/entity mapping.
Every method runs inside :meth:`Database.transaction`, so calls made
inside an outer transaction join it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from domainssl.db.database import Database

T = TypeVar("T")


class BaseRepository(Generic[T]):
    table_name: str
    primary_key: str = "id"

    def __init__(self, db: Database) -> None:
        self.db = db

    # -- mapping ------------------------------------------------------------

    def _row_to_entity(self, row: dict[str, Any]) -> T:
        raise NotImplementedError

    def _entity_to_row(self, entity: T) -> dict[str, Any]:
        raise NotImplementedError

    # -- reads --------------------------------------------------------------

    @staticmethod
    def _where(criteria: dict[str, Any]) -> tuple[str, list[Any]]:
        if not criteria:
            return "", []
        clauses = [f"{col} = ?" for col in criteria]
        return " WHERE " + " AND ".join(clauses), list(criteria.values())

    def find_by_id(self, pk: str) -> T | None:
        return self.find_one_by({self.primary_key: pk})

    def find_one_by(self, criteria: dict[str, Any]) -> T | None:
        where, params = self._where(criteria)
        row = self.db.fetchone(f"SELECT * FROM {self.table_name}{where} LIMIT 1", params)
        return self._row_to_entity(row) if row is not None else None

    def find_by(self, criteria: dict[str, Any], *, order_by: str | None = None) -> list[T]:
        where, params = self._where(criteria)
        order = f" ORDER BY {order_by}" if order_by else ""
        rows = self.db.fetchall(f"SELECT * FROM {self.table_name}{where}{order}", params)
        return [self._row_to_entity(r) for r in rows]

    def count_by(self, criteria: dict[str, Any]) -> int:
        where, params = self._where(criteria)
        row = self.db.fetchone(f"SELECT COUNT(*) AS n FROM {self.table_name}{where}", params)
        return int(row["n"]) if row else 0

    # -- writes -------------------------------------------------------------

    def create(self, entity: T) -> T:
        row = self._entity_to_row(entity)
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)
        with self.db.transaction() as conn:
            conn.execute(
                f"INSERT INTO {self.table_name} ({columns}) VALUES ({placeholders})",
                list(row.values()),
            )
        return entity

    def update_fields(self, pk: str, fields: dict[str, Any]) -> T | None:
        """UPDATE the given columns and return the refreshed entity."""
        if not fields:
            return self.find_by_id(pk)
        assignments = ", ".join(f"{col} = ?" for col in fields)
        with self.db.transaction() as conn:
            conn.execute(
                f"UPDATE {self.table_name} SET {assignments} WHERE {self.primary_key} = ?",
                [*fields.values(), pk],
            )
            return self.find_by_id(pk)

    def delete(self, pk: str) -> bool:
        with self.db.transaction() as conn:
            cur = conn.execute(
                f"DELETE FROM {self.table_name} WHERE {self.primary_key} = ?",
                (pk,),
            )
        return cur.rowcount > 0
