"""In-process stub of the table port.

``InMemoryTables`` implements ``TablePort`` over plain dicts without any
network calls. It backs unit tests and local development where the hosted
database is not available. Inserted rows get a UUID ``id`` and a
``created_at`` timestamp, and tables with a unique column reject
duplicates with the database's unique-violation code.
"""

import copy
import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .domain import RowNotFound, TableError, TablePort

UNIQUE_COLUMNS = {"coupons": ("code",)}


def _matches(row: dict, filters: Optional[dict]) -> bool:
    for column, value in (filters or {}).items():
        cell = row.get(column)
        if value is None or isinstance(value, bool):
            if cell is not value:
                return False
        elif str(cell) != str(value):
            return False
    return True


def _sort(rows: List[dict], order: Optional[str]) -> List[dict]:
    if not order:
        return rows
    # apply the last key first so earlier keys win
    for part in reversed(order.split(",")):
        column, _, direction = part.partition(".")
        reverse = direction == "desc"
        present = [r for r in rows if r.get(column) is not None]
        missing = [r for r in rows if r.get(column) is None]
        present.sort(key=lambda r: r[column], reverse=reverse)
        # nulls last for asc, first for desc
        rows = missing + present if reverse else present + missing
    return rows


class InMemoryTables(TablePort):
    """Dict-backed tables.

    Args:
        seed: Optional initial rows per table name.
    """

    def __init__(self, seed: Optional[Dict[str, List[dict]]] = None):
        self._lock = threading.RLock()
        self.rows: Dict[str, List[dict]] = {}
        for table, rows in (seed or {}).items():
            self.rows[table] = [copy.deepcopy(r) for r in rows]

    def _table(self, table: str) -> List[dict]:
        return self.rows.setdefault(table, [])

    def select(self, table: str, *, filters: Optional[dict] = None, order: Optional[str] = None, single: bool = False) -> Any:
        with self._lock:
            found = [copy.deepcopy(r) for r in self._table(table) if _matches(r, filters)]
        found = _sort(found, order)
        if single:
            if len(found) != 1:
                raise RowNotFound("JSON object requested, multiple (or no) rows returned", code="PGRST116", status=406)
            return found[0]
        return found

    def insert(self, table: str, rows: "dict | List[dict]") -> List[dict]:
        batch = [rows] if isinstance(rows, dict) else list(rows)
        now = datetime.now(timezone.utc).isoformat()
        created = []
        with self._lock:
            stored = self._table(table)
            for row in batch:
                for column in UNIQUE_COLUMNS.get(table, ()):
                    if any(r.get(column) == row.get(column) for r in stored + created):
                        raise TableError(
                            f'duplicate key value violates unique constraint "{table}_{column}_key"',
                            code="23505",
                            status=409,
                        )
                new = {"id": str(uuid.uuid4()), "created_at": now, **copy.deepcopy(row)}
                created.append(new)
            stored.extend(created)
        return [copy.deepcopy(r) for r in created]

    def update(self, table: str, values: dict, *, filters: dict) -> List[dict]:
        updated = []
        with self._lock:
            for row in self._table(table):
                if _matches(row, filters):
                    row.update(copy.deepcopy(values))
                    updated.append(copy.deepcopy(row))
        return updated

    def delete(self, table: str, *, filters: dict) -> None:
        with self._lock:
            self.rows[table] = [r for r in self._table(table) if not _matches(r, filters)]
