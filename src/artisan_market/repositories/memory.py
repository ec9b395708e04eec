"""In-memory data access implementation."""

import asyncio
import copy
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import structlog

from .base import DataAccess, Filters, Row

logger = structlog.get_logger()


def _matches(row: Row, filters: Optional[Filters]) -> bool:
    if not filters:
        return True
    for column, expected in filters.items():
        value = row.get(column)
        if isinstance(expected, (list, tuple, set, frozenset)):
            if value not in expected:
                return False
        elif value != expected:
            return False
    return True


def _sort_key(value: Any):
    # None sorts first, like NULLS FIRST
    return (value is not None, value)


def _ordered(rows: List[Row], order_by: Optional[Sequence[str]]) -> List[Row]:
    if not order_by:
        return rows
    # Stable sorts applied from the least significant column up
    for term in reversed(order_by):
        descending = term.startswith("-")
        column = term.lstrip("-")
        rows = sorted(rows, key=lambda r: _sort_key(r.get(column)), reverse=descending)
    return rows


class InMemoryDataAccess(DataAccess):
    """Tables held as lists of dict rows, guarded by one asyncio lock."""

    def __init__(self, tables: Optional[Mapping[str, Iterable[Row]]] = None) -> None:
        self._tables: Dict[str, List[Row]] = {}
        self._lock = asyncio.Lock()
        for name, rows in (tables or {}).items():
            self._tables[name] = [dict(row) for row in rows]
        logger.info("data_access_initialized", backend="memory", tables=sorted(self._tables))

    async def query(
        self,
        table: str,
        filters: Optional[Filters] = None,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Run a filtered read and return copies of matching rows."""
        async with self._lock:
            rows = [row for row in self._tables.get(table, []) if _matches(row, filters)]
            rows = _ordered(rows, order_by)
            if limit is not None:
                rows = rows[:limit]
            if columns:
                return [{c: row.get(c) for c in columns} for row in rows]
            return copy.deepcopy(rows)

    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        """Apply a patch to matching rows."""
        async with self._lock:
            changed = 0
            for row in self._tables.get(table, []):
                if _matches(row, filters):
                    row.update(patch)
                    changed += 1
            logger.debug("rows_updated", table=table, changed=changed)
            return changed
