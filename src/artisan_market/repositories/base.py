"""Base data access interface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Mapping, Optional, Sequence

Row = Dict[str, Any]
Filters = Mapping[str, Any]


class DataAccess(ABC):
    """Abstract read/update capability over the backing store's tables.

    Filters map a column to a value (equality) or to a list, tuple or set
    (membership). ``order_by`` lists column names; a leading ``-`` sorts
    that column descending. Implementations raise ``TransientError`` or
    ``StorePermissionError`` on failure.
    """

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[Filters] = None,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        """Run a filtered read and return matching rows."""
        pass

    @abstractmethod
    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        """Apply ``patch`` to rows matching ``filters``; return rows changed."""
        pass

    async def close(self) -> None:
        """Release transport resources."""
        return None
