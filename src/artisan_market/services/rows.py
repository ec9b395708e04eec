"""Parsing of stored rows into domain models."""

from typing import Callable, Iterable, List, TypeVar

import structlog

from ..repositories.base import Row

logger = structlog.get_logger()

T = TypeVar("T")


def parse_rows(parse: Callable[[Row], T], rows: Iterable[Row], table: str) -> List[T]:
    """Parse each row, dropping malformed ones with a warning.

    A missing column surfaces as ``KeyError``; a value outside the model's
    domain (unknown sender_type, status) as pydantic's ``ValidationError``,
    which is a ``ValueError``.
    """
    parsed = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except (KeyError, ValueError) as e:
            logger.warning("malformed_row_skipped", table=table, row_id=row.get("id"), error=str(e))
    return parsed
