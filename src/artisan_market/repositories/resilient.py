"""Timeout and bounded retry applied at the data access boundary."""

import asyncio
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..domain.errors import MarketplaceError, TransientError, classify_error
from .base import DataAccess, Filters, Row

logger = structlog.get_logger()


def _log_retry(retry_state: RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    logger.warning(
        "data_access_retry",
        attempt=retry_state.attempt_number,
        error=str(exc),
    )


class ResilientDataAccess(DataAccess):
    """Wraps another ``DataAccess`` with a per-call timeout and retries.

    A timeout becomes ``TransientError``. Only ``TransientError`` is
    retried; permission failures surface on the first attempt. Any other
    exception from the wrapped store is classified before it leaves.
    """

    def __init__(
        self,
        inner: DataAccess,
        timeout: float = 10.0,
        attempts: int = 3,
        max_wait: float = 2.0,
    ) -> None:
        self.inner = inner
        self.timeout = timeout
        self.attempts = max(1, attempts)
        self.max_wait = max_wait

    async def _call(self, operation: str, table: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_exponential(multiplier=0.1, min=0, max=self.max_wait),
            retry=retry_if_exception_type(TransientError),
            before_sleep=_log_retry,
            reraise=True,
        ):
            with attempt:
                try:
                    return await asyncio.wait_for(factory(), timeout=self.timeout)
                except asyncio.TimeoutError:
                    logger.warning("data_access_timeout", operation=operation, table=table, timeout=self.timeout)
                    raise TransientError(f"{operation} on {table} timed out after {self.timeout}s")
                except MarketplaceError:
                    raise
                except Exception as e:
                    raise classify_error(e) from e

    async def query(
        self,
        table: str,
        filters: Optional[Filters] = None,
        columns: Optional[Sequence[str]] = None,
        order_by: Optional[Sequence[str]] = None,
        limit: Optional[int] = None,
    ) -> List[Row]:
        return await self._call(
            "query",
            table,
            lambda: self.inner.query(table, filters=filters, columns=columns, order_by=order_by, limit=limit),
        )

    async def update(self, table: str, filters: Filters, patch: Mapping[str, Any]) -> int:
        # Patches here are set-to-value, so repeating one is harmless
        return await self._call("update", table, lambda: self.inner.update(table, filters, patch))

    async def close(self) -> None:
        await self.inner.close()
