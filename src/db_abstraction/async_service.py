# async_service.py
"""Awaitable façade over :class:`DatabaseService`.

DB-API drivers block, so every call runs in a worker thread via
:func:`asyncio.to_thread`. Calls on one service are serialised with a lock:
a DB-API connection must not be used from two threads at once. Selects are
read in full inside the worker, so returned cursors never touch the driver.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable

from db_abstraction.database import ResultCursor
from db_abstraction.logger import get_logger
from db_abstraction.queries.base import Vendor
from db_abstraction.service import DatabaseService, Parameters

logger = get_logger('async_service')


def _buffered(
    select: Callable[[str, Parameters], ResultCursor],
    query_name: str,
    parameters: Parameters,
) -> ResultCursor:
    return select(query_name, parameters).buffered()


class DatabaseServiceAsync:
    """
    Async counterpart of :class:`DatabaseService` with the same operations.

    Example:
        >>> async with DatabaseServiceAsync(service) as db:
        ...     with await db.select('contact.get', {'contact_id': 7}) as cursor:
        ...         rows = cursor.fetchall()
    """

    def __init__(self, service: DatabaseService):
        self.service = service
        self._lock = asyncio.Lock()

    @property
    def vendor(self) -> Vendor:
        return self.service.vendor

    async def _run[**P, R](self, func: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
        async with self._lock:
            return await asyncio.to_thread(func, *args, **kwargs)

    async def select(self, query_name: str, parameters: Parameters = None) -> ResultCursor:
        """Run a select; rows are fetched in the worker and returned buffered."""
        return await self._run(_buffered, self.service.select, query_name, parameters)

    async def select_one(self, query_name: str, parameters: Parameters = None) -> ResultCursor:
        return await self._run(_buffered, self.service.select_one, query_name, parameters)

    async def fetch_all(
        self, query_name: str, parameters: Parameters = None
    ) -> list[dict[str, object]]:
        """Run a select and read every row in the worker thread."""

        def read_all() -> list[dict[str, object]]:
            with self.service.select(query_name, parameters) as cursor:
                return list(cursor.as_dicts())

        return await self._run(read_all)

    async def insert(self, query_name: str, parameters: Parameters = None) -> int:
        return await self._run(self.service.insert, query_name, parameters)

    async def update(self, query_name: str, parameters: Parameters = None) -> int:
        return await self._run(self.service.update, query_name, parameters)

    async def delete(self, query_name: str, parameters: Parameters = None) -> int:
        return await self._run(self.service.delete, query_name, parameters)

    async def sequence(self, sequence_name: str) -> int:
        return await self._run(self.service.sequence, sequence_name)

    async def last_identity(self) -> int:
        return await self._run(self.service.last_identity)

    async def close(self) -> None:
        await self._run(self.service.close)
        logger.debug('Async service for %s closed', self.vendor.value)

    async def __aenter__(self) -> DatabaseServiceAsync:
        return self

    async def __aexit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        await self.close()
