# dispatcher.py
"""Query lookup and statement verb check ahead of binding."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum

from db_abstraction.binder import Command, bind_query
from db_abstraction.error_handler import QueryNotFoundError, VerbMismatchError
from db_abstraction.logger import get_logger
from db_abstraction.queries.base import DatabaseQuery

logger = get_logger('dispatcher')


class Operation(Enum):
    """Statement kinds a caller may request, valued by their SQL verb."""

    SELECT = 'SELECT'
    INSERT = 'INSERT'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'

    @property
    def verb(self) -> str:
        return self.value


def find_query(registry: Mapping[str, DatabaseQuery], query_name: str) -> DatabaseQuery:
    """Return the registered query or raise :class:`QueryNotFoundError`."""
    query = registry.get(query_name)
    if query is None:
        raise QueryNotFoundError(query_name)
    return query


def check_verb(query: DatabaseQuery, query_name: str, operation: Operation) -> None:
    """Case-insensitive check that the statement starts with the operation's verb."""
    if not query.sql.upper().startswith(operation.verb):
        raise VerbMismatchError(query_name, operation.verb)


def dispatch(
    registry: Mapping[str, DatabaseQuery],
    operation: Operation,
    query_name: str,
    parameters: Mapping[str, object] | None,
) -> Command:
    """
    Look up ``query_name``, verify its verb and bind ``parameters``.

    Raises:
        QueryNotFoundError: If the name is not registered.
        VerbMismatchError: If the SQL does not start with the operation's verb.
    """
    query = find_query(registry, query_name)
    check_verb(query, query_name, operation)
    logger.debug('Dispatching %s %s', operation.verb, query_name)
    return bind_query(query, parameters)
