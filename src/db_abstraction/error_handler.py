# error_handler.py
"""Error taxonomy of the query layer and driver error normalisation."""

from __future__ import annotations

import sqlite3

from db_abstraction.queries.base import FragmentType, Vendor


class DatabaseError(Exception):
    """Base database error."""

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error

    def __str__(self) -> str:
        # KeyError subclasses would otherwise render the message with quotes
        return str(self.args[0]) if self.args else ''


class QueryNotFoundError(DatabaseError, KeyError):
    """Requested query name is not registered."""

    def __init__(self, query_name: str):
        super().__init__(f'Unable to find query {query_name}')
        self.query_name = query_name


class FragmentNotFoundError(DatabaseError, KeyError):
    """A fragmented query references a fragment nobody provided."""

    def __init__(self, fragment_type: FragmentType, fragment_name: str, query_name: str | None):
        super().__init__(
            f'Unable to find {fragment_type.name} fragment {fragment_name} '
            f'for query {query_name}'
        )
        self.fragment_type = fragment_type
        self.fragment_name = fragment_name
        self.query_name = query_name


class VerbMismatchError(DatabaseError):
    """Statement verb does not match the requested operation."""

    def __init__(self, query_name: str, expected_verb: str):
        article = 'an' if expected_verb[0] in 'AEIOU' else 'a'
        super().__init__(
            f'Query {query_name} is not {article} {expected_verb.lower()} statement'
        )
        self.query_name = query_name
        self.expected_verb = expected_verb


class UnsupportedOperationError(DatabaseError, NotImplementedError):
    """The vendor has no way to perform the requested operation."""

    def __init__(self, vendor: Vendor | str, operation: str, hint: str = ''):
        vendor_name = vendor.value if isinstance(vendor, Vendor) else vendor
        message = f'{vendor_name} does not support {operation}'
        if hint:
            message = f'{message}; {hint}'
        super().__init__(message)
        self.vendor = vendor
        self.operation = operation


class MissingConfigurationError(DatabaseError):
    """A vendor-neutral operation needs a query the caller did not register."""

    def __init__(self, query_name: str, operation: str):
        super().__init__(
            f'{operation} requires a query named "{query_name}"; '
            f'register it through one of the query providers'
        )
        self.query_name = query_name
        self.operation = operation


class DuplicateQueryError(DatabaseError):
    """Two providers registered the same query name (strict builds only)."""

    def __init__(self, query_name: str):
        super().__init__(f'Query {query_name} is registered more than once')
        self.query_name = query_name


class DBConnectionError(DatabaseError):
    """Connection-related errors."""


class QueryError(DatabaseError):
    """Query execution errors."""


class DataError(DatabaseError):
    """Data-related errors."""


def handle_db_error(error: Exception, vendor: Vendor) -> DatabaseError:
    """
    Convert driver-specific errors to unified error types.

    Args:
        error: Original driver exception
        vendor: Database vendor the connection belongs to

    Returns:
        Unified DatabaseError subclass
    """
    if isinstance(error, DatabaseError):
        return error

    match vendor:
        case Vendor.POSTGRESQL:
            return _handle_postgresql_error(error)
        case Vendor.SQLITE:
            return _handle_sqlite_error(error)
        case _:
            return _handle_dbapi_error(error, vendor)


def _handle_postgresql_error(error: Exception) -> DatabaseError:
    """Handle PostgreSQL-specific errors (psycopg3)."""
    import psycopg

    if isinstance(error, psycopg.OperationalError):
        return DBConnectionError(f'PostgreSQL connection failed: {error}', error)

    if isinstance(error, psycopg.ProgrammingError):
        return QueryError(f'PostgreSQL query error: {error}', error)

    if isinstance(error, psycopg.DataError):
        return DataError(f'PostgreSQL data error: {error}', error)

    if isinstance(error, psycopg.Error):
        code = getattr(error, 'sqlstate', None)
        # 28xxx - authentication errors
        if code and code.startswith('28'):
            return DBConnectionError(f'PostgreSQL auth error [{code}]: {error}', error)
        # 42xxx - syntax/schema errors
        if code and code.startswith('42'):
            return QueryError(f'PostgreSQL query error [{code}]: {error}', error)

    return DatabaseError(f'PostgreSQL error: {error}', error)


def _handle_sqlite_error(error: Exception) -> DatabaseError:
    """Handle SQLite-specific errors."""
    if isinstance(error, sqlite3.OperationalError):
        msg = str(error).lower()
        if 'unable to open database' in msg or 'locked' in msg:
            return DBConnectionError(f'SQLite connection failed: {error}', error)
        if 'no such table' in msg or 'no such column' in msg or 'syntax error' in msg:
            return QueryError(f'SQLite query error: {error}', error)

    if isinstance(error, sqlite3.ProgrammingError):
        return QueryError(f'SQLite query error: {error}', error)

    if isinstance(error, sqlite3.IntegrityError):
        return DataError(f'SQLite data integrity error: {error}', error)

    if isinstance(error, sqlite3.DataError):
        return DataError(f'SQLite data error: {error}', error)

    return DatabaseError(f'SQLite error: {error}', error)


def _handle_dbapi_error(error: Exception, vendor: Vendor) -> DatabaseError:
    """Classify by PEP 249 exception names for drivers we do not import."""
    names = {cls.__name__ for cls in type(error).__mro__}
    label = vendor.value

    if 'OperationalError' in names or 'InterfaceError' in names:
        return DBConnectionError(f'{label} connection failed: {error}', error)
    if 'ProgrammingError' in names:
        return QueryError(f'{label} query error: {error}', error)
    if 'IntegrityError' in names or 'DataError' in names:
        return DataError(f'{label} data error: {error}', error)

    return DatabaseError(f'{label} error: {error}', error)
