"""
Работа с подключениями к БД и выполнение подготовленных команд.

Поддерживает PostgreSQL (psycopg3) и SQLite напрямую; для SQL Server, MySQL
и ODBC принимает любое открытое DB-API 2.0 подключение.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Generator, Iterator, Sequence
from contextlib import contextmanager
from typing import Any, Literal, Protocol, cast
from urllib.parse import urlparse

try:
    import psycopg
except ImportError as err:
    raise RuntimeError('Модуль psycopg3 не установлен.') from err

from db_abstraction.binder import Command
from db_abstraction.error_handler import UnsupportedOperationError, handle_db_error
from db_abstraction.logger import get_logger, log_exception, log_execution_time
from db_abstraction.queries.base import Vendor
from db_abstraction.transformers import transform_row

type ConnectionString = str
type ParamStyle = Literal['named', 'pyformat', 'qmark', 'format']

# Placeholder style used by the usual driver of each vendor:
# psycopg, sqlite3, pyodbc, PyMySQL/mysqlclient.
DEFAULT_PARAMSTYLES: dict[Vendor, ParamStyle] = {
    Vendor.POSTGRESQL: 'pyformat',
    Vendor.SQLSERVER: 'qmark',
    Vendor.MYSQL: 'pyformat',
    Vendor.SQLITE: 'named',
    Vendor.ODBC: 'qmark',
}

VENDOR_ALIASES: dict[str, Vendor] = {
    'postgresql': Vendor.POSTGRESQL,
    'postgres': Vendor.POSTGRESQL,
    'psql': Vendor.POSTGRESQL,
    'npgsql': Vendor.POSTGRESQL,
    'sqlserver': Vendor.SQLSERVER,
    'mssql': Vendor.SQLSERVER,
    'mysql': Vendor.MYSQL,
    'mariadb': Vendor.MYSQL,
    'sqlite': Vendor.SQLITE,
    'sqlite3': Vendor.SQLITE,
    'odbc': Vendor.ODBC,
}

_PLACEHOLDER = re.compile(r'(?<![@\w])@(\w+)')


class DBCursor(Protocol):
    """Minimal PEP 249 cursor used by the command executor."""

    description: Sequence[Sequence[Any]] | None
    rowcount: int

    def execute(self, query: str, params: Any = ..., /) -> Any: ...

    def fetchone(self) -> Any: ...

    def close(self) -> None: ...


class DatabaseConnection(Protocol):
    """Protocol defining the interface for database connections."""

    def cursor(self) -> DBCursor:
        """Return a new cursor object using the connection."""
        ...

    def commit(self) -> None:
        """Commit the current transaction."""
        ...

    def rollback(self) -> None:
        """Roll back the current transaction."""
        ...

    def close(self) -> None:
        """Close the database connection."""
        ...


class VendorDetectionError(ValueError):
    """
    Raised when the vendor cannot be determined from a connection string.

    Typically raised by:
        - detect_vendor(connection_string)
        - normalize_vendor(name)
    """


def normalize_vendor(vendor: Vendor | str) -> Vendor:
    """
    Приводит имя СУБД к :class:`Vendor`.

    Raises:
        VendorDetectionError: Если имя не распознано.
    """
    if isinstance(vendor, Vendor):
        return vendor
    normalized = vendor.strip().lower()
    if normalized in VENDOR_ALIASES:
        return VENDOR_ALIASES[normalized]
    raise VendorDetectionError(f'Неподдерживаемый тип БД: {vendor}')


def detect_vendor(connection_string: ConnectionString) -> Vendor:
    """
    Determine the vendor from the connection string.

    Args:
        connection_string: Database connection string.

    Returns:
        Detected vendor.

    Raises:
        VendorDetectionError: If the vendor cannot be determined.
    """
    s = connection_string.strip().lower()
    scheme = s.split('://', 1)[0].split('+', 1)[0] if '://' in s else ''
    if scheme in VENDOR_ALIASES:
        return VENDOR_ALIASES[scheme]
    if s.startswith('sqlite:') or s == ':memory:' or s.endswith(('.sqlite3', '.sqlite', '.db')):
        return Vendor.SQLITE
    if s.startswith(('driver=', 'dsn=')) or ';driver=' in s or ';dsn=' in s:
        return Vendor.ODBC

    # Проверка по порту (fallback для строк без явной схемы)
    if ':5432/' in s or ':5433/' in s:
        return Vendor.POSTGRESQL
    if ':3306/' in s:
        return Vendor.MYSQL
    if ':1433/' in s:
        return Vendor.SQLSERVER

    raise VendorDetectionError(f'Не удалось определить тип БД: {connection_string}')


@log_execution_time
def create_connection(
    connection_string: ConnectionString,
    vendor: Vendor | str | None = None,
    *,
    read_only: bool = False,
    timeout: int = 30,
    autocommit: bool = True,
) -> DatabaseConnection:
    """
    Open a connection for the vendors whose drivers ship with the package.

    Args:
        connection_string: Connection URI (``postgresql://...``, ``sqlite:///...``).
        vendor: Vendor; detected from the connection string when omitted.
        read_only: Open a read-only session (PostgreSQL only).
        timeout: Seconds to wait for the connection (or lock, for SQLite).
        autocommit: Commit every statement immediately.

    Returns:
        A DB-API connection.

    Raises:
        VendorDetectionError: If the vendor cannot be determined.
        UnsupportedOperationError: For SQL Server, MySQL and ODBC; open those
            with their driver and pass the connection to the service.
    """
    logger = get_logger('database')
    resolved = normalize_vendor(vendor) if vendor else detect_vendor(connection_string)
    logger.debug('Creating connection to %s database', resolved.value)

    match resolved:
        case Vendor.POSTGRESQL:
            return _create_postgresql_connection(
                connection_string,
                read_only=read_only,
                timeout=timeout,
                autocommit=autocommit,
            )
        case Vendor.SQLITE:
            return _create_sqlite_connection(
                connection_string,
                timeout=timeout,
                autocommit=autocommit,
            )
        case _:
            raise UnsupportedOperationError(
                resolved,
                'opening connections',
                'open it with its DB-API driver and pass the connection in',
            )


def _create_postgresql_connection(
    connection_string: ConnectionString,
    *,
    read_only: bool,
    timeout: int,
    autocommit: bool,
) -> DatabaseConnection:
    """Создает подключение к PostgreSQL БД."""
    # libpq does not understand SQLAlchemy style driver suffixes
    dsn = re.sub(r'^(postgres(?:ql)?)\+\w+://', r'\1://', connection_string.strip())
    options = f'-c default_transaction_read_only={"on" if read_only else "off"}'
    conn = psycopg.connect(
        dsn,
        autocommit=autocommit,
        connect_timeout=timeout,
        options=options,
    )
    return cast(DatabaseConnection, conn)


def _resolve_sqlite_path(conn_str: str) -> tuple[str, bool]:
    """Определяет путь к SQLite БД и нужен ли режим URI."""
    stripped = conn_str.strip()
    if stripped.startswith('file:'):
        return stripped, True

    parsed = urlparse(stripped)
    if parsed.scheme.startswith('sqlite'):
        # sqlite:///relative.db -> relative.db, sqlite:////abs/path.db -> /abs/path.db
        path = stripped.split('://', 1)[1] if '://' in stripped else parsed.path
        path = path[1:] if path.startswith('/') else path
        return path or ':memory:', False

    return stripped, False


def _create_sqlite_connection(
    connection_string: ConnectionString,
    *,
    timeout: int,
    autocommit: bool,
) -> DatabaseConnection:
    """Создает подключение к SQLite БД."""
    db_path, use_uri = _resolve_sqlite_path(connection_string)
    conn = sqlite3.connect(
        db_path,
        timeout=timeout,
        uri=use_uri,
        isolation_level=None if autocommit else 'DEFERRED',
        check_same_thread=False,
    )
    return cast(DatabaseConnection, conn)


def close_connection(
    connection: DatabaseConnection | None,
) -> None:
    """Safely closes a database connection if it exists."""
    if connection is not None:
        connection.close()


@contextmanager
def get_connection(
    connection_string: ConnectionString,
    vendor: Vendor | str | None = None,
    *,
    read_only: bool = False,
    timeout: int = 30,
    autocommit: bool = True,
) -> Generator[DatabaseConnection]:
    """
    Context manager для работы с подключением к БД.

    Examples:
        >>> with get_connection('sqlite:///:memory:') as conn:
        ...     cursor = conn.cursor()
        ...     cursor.execute('SELECT 1')
    """
    logger = get_logger('database')

    connection = None
    try:
        connection = create_connection(
            connection_string,
            vendor,
            read_only=read_only,
            timeout=timeout,
            autocommit=autocommit,
        )
        logger.debug('Context manager: подключение создано')
        yield connection
    except Exception as e:
        log_exception(logger, f'Ошибка в context manager: {e}', logging.WARNING)
        if connection is not None and not autocommit:
            connection.rollback()
            logger.debug('Выполнен rollback транзакции')
        raise
    finally:
        close_connection(connection)
        logger.debug('Context manager: подключение закрыто')


def translate_placeholders(
    command: Command,
    paramstyle: ParamStyle,
) -> tuple[str, dict[str, object] | list[object]]:
    """
    Rewrite ``@name`` placeholders of bound parameters for the driver.

    Tokens whose name is not bound are left untouched, so ``@@IDENTITY`` or an
    unsupplied optional parameter stay as written.

    Args:
        command: Bound command using ``@name`` placeholders
        paramstyle: PEP 249 paramstyle of the target driver

    Returns:
        Tuple of (driver SQL, parameters) where parameters is a mapping for
        ``named``/``pyformat`` and an occurrence-ordered list otherwise.
    """
    values = command.values()
    sql = command.sql

    match paramstyle:
        case 'named':
            return _PLACEHOLDER.sub(
                lambda m: f':{m[1]}' if m[1] in values else m[0], sql
            ), values
        case 'pyformat':
            escaped = sql.replace('%', '%%')
            return _PLACEHOLDER.sub(
                lambda m: f'%({m[1]})s' if m[1] in values else m[0], escaped
            ), values
        case 'qmark' | 'format':
            marker = '?' if paramstyle == 'qmark' else '%s'
            if paramstyle == 'format':
                sql = sql.replace('%', '%%')
            ordered: list[object] = []

            def positional(match: re.Match[str]) -> str:
                if match[1] not in values:
                    return match[0]
                ordered.append(values[match[1]])
                return marker

            return _PLACEHOLDER.sub(positional, sql), ordered
        case _:
            raise ValueError(f'Unsupported paramstyle: {paramstyle}')


class BufferedCursor:
    """In-memory rows that satisfy :class:`DBCursor` once the driver cursor is closed."""

    def __init__(self, description: Sequence[Sequence[Any]] | None, rows: Sequence[Any]):
        self.description = description
        self.rowcount = len(rows)
        self._rows = list(rows)

    def execute(self, query: str, params: Any = None, /) -> Any:
        raise TypeError('BufferedCursor holds fetched rows and cannot execute')

    def fetchone(self) -> Any:
        return self._rows.pop(0) if self._rows else None

    def close(self) -> None:
        self._rows.clear()


class ResultCursor:
    """
    Forward-only view over an executed select.

    With ``single_row`` set, at most the first row is returned.
    """

    def __init__(self, cursor: DBCursor, *, single_row: bool = False):
        self._cursor = cursor
        self._single_row = single_row
        self._returned = 0

    @property
    def columns(self) -> list[str]:
        description = self._cursor.description or ()
        return [column[0] for column in description]

    def fetchone(self) -> Any:
        if self._single_row and self._returned:
            return None
        row = self._cursor.fetchone()
        if row is not None:
            self._returned += 1
        return row

    def fetchall(self) -> list[Any]:
        return list(self)

    def read(self) -> dict[str, Any] | None:
        """Next row as a column -> value mapping, or None when exhausted."""
        row = self.fetchone()
        if row is None:
            return None
        return transform_row(tuple(row), self.columns)

    def as_dicts(self) -> Iterator[dict[str, Any]]:
        while (row := self.read()) is not None:
            yield row

    def __iter__(self) -> Iterator[Any]:
        while (row := self.fetchone()) is not None:
            yield row

    def buffered(self) -> ResultCursor:
        """Read the remaining rows and return a cursor detached from the driver."""
        description = self._cursor.description
        rows = self.fetchall()
        self.close()
        return ResultCursor(BufferedCursor(description, rows))

    def close(self) -> None:
        self._cursor.close()

    def __enter__(self) -> ResultCursor:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()


def execute_reader(
    connection: DatabaseConnection,
    command: Command,
    vendor: Vendor,
    paramstyle: ParamStyle,
    *,
    single_row: bool = False,
) -> ResultCursor:
    """
    Execute a select-family command.

    Raises:
        DatabaseError: Normalised driver failure, original error chained.
    """
    cursor = _execute(connection, command, vendor, paramstyle)
    return ResultCursor(cursor, single_row=single_row)


def execute_non_query(
    connection: DatabaseConnection,
    command: Command,
    vendor: Vendor,
    paramstyle: ParamStyle,
) -> int:
    """
    Execute an insert/update/delete command.

    Returns:
        Number of affected rows as reported by the driver.
    """
    cursor = _execute(connection, command, vendor, paramstyle)
    try:
        return cursor.rowcount
    finally:
        cursor.close()


def _execute(
    connection: DatabaseConnection,
    command: Command,
    vendor: Vendor,
    paramstyle: ParamStyle,
) -> DBCursor:
    sql, params = translate_placeholders(command, paramstyle)
    cursor = connection.cursor()
    try:
        cursor.execute(sql, params)
    except Exception as e:
        cursor.close()
        raise handle_db_error(e, vendor) from e
    return cursor
