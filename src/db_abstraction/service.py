# service.py
"""Named-query database service: the calling convention shared by all vendors."""

from __future__ import annotations

from collections import ChainMap
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from db_abstraction.binder import bind_query
from db_abstraction.database import (
    DEFAULT_PARAMSTYLES,
    DatabaseConnection,
    ParamStyle,
    ResultCursor,
    create_connection,
    detect_vendor,
    execute_non_query,
    execute_reader,
    normalize_vendor,
)
from db_abstraction.dispatcher import Operation, dispatch, find_query
from db_abstraction.error_handler import (
    DataError,
    MissingConfigurationError,
    UnsupportedOperationError,
)
from db_abstraction.logger import get_logger, setup_logging
from db_abstraction.queries.base import (
    DatabaseQuery,
    FragmentProvider,
    ParameterProvider,
    QueryProvider,
    Vendor,
)
from db_abstraction.queries.builtin import DEFAULT_PREFIX
from db_abstraction.queries.registry import QueryRegistry
from db_abstraction.transformers import to_int, try_get

if TYPE_CHECKING:
    from db_abstraction.env_config import Settings

type Parameters = Mapping[str, object] | ParameterProvider | None

logger = get_logger('service')


@dataclass(frozen=True)
class VendorDialect:
    """
    How a vendor answers sequence and identity requests.

    ``sequence`` is ``'native'`` (a vendor query keyed by sequence name),
    ``'generic'`` (MAX of a primary key plus one) or None when unsupported.
    Query names are relative to the service prefix.
    """

    sequence: Literal['native', 'generic'] | None
    sequence_query: str | None = None
    sequence_column: str | None = None
    identity_query: str | None = None
    identity_from_caller: bool = False
    hint: str = ''


VENDOR_DIALECTS: dict[Vendor, VendorDialect] = {
    Vendor.POSTGRESQL: VendorDialect(
        sequence='native',
        sequence_query='sequence.postgres',
        sequence_column='sequence_value',
        hint='use sequence() with the sequence name instead',
    ),
    Vendor.SQLSERVER: VendorDialect(
        sequence=None,
        identity_query='identity.sqlserver',
        hint='use last_identity() after the insert instead',
    ),
    Vendor.MYSQL: VendorDialect(
        sequence=None,
        identity_query='identity.mysql',
        hint='use last_identity() after the insert instead',
    ),
    Vendor.SQLITE: VendorDialect(sequence='generic', identity_query='identity.sqlite'),
    Vendor.ODBC: VendorDialect(
        sequence='generic',
        identity_query='identity.odbc',
        identity_from_caller=True,
    ),
}

GENERIC_SEQUENCE_SEPARATOR = '|'


def single_parameter(name: str, value: object) -> dict[str, object]:
    """Parameter map holding one entry."""
    return {name: value}


def resolve_parameters(parameters: Parameters) -> Mapping[str, object] | None:
    """Accept a mapping, a parameter provider or None."""
    if parameters is None or isinstance(parameters, Mapping):
        return parameters
    if isinstance(parameters, ParameterProvider):
        return parameters.parameters()
    raise TypeError(
        f'Parameters must be a mapping or provide parameters(), got {type(parameters).__name__}'
    )


class DatabaseService:
    """
    Executes registered queries by name against one connection.

    Example:
        >>> service = DatabaseService(conn, 'sqlite', ContactQueryProvider())
        >>> with service.select('contact.get', {'contact_id': 7}) as cursor:
        ...     rows = cursor.fetchall()
    """

    def __init__(
        self,
        connection: DatabaseConnection,
        vendor: Vendor | str,
        *providers: QueryProvider,
        fragment_providers: Iterable[FragmentProvider] = (),
        shared_registry: QueryRegistry | None = None,
        prefix: str = DEFAULT_PREFIX,
        paramstyle: ParamStyle | None = None,
        strict: bool = False,
    ):
        """
        Args:
            connection: Open DB-API connection.
            vendor: Database vendor of ``connection``.
            *providers: Query providers for this service's own registry.
            fragment_providers: Extra fragment providers.
            shared_registry: Registry built once and shared between services;
                it is searched before this service's own queries.
            prefix: Namespace of the built-in vendor queries.
            paramstyle: Placeholder style of the driver; defaults per vendor.
            strict: Reject duplicate query names while building.
        """
        self.connection = connection
        self.vendor = normalize_vendor(vendor)
        self.prefix = prefix
        self.paramstyle: ParamStyle = paramstyle or DEFAULT_PARAMSTYLES[self.vendor]
        self.dialect = VENDOR_DIALECTS[self.vendor]
        self.shared_registry = shared_registry
        self.registry = QueryRegistry.build(
            *providers,
            fragment_providers=fragment_providers,
            prefix=prefix,
            strict=strict,
        )
        self.queries: Mapping[str, DatabaseQuery] = (
            ChainMap(shared_registry, self.registry)
            if shared_registry is not None
            else self.registry
        )
        logger.debug(
            'Service for %s ready with %d queries', self.vendor.value, len(self.queries)
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *providers: QueryProvider,
        **kwargs: object,
    ) -> DatabaseService:
        """Apply the logging settings, open a connection and wrap it in a service."""
        setup_logging(settings.log_level, settings.log_file)
        connection = create_connection(
            settings.original_connect_uri,
            settings.db_vendor,
            timeout=settings.connect_timeout,
        )
        kwargs.setdefault('prefix', settings.query_prefix)
        kwargs.setdefault('strict', settings.strict_query_registry)
        try:
            return cls(connection, settings.db_vendor, *providers, **kwargs)  # type: ignore[arg-type]
        except Exception:
            connection.close()
            raise

    # Select family

    def select(self, query_name: str, parameters: Parameters = None) -> ResultCursor:
        """Run a SELECT and return a cursor over all its rows."""
        command = dispatch(
            self.queries, Operation.SELECT, query_name, resolve_parameters(parameters)
        )
        return execute_reader(self.connection, command, self.vendor, self.paramstyle)

    def select_one(self, query_name: str, parameters: Parameters = None) -> ResultCursor:
        """Run a SELECT and return a cursor limited to its first row."""
        command = dispatch(
            self.queries, Operation.SELECT, query_name, resolve_parameters(parameters)
        )
        return execute_reader(
            self.connection, command, self.vendor, self.paramstyle, single_row=True
        )

    # Statements

    def insert(self, query_name: str, parameters: Parameters = None) -> int:
        return self._non_query(Operation.INSERT, query_name, parameters)

    def update(self, query_name: str, parameters: Parameters = None) -> int:
        return self._non_query(Operation.UPDATE, query_name, parameters)

    def delete(self, query_name: str, parameters: Parameters = None) -> int:
        return self._non_query(Operation.DELETE, query_name, parameters)

    def _non_query(self, operation: Operation, query_name: str, parameters: Parameters) -> int:
        command = dispatch(self.queries, operation, query_name, resolve_parameters(parameters))
        return execute_non_query(self.connection, command, self.vendor, self.paramstyle)

    # Sequences and identities

    def sequence(self, sequence_name: str) -> int:
        """
        Value for ``sequence_name`` as the vendor understands it.

        PostgreSQL reads the current value of ``<sequence_name>_seq``. SQLite
        and ODBC take ``primary_key_column|table_name`` and return the largest
        key plus one.

        Raises:
            UnsupportedOperationError: For SQL Server and MySQL.
            ValueError: If a generic sequence name is malformed.
        """
        match self.dialect.sequence:
            case 'native':
                row = self._first_row(
                    f'{self.prefix}{self.dialect.sequence_query}',
                    single_parameter('[]sequence_name', sequence_name),
                )
                if row is None:
                    raise DataError(f'Sequence {sequence_name} returned no value')
                return to_int(try_get(row, self.dialect.sequence_column or ''))
            case 'generic':
                return self._generic_sequence(sequence_name)
            case _:
                raise UnsupportedOperationError(self.vendor, 'sequences', self.dialect.hint)

    def _generic_sequence(self, sequence_name: str) -> int:
        parts = [part for part in sequence_name.split(GENERIC_SEQUENCE_SEPARATOR) if part]
        if len(parts) != 2:
            raise ValueError(
                f'Invalid generic sequence "{sequence_name}" received '
                f'(must be of the format "table_id|table_name")'
            )
        row = self._first_row(
            f'{self.prefix}sequence.generic',
            {'[]primary_key_name': parts[0], '[]table_name': parts[1]},
        )
        if row is None:
            return 0
        return to_int(try_get(row, 'max_pk')) + 1

    def last_identity(self) -> int:
        """
        Identity generated by the last insert on this connection.

        Raises:
            UnsupportedOperationError: For PostgreSQL.
            MissingConfigurationError: For ODBC without an ``identity.odbc`` query.
        """
        if self.dialect.identity_query is None:
            raise UnsupportedOperationError(self.vendor, 'last identity', self.dialect.hint)

        query_name = f'{self.prefix}{self.dialect.identity_query}'
        if self.dialect.identity_from_caller and query_name not in self.queries:
            raise MissingConfigurationError(query_name, f'{self.vendor.value} last identity')

        row = self._first_row(query_name, None)
        if row is None:
            raise DataError(f'Query {query_name} returned no identity')
        return to_int(next(iter(row.values()), None))

    def _first_row(
        self,
        query_name: str,
        parameters: Mapping[str, object] | None,
    ) -> dict[str, object] | None:
        # Vendor queries skip the verb check: MySQL's is a SHOW statement
        command = bind_query(find_query(self.queries, query_name), parameters)
        with execute_reader(
            self.connection, command, self.vendor, self.paramstyle, single_row=True
        ) as cursor:
            return cursor.read()

    # Lifecycle

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> DatabaseService:
        return self

    def __exit__(self, exc_type: object, exc_val: object, exc_tb: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}(vendor={self.vendor.value})'


def create_database_service(
    connection_string: str,
    vendor: Vendor | str | None = None,
    *providers: QueryProvider,
    **kwargs: object,
) -> DatabaseService:
    """
    Open a connection and build a service for it.

    Only vendors :func:`create_connection` can open are accepted; for the
    rest construct :class:`DatabaseService` with an open connection.
    """
    resolved = normalize_vendor(vendor) if vendor else detect_vendor(connection_string)
    connection = create_connection(connection_string, resolved)
    try:
        return DatabaseService(connection, resolved, *providers, **kwargs)  # type: ignore[arg-type]
    except Exception:
        connection.close()
        raise
