# queries/base.py
"""Base classes and interfaces for named queries."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Protocol, runtime_checkable


class Vendor(Enum):
    """Supported database vendors."""

    POSTGRESQL = 'postgresql'
    SQLSERVER = 'sqlserver'
    MYSQL = 'mysql'
    SQLITE = 'sqlite'
    ODBC = 'odbc'


class DbType(Enum):
    """Scalar type tags for declared query parameters."""

    STRING = 'string'
    ANSI_STRING = 'ansi_string'
    INT16 = 'int16'
    INT32 = 'int32'
    INT64 = 'int64'
    DECIMAL = 'decimal'
    DOUBLE = 'double'
    SINGLE = 'single'
    BOOLEAN = 'boolean'
    DATE = 'date'
    DATE_TIME = 'date_time'
    TIME = 'time'
    GUID = 'guid'
    BINARY = 'binary'
    OBJECT = 'object'


class FragmentType(Enum):
    """
    Points at which a fragment may be spliced into a query.

    Declaration order is the order fragments are appended during assembly.
    """

    SELECT = 'select'
    INSERT = 'insert'
    UPDATE = 'update'
    DELETE = 'delete'
    FROM = 'from'
    WHERE = 'where'
    ORDER_BY = 'order_by'


type ParameterTypes = Mapping[str, DbType]


def _frozen[K, V](mapping: Mapping[K, V] | None) -> Mapping[K, V]:
    return MappingProxyType(dict(mapping or {}))


@dataclass(frozen=True)
class QueryFragment:
    """A reusable piece of SQL and the parameters it needs."""

    sql: str
    parameters: ParameterTypes = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, 'parameters', _frozen(self.parameters))


@dataclass(frozen=True)
class DatabaseQuery:
    """
    A named SQL statement ready to be bound and executed.

    ``name`` is filled in by the registry builder with the key the query was
    registered under.
    """

    sql: str
    parameters: ParameterTypes = field(default_factory=dict)
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'parameters', _frozen(self.parameters))


@dataclass(frozen=True)
class FragmentedQuery:
    """
    A query skeleton that still has fragments to splice in.

    ``fragments`` maps an insertion point to a fragment name; ``after_fragment``
    maps an insertion point to literal SQL that follows that fragment.
    Turned into a :class:`DatabaseQuery` by
    :func:`db_abstraction.queries.assembler.assemble`.
    """

    sql: str
    parameters: ParameterTypes = field(default_factory=dict)
    fragments: Mapping[FragmentType, str] = field(default_factory=dict)
    after_fragment: Mapping[FragmentType, str] = field(default_factory=dict)
    name: str | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, 'parameters', _frozen(self.parameters))
        object.__setattr__(self, 'fragments', _frozen(self.fragments))
        object.__setattr__(self, 'after_fragment', _frozen(self.after_fragment))


type QueryDefinition = DatabaseQuery | FragmentedQuery


@runtime_checkable
class QueryProvider(Protocol):
    """Protocol for objects that contribute named queries."""

    def queries(self, queries: dict[str, QueryDefinition]) -> None: ...


@runtime_checkable
class FragmentProvider(Protocol):
    """Protocol for objects that contribute named fragments."""

    def fragments(self, fragments: dict[str, QueryFragment]) -> None: ...


@runtime_checkable
class ParameterProvider(Protocol):
    """Protocol for models that can describe themselves as query parameters."""

    def parameters(self) -> Mapping[str, object]: ...
