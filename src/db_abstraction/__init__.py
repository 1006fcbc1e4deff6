"""
DB Abstraction.

Пакет для выполнения именованных SQL-запросов через единый интерфейс
для PostgreSQL, SQL Server, MySQL, SQLite и ODBC.
"""

from __future__ import annotations

from db_abstraction.async_service import DatabaseServiceAsync
from db_abstraction.binder import BoundParameter, Command, bind
from db_abstraction.database import create_connection, detect_vendor, get_connection
from db_abstraction.error_handler import (
    DatabaseError,
    DuplicateQueryError,
    FragmentNotFoundError,
    MissingConfigurationError,
    QueryNotFoundError,
    UnsupportedOperationError,
    VerbMismatchError,
)
from db_abstraction.queries import (
    DatabaseQuery,
    DbType,
    FragmentedQuery,
    FragmentProvider,
    FragmentType,
    ParameterProvider,
    QueryFragment,
    QueryProvider,
    Vendor,
)
from db_abstraction.queries.registry import QueryRegistry
from db_abstraction.service import DatabaseService, create_database_service, single_parameter

__version__ = '1.0.0'
__author__ = 'DB Abstraction Team'

__all__ = [
    'BoundParameter',
    'Command',
    'DatabaseError',
    'DatabaseQuery',
    'DatabaseService',
    'DatabaseServiceAsync',
    'DbType',
    'DuplicateQueryError',
    'FragmentNotFoundError',
    'FragmentProvider',
    'FragmentType',
    'FragmentedQuery',
    'MissingConfigurationError',
    'ParameterProvider',
    'QueryFragment',
    'QueryNotFoundError',
    'QueryProvider',
    'QueryRegistry',
    'UnsupportedOperationError',
    'Vendor',
    'VerbMismatchError',
    'bind',
    'create_connection',
    'create_database_service',
    'detect_vendor',
    'get_connection',
    'single_parameter',
]
