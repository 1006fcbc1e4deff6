# queries/__init__.py
"""Named query definitions, fragments and the provider interfaces."""

from db_abstraction.queries.base import (
    DatabaseQuery,
    DbType,
    FragmentedQuery,
    FragmentProvider,
    FragmentType,
    ParameterProvider,
    QueryDefinition,
    QueryFragment,
    QueryProvider,
    Vendor,
)

__all__ = [
    'DatabaseQuery',
    'DbType',
    'FragmentedQuery',
    'FragmentProvider',
    'FragmentType',
    'ParameterProvider',
    'QueryDefinition',
    'QueryFragment',
    'QueryProvider',
    'Vendor',
]
