# queries/registry.py
"""Aggregation of provider queries into one read-only lookup table."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import replace

from db_abstraction.error_handler import DuplicateQueryError, QueryNotFoundError
from db_abstraction.logger import get_logger, log_execution_time
from db_abstraction.queries.assembler import assemble
from db_abstraction.queries.base import (
    DatabaseQuery,
    FragmentedQuery,
    FragmentProvider,
    QueryDefinition,
    QueryFragment,
    QueryProvider,
)
from db_abstraction.queries.builtin import DEFAULT_PREFIX, DatabaseQueryProvider

logger = get_logger('registry')


class QueryRegistry(Mapping[str, DatabaseQuery]):
    """
    Immutable name -> query table.

    Build it once with :meth:`build` and share it freely; queries are frozen
    and every fragmented query has already been assembled.
    """

    def __init__(self, queries: Mapping[str, DatabaseQuery] | None = None):
        self._queries: dict[str, DatabaseQuery] = dict(queries or {})

    def __getitem__(self, name: str) -> DatabaseQuery:
        try:
            return self._queries[name]
        except KeyError:
            raise QueryNotFoundError(name) from None

    def __iter__(self) -> Iterator[str]:
        return iter(self._queries)

    def __len__(self) -> int:
        return len(self._queries)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({len(self)} queries)'

    def get_query(self, name: str) -> DatabaseQuery:
        """Look up a query, raising :class:`QueryNotFoundError` if absent."""
        return self[name]

    @classmethod
    @log_execution_time
    def build(
        cls,
        *providers: QueryProvider,
        fragment_providers: Iterable[FragmentProvider] = (),
        prefix: str = DEFAULT_PREFIX,
        strict: bool = False,
    ) -> QueryRegistry:
        """
        Collect, name and assemble the queries of ``providers``.

        The built-in vendor queries are always added after the given
        providers. A provider that also implements ``fragments()`` is used as
        a fragment provider as well.

        Args:
            *providers: Query providers, applied in order.
            fragment_providers: Additional fragment providers.
            prefix: Namespace of the built-in vendor queries.
            strict: Raise on duplicate query names instead of letting the
                later provider win.

        Returns:
            The finished registry.

        Raises:
            DuplicateQueryError: On a repeated name when ``strict`` is set.
            FragmentNotFoundError: If a fragmented query references a fragment
                no provider supplied.
        """
        fragments = collect_fragments(_fragment_sources(providers, fragment_providers))

        library: dict[str, QueryDefinition] = {}
        for provider in (*providers, DatabaseQueryProvider(prefix)):
            _merge_provider(library, provider, strict=strict)

        queries: dict[str, DatabaseQuery] = {}
        for name, definition in library.items():
            match definition:
                case FragmentedQuery():
                    queries[name] = assemble(replace(definition, name=name), fragments)
                case DatabaseQuery():
                    queries[name] = replace(definition, name=name)
                case _:
                    raise TypeError(f'Query {name} is not a query definition: {definition!r}')

        logger.debug('Registry built: %d queries, %d fragments', len(queries), len(fragments))
        return cls(queries)


def collect_fragments(providers: Iterable[FragmentProvider]) -> dict[str, QueryFragment]:
    """Gather the fragments of every provider; later providers win."""
    fragments: dict[str, QueryFragment] = {}
    for provider in providers:
        contributed: dict[str, QueryFragment] = {}
        provider.fragments(contributed)
        for name in contributed.keys() & fragments.keys():
            logger.warning('Fragment %s redefined by %s', name, type(provider).__name__)
        fragments.update(contributed)
    return fragments


def _fragment_sources(
    providers: Iterable[QueryProvider],
    fragment_providers: Iterable[FragmentProvider],
) -> list[FragmentProvider]:
    sources = list(fragment_providers)
    for provider in providers:
        if isinstance(provider, FragmentProvider) and not any(
            provider is known for known in sources
        ):
            sources.append(provider)
    return sources


def _merge_provider(
    library: dict[str, QueryDefinition],
    provider: QueryProvider,
    *,
    strict: bool,
) -> None:
    contributed: dict[str, QueryDefinition] = {}
    provider.queries(contributed)

    for name in contributed:
        if name not in library:
            continue
        if strict:
            raise DuplicateQueryError(name)
        logger.warning('Query %s redefined by %s', name, type(provider).__name__)

    library.update(contributed)
