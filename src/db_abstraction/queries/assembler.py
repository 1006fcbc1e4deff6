# queries/assembler.py
"""Splicing of named fragments into fragmented queries."""

from __future__ import annotations

from collections.abc import Mapping

from db_abstraction.error_handler import FragmentNotFoundError
from db_abstraction.logger import get_logger
from db_abstraction.queries.base import DatabaseQuery, FragmentedQuery, FragmentType, QueryFragment


def assemble(
    query: FragmentedQuery,
    fragments: Mapping[str, QueryFragment],
) -> DatabaseQuery:
    """
    Build the final statement for a fragmented query.

    Insertion points are visited in :class:`FragmentType` declaration order.
    Each referenced fragment is appended after a single space, its parameters
    are merged into the query's, and the point's after-fragment text (if any)
    follows after another space. The result is trimmed.

    Args:
        query: Query skeleton with fragment references
        fragments: Fragment registry

    Returns:
        The assembled query; it keeps the skeleton's name.

    Raises:
        FragmentNotFoundError: If a referenced fragment is not in the registry.
    """
    sql = query.sql
    parameters = dict(query.parameters)

    for point in FragmentType:
        fragment_name = query.fragments.get(point)
        if fragment_name is None:
            continue

        fragment = fragments.get(fragment_name)
        if fragment is None:
            raise FragmentNotFoundError(point, fragment_name, query.name)

        sql = f'{sql} {fragment.sql}'
        parameters.update(fragment.parameters)

        after = query.after_fragment.get(point)
        if after is not None:
            sql = f'{sql} {after}'

    get_logger('assembler').debug(
        'Assembled query %s from %d fragment(s)', query.name, len(query.fragments)
    )
    return DatabaseQuery(sql=sql.strip(), parameters=parameters, name=query.name)
