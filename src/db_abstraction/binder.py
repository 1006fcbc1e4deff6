# binder.py
"""Turns a registered query plus call-site parameters into a command."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from db_abstraction.queries.base import DatabaseQuery, DbType, ParameterTypes

RAW_PREFIX = '[]'


@dataclass(frozen=True)
class BoundParameter:
    """A value handed to the driver separately from the SQL text."""

    name: str
    db_type: DbType
    value: object


@dataclass
class Command:
    """SQL text for one call together with its bound parameters."""

    sql: str
    parameters: dict[str, BoundParameter] = field(default_factory=dict)

    def values(self) -> dict[str, object]:
        """Bound parameter values keyed by name."""
        return {name: param.value for name, param in self.parameters.items()}


def bind(
    sql: str,
    declared: ParameterTypes,
    parameters: Mapping[str, object] | None,
) -> Command:
    """
    Apply ``parameters`` to ``sql``.

    Only declared names are considered. A declared name missing from
    ``parameters`` is skipped. Names starting with ``[]`` are replaced in the
    SQL text by ``str(value)``; every other name becomes a
    :class:`BoundParameter` with its declared type. No value is type-checked.

    Args:
        sql: Statement text
        declared: Declared parameter names and their type tags
        parameters: Call-site values, or None to skip binding entirely

    Returns:
        A new command; ``sql`` itself is never modified.
    """
    command = Command(sql=sql)
    if parameters is None:
        return command

    for name, db_type in declared.items():
        if name not in parameters:
            continue
        value = parameters[name]
        if name.startswith(RAW_PREFIX):
            command.sql = command.sql.replace(name, str(value))
        else:
            command.parameters[name] = BoundParameter(name, db_type, value)

    return command


def bind_query(query: DatabaseQuery, parameters: Mapping[str, object] | None) -> Command:
    """Shortcut for :func:`bind` with a registered query."""
    return bind(query.sql, query.parameters, parameters)
