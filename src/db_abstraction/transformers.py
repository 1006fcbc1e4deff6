# transformers.py
"""Row and value helpers for reading query results."""

from collections.abc import Mapping, Sequence
from decimal import Decimal
from typing import Any


def coalesce[T](value: T | None, default: T) -> T:
    """Return ``default`` when ``value`` is NULL."""
    return default if value is None else value


def try_get(row: Mapping[str, Any], column: str, default: Any = None) -> Any:
    """
    Read a column from a row mapping without raising.

    Column lookup is case-insensitive; missing columns and NULLs both give
    ``default``.
    """
    if column in row:
        return coalesce(row[column], default)
    lowered = column.lower()
    for key, value in row.items():
        if key.lower() == lowered:
            return coalesce(value, default)
    return default


def to_int(value: Any, default: int = 0) -> int:
    """
    Convert a scalar read from a driver to ``int``.

    Drivers return identities as int, Decimal (SQL Server SCOPE_IDENTITY),
    str or bytes depending on vendor.
    """
    match value:
        case None:
            return default
        case bool():
            return int(value)
        case int():
            return value
        case Decimal() | float():
            return int(value)
        case bytes():
            return int(value.decode('ascii'))
        case str():
            return int(value.strip())
        case _:
            raise TypeError(f'Cannot convert {type(value).__name__} to int: {value!r}')


def transform_row(
    row: Sequence[Any],
    column_names: Sequence[str],
) -> dict[str, Any]:
    """
    Transform a database row to a dictionary.

    Args:
        row: Database row tuple
        column_names: List of column names

    Returns:
        Dictionary with column names as keys
    """
    return dict(zip(column_names, row, strict=True))
