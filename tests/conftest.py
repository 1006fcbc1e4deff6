"""Конфигурация pytest и общие фикстуры."""

import sqlite3
import sys
import threading
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

# Добавляем src/ в sys.path, чтобы тесты работали без установки пакета
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / 'src'))

from db_abstraction.queries import (  # noqa: E402
    DatabaseQuery,
    DbType,
    FragmentedQuery,
    FragmentType,
    QueryDefinition,
    QueryFragment,
)


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Автоматически очищает переменные окружения перед каждым тестом."""
    import os

    # Сохраняем критичные переменные
    critical_vars = ['PATH', 'HOME', 'USER', 'PYTHONPATH']

    # Очищаем все переменные окружения, кроме критичных
    for key in list(os.environ.keys()):
        if key not in critical_vars:
            monkeypatch.delenv(key, raising=False)

    yield


class ContactQueryProvider:
    """Запросы и фрагменты тестовой таблицы contact."""

    def fragments(self, fragments: dict[str, QueryFragment]) -> None:
        fragments['contact.columns'] = QueryFragment('contact_id, name, email')
        fragments['contact.by_id'] = QueryFragment(
            'contact_id = @contact_id', {'contact_id': DbType.INT64}
        )

    def queries(self, queries: dict[str, QueryDefinition]) -> None:
        queries['contact.get'] = FragmentedQuery(
            sql='SELECT',
            fragments={
                FragmentType.SELECT: 'contact.columns',
                FragmentType.WHERE: 'contact.by_id',
            },
            after_fragment={FragmentType.SELECT: 'FROM contact WHERE'},
        )
        queries['contact.all'] = DatabaseQuery(
            sql='SELECT contact_id, name, email FROM contact ORDER BY contact_id'
        )
        queries['contact.count'] = DatabaseQuery(sql='SELECT COUNT(*) AS total FROM contact')
        queries['contact.insert'] = DatabaseQuery(
            sql='INSERT INTO contact (name, email) VALUES (@name, @email)',
            parameters={'name': DbType.STRING, 'email': DbType.STRING},
        )
        queries['contact.rename'] = DatabaseQuery(
            sql='UPDATE contact SET name = @name WHERE contact_id = @contact_id',
            parameters={'name': DbType.STRING, 'contact_id': DbType.INT64},
        )
        queries['contact.remove'] = DatabaseQuery(
            sql='DELETE FROM contact WHERE contact_id = @contact_id',
            parameters={'contact_id': DbType.INT64},
        )
        queries['contact.from_table'] = DatabaseQuery(
            sql='SELECT COUNT(*) AS total FROM []table',
            parameters={'[]table': DbType.STRING},
        )


class Contact:
    """Модель, умеющая описать себя как набор параметров."""

    def __init__(self, name: str, email: str):
        self.name = name
        self.email = email

    def parameters(self) -> dict[str, object]:
        return {'name': self.name, 'email': self.email}


class RecordingCursor:
    """Курсор-заглушка: запоминает выполненные команды и отдает заданные строки."""

    def __init__(self, connection: 'RecordingConnection'):
        self._connection = connection
        self._rows: list[tuple[Any, ...]] = []
        self.description: list[tuple[Any, ...]] | None = None
        self.rowcount = -1
        self.closed = False

    def execute(self, query: str, params: Any = None) -> None:
        self._connection.executed.append((query, params))
        columns, rows = self._connection.results.pop(0) if self._connection.results else ((), [])
        self.description = [(column,) for column in columns] or None
        self._rows = list(rows)
        self.rowcount = len(self._rows)

    def fetchone(self) -> tuple[Any, ...] | None:
        self._connection.fetch_threads.append(threading.get_ident())
        return self._rows.pop(0) if self._rows else None

    def close(self) -> None:
        self.closed = True


class RecordingConnection:
    """DB-API подключение-заглушка для вендоров без локального драйвера."""

    def __init__(self, *results: tuple[tuple[str, ...], list[tuple[Any, ...]]]):
        self.results = list(results)
        self.executed: list[tuple[str, Any]] = []
        self.fetch_threads: list[int] = []
        self.cursors: list[RecordingCursor] = []
        self.closed = False

    def cursor(self) -> RecordingCursor:
        cursor = RecordingCursor(self)
        self.cursors.append(cursor)
        return cursor

    def commit(self) -> None:
        pass

    def rollback(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def contact_provider() -> ContactQueryProvider:
    return ContactQueryProvider()


@pytest.fixture
def sqlite_conn() -> Iterator[sqlite3.Connection]:
    """In-memory SQLite с таблицей contact."""
    conn = sqlite3.connect(':memory:', isolation_level=None, check_same_thread=False)
    conn.execute(
        'CREATE TABLE contact ('
        ' contact_id INTEGER PRIMARY KEY AUTOINCREMENT,'
        ' name TEXT NOT NULL,'
        ' email TEXT)'
    )
    try:
        yield conn
    finally:
        conn.close()
