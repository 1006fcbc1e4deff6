"""Тесты модуля работы с БД: определение СУБД, подключения, плейсхолдеры."""

from __future__ import annotations

import logging
import sqlite3

import pytest

from conftest import RecordingConnection
from db_abstraction.binder import BoundParameter, Command
from db_abstraction.database import (
    ResultCursor,
    VendorDetectionError,
    _resolve_sqlite_path,
    create_connection,
    detect_vendor,
    execute_non_query,
    execute_reader,
    get_connection,
    normalize_vendor,
    translate_placeholders,
)
from db_abstraction.error_handler import (
    DatabaseError,
    QueryError,
    UnsupportedOperationError,
)
from db_abstraction.queries import DbType, Vendor


def _command(sql: str, **values: object) -> Command:
    return Command(
        sql=sql,
        parameters={
            name: BoundParameter(name, DbType.OBJECT, value) for name, value in values.items()
        },
    )


class TestVendorDetection:
    @pytest.mark.parametrize(
        'conn_str,expected',
        [
            ('postgresql://u:p@host:5432/db', Vendor.POSTGRESQL),
            ('postgresql+psycopg://u:p@host/db', Vendor.POSTGRESQL),
            ('mysql+pymysql://u:p@host/db', Vendor.MYSQL),
            ('mssql+pyodbc://u:p@host/db', Vendor.SQLSERVER),
            ('sqlite:///data.db', Vendor.SQLITE),
            (':memory:', Vendor.SQLITE),
            ('local.sqlite3', Vendor.SQLITE),
            ('DRIVER={ODBC Driver 18};SERVER=host', Vendor.ODBC),
            ('DSN=warehouse;UID=u', Vendor.ODBC),
            ('u:p@host:3306/db', Vendor.MYSQL),
            ('u:p@host:1433/db', Vendor.SQLSERVER),
        ],
    )
    def test_detect_vendor(self, conn_str, expected):
        assert detect_vendor(conn_str) is expected

    def test_detect_vendor_unknown(self):
        with pytest.raises(VendorDetectionError):
            detect_vendor('something-else')

    @pytest.mark.parametrize(
        'name,expected',
        [('Postgres', Vendor.POSTGRESQL), ('MSSQL', Vendor.SQLSERVER), (' mariadb ', Vendor.MYSQL)],
    )
    def test_normalize_vendor(self, name, expected):
        assert normalize_vendor(name) is expected

    def test_normalize_vendor_rejects_unknown(self):
        with pytest.raises(VendorDetectionError):
            normalize_vendor('oracle')


class TestConnections:
    @pytest.mark.parametrize(
        'conn_str,expected',
        [
            ('sqlite:///:memory:', (':memory:', False)),
            ('sqlite:///relative.db', ('relative.db', False)),
            ('sqlite:////abs/path.db', ('/abs/path.db', False)),
            ('file:test.db?mode=ro', ('file:test.db?mode=ro', True)),
            (':memory:', (':memory:', False)),
        ],
    )
    def test_resolve_sqlite_path(self, conn_str, expected):
        assert _resolve_sqlite_path(conn_str) == expected

    def test_create_sqlite_connection(self):
        conn = create_connection('sqlite:///:memory:')
        try:
            cursor = conn.cursor()
            cursor.execute('SELECT 1')
            assert cursor.fetchone() == (1,)
        finally:
            conn.close()

    def test_get_connection_closes(self):
        with get_connection(':memory:', 'sqlite') as conn:
            conn.cursor().execute('SELECT 1')
        with pytest.raises(sqlite3.ProgrammingError):
            conn.cursor()

    def test_get_connection_logs_traceback_and_reraises(self, caplog):
        caplog.set_level(logging.WARNING, logger='db_abstraction.database')

        with pytest.raises(RuntimeError, match='boom'):
            with get_connection(':memory:', 'sqlite'):
                raise RuntimeError('boom')

        record = next(r for r in caplog.records if 'Ошибка в context manager' in r.message)
        assert record.levelno == logging.WARNING
        assert record.exc_info is not None
        assert 'Traceback' in caplog.text

    @pytest.mark.parametrize('vendor', ['mysql', 'sqlserver', 'odbc'])
    def test_vendors_without_bundled_driver(self, vendor):
        with pytest.raises(UnsupportedOperationError, match='pass the connection in'):
            create_connection('DSN=whatever', vendor)


class TestTranslatePlaceholders:
    def test_named(self):
        sql, params = translate_placeholders(
            _command('SELECT * FROM t WHERE a = @a AND b = @b', a=1, b=2), 'named'
        )
        assert sql == 'SELECT * FROM t WHERE a = :a AND b = :b'
        assert params == {'a': 1, 'b': 2}

    def test_pyformat_escapes_percent(self):
        sql, params = translate_placeholders(
            _command("SELECT * FROM t WHERE name LIKE 'a%' AND id = @id", id=7), 'pyformat'
        )
        assert sql == "SELECT * FROM t WHERE name LIKE 'a%%' AND id = %(id)s"
        assert params == {'id': 7}

    def test_qmark_orders_by_occurrence(self):
        sql, params = translate_placeholders(
            _command('SELECT @b, @a, @b', a=1, b=2), 'qmark'
        )
        assert sql == 'SELECT ?, ?, ?'
        assert params == [2, 1, 2]

    def test_format(self):
        sql, params = translate_placeholders(_command('SELECT @a, 5 % 2', a=1), 'format')
        assert sql == 'SELECT %s, 5 %% 2'
        assert params == [1]

    def test_unbound_tokens_untouched(self):
        sql, params = translate_placeholders(
            _command('SELECT @@IDENTITY, @missing, @a', a=1), 'named'
        )
        assert sql == 'SELECT @@IDENTITY, @missing, :a'
        assert params == {'a': 1}

    def test_email_like_text_untouched(self):
        sql, _ = translate_placeholders(
            _command("SELECT 'user@a' WHERE x = @a", a=1), 'qmark'
        )
        assert sql == "SELECT 'user@a' WHERE x = ?"

    def test_unknown_paramstyle(self):
        with pytest.raises(ValueError, match='Unsupported paramstyle'):
            translate_placeholders(_command('SELECT 1'), 'numeric')  # type: ignore[arg-type]


class TestExecution:
    def test_reader_and_non_query(self, sqlite_conn):
        inserted = execute_non_query(
            sqlite_conn,
            _command('INSERT INTO contact (name) VALUES (@name)', name='Ann'),
            Vendor.SQLITE,
            'named',
        )
        assert inserted == 1

        with execute_reader(
            sqlite_conn, _command('SELECT name FROM contact'), Vendor.SQLITE, 'named'
        ) as cursor:
            assert cursor.columns == ['name']
            assert cursor.read() == {'name': 'Ann'}
            assert cursor.read() is None

    def test_driver_error_is_normalised(self, sqlite_conn):
        with pytest.raises(QueryError) as exc_info:
            execute_reader(sqlite_conn, _command('SELECT * FROM nope'), Vendor.SQLITE, 'named')

        assert isinstance(exc_info.value.__cause__, sqlite3.OperationalError)
        assert exc_info.value.original_error is exc_info.value.__cause__

    def test_single_row_cursor(self):
        conn = RecordingConnection((('n',), [(1,), (2,), (3,)]))
        cursor = ResultCursor(conn.cursor(), single_row=True)
        cursor._cursor.execute('SELECT n', None)

        assert cursor.fetchall() == [(1,)]
        assert cursor.fetchone() is None

    def test_result_cursor_dicts(self):
        conn = RecordingConnection((('id', 'name'), [(1, 'a'), (2, 'b')]))
        raw = conn.cursor()
        raw.execute('SELECT id, name', None)

        with ResultCursor(raw) as cursor:
            assert list(cursor.as_dicts()) == [
                {'id': 1, 'name': 'a'},
                {'id': 2, 'name': 'b'},
            ]
        assert raw.closed

    def test_buffered_cursor_detaches_from_driver(self):
        conn = RecordingConnection((('id', 'name'), [(1, 'a'), (2, 'b')]))
        raw = conn.cursor()
        raw.execute('SELECT id, name', None)

        buffered = ResultCursor(raw).buffered()
        fetches = len(conn.fetch_threads)

        assert raw.closed
        assert buffered.columns == ['id', 'name']
        assert buffered.read() == {'id': 1, 'name': 'a'}
        assert buffered.fetchall() == [(2, 'b')]
        assert len(conn.fetch_threads) == fetches
        with pytest.raises(TypeError):
            buffered._cursor.execute('SELECT 1')

    def test_database_error_passthrough(self):
        class FailingCursor:
            description = None
            rowcount = -1

            def execute(self, query, params=None):
                raise DatabaseError('already normalised')

            def fetchone(self):
                return None

            def close(self):
                pass

        class FailingConnection(RecordingConnection):
            def cursor(self):
                return FailingCursor()

        with pytest.raises(DatabaseError, match='already normalised'):
            execute_non_query(FailingConnection(), _command('DELETE'), Vendor.MYSQL, 'format')
