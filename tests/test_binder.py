"""Тесты привязки параметров и проверки глагола запроса."""

from __future__ import annotations

import pytest

from db_abstraction.binder import BoundParameter, bind, bind_query
from db_abstraction.dispatcher import Operation, check_verb, dispatch, find_query
from db_abstraction.error_handler import QueryNotFoundError, VerbMismatchError
from db_abstraction.queries import DatabaseQuery, DbType
from db_abstraction.queries.registry import QueryRegistry


class TestBind:
    """Привязка значений к объявленным параметрам."""

    def test_none_parameters_leaves_command_empty(self):
        command = bind('SELECT * FROM t WHERE id = @id', {'id': DbType.INT32}, None)

        assert command.sql == 'SELECT * FROM t WHERE id = @id'
        assert command.parameters == {}

    def test_declared_and_supplied_are_bound(self):
        command = bind(
            'SELECT * FROM t WHERE id = @id',
            {'id': DbType.INT32},
            {'id': 5},
        )
        assert command.parameters == {'id': BoundParameter('id', DbType.INT32, 5)}
        assert command.values() == {'id': 5}

    def test_undeclared_values_are_ignored(self):
        command = bind('SELECT @id', {'id': DbType.INT32}, {'id': 1, 'extra': 2})
        assert set(command.parameters) == {'id'}

    def test_declared_but_missing_is_skipped(self):
        command = bind(
            'SELECT * FROM t WHERE a = @a OR b = @b',
            {'a': DbType.STRING, 'b': DbType.STRING},
            {'a': 'x'},
        )
        assert set(command.parameters) == {'a'}

    def test_values_are_not_type_checked(self):
        command = bind('SELECT @id', {'id': DbType.INT32}, {'id': 'not a number'})
        assert command.values() == {'id': 'not a number'}

    def test_raw_substitution_in_text(self):
        command = bind(
            'SELECT COUNT(*) FROM []table WHERE kind = @kind',
            {'[]table': DbType.STRING, 'kind': DbType.STRING},
            {'[]table': 'contact', 'kind': 'person'},
        )

        assert command.sql == 'SELECT COUNT(*) FROM contact WHERE kind = @kind'
        assert set(command.parameters) == {'kind'}

    def test_raw_substitution_replaces_every_occurrence(self):
        command = bind('[]t.a, []t.b', {'[]t': DbType.STRING}, {'[]t': 'x'})
        assert command.sql == 'x.a, x.b'

    def test_raw_value_uses_str(self):
        command = bind('LIMIT []n', {'[]n': DbType.INT32}, {'[]n': 10})
        assert command.sql == 'LIMIT 10'

    def test_registered_query_is_not_modified(self):
        query = DatabaseQuery(
            'SELECT * FROM []table', {'[]table': DbType.STRING}, name='q'
        )

        first = bind_query(query, {'[]table': 'one'})
        second = bind_query(query, {'[]table': 'two'})

        assert first.sql == 'SELECT * FROM one'
        assert second.sql == 'SELECT * FROM two'
        assert query.sql == 'SELECT * FROM []table'


class TestDispatch:
    """Поиск запроса по имени и проверка глагола."""

    @pytest.fixture
    def registry(self, contact_provider) -> QueryRegistry:
        return QueryRegistry.build(contact_provider)

    @pytest.mark.parametrize(
        'operation,name',
        [
            (Operation.SELECT, 'contact.all'),
            (Operation.INSERT, 'contact.insert'),
            (Operation.UPDATE, 'contact.rename'),
            (Operation.DELETE, 'contact.remove'),
        ],
    )
    def test_matching_verb(self, registry, operation, name):
        command = dispatch(registry, operation, name, None)
        assert command.sql == registry[name].sql

    @pytest.mark.parametrize(
        'operation,name,message',
        [
            (Operation.INSERT, 'contact.all', 'Query contact.all is not an insert statement'),
            (Operation.SELECT, 'contact.remove', 'Query contact.remove is not a select statement'),
            (Operation.UPDATE, 'contact.insert', 'Query contact.insert is not an update statement'),
            (Operation.DELETE, 'contact.rename', 'Query contact.rename is not a delete statement'),
        ],
    )
    def test_mismatched_verb(self, registry, operation, name, message):
        with pytest.raises(VerbMismatchError) as exc_info:
            dispatch(registry, operation, name, None)
        assert str(exc_info.value) == message

    @pytest.mark.parametrize('sql', ['select 1', 'SeLeCt 1', 'SELECT 1'])
    def test_verb_check_is_case_insensitive(self, sql):
        check_verb(DatabaseQuery(sql), 'q', Operation.SELECT)

    @pytest.mark.parametrize(
        'sql',
        [
            'WITH x AS (SELECT 1) SELECT * FROM x',
            '  SELECT 1',
            '\n   insert into t (a) values (1)',
        ],
    )
    def test_verb_must_be_a_prefix(self, sql):
        operation = Operation.INSERT if 'insert' in sql else Operation.SELECT
        with pytest.raises(VerbMismatchError):
            check_verb(DatabaseQuery(sql), 'q', operation)

    def test_leading_whitespace_rejected_on_dispatch(self):
        registry = QueryRegistry(
            {'q': DatabaseQuery('\n   insert into t (a) values (@a)', {'a': DbType.INT32})}
        )
        with pytest.raises(VerbMismatchError, match='Query q is not an insert statement'):
            dispatch(registry, Operation.INSERT, 'q', {'a': 1})

    def test_unknown_query(self, registry):
        with pytest.raises(QueryNotFoundError) as exc_info:
            find_query(registry, 'contact.nope')
        assert exc_info.value.query_name == 'contact.nope'

    def test_dispatch_binds_parameters(self, registry):
        command = dispatch(registry, Operation.SELECT, 'contact.get', {'contact_id': 3})
        assert command.values() == {'contact_id': 3}
