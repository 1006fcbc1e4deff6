# queries/builtin.py
"""Vendor-specific sequence and identity queries every registry carries."""

from __future__ import annotations

from db_abstraction.queries.base import DatabaseQuery, DbType, QueryDefinition

DEFAULT_PREFIX = 'database.'


class DatabaseQueryProvider:
    """
    Sequence/identity SQL for the supported vendors.

    Registered names (all under ``prefix``):

    - ``sequence.postgres``   current value of ``[]sequence_name``'s sequence
    - ``sequence.sqlserver``  IDENT_CURRENT of table ``[]sequence_name``
    - ``sequence.mysql``      table status of table ``[]sequence_name``
    - ``sequence.generic``    MAX of ``[]primary_key_name`` in ``[]table_name``
    - ``identity.sqlserver``, ``identity.mysql``, ``identity.sqlite``
    """

    def __init__(self, prefix: str = DEFAULT_PREFIX):
        self.prefix = prefix

    def queries(self, queries: dict[str, QueryDefinition]) -> None:
        queries[f'{self.prefix}sequence.postgres'] = self.sequence_postgres()
        queries[f'{self.prefix}sequence.sqlserver'] = self.sequence_sqlserver()
        queries[f'{self.prefix}sequence.mysql'] = self.sequence_mysql()
        queries[f'{self.prefix}sequence.generic'] = self.sequence_generic()
        queries[f'{self.prefix}identity.sqlserver'] = self.identity_sqlserver()
        queries[f'{self.prefix}identity.mysql'] = self.identity_mysql()
        queries[f'{self.prefix}identity.sqlite'] = self.identity_sqlite()

    @staticmethod
    def sequence_postgres() -> DatabaseQuery:
        return DatabaseQuery(
            sql="SELECT currval('[]sequence_name_seq') AS sequence_value",
            parameters={'[]sequence_name': DbType.STRING},
        )

    @staticmethod
    def sequence_sqlserver() -> DatabaseQuery:
        return DatabaseQuery(
            sql="SELECT IDENT_CURRENT('[]sequence_name') AS sequence_value",
            parameters={'[]sequence_name': DbType.STRING},
        )

    @staticmethod
    def sequence_mysql() -> DatabaseQuery:
        # SHOW is not a SELECT; only reachable through the sequence path
        return DatabaseQuery(
            sql="SHOW TABLE STATUS LIKE '[]sequence_name'",
            parameters={'[]sequence_name': DbType.STRING},
        )

    @staticmethod
    def sequence_generic() -> DatabaseQuery:
        return DatabaseQuery(
            sql='SELECT MAX([]primary_key_name) AS max_pk FROM []table_name',
            parameters={
                '[]primary_key_name': DbType.STRING,
                '[]table_name': DbType.STRING,
            },
        )

    @staticmethod
    def identity_sqlserver() -> DatabaseQuery:
        return DatabaseQuery(sql='SELECT SCOPE_IDENTITY()')

    @staticmethod
    def identity_mysql() -> DatabaseQuery:
        return DatabaseQuery(sql='SELECT LAST_INSERT_ID()')

    @staticmethod
    def identity_sqlite() -> DatabaseQuery:
        return DatabaseQuery(sql='SELECT last_insert_rowid()')
