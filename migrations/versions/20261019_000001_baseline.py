"""Baseline schema from painel.db

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01
"""

from __future__ import annotations

from typing import Iterable, Sequence, Union

from alembic import op
from sqlalchemy.engine import Connection

from painel.db import SCHEMA_TABLES, _convert_qmark_to_pg, _init_db_postgres, _init_db_sqlite, _split_sql_statements


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


class _ResultAdapter:
    def __init__(self, result):
        self._result = result

    @staticmethod
    def _as_mapping(row):
        if row is None:
            return None
        mapping = getattr(row, "_mapping", None)
        return dict(mapping) if mapping is not None else row

    def fetchone(self):
        return self._as_mapping(self._result.fetchone())

    def fetchall(self):
        return [self._as_mapping(row) for row in self._result.fetchall()]


class _MigrationDb:
    """Exposes the Alembic connection with the same surface painel.db.Database offers."""

    def __init__(self, connection: Connection, backend: str):
        self._connection = connection
        self.backend = backend

    def execute(self, sql: str, params: Iterable | None = None):
        if params is None:
            return _ResultAdapter(self._connection.exec_driver_sql(sql))
        statement = _convert_qmark_to_pg(sql) if self.backend == "postgres" else sql
        return _ResultAdapter(self._connection.exec_driver_sql(statement, tuple(params)))

    def executescript(self, sql: str):
        for statement in _split_sql_statements(sql):
            if statement.strip():
                self.execute(statement)

    def commit(self):
        # Transactions belong to the migration context.
        return None

    def close(self):
        return None


def _backend(connection: Connection) -> str:
    return "postgres" if (connection.dialect.name or "").lower().startswith("postgres") else "sqlite"


def upgrade() -> None:
    connection = op.get_bind()
    backend = _backend(connection)
    db = _MigrationDb(connection, backend)
    if backend == "postgres":
        _init_db_postgres(db)
    else:
        _init_db_sqlite(db)


def downgrade() -> None:
    for table in SCHEMA_TABLES:
        op.execute(f"DROP TABLE IF EXISTS {table}")
